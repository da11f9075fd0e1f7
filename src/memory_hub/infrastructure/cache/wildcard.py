"""Glob matching for cache keys: ``*`` is any run of characters, ``?`` exactly one."""

# Characters that carry meaning in Redis MATCH patterns
_REDIS_SPECIAL = frozenset("*?[]\\")


def wildcard_match(pattern: str, key: str) -> bool:
    """Return True if ``key`` matches ``pattern`` in full.

    Greedy two-pointer walk with backtracking to the last ``*``; linear in
    practice and free of regex compilation for every invalidation.
    """
    p = k = 0
    star_p = -1
    star_k = 0
    while k < len(key):
        if p < len(pattern) and (pattern[p] == "?" or pattern[p] == key[k]):
            p += 1
            k += 1
        elif p < len(pattern) and pattern[p] == "*":
            star_p = p
            star_k = k
            p += 1
        elif star_p != -1:
            p = star_p + 1
            star_k += 1
            k = star_k
        else:
            return False

    while p < len(pattern) and pattern[p] == "*":
        p += 1
    return p == len(pattern)


def escape_redis_literal(text: str) -> str:
    """Escape every Redis glob metacharacter so ``text`` matches only itself."""
    return "".join(f"\\{ch}" if ch in _REDIS_SPECIAL else ch for ch in text)


def to_redis_pattern(glob: str) -> str:
    """Translate a ``*``/``?`` glob to a Redis MATCH pattern, neutralising ``[``, ``]`` and ``\\``."""
    return "".join(f"\\{ch}" if ch in "[]\\" else ch for ch in glob)
