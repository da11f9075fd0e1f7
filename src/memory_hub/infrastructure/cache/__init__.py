"""Tiered cache: shared Redis level over a bounded local level."""

from .local import LocalCache
from .regions import CacheRegion
from .tiered import TieredCache
from .wildcard import wildcard_match

__all__ = ["CacheRegion", "LocalCache", "TieredCache", "wildcard_match"]
