"""Line-delimited stdio transport.

One JSON object per line in, one per line out. Each line is dispatched in its
own task, so a slow call never blocks intake of the next request; responses
may therefore arrive out of order and are matched by ``id``.
"""

import json
import sys
from io import TextIOWrapper
from typing import IO, Any

import anyio

from memory_hub.core.logging import get_logger
from memory_hub.mcp.dispatcher import ProtocolDispatcher

logger = get_logger(__name__)


def open_text_stream(binary: IO[bytes]) -> Any:
    """Async UTF-8 text view of a binary stream.

    Undecodable bytes become U+FFFD, so a bad line is answered as an invalid
    request instead of ending the session.
    """
    return anyio.wrap_file(TextIOWrapper(binary, encoding="utf-8", errors="replace"))


class StdioServer:
    def __init__(self, dispatcher: ProtocolDispatcher, stdin: Any = None, stdout: Any = None):
        self.dispatcher = dispatcher
        self.stdin = stdin if stdin is not None else open_text_stream(sys.stdin.buffer)
        self.stdout = stdout if stdout is not None else open_text_stream(sys.stdout.buffer)
        self._write_lock = anyio.Lock()

    async def serve(self) -> None:
        """Read until EOF, then wait for in-flight requests to finish."""
        logger.info("Stdio server started")
        async with anyio.create_task_group() as tg:
            async for line in self.stdin:
                line = line.strip()
                if line:
                    tg.start_soon(self._respond, line)
        logger.info("Stdin closed, stdio server stopped")

    async def _respond(self, line: str) -> None:
        response = await self.dispatcher.handle_line(line)
        if response is None:
            return
        payload = json.dumps(response, ensure_ascii=False, default=str)
        async with self._write_lock:
            await self.stdout.write(payload + "\n")
            await self.stdout.flush()
