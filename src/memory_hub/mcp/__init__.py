from .dispatcher import ProtocolDispatcher
from .protocol import JsonRpcRequest, JsonRpcResponse
from .stdio_server import StdioServer
from .tools import TOOLS, tool_catalog

__all__ = ["TOOLS", "JsonRpcRequest", "JsonRpcResponse", "ProtocolDispatcher", "StdioServer", "tool_catalog"]
