"""Protocol dispatcher: envelope validation, routing and error mapping.

Stateless per request. Errors map onto four JSON-RPC buckets by type:

- malformed envelope -> Invalid Request (-32600)
- unknown method or tool -> Method not found (-32601)
- ``ValidationError`` or a missing required argument -> Invalid params (-32602)
- anything else -> Internal error (-32603) with the message in ``data``
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from typing import Any

import mcp.types as types
import pydantic

from memory_hub.core.errors import (
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ProtocolError,
    ValidationError,
)
from memory_hub.core.logging import clear_log_context, get_logger, set_log_context
from memory_hub.mcp.protocol import JSONRPC_VERSION, JsonRpcRequest, JsonRpcResponse, RequestId
from memory_hub.mcp.tools import TOOLS_BY_NAME, required_arguments, tool_catalog
from memory_hub.services import MemoryService

logger = get_logger(__name__)

Handler = Callable[[Any], Awaitable[Any]]


def _request_id(message: Any) -> RequestId:
    if isinstance(message, dict):
        value = message.get("id")
        if isinstance(value, str | int) and not isinstance(value, bool):
            return value
    return None


class ProtocolDispatcher:
    """Maps JSON-RPC requests onto memory service operations."""

    def __init__(
        self,
        service: MemoryService,
        *,
        server_name: str = "memory-hub",
        server_version: str = "2.0.0",
        server_description: str = "Memory management with semantic search",
        protocol_version: str = "2024-11-05",
    ):
        self.service = service
        self.server_info = {"name": server_name, "version": server_version, "description": server_description}
        self.protocol_version = protocol_version
        self._methods: dict[str, Handler] = {
            "initialize": self._initialize,
            "tools/list": self._list_tools,
            "listTools": self._list_tools,
            "tools/call": self._call_tool,
            "callTool": self._call_tool,
        }
        self._tools: dict[str, Handler] = {
            "memory_create": self._memory_create,
            "memory_search": self._memory_search,
            "memory_list": self._memory_list,
        }

    async def handle_line(self, line: str) -> dict[str, Any] | None:
        """Handle one raw protocol line. Returns the response message, or None for notifications."""
        try:
            message = json.loads(line)
        except (ValueError, RecursionError) as e:
            logger.warning("Undecodable request line", error=str(e))
            return JsonRpcResponse.failure(
                None, InvalidRequestError.rpc_code, f"Invalid JSON-RPC request: {e}"
            ).to_wire()
        return await self.handle(message)

    async def handle(self, message: Any) -> dict[str, Any] | None:
        request_id = _request_id(message)
        method = message.get("method") if isinstance(message, dict) else None
        set_log_context({"request_id": request_id, "method": method})
        try:
            request = self._validate(message)
            if request.is_notification and str(request.method).startswith("notifications/"):
                logger.debug("Notification received")
                return None

            handler = self._methods.get(request.method)
            if handler is None:
                raise MethodNotFoundError(f"Method not found: {request.method}")
            result = await handler(request.params)
            return JsonRpcResponse.success(request_id, result).to_wire()
        except ProtocolError as e:
            logger.info("Request rejected", error_code=e.rpc_code, error=e.message)
            return JsonRpcResponse.failure(request_id, e.rpc_code, e.message, e.data).to_wire()
        except ValidationError as e:
            logger.info("Invalid parameters", error=e.message, field=e.field)
            return JsonRpcResponse.failure(
                request_id, types.INVALID_PARAMS, f"Invalid parameters: {e.message}"
            ).to_wire()
        except Exception as e:
            logger.error("Request failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            return JsonRpcResponse.failure(request_id, types.INTERNAL_ERROR, "Internal error", str(e)).to_wire()
        finally:
            clear_log_context()

    def _validate(self, message: Any) -> JsonRpcRequest:
        if not isinstance(message, dict):
            raise InvalidRequestError("Invalid JSON-RPC request: expected an object")
        try:
            request = JsonRpcRequest.model_validate(message)
        except pydantic.ValidationError as e:
            raise InvalidRequestError("Invalid JSON-RPC request: invalid id") from e
        if request.jsonrpc != JSONRPC_VERSION:
            raise InvalidRequestError("Invalid JSON-RPC request: missing or invalid jsonrpc version")
        if not isinstance(request.method, str) or not request.method:
            raise InvalidRequestError("Invalid JSON-RPC request: missing method")
        return request

    async def _initialize(self, params: Any) -> dict[str, Any]:
        return {
            "protocolVersion": self.protocol_version,
            "capabilities": {"tools": True, "resources": False, "prompts": False, "sampling": False},
            "serverInfo": dict(self.server_info),
        }

    async def _list_tools(self, params: Any) -> dict[str, Any]:
        return {"tools": tool_catalog()}

    async def _call_tool(self, params: Any) -> dict[str, Any]:
        params = params if isinstance(params, dict) else {}
        name = params.get("name") or params.get("tool")
        if not name:
            raise InvalidParamsError("Invalid parameters: tool name is required")
        if not isinstance(name, str):
            raise InvalidParamsError("Invalid parameters: tool name must be a string")

        handler = self._tools.get(name)
        if handler is None or name not in TOOLS_BY_NAME:
            raise MethodNotFoundError(f"Unknown tool: {name}")

        arguments = params.get("arguments") or params.get("params") or {}
        if not isinstance(arguments, dict):
            raise InvalidParamsError("Invalid parameters: tool arguments must be an object")
        for field in required_arguments(name):
            if arguments.get(field) in (None, ""):
                raise InvalidParamsError(f"Invalid parameters: {field} is required")

        logger.debug("Calling tool", tool=name)
        return {"toolResult": await handler(arguments)}

    async def _memory_create(self, arguments: dict[str, Any]) -> dict[str, Any]:
        memory = await self.service.create(arguments)
        return memory.model_dump(mode="json", exclude={"similarity"})

    async def _memory_search(self, arguments: dict[str, Any]) -> dict[str, Any]:
        response = await self.service.search(arguments)
        return response.model_dump(mode="json")

    async def _memory_list(self, arguments: dict[str, Any]) -> dict[str, Any]:
        response = await self.service.list(arguments)
        return response.model_dump(mode="json", exclude={"memories": {"__all__": {"similarity"}}})
