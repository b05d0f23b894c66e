"""
Client tool bridge.

Exposes caller-defined async tools to a backend CLI as an MCP server over
streamable HTTP. The bridge listens on an ephemeral loopback port for the
lifetime of one query; its address and bearer token are folded into the
query's MCP server map before the backend is spawned.

Only the subset of MCP the backends use for tools is implemented:
``initialize``, ``ping``, ``tools/list``, ``tools/call`` and notifications,
as JSON-RPC 2.0 over ``POST /mcp`` with plain JSON responses.

Usage:
    handle = await start_tool_bridge([lookup_tool])
    try:
        servers[handle.server_name] = handle.mcp_server
        ...
    finally:
        await handle.stop()
"""

from __future__ import annotations

import json
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from aiohttp import web

from hyperharness.__version__ import __version__
from hyperharness.exceptions import ToolBridgeError
from hyperharness.types import ClientToolDefinition, McpHttpServerConfig

logger = logging.getLogger(__name__)

SERVER_NAME = "__harness_client_tools"
MCP_PATH = "/mcp"
PROTOCOL_VERSION = "2025-03-26"
SESSION_HEADER = "Mcp-Session-Id"

# JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


def _rpc_error(code: int, message: str, request_id: Any = None) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def _rpc_result(result: dict[str, Any], request_id: Any) -> dict[str, Any]:
    return {"jsonrpc": "2.0", "result": result, "id": request_id}


def _text_result(text: str, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


class ToolDispatcher:
    """JSON-RPC dispatcher for the tool bridge, independent of HTTP."""

    def __init__(self, tools: Sequence[ClientToolDefinition]):
        self._tools = {tool.name: tool for tool in tools}

    def list_tools(self) -> dict[str, Any]:
        return {
            "tools": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": tool.input_schema,
                }
                for tool in self._tools.values()
            ]
        }

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return _text_result(f"Unknown tool: {name}", is_error=True)

        try:
            result = await tool.handler(arguments)
        except Exception as e:
            logger.warning(f"Client tool {name} raised: {e}")
            return _text_result(str(e), is_error=True)

        if result.error:
            return _text_result(result.error, is_error=True)
        return _text_result(result.content or "")

    async def dispatch(self, message: Any) -> Optional[dict[str, Any]]:
        """Handle one JSON-RPC message. Returns None for notifications."""
        if not isinstance(message, dict) or message.get("jsonrpc") != "2.0":
            return _rpc_error(INVALID_REQUEST, "Invalid Request")

        method = message.get("method")
        request_id = message.get("id")
        if not isinstance(method, str):
            # Responses from the client to server-initiated requests; none are sent
            return None
        if "id" not in message:
            logger.debug(f"Tool bridge notification: {method}")
            return None

        params = message.get("params")
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            return _rpc_error(INVALID_PARAMS, "Params must be an object", request_id)

        if method == "initialize":
            return _rpc_result(
                {
                    "protocolVersion": params.get("protocolVersion", PROTOCOL_VERSION),
                    "capabilities": {"tools": {"listChanged": False}},
                    "serverInfo": {"name": SERVER_NAME, "version": __version__},
                },
                request_id,
            )
        if method == "ping":
            return _rpc_result({}, request_id)
        if method == "tools/list":
            return _rpc_result(self.list_tools(), request_id)
        if method == "tools/call":
            name = params.get("name")
            if not isinstance(name, str):
                return _rpc_error(INVALID_PARAMS, "Missing tool name", request_id)
            arguments = params.get("arguments")
            if arguments is None:
                arguments = {}
            elif not isinstance(arguments, dict):
                return _rpc_error(INVALID_PARAMS, "Tool arguments must be an object", request_id)
            return _rpc_result(await self.call_tool(name, arguments), request_id)

        return _rpc_error(METHOD_NOT_FOUND, f"Method not found: {method}", request_id)


def _json_response(body: Any, status: int = 200, headers: Optional[dict[str, str]] = None) -> web.Response:
    return web.json_response(body, status=status, headers=headers)


def create_bridge_app(dispatcher: ToolDispatcher, auth_token: Optional[str]) -> web.Application:
    """Build the aiohttp application serving the bridge endpoint."""
    session_id = uuid.uuid4().hex

    @web.middleware
    async def auth_middleware(request: web.Request, handler):
        if auth_token is not None:
            if request.headers.get("Authorization") != f"Bearer {auth_token}":
                return _json_response(_rpc_error(SERVER_ERROR, "Unauthorized"), status=401)
        return await handler(request)

    async def handle_post(request: web.Request) -> web.StreamResponse:
        try:
            payload = json.loads(await request.text())
        except ValueError:
            return _json_response(_rpc_error(PARSE_ERROR, "Parse error"), status=400)

        headers = {SESSION_HEADER: session_id}
        if isinstance(payload, list):
            if not payload:
                return _json_response(_rpc_error(INVALID_REQUEST, "Invalid Request"), status=400)
            responses = [r for r in [await dispatcher.dispatch(m) for m in payload] if r is not None]
            if not responses:
                return web.Response(status=202, headers=headers)
            return _json_response(responses, headers=headers)

        response = await dispatcher.dispatch(payload)
        if response is None:
            return web.Response(status=202, headers=headers)
        return _json_response(response, headers=headers)

    async def handle_delete(request: web.Request) -> web.StreamResponse:
        # Session teardown from the client; the bridge's lifetime is owned by the query
        return web.Response(status=200)

    async def handle_not_allowed(request: web.Request) -> web.StreamResponse:
        return web.Response(status=405, text="Method Not Allowed", headers={"Allow": "POST, DELETE"})

    app = web.Application(middlewares=[auth_middleware])
    app.router.add_post(MCP_PATH, handle_post)
    app.router.add_delete(MCP_PATH, handle_delete)
    app.router.add_route("*", MCP_PATH, handle_not_allowed)
    return app


@dataclass
class ToolBridgeHandle:
    """A running tool bridge.

    Attributes:
        server_name: Key to use in the query's MCP server map.
        mcp_server: HTTP MCP server config pointing at the bridge.
        env: Extra variables to merge into the backend's environment.
    """

    server_name: str
    mcp_server: McpHttpServerConfig
    env: dict[str, str] = field(default_factory=dict)
    _runner: Optional[web.AppRunner] = field(default=None, repr=False)

    @property
    def url(self) -> str:
        return self.mcp_server.url

    async def stop(self) -> None:
        """Close the listener. Safe to call more than once."""
        runner, self._runner = self._runner, None
        if runner is not None:
            await runner.cleanup()
            logger.debug(f"Tool bridge at {self.mcp_server.url} stopped")


async def start_tool_bridge(
    tools: Sequence[ClientToolDefinition],
    host: str = "127.0.0.1",
    port: int = 0,
    require_auth: bool = True,
) -> ToolBridgeHandle:
    """Start a bridge serving ``tools`` and return its handle.

    Args:
        tools: Tools to expose. Names must be unique.
        host: Interface to bind. Loopback by default.
        port: Port to bind; 0 picks an ephemeral port.
        require_auth: Require a random bearer token on every request.

    Raises:
        ToolBridgeError: Duplicate tool names, or the listener failed to bind.
    """
    names = [tool.name for tool in tools]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ToolBridgeError(f"Duplicate client tool names: {', '.join(duplicates)}")

    auth_token = secrets.token_hex(32) if require_auth else None
    app = create_bridge_app(ToolDispatcher(tools), auth_token)

    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError as e:
        await runner.cleanup()
        raise ToolBridgeError(f"Failed to start tool bridge on {host}:{port}: {e}") from e

    addresses = runner.addresses
    if not addresses:
        await runner.cleanup()
        raise ToolBridgeError("Failed to get tool bridge address")
    bound_port = addresses[0][1]

    url = f"http://{host}:{bound_port}{MCP_PATH}"
    headers = {"Authorization": f"Bearer {auth_token}"} if auth_token else {}
    logger.debug(f"Tool bridge serving {len(tools)} tools at {url}")

    return ToolBridgeHandle(
        server_name=SERVER_NAME,
        mcp_server=McpHttpServerConfig(url=url, headers=headers),
        _runner=runner,
    )
