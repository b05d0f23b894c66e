"""
MCP config file for ``claude --mcp-config``.
"""

from __future__ import annotations

import json
import os
from typing import Any, Mapping

from hyperharness.types import McpHttpServerConfig, McpServerConfig, McpStdioServerConfig


def build_mcp_config_object(servers: Mapping[str, McpServerConfig]) -> dict[str, Any]:
    """Build the ``{"mcpServers": {...}}`` document. Empty optional fields are omitted."""
    mcp_servers: dict[str, Any] = {}

    for name, server in servers.items():
        if isinstance(server, McpStdioServerConfig):
            entry: dict[str, Any] = {"command": server.command}
            if server.args:
                entry["args"] = list(server.args)
            if server.env:
                entry["env"] = dict(server.env)
            if server.cwd:
                entry["cwd"] = server.cwd
        elif isinstance(server, McpHttpServerConfig):
            entry = {"type": "http", "url": server.url}
            if server.headers:
                entry["headers"] = dict(server.headers)
        else:
            raise TypeError(f"Unsupported MCP server config for {name!r}: {type(server).__name__}")
        mcp_servers[name] = entry

    return {"mcpServers": mcp_servers}


def write_mcp_config_json(servers: Mapping[str, McpServerConfig], file_path: str) -> None:
    """Write the MCP config document to ``file_path``, readable only by the owner.

    The document can hold the tool bridge's bearer token.
    """
    payload = json.dumps(build_mcp_config_object(servers), indent=2)
    fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(payload)
