"""
MCP server configuration for Codex as ``-c key=value`` overrides.

Codex reads MCP servers from config.toml; overriding keys on the command
line avoids writing that file. Bearer tokens are passed through environment
variables so they never appear in the process argument list.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Mapping

from hyperharness.types import McpHttpServerConfig, McpServerConfig, McpStdioServerConfig

TOKEN_ENV_PREFIX = "__HARNESS_MCP_TOKEN_"

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE)


@dataclass
class CodexConfigOverrideBuildResult:
    config_args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)


def escape_toml(value: str) -> str:
    """Escape a value for a TOML basic string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_codex_mcp_config_overrides(
    servers: Mapping[str, McpServerConfig],
) -> CodexConfigOverrideBuildResult:
    result = CodexConfigOverrideBuildResult()

    for name, server in servers.items():
        safe_name = name.replace("-", "_")
        prefix = f"mcp_servers.{safe_name}"

        if isinstance(server, McpStdioServerConfig):
            result.config_args.append(f'{prefix}.type="stdio"')
            result.config_args.append(f'{prefix}.command="{escape_toml(server.command)}"')
            if server.args:
                # A JSON string array is also a valid TOML array
                result.config_args.append(f"{prefix}.args={json.dumps(list(server.args))}")
            for key, value in server.env.items():
                result.config_args.append(f'{prefix}.env.{key}="{escape_toml(value)}"')

        elif isinstance(server, McpHttpServerConfig):
            result.config_args.append(f'{prefix}.type="http"')
            result.config_args.append(f'{prefix}.url="{escape_toml(server.url)}"')

            bearer = None
            for key, value in server.headers.items():
                if key.lower() == "authorization":
                    bearer = _BEARER_RE.match(value)
                    break

            if bearer:
                env_var = f"{TOKEN_ENV_PREFIX}{safe_name.upper()}"
                result.config_args.append(f'{prefix}.bearer_token_env_var="{env_var}"')
                result.env[env_var] = bearer.group(1)

            for key, value in server.headers.items():
                if bearer and key.lower() == "authorization":
                    continue
                header_key = key.replace("-", "_")
                result.config_args.append(f'{prefix}.http_headers.{header_key}="{escape_toml(value)}"')

        else:
            raise TypeError(f"Unsupported MCP server config for {name!r}: {type(server).__name__}")

    return result
