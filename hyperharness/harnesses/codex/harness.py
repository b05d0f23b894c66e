"""
Codex harness.

Drives ``codex exec --json``. MCP servers (including the client tool bridge)
are passed as ``-c`` config overrides rather than a config file.
"""

from __future__ import annotations

import asyncio
import logging
import re
from contextlib import aclosing
from typing import AsyncIterator, Optional

from hyperharness.config import CodexHarnessConfig
from hyperharness.exceptions import HarnessNotInstalledError
from hyperharness.harnesses.codex.args import build_codex_args
from hyperharness.harnesses.codex.config_overrides import build_codex_mcp_config_overrides
from hyperharness.harnesses.codex.events import CodexEventNormalizer
from hyperharness.harnesses.common import CleanupItem, run_cleanup
from hyperharness.models import MODEL_REGISTRY
from hyperharness.types import (
    AbortSignal,
    HarnessCapabilities,
    HarnessEvent,
    HarnessInstallStatus,
    HarnessMeta,
    HarnessModel,
    HarnessQuery,
    McpServerConfig,
    SlashCommand,
)
from hyperharness.util.spawn import run_command, spawn_jsonl
from hyperharness.util.tool_bridge import ToolBridgeHandle, start_tool_bridge
from hyperharness.util.which import resolve_executable

logger = logging.getLogger(__name__)

HARNESS_ID = "codex"
BINARY_NAME = "codex"
INSTALL_INSTRUCTIONS = "Install Codex CLI: npm install -g @openai/codex"
AUTH_INSTRUCTIONS = "Run `codex login` to authenticate"

# "Logged in using ChatGPT"; "Not logged in" must not match
_LOGGED_IN_RE = re.compile(r"^\s*logged in\b", re.IGNORECASE | re.MULTILINE)


class CodexHarness:
    """Harness for OpenAI's Codex CLI."""

    id = HARNESS_ID

    def __init__(self, config: Optional[CodexHarnessConfig] = None):
        self.config = config or CodexHarnessConfig()

    def meta(self) -> HarnessMeta:
        return HarnessMeta(
            id=HARNESS_ID,
            name="Codex",
            vendor="OpenAI",
            website="https://openai.com/index/introducing-codex/",
        )

    def models(self) -> list[HarnessModel]:
        registry = MODEL_REGISTRY[HARNESS_ID]
        return [
            HarnessModel(id=m.id, label=m.label, is_default=m.id == registry.default_model)
            for m in registry.models
        ]

    def capabilities(self) -> HarnessCapabilities:
        return HarnessCapabilities(
            supports_system_prompt=False,
            supports_append_system_prompt=False,
            supports_read_only=True,
            supports_mcp=True,
            supports_resume=True,
            supports_fork=False,
            supports_client_tools=True,
            supports_streaming_tokens=False,
            supports_cost_tracking=True,
            supports_named_tools=False,
            supports_images=True,
        )

    def _resolve_binary(self) -> Optional[str]:
        if self.config.binary_path:
            return self.config.binary_path
        return resolve_executable(BINARY_NAME)

    async def check_install_status(self) -> HarnessInstallStatus:
        binary = self._resolve_binary()
        if not binary:
            return HarnessInstallStatus(
                installed=False,
                authenticated=False,
                auth_instructions=INSTALL_INSTRUCTIONS,
            )

        timeout = self.config.probe_timeout_seconds
        version: Optional[str] = None
        try:
            result = await run_command(binary, ["--version"], timeout=timeout)
            version = result.stdout.strip() or None
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"codex --version failed: {e}")

        # codex reports login state on stderr
        authenticated = False
        try:
            result = await run_command(binary, ["login", "status"], timeout=timeout)
            authenticated = result.returncode == 0 and bool(_LOGGED_IN_RE.search(result.combined))
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"codex login status failed: {e}")

        return HarnessInstallStatus(
            installed=True,
            authenticated=authenticated,
            version=version,
            auth_instructions=None if authenticated else AUTH_INSTRUCTIONS,
        )

    async def discover_slash_commands(
        self, cwd: str, signal: Optional[AbortSignal] = None
    ) -> list[SlashCommand]:
        return []

    async def query(self, q: HarnessQuery) -> AsyncIterator[HarnessEvent]:
        binary = self._resolve_binary()
        if not binary:
            raise HarnessNotInstalledError(HARNESS_ID, INSTALL_INSTRUCTIONS)

        bridge: Optional[ToolBridgeHandle] = None
        cleanup: list[CleanupItem] = []

        try:
            servers: dict[str, McpServerConfig] = dict(q.mcp_servers)
            if q.client_tools:
                bridge = await start_tool_bridge(q.client_tools)
                servers[bridge.server_name] = bridge.mcp_server

            env: dict[str, str] = {}
            mcp_config_args: Optional[list[str]] = None
            if servers:
                overrides = build_codex_mcp_config_overrides(servers)
                mcp_config_args = overrides.config_args
                env.update(overrides.env)
            if bridge is not None:
                env.update(bridge.env)

            build = build_codex_args(q, self.config, mcp_config_args)
            env.update(build.env)
            cleanup.extend(build.cleanup)

            normalizer = CodexEventNormalizer(q)
            logger.info(f"Starting codex query in {build.cwd} (mode={q.mode}, model={q.model})")
            async with aclosing(
                spawn_jsonl(
                    binary,
                    build.args,
                    signal=q.signal,
                    parse_line=normalizer.parse_line,
                    on_exit=normalizer.on_exit,
                    cwd=build.cwd,
                    env=env,
                    kill_grace_seconds=self.config.kill_grace_seconds,
                )
            ) as events:
                async for event in events:
                    yield event
        finally:
            await run_cleanup(cleanup, bridge)
