"""
Claude Code harness.

Drives the ``claude`` CLI in print mode with stream-json output.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import tempfile
import uuid
from contextlib import aclosing
from typing import Any, AsyncIterator, Optional

from hyperharness.config import ClaudeCodeHarnessConfig
from hyperharness.exceptions import HarnessNotInstalledError
from hyperharness.harnesses.claude_code.args import build_claude_args
from hyperharness.harnesses.claude_code.events import ClaudeEventNormalizer, is_init_message
from hyperharness.harnesses.claude_code.mcp_config import write_mcp_config_json
from hyperharness.harnesses.common import CleanupItem, run_cleanup
from hyperharness.models import MODEL_REGISTRY
from hyperharness.types import (
    AbortController,
    AbortSignal,
    HarnessCapabilities,
    HarnessEvent,
    HarnessInstallStatus,
    HarnessMeta,
    HarnessModel,
    HarnessQuery,
    McpServerConfig,
    MessageEvent,
    SlashCommand,
)
from hyperharness.util.spawn import run_command, spawn_jsonl
from hyperharness.util.tool_bridge import ToolBridgeHandle, start_tool_bridge
from hyperharness.util.which import resolve_executable

logger = logging.getLogger(__name__)

HARNESS_ID = "claude-code"
BINARY_NAME = "claude"
INSTALL_INSTRUCTIONS = "Install Claude Code: npm install -g @anthropic-ai/claude-code"
AUTH_INSTRUCTIONS = "Run `claude login` to authenticate"
VERSION_TIMEOUT_SECONDS = 10.0

PROBE_PROMPT = "__harness_probe__"
PROBE_ARGS = (
    "--print",
    PROBE_PROMPT,
    "--output-format",
    "stream-json",
    "--verbose",
    "--dangerously-skip-permissions",
)
AUTH_FAILURE_PHRASES = ("Not logged in", "authentication")


def _parse_raw_message(line: str) -> MessageEvent:
    return MessageEvent(message=json.loads(line))


def is_auth_failure(result: dict[str, Any]) -> bool:
    """True for a ``result`` message reporting that the CLI is not logged in."""
    text = result.get("result")
    return bool(result.get("is_error")) and isinstance(text, str) and any(
        phrase in text for phrase in AUTH_FAILURE_PHRASES
    )


class ClaudeCodeHarness:
    """Harness for Anthropic's Claude Code CLI."""

    id = HARNESS_ID

    def __init__(self, config: Optional[ClaudeCodeHarnessConfig] = None):
        self.config = config or ClaudeCodeHarnessConfig()

    def meta(self) -> HarnessMeta:
        return HarnessMeta(
            id=HARNESS_ID,
            name="Claude Code",
            vendor="Anthropic",
            website="https://docs.anthropic.com/en/docs/claude-code",
        )

    def models(self) -> list[HarnessModel]:
        registry = MODEL_REGISTRY[HARNESS_ID]
        return [
            HarnessModel(id=m.id, label=m.label, is_default=m.id == registry.default_model)
            for m in registry.models
        ]

    def capabilities(self) -> HarnessCapabilities:
        return HarnessCapabilities(
            supports_system_prompt=True,
            supports_append_system_prompt=True,
            supports_read_only=True,
            supports_mcp=True,
            supports_resume=True,
            supports_fork=True,
            supports_client_tools=True,
            supports_streaming_tokens=False,
            supports_cost_tracking=True,
            supports_named_tools=True,
            supports_images=True,
        )

    def _resolve_binary(self) -> Optional[str]:
        if self.config.binary_path:
            return self.config.binary_path
        return resolve_executable(BINARY_NAME)

    # =========================================================================
    # Probing
    # =========================================================================

    async def _probe(
        self,
        binary: str,
        cwd: Optional[str] = None,
        parent: Optional[AbortSignal] = None,
    ) -> Optional[dict[str, Any]]:
        """Run a throwaway prompt until the first init or result message.

        Returns that message, or None on timeout/failure. The probe process is
        cancelled as soon as the message arrives.
        """
        controller = AbortController(parent)
        loop = asyncio.get_running_loop()
        timer = loop.call_later(self.config.probe_timeout_seconds, controller.abort)
        try:
            async with aclosing(
                spawn_jsonl(
                    binary,
                    PROBE_ARGS,
                    signal=controller.signal,
                    parse_line=_parse_raw_message,
                    cwd=cwd,
                    env={"CLAUDECODE": ""},
                    kill_grace_seconds=self.config.kill_grace_seconds,
                )
            ) as events:
                async for event in events:
                    if not isinstance(event, MessageEvent):
                        continue
                    message = event.message
                    if is_init_message(message) or message.get("type") == "result":
                        controller.abort()
                        return message
        finally:
            timer.cancel()
            controller.detach()
        return None

    async def check_install_status(self) -> HarnessInstallStatus:
        binary = self._resolve_binary()
        if not binary:
            return HarnessInstallStatus(
                installed=False,
                authenticated=False,
                auth_instructions=INSTALL_INSTRUCTIONS,
            )

        version: Optional[str] = None
        try:
            result = await run_command(binary, ["--version"], timeout=VERSION_TIMEOUT_SECONDS)
            version = result.stdout.strip() or None
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug(f"claude --version failed: {e}")

        message = await self._probe(binary)
        if message is None:
            authenticated = False
        elif message.get("type") == "result":
            authenticated = not is_auth_failure(message)
        else:
            authenticated = True

        return HarnessInstallStatus(
            installed=True,
            authenticated=authenticated,
            version=version,
            auth_instructions=None if authenticated else AUTH_INSTRUCTIONS,
        )

    async def discover_slash_commands(
        self, cwd: str, signal: Optional[AbortSignal] = None
    ) -> list[SlashCommand]:
        binary = self._resolve_binary()
        if not binary:
            return []

        message = await self._probe(binary, cwd=cwd, parent=signal)
        if message is None or not is_init_message(message):
            return []

        commands = [
            SlashCommand(name=name, type="slash_command")
            for name in message.get("slash_commands") or []
        ]
        commands.extend(SlashCommand(name=name, type="skill") for name in message.get("skills") or [])
        return commands

    # =========================================================================
    # Query
    # =========================================================================

    async def query(self, q: HarnessQuery) -> AsyncIterator[HarnessEvent]:
        binary = self._resolve_binary()
        if not binary:
            raise HarnessNotInstalledError(HARNESS_ID, INSTALL_INSTRUCTIONS)

        build = build_claude_args(q, self.config)
        args = list(build.args)
        env = dict(build.env)
        cleanup: list[CleanupItem] = list(build.cleanup)
        bridge: Optional[ToolBridgeHandle] = None

        try:
            servers: dict[str, McpServerConfig] = dict(q.mcp_servers)
            if q.client_tools:
                bridge = await start_tool_bridge(q.client_tools)
                servers[bridge.server_name] = bridge.mcp_server
                env.update(bridge.env)

            if servers:
                config_path = os.path.join(tempfile.gettempdir(), f"harness-mcp-{uuid.uuid4()}.json")
                cleanup.append(CleanupItem(config_path, "file"))
                write_mcp_config_json(servers, config_path)
                args.extend(["--mcp-config", config_path, "--strict-mcp-config"])

            normalizer = ClaudeEventNormalizer()
            logger.info(f"Starting claude query in {build.cwd} (mode={q.mode}, model={q.model})")
            async with aclosing(
                spawn_jsonl(
                    binary,
                    args,
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
