"""
Protocol definitions for hyperharness backends.

A harness adapts one backend CLI to the common envelope-event interface.
Implementations only need to match this protocol structurally.

Usage:
    from hyperharness.protocols import Harness

    async def run(harness: Harness, query: HarnessQuery) -> None:
        async for event in harness.query(query):
            print(event.to_dict())
"""

from __future__ import annotations

from typing import AsyncIterator, Optional, Protocol, runtime_checkable

from hyperharness.types import (
    AbortSignal,
    HarnessCapabilities,
    HarnessEvent,
    HarnessInstallStatus,
    HarnessMeta,
    HarnessModel,
    HarnessQuery,
    SlashCommand,
)


@runtime_checkable
class Harness(Protocol):
    """Protocol for backend CLI harnesses (Claude Code, Codex, ...)."""

    id: str

    def meta(self) -> HarnessMeta:
        """Display metadata for the backend."""
        ...

    def models(self) -> list[HarnessModel]:
        """Models selectable for this backend."""
        ...

    def capabilities(self) -> HarnessCapabilities:
        """Feature flags for this backend."""
        ...

    async def check_install_status(self) -> HarnessInstallStatus:
        """Probe whether the CLI is installed and authenticated."""
        ...

    async def discover_slash_commands(
        self, cwd: str, signal: Optional[AbortSignal] = None
    ) -> list[SlashCommand]:
        """List slash commands and skills the backend advertises for ``cwd``."""
        ...

    def query(self, q: HarnessQuery) -> AsyncIterator[HarnessEvent]:
        """Run one query and stream its envelope events."""
        ...
