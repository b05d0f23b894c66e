"""
Harness registry.

Holds the harness instances available to a process, keyed by harness id.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from hyperharness.exceptions import HarnessError, HarnessNotRegisteredError
from hyperharness.protocols import Harness
from hyperharness.types import HarnessId, HarnessInstallStatus

logger = logging.getLogger(__name__)


class HarnessRegistry:
    """Registry of harnesses by id."""

    def __init__(self) -> None:
        self._harnesses: dict[HarnessId, Harness] = {}

    def register(self, harness: Harness) -> None:
        """Register a harness. Ids must be unique."""
        if harness.id in self._harnesses:
            raise HarnessError(
                f'Harness "{harness.id}" is already registered', "unknown", harness.id
            )
        self._harnesses[harness.id] = harness
        logger.debug(f"Registered harness {harness.id}")

    def get(self, harness_id: HarnessId) -> Optional[Harness]:
        return self._harnesses.get(harness_id)

    def get_or_raise(self, harness_id: HarnessId) -> Harness:
        harness = self._harnesses.get(harness_id)
        if harness is None:
            raise HarnessNotRegisteredError(harness_id)
        return harness

    def all(self) -> list[Harness]:
        return list(self._harnesses.values())

    def has(self, harness_id: HarnessId) -> bool:
        return harness_id in self._harnesses

    async def check_all_install_status(self) -> dict[HarnessId, HarnessInstallStatus]:
        """Probe every registered harness concurrently."""
        ids = list(self._harnesses)
        statuses = await asyncio.gather(
            *(self._harnesses[harness_id].check_install_status() for harness_id in ids)
        )
        return dict(zip(ids, statuses))


def create_default_registry() -> HarnessRegistry:
    """Registry with the built-in Claude Code and Codex harnesses, configured from env."""
    from hyperharness.config import ClaudeCodeHarnessConfig, CodexHarnessConfig
    from hyperharness.harnesses.claude_code import ClaudeCodeHarness
    from hyperharness.harnesses.codex import CodexHarness

    registry = HarnessRegistry()
    registry.register(ClaudeCodeHarness(ClaudeCodeHarnessConfig.from_env()))
    registry.register(CodexHarness(CodexHarnessConfig.from_env()))
    return registry
