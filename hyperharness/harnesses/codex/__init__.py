"""Codex CLI harness."""

from hyperharness.harnesses.codex.args import CodexArgBuildResult, build_codex_args
from hyperharness.harnesses.codex.config_overrides import (
    CodexConfigOverrideBuildResult,
    build_codex_mcp_config_overrides,
)
from hyperharness.harnesses.codex.events import CodexEventNormalizer, parse_codex_event
from hyperharness.harnesses.codex.harness import CodexHarness
from hyperharness.harnesses.codex.pricing import PRICING, calculate_cost_usd

__all__ = [
    "CodexHarness",
    "CodexArgBuildResult",
    "build_codex_args",
    "CodexConfigOverrideBuildResult",
    "build_codex_mcp_config_overrides",
    "CodexEventNormalizer",
    "parse_codex_event",
    "PRICING",
    "calculate_cost_usd",
]
