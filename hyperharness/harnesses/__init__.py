"""Backend harness implementations."""

from hyperharness.harnesses.claude_code import ClaudeCodeHarness
from hyperharness.harnesses.codex import CodexHarness

__all__ = ["ClaudeCodeHarness", "CodexHarness"]
