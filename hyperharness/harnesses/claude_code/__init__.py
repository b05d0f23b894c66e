"""Claude Code CLI harness."""

from hyperharness.harnesses.claude_code.args import (
    PLANNING_TOOLS,
    READ_ONLY_ALLOWED_TOOLS,
    READ_ONLY_DISALLOWED_TOOLS,
    ClaudeArgBuildResult,
    build_claude_args,
)
from hyperharness.harnesses.claude_code.events import (
    ClaudeEventNormalizer,
    extract_claude_usage,
    parse_claude_event,
)
from hyperharness.harnesses.claude_code.harness import ClaudeCodeHarness
from hyperharness.harnesses.claude_code.mcp_config import build_mcp_config_object, write_mcp_config_json

__all__ = [
    "ClaudeCodeHarness",
    "ClaudeArgBuildResult",
    "build_claude_args",
    "ClaudeEventNormalizer",
    "extract_claude_usage",
    "parse_claude_event",
    "build_mcp_config_object",
    "write_mcp_config_json",
    "PLANNING_TOOLS",
    "READ_ONLY_ALLOWED_TOOLS",
    "READ_ONLY_DISALLOWED_TOOLS",
]
