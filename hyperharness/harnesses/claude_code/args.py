"""
Argument and environment builder for the ``claude`` CLI.

Pure: turns a HarnessQuery plus harness configuration into an argument list
and child environment without touching the filesystem. The MCP config file
is written by the harness, which appends ``--mcp-config`` afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hyperharness.config import ClaudeCodeHarnessConfig
from hyperharness.harnesses.common import CleanupItem, dedupe
from hyperharness.types import HarnessQuery, resolve_prompt_text

THINKING_EFFORT_MAP: dict[str, str] = {
    "low": "low",
    "med": "medium",
    "high": "high",
}

# Read-only mode: nothing runs unless pre-approved here
READ_ONLY_ALLOWED_TOOLS: tuple[str, ...] = (
    "Read",
    "Glob",
    "Grep",
    "WebSearch",
    "WebFetch",
    "Bash(git status *)",
    "Bash(git log *)",
    "Bash(git diff *)",
    "Bash(git show *)",
    "Bash(git blame *)",
    "Bash(git branch *)",
    "Bash(ls *)",
    "Bash(cat *)",
    "Bash(head *)",
    "Bash(tail *)",
    "Bash(wc *)",
    "Bash(rg *)",
    "Bash(gh api *)",
    "Bash(gh pr view *)",
    "Bash(gh issue view *)",
)

READ_ONLY_DISALLOWED_TOOLS: tuple[str, ...] = ("Edit", "Write", "NotebookEdit")

PLANNING_TOOLS: tuple[str, ...] = ("EnterPlanMode", "ExitPlanMode", "Task(Plan)", "AskUserQuestion")

# Characters that make a comma-joined tool list ambiguous
_UNSAFE_JOIN_CHARS = (",", " ")

SUBAGENT_MODEL_ENV_VARS: tuple[str, ...] = (
    "ANTHROPIC_DEFAULT_OPUS_MODEL",
    "ANTHROPIC_DEFAULT_SONNET_MODEL",
    "ANTHROPIC_DEFAULT_HAIKU_MODEL",
    "CLAUDE_CODE_SUBAGENT_MODEL",
)


@dataclass
class ClaudeArgBuildResult:
    args: list[str]
    env: dict[str, str]
    cwd: str
    cleanup: list[CleanupItem] = field(default_factory=list)


def _allowed_tool_args(tools: list[str]) -> list[str]:
    if any(ch in tool for tool in tools for ch in _UNSAFE_JOIN_CHARS):
        return ["--allowedTools", *tools]
    return ["--allowedTools", ",".join(tools)]


def build_claude_args(
    query: HarnessQuery,
    config: ClaudeCodeHarnessConfig | None = None,
) -> ClaudeArgBuildResult:
    """Build ``claude`` CLI arguments and environment for a query."""
    config = config or ClaudeCodeHarnessConfig()
    args: list[str] = []
    env: dict[str, str] = {}

    args.extend(["-p", resolve_prompt_text(query.prompt)])
    args.extend(["--output-format", "stream-json", "--verbose"])
    args.extend(["--setting-sources", ",".join(config.setting_sources)])

    if query.system_prompt:
        args.extend(["--system-prompt", query.system_prompt])
    if query.append_system_prompt:
        args.extend(["--append-system-prompt", query.append_system_prompt])

    if query.model:
        args.extend(["--model", query.model])

    effort = THINKING_EFFORT_MAP.get(query.thinking or "")
    if effort:
        args.extend(["--effort", effort])

    if query.resume_session_id:
        args.extend(["--resume", query.resume_session_id])
    if query.fork_session:
        args.append("--fork-session")

    # Permissions. interactive-approval leaves the CLI's own default in place.
    mode_allowed: tuple[str, ...] = ()
    mode_disallowed: tuple[str, ...] = ()
    if query.mode == "read-only":
        args.extend(["--permission-mode", "dontAsk"])
        mode_allowed = READ_ONLY_ALLOWED_TOOLS
        mode_disallowed = READ_ONLY_DISALLOWED_TOOLS
    elif query.mode == "unrestricted":
        args.append("--dangerously-skip-permissions")

    planning = PLANNING_TOOLS if query.disable_planning_tools else ()
    disallowed = dedupe(mode_disallowed, planning, query.disallowed_tools)
    # Deny rules win in the CLI, but keep the emitted lists disjoint anyway
    allowed = [t for t in dedupe(mode_allowed, query.allowed_tools) if t not in disallowed]

    if allowed:
        args.extend(_allowed_tool_args(allowed))
    if disallowed:
        args.extend(["--disallowed-tools", ",".join(disallowed)])

    for directory in query.additional_directories:
        args.extend(["--add-dir", directory])

    # Keep the CLI from refusing to start when the host itself runs inside Claude Code
    env["CLAUDECODE"] = ""

    if config.disable_telemetry:
        env["DISABLE_TELEMETRY"] = "1"
        env["DISABLE_ERROR_REPORTING"] = "1"

    if config.force_subagent_model and query.model:
        for name in SUBAGENT_MODEL_ENV_VARS:
            env[name] = query.model

    env.update(query.env)

    return ClaudeArgBuildResult(args=args, env=env, cwd=query.cwd)
