"""
Argument builder for the ``codex`` CLI.

Codex has no system prompt flag and no named tools, so system prompts are
inlined into the user prompt and allow/deny lists are ignored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from hyperharness.config import CodexHarnessConfig
from hyperharness.harnesses.common import CleanupItem
from hyperharness.types import HarnessQuery, resolve_prompt_text

logger = logging.getLogger(__name__)

THINKING_EFFORT_MAP: dict[str, str] = {
    "low": "low",
    "med": "medium",
    "high": "xhigh",
}


@dataclass
class CodexArgBuildResult:
    args: list[str]
    env: dict[str, str]
    cwd: str
    cleanup: list[CleanupItem] = field(default_factory=list)


def wrap_system_prompt(prompt_text: str, system_prompt: Optional[str]) -> str:
    if not system_prompt:
        return prompt_text
    return f"<system-instructions>\n{system_prompt}\n</system-instructions>\n\n{prompt_text}"


def build_codex_args(
    query: HarnessQuery,
    config: CodexHarnessConfig | None = None,
    mcp_config_args: Optional[Sequence[str]] = None,
) -> CodexArgBuildResult:
    """Build ``codex`` arguments for a query.

    Args:
        query: The query to run.
        config: Harness configuration. Nothing in it affects the arguments
            today; accepted for symmetry with the Claude builder.
        mcp_config_args: ``key=value`` overrides, each emitted as ``-c``.
    """
    root_args: list[str] = []
    exec_args: list[str] = ["--json"]
    env: dict[str, str] = {}

    if query.mode == "read-only":
        root_args.extend(["-a", "on-request"])
    elif query.mode == "unrestricted":
        root_args.append("--yolo")

    if query.resume_session_id:
        root_args.extend(["exec", "resume"])
    else:
        root_args.append("exec")

        # `exec resume` takes no flags beyond --json
        if query.mode == "read-only":
            exec_args.extend(["--sandbox", "read-only"])
        if query.model:
            exec_args.extend(["-m", query.model])
        if query.cwd:
            exec_args.extend(["-C", query.cwd])
        for directory in query.additional_directories:
            exec_args.extend(["--add-dir", directory])

        effort = THINKING_EFFORT_MAP.get(query.thinking or "")
        if effort:
            exec_args.extend(["-c", f"model_reasoning_effort={effort}"])

        for override in mcp_config_args or ():
            exec_args.extend(["-c", override])

    if query.fork_session:
        logger.warning("fork_session is not supported by codex exec, ignoring")

    prompt_text = wrap_system_prompt(
        resolve_prompt_text(query.prompt),
        query.system_prompt or query.append_system_prompt,
    )

    if query.resume_session_id:
        exec_args.extend([query.resume_session_id, prompt_text])
    else:
        exec_args.append(prompt_text)

    env.update(query.env)

    return CodexArgBuildResult(args=root_args + exec_args, env=env, cwd=query.cwd)
