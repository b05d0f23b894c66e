"""
Command line interface.

Events and results are written to stdout as JSON lines; logs go to stderr.

Usage:
    hyperharness status
    hyperharness commands /path/to/repo
    hyperharness query --harness codex --mode read-only --cwd . "Explain this repo"
    hyperharness plan --strategy ensemble --agent claude-code:opus \\
        --agent codex:gpt-5.3-codex --reconciler claude-code:opus "Add retries"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import signal as signal_module
import sys
from typing import Any, Optional, Sequence

from hyperharness.__version__ import __version__
from hyperharness.exceptions import HyperHarnessError
from hyperharness.execution import StreamEvent
from hyperharness.hyperplan import (
    AgentCouplet,
    HyperPlanCallbacks,
    HyperPlanExecutor,
    HyperPlanExecutorConfig,
    HyperPlanStrategy,
    cross_review_strategy,
    ensemble_strategy,
    standard_strategy,
)
from hyperharness.logging_config import configure_logging
from hyperharness.models import DEFAULT_HARNESS_ID, get_model_full_id
from hyperharness.registry import HarnessRegistry, create_default_registry
from hyperharness.types import VALID_MODES, AbortController, AbortSignal, ErrorEvent, HarnessQuery
from hyperharness.util.shell_env import detect_shell_environment
from hyperharness.util.which import clear_executable_cache

logger = logging.getLogger(__name__)


def _emit(payload: dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(payload, default=str) + "\n")
    sys.stdout.flush()


def _install_interrupt(controller: AbortController) -> None:
    """Abort on SIGINT/SIGTERM so the backend is terminated cleanly."""
    loop = asyncio.get_running_loop()
    for sig in (signal_module.SIGINT, signal_module.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.abort)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; KeyboardInterrupt still ends the run
            pass


async def _apply_login_shell_env() -> None:
    env = await detect_shell_environment()
    path = env.get("PATH")
    if path:
        os.environ["PATH"] = path
        clear_executable_cache()


# ============================================================================
# Commands
# ============================================================================


async def _status(registry: HarnessRegistry) -> int:
    statuses = await registry.check_all_install_status()
    for harness in registry.all():
        meta = harness.meta()
        _emit({"harness": harness.id, "name": meta.name, "vendor": meta.vendor, **statuses[harness.id].to_dict()})
    return 0


async def _commands(registry: HarnessRegistry, harness_id: str, cwd: str) -> int:
    harness = registry.get_or_raise(harness_id)
    for command in await harness.discover_slash_commands(cwd):
        _emit({"name": command.name, "type": command.type})
    return 0


async def _query(registry: HarnessRegistry, args: argparse.Namespace) -> int:
    harness = registry.get_or_raise(args.harness)
    controller = AbortController()
    _install_interrupt(controller)

    query = HarnessQuery(
        prompt=args.prompt,
        cwd=os.path.abspath(args.cwd),
        system_prompt=args.system_prompt,
        append_system_prompt=args.append_system_prompt,
        resume_session_id=args.resume,
        fork_session=args.fork,
        mode=args.mode,
        model=get_model_full_id(args.model, args.harness) if args.model else None,
        thinking=args.thinking,
        additional_directories=args.add_dir,
        allowed_tools=args.allow,
        disallowed_tools=args.deny,
        disable_planning_tools=args.disable_planning_tools,
        signal=controller.signal,
    )

    failed = False
    async for event in harness.query(query):
        _emit(event.to_dict())
        if isinstance(event, ErrorEvent):
            failed = True
    return 1 if failed else 0


class _JsonLineCallbacks(HyperPlanCallbacks):
    """Writes every HyperPlan callback as a JSON line."""

    def on_sub_plan_started(self, step_id: str, execution_id: str) -> None:
        _emit({"kind": "sub_plan_started", "step_id": step_id, "execution_id": execution_id})

    def on_sub_plan_event(self, step_id: str, event: StreamEvent) -> None:
        _emit({"kind": "sub_plan_event", "step_id": step_id, "event": event.to_dict()})

    def on_sub_plan_status_change(
        self,
        step_id: str,
        status: str,
        result_text: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        _emit(
            {
                "kind": "sub_plan_status",
                "step_id": step_id,
                "status": status,
                "result_text": result_text,
                "error": error,
            }
        )

    def on_terminal_event(self, event: StreamEvent) -> None:
        _emit({"kind": "terminal_event", "event": event.to_dict()})

    def on_terminal_session_id(self, session_id: str) -> None:
        _emit({"kind": "terminal_session_id", "session_id": session_id})


def build_strategy(args: argparse.Namespace) -> HyperPlanStrategy:
    """Strategy from ``--strategy-file`` or a preset plus ``--agent``/``--reconciler``."""
    if args.strategy_file:
        with open(args.strategy_file, encoding="utf-8") as f:
            return HyperPlanStrategy.from_dict(json.load(f))

    agents = [AgentCouplet.parse(value) for value in args.agent] or [
        AgentCouplet(DEFAULT_HARNESS_ID, "opus")
    ]
    reconciler = AgentCouplet.parse(args.reconciler) if args.reconciler else agents[0]

    if args.strategy == "standard":
        return standard_strategy(agents[0])
    if args.strategy == "ensemble":
        return ensemble_strategy(agents, reconciler)
    if len(agents) != 2:
        raise ValueError("cross-review needs exactly two --agent values")
    return cross_review_strategy(agents[0], agents[1], reconciler)


async def _plan(registry: HarnessRegistry, args: argparse.Namespace) -> int:
    controller = AbortController()
    _install_interrupt(controller)
    signal: AbortSignal = controller.signal

    executor = HyperPlanExecutor(
        HyperPlanExecutorConfig(
            strategy=build_strategy(args),
            task_description=args.task,
            cwd=os.path.abspath(args.cwd),
            registry=registry,
            callbacks=_JsonLineCallbacks(),
            additional_directories=args.add_dir,
            signal=signal,
        )
    )
    result = await executor.execute()
    _emit({"kind": "result", "session_id": result.session_id, "success": result.success})
    return 0 if result.success else 1


async def _run(args: argparse.Namespace) -> int:
    if args.login_shell_env:
        await _apply_login_shell_env()
    registry = create_default_registry()

    if args.command == "status":
        return await _status(registry)
    if args.command == "commands":
        return await _commands(registry, args.harness, os.path.abspath(args.cwd))
    if args.command == "query":
        return await _query(registry, args)
    return await _plan(registry, args)


# ============================================================================
# Parser
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hyperharness",
        description="Run coding-agent CLIs behind one event stream, alone or as a HyperPlan.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-json", action="store_true", help="Write logs as JSON")
    parser.add_argument(
        "--login-shell-env",
        action="store_true",
        help="Take PATH from a login shell (useful when launched outside a terminal)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show install and auth status of every harness")

    commands = sub.add_parser("commands", help="List slash commands a harness offers")
    commands.add_argument("cwd", help="Project directory")
    commands.add_argument("--harness", default=DEFAULT_HARNESS_ID)

    query = sub.add_parser("query", help="Run one query and print its events")
    query.add_argument("prompt")
    query.add_argument("--harness", default=DEFAULT_HARNESS_ID)
    query.add_argument("--cwd", default=".")
    query.add_argument("--mode", default="interactive-approval", choices=[*VALID_MODES, "yolo"])
    query.add_argument("--model", default=None, help="Model alias or full id")
    query.add_argument("--thinking", default=None, choices=["low", "med", "high"])
    query.add_argument("--system-prompt", default=None)
    query.add_argument("--append-system-prompt", default=None)
    query.add_argument("--resume", default=None, metavar="SESSION_ID")
    query.add_argument("--fork", action="store_true", help="Fork the resumed session")
    query.add_argument("--add-dir", action="append", default=[])
    query.add_argument("--allow", action="append", default=[], metavar="TOOL")
    query.add_argument("--deny", action="append", default=[], metavar="TOOL")
    query.add_argument("--disable-planning-tools", action="store_true")

    plan = sub.add_parser("plan", help="Run a HyperPlan strategy")
    plan.add_argument("task")
    plan.add_argument("--cwd", default=".")
    plan.add_argument("--strategy", default="standard", choices=["standard", "ensemble", "cross-review"])
    plan.add_argument("--strategy-file", default=None, help="JSON strategy (overrides --strategy)")
    plan.add_argument("--agent", action="append", default=[], metavar="HARNESS:MODEL")
    plan.add_argument("--reconciler", default=None, metavar="HARNESS:MODEL")
    plan.add_argument("--add-dir", action="append", default=[])

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, json_output=True if args.log_json else None)

    try:
        return asyncio.run(_run(args))
    except (HyperHarnessError, ValueError, OSError) as e:
        logger.error(f"{args.command} failed: {e}")
        _emit({"kind": "error", "error": str(e)})
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
