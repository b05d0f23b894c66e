"""Process, environment and bridge utilities shared by every harness."""

from hyperharness.util.shell_env import clear_shell_environment_cache, detect_shell_environment
from hyperharness.util.spawn import SpawnResult, run_command, spawn_jsonl
from hyperharness.util.tool_bridge import ToolBridgeHandle, start_tool_bridge
from hyperharness.util.which import clear_executable_cache, resolve_executable

__all__ = [
    "SpawnResult",
    "ToolBridgeHandle",
    "clear_executable_cache",
    "clear_shell_environment_cache",
    "detect_shell_environment",
    "resolve_executable",
    "run_command",
    "spawn_jsonl",
    "start_tool_bridge",
]
