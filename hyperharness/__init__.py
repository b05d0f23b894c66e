"""
hyperharness - drive coding-agent CLIs behind one async event stream.

Each backend CLI (Claude Code, Codex) is wrapped by a harness that turns a
HarnessQuery into a subprocess and its output into envelope events. The
HyperPlan executor composes several harness executions into a planning DAG.

Usage:
    from hyperharness import HarnessQuery, create_default_registry

    registry = create_default_registry()
    harness = registry.get_or_raise("claude-code")
    async for event in harness.query(HarnessQuery(prompt="hi", cwd=".")):
        print(event.to_dict())
"""

from hyperharness.__version__ import __version__
from hyperharness.config import ClaudeCodeHarnessConfig, CodexHarnessConfig
from hyperharness.exceptions import (
    ConfigurationError,
    HarnessError,
    HarnessNotInstalledError,
    HarnessNotRegisteredError,
    HyperHarnessError,
    StrategyError,
    StrategyValidationError,
    ToolBridgeError,
)
from hyperharness.execution import HarnessExecution, StreamEvent
from hyperharness.harnesses import ClaudeCodeHarness, CodexHarness
from hyperharness.protocols import Harness
from hyperharness.registry import HarnessRegistry, create_default_registry
from hyperharness.types import (
    AbortController,
    AbortSignal,
    ClientToolDefinition,
    ClientToolResult,
    CompleteEvent,
    ErrorEvent,
    HarnessCapabilities,
    HarnessEvent,
    HarnessInstallStatus,
    HarnessMeta,
    HarnessModel,
    HarnessQuery,
    HarnessUsage,
    ImagePart,
    ImageSource,
    McpHttpServerConfig,
    McpStdioServerConfig,
    MessageEvent,
    SessionStartedEvent,
    SlashCommand,
    StderrEvent,
    TextPart,
)

__all__ = [
    "__version__",
    # Config
    "ClaudeCodeHarnessConfig",
    "CodexHarnessConfig",
    # Errors
    "HyperHarnessError",
    "ConfigurationError",
    "HarnessError",
    "HarnessNotInstalledError",
    "HarnessNotRegisteredError",
    "ToolBridgeError",
    "StrategyError",
    "StrategyValidationError",
    # Harnesses
    "Harness",
    "ClaudeCodeHarness",
    "CodexHarness",
    "HarnessRegistry",
    "create_default_registry",
    "HarnessExecution",
    "StreamEvent",
    # Types
    "AbortController",
    "AbortSignal",
    "HarnessQuery",
    "TextPart",
    "ImagePart",
    "ImageSource",
    "McpStdioServerConfig",
    "McpHttpServerConfig",
    "ClientToolDefinition",
    "ClientToolResult",
    "HarnessEvent",
    "SessionStartedEvent",
    "MessageEvent",
    "CompleteEvent",
    "ErrorEvent",
    "StderrEvent",
    "HarnessUsage",
    "HarnessMeta",
    "HarnessModel",
    "HarnessCapabilities",
    "HarnessInstallStatus",
    "SlashCommand",
]
