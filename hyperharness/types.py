"""
Core data types for hyperharness.

Everything a caller passes to a harness (HarnessQuery and its parts) and
everything a harness streams back (envelope events, usage) lives here.

Usage:
    from hyperharness.types import AbortController, HarnessQuery

    controller = AbortController()
    query = HarnessQuery(
        prompt="Summarize the repository layout",
        cwd="/path/to/repo",
        mode="read-only",
        signal=controller.signal,
    )
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Literal, Optional, Union

logger = logging.getLogger(__name__)

HarnessId = str  # "claude-code" | "codex" | future harnesses

HarnessErrorCode = Literal[
    "auth_failed",
    "not_installed",
    "rate_limited",
    "context_overflow",
    "process_crashed",
    "aborted",
    "timeout",
    "unknown",
]

HarnessMode = Literal["interactive-approval", "read-only", "unrestricted"]
ThinkingLevel = Literal["low", "med", "high"]

# "yolo" is what both backends call unrestricted mode
MODE_ALIASES: dict[str, str] = {"yolo": "unrestricted"}
VALID_MODES = ("interactive-approval", "read-only", "unrestricted")


# ============================================================================
# Cancellation
# ============================================================================


class AbortSignal:
    """One-shot cancellation token shared between a caller and a harness.

    Listeners registered with add_listener() run synchronously, exactly once,
    when the signal is aborted. A listener added after abort runs immediately.
    """

    def __init__(self) -> None:
        self._aborted = False
        self._listeners: list[Callable[[], None]] = []
        self._event = asyncio.Event()

    @property
    def aborted(self) -> bool:
        return self._aborted

    def add_listener(self, callback: Callable[[], None]) -> None:
        if self._aborted:
            callback()
            return
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[], None]) -> None:
        try:
            self._listeners.remove(callback)
        except ValueError:
            pass

    async def wait(self) -> None:
        """Block until the signal is aborted."""
        await self._event.wait()

    def _fire(self) -> None:
        if self._aborted:
            return
        self._aborted = True
        self._event.set()
        listeners, self._listeners = self._listeners, []
        for callback in listeners:
            try:
                callback()
            except Exception as e:
                logger.warning(f"Abort listener raised: {e}")


class AbortController:
    """Owner side of an AbortSignal.

    Parent signals can be passed to link cancellation: aborting any parent
    aborts this controller's signal too.
    """

    def __init__(self, *parents: Optional[AbortSignal]) -> None:
        self.signal = AbortSignal()
        self._parents = [p for p in parents if p is not None]
        for parent in self._parents:
            parent.add_listener(self.abort)

    def abort(self) -> None:
        self.signal._fire()

    def detach(self) -> None:
        """Stop listening to parent signals."""
        for parent in self._parents:
            parent.remove_listener(self.abort)
        self._parents = []


# ============================================================================
# Prompt & Tool Types
# ============================================================================


@dataclass(frozen=True)
class ImageSource:
    """Image payload reference: a file path or inline base64 data."""

    kind: Literal["path", "base64"]
    media_type: str
    path: Optional[str] = None
    data: Optional[str] = None


@dataclass(frozen=True)
class TextPart:
    text: str
    type: Literal["text"] = field(default="text", init=False)


@dataclass(frozen=True)
class ImagePart:
    source: ImageSource
    type: Literal["image"] = field(default="image", init=False)


PromptPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class McpStdioServerConfig:
    """An MCP server the backend launches as a child process."""

    command: str
    args: list[str] = field(default_factory=list)
    env: dict[str, str] = field(default_factory=dict)
    cwd: Optional[str] = None
    type: Literal["stdio"] = field(default="stdio", init=False)


@dataclass(frozen=True)
class McpHttpServerConfig:
    """An MCP server the backend reaches over HTTP."""

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    type: Literal["http"] = field(default="http", init=False)


McpServerConfig = Union[McpStdioServerConfig, McpHttpServerConfig]


@dataclass
class ClientToolResult:
    """What a client tool handler returns: text content or an error string."""

    content: Optional[str] = None
    error: Optional[str] = None


ClientToolHandler = Callable[[dict[str, Any]], Awaitable[ClientToolResult]]


@dataclass
class ClientToolDefinition:
    """A caller-defined tool exposed to the backend through the tool bridge.

    Attributes:
        name: Tool name as seen by the backend.
        description: Human readable description shown to the model.
        input_schema: JSON schema for the tool's arguments.
        handler: Async callable invoked with the decoded arguments.
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    handler: ClientToolHandler


# ============================================================================
# Query
# ============================================================================


@dataclass(frozen=True)
class HarnessQuery:
    """One request to a backend. Immutable once built."""

    prompt: Union[str, list[PromptPart]]
    cwd: str
    system_prompt: Optional[str] = None
    append_system_prompt: Optional[str] = None
    resume_session_id: Optional[str] = None
    fork_session: bool = False
    mode: str = "interactive-approval"
    model: Optional[str] = None
    thinking: Optional[str] = None
    additional_directories: list[str] = field(default_factory=list)
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    disable_planning_tools: bool = False
    env: dict[str, str] = field(default_factory=dict)
    mcp_servers: dict[str, McpServerConfig] = field(default_factory=dict)
    client_tools: list[ClientToolDefinition] = field(default_factory=list)
    signal: AbortSignal = field(default_factory=AbortSignal, compare=False, repr=False)

    def __post_init__(self) -> None:
        mode = MODE_ALIASES.get(self.mode, self.mode)
        if mode not in VALID_MODES:
            raise ValueError(f"Invalid mode {self.mode!r}, expected one of {VALID_MODES}")
        object.__setattr__(self, "mode", mode)


def resolve_prompt_text(prompt: Union[str, list[PromptPart]]) -> str:
    """Flatten a prompt to text. Image parts are dropped, text parts joined by newlines."""
    if isinstance(prompt, str):
        return prompt
    return "\n".join(p.text for p in prompt if isinstance(p, TextPart))


# ============================================================================
# Envelope Events
# ============================================================================


@dataclass(frozen=True)
class HarnessUsage:
    """Token and cost accounting for one completed query.

    Derived from backend output, not authoritative. cost_usd is None when the
    model's pricing is unknown.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: Optional[int] = None
    cache_write_tokens: Optional[int] = None
    cost_usd: Optional[float] = None
    duration_ms: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class SessionStartedEvent:
    session_id: str
    type: Literal["session_started"] = field(default="session_started", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "session_id": self.session_id}


@dataclass(frozen=True)
class MessageEvent:
    """A backend-native message, passed through untouched."""

    message: dict[str, Any]
    type: Literal["message"] = field(default="message", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "message": self.message}


@dataclass(frozen=True)
class CompleteEvent:
    usage: Optional[HarnessUsage] = None
    type: Literal["complete"] = field(default="complete", init=False)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"type": self.type}
        if self.usage is not None:
            result["usage"] = self.usage.to_dict()
        return result


@dataclass(frozen=True)
class ErrorEvent:
    error: str
    code: HarnessErrorCode = "unknown"
    type: Literal["error"] = field(default="error", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error, "code": self.code}


@dataclass(frozen=True)
class StderrEvent:
    data: str
    type: Literal["stderr"] = field(default="stderr", init=False)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.data}


HarnessEvent = Union[SessionStartedEvent, MessageEvent, CompleteEvent, ErrorEvent, StderrEvent]

TERMINAL_EVENT_TYPES = frozenset({"complete", "error"})


def is_terminal_event(event: HarnessEvent) -> bool:
    return event.type in TERMINAL_EVENT_TYPES


# ============================================================================
# Harness Descriptors
# ============================================================================


@dataclass(frozen=True)
class HarnessMeta:
    id: HarnessId
    name: str
    vendor: str
    website: str


@dataclass(frozen=True)
class HarnessModel:
    id: str
    label: str
    is_default: bool = False


@dataclass(frozen=True)
class HarnessCapabilities:
    """Feature flags describing what a backend supports."""

    supports_system_prompt: bool
    supports_append_system_prompt: bool
    supports_read_only: bool
    supports_mcp: bool
    supports_resume: bool
    supports_fork: bool
    supports_client_tools: bool
    supports_streaming_tokens: bool
    supports_cost_tracking: bool
    supports_named_tools: bool
    supports_images: bool


@dataclass
class HarnessInstallStatus:
    installed: bool
    authenticated: bool
    auth_type: Literal["api-key", "account", "none"] = "account"
    version: Optional[str] = None
    auth_instructions: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class SlashCommand:
    name: str
    type: Literal["skill", "slash_command"]


__all__ = [
    "HarnessId",
    "HarnessErrorCode",
    "HarnessMode",
    "ThinkingLevel",
    "AbortSignal",
    "AbortController",
    "ImageSource",
    "TextPart",
    "ImagePart",
    "PromptPart",
    "McpStdioServerConfig",
    "McpHttpServerConfig",
    "McpServerConfig",
    "ClientToolResult",
    "ClientToolDefinition",
    "HarnessQuery",
    "resolve_prompt_text",
    "HarnessUsage",
    "SessionStartedEvent",
    "MessageEvent",
    "CompleteEvent",
    "ErrorEvent",
    "StderrEvent",
    "HarnessEvent",
    "is_terminal_event",
    "HarnessMeta",
    "HarnessModel",
    "HarnessCapabilities",
    "HarnessInstallStatus",
    "SlashCommand",
]
