"""
Claude Code stream-json normalization.

``claude --output-format stream-json`` prints one JSON object per line with
a ``type`` (and for ``system`` messages a ``subtype``). Unknown types are
dropped so newer CLI versions never break the stream. Known messages are
passed through as ``message`` events; ``system/init`` additionally yields
``session_started`` and ``result`` yields ``complete`` with usage.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from hyperharness.types import (
    CompleteEvent,
    ErrorEvent,
    HarnessEvent,
    HarnessUsage,
    MessageEvent,
    SessionStartedEvent,
)

KNOWN_TOP_TYPES = frozenset(
    {"system", "assistant", "user", "result", "tool_progress", "tool_use_summary", "auth_status"}
)

KNOWN_SYSTEM_SUBTYPES = frozenset(
    {
        "init",
        "status",
        "compact_boundary",
        "hook_started",
        "hook_progress",
        "hook_response",
        "task_notification",
        "files_persisted",
    }
)


def parse_claude_event(obj: Any) -> Optional[dict[str, Any]]:
    """Return ``obj`` if it is a Claude message this package understands, else None."""
    if not isinstance(obj, dict):
        return None
    event_type = obj.get("type")
    if event_type not in KNOWN_TOP_TYPES:
        return None
    if event_type == "system" and obj.get("subtype") not in KNOWN_SYSTEM_SUBTYPES:
        return None
    return obj


def is_init_message(message: dict[str, Any]) -> bool:
    return message.get("type") == "system" and message.get("subtype") == "init"


def _int_or_none(value: Any) -> Optional[int]:
    # bool is an int subclass but never a token count
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def extract_claude_usage(result: dict[str, Any]) -> HarnessUsage:
    """Usage from a ``result`` message. Missing token counts default to zero."""
    usage = result.get("usage") if isinstance(result.get("usage"), dict) else {}
    cost = result.get("total_cost_usd")
    duration = result.get("duration_ms")
    return HarnessUsage(
        input_tokens=_int_or_none(usage.get("input_tokens")) or 0,
        output_tokens=_int_or_none(usage.get("output_tokens")) or 0,
        cache_read_tokens=_int_or_none(usage.get("cache_read_input_tokens")),
        cache_write_tokens=_int_or_none(usage.get("cache_creation_input_tokens")),
        cost_usd=float(cost) if isinstance(cost, (int, float)) and not isinstance(cost, bool) else None,
        duration_ms=_int_or_none(duration),
    )


class ClaudeEventNormalizer:
    """Per-query state machine turning Claude stdout lines into envelope events."""

    def __init__(self) -> None:
        self.session_id: Optional[str] = None
        self.usage: Optional[HarnessUsage] = None

    @property
    def result_seen(self) -> bool:
        return self.usage is not None

    def parse_line(self, line: str) -> list[HarnessEvent]:
        message = parse_claude_event(json.loads(line))
        if message is None:
            return []

        events: list[HarnessEvent] = []
        if is_init_message(message) and self.session_id is None:
            session_id = message.get("session_id")
            if isinstance(session_id, str) and session_id:
                self.session_id = session_id
                events.append(SessionStartedEvent(session_id=session_id))

        events.append(MessageEvent(message=message))

        if message["type"] == "result":
            self.usage = extract_claude_usage(message)
            events.append(CompleteEvent(usage=self.usage))

        return events

    def on_exit(self, code: Optional[int], stderr: str) -> Optional[HarnessEvent]:
        if code is not None and code != 0 and not self.result_seen:
            return ErrorEvent(
                error=stderr.strip() or f"Claude process exited with code {code}",
                code="process_crashed",
            )
        return None
