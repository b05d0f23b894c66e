"""
Codex ``exec --json`` normalization.

Codex prints one event per line (``thread.started``, ``turn.completed``,
``item.completed`` ...). Unlike Claude it never reports a final result
message, so ``complete`` is synthesized when the process exits.
"""

from __future__ import annotations

import json
import time
from typing import Any, Optional

from hyperharness.harnesses.codex.pricing import calculate_cost_usd
from hyperharness.types import (
    CompleteEvent,
    ErrorEvent,
    HarnessEvent,
    HarnessQuery,
    HarnessUsage,
    MessageEvent,
    SessionStartedEvent,
)

KNOWN_TOP_TYPES = frozenset(
    {
        "thread.started",
        "turn.started",
        "turn.completed",
        "turn.failed",
        "item.started",
        "item.completed",
        "error",
    }
)


def parse_codex_event(obj: Any) -> Optional[dict[str, Any]]:
    """Return ``obj`` if it is a known Codex event, else None."""
    if not isinstance(obj, dict):
        return None
    if obj.get("type") not in KNOWN_TOP_TYPES:
        return None
    return obj


def _count(usage: dict[str, Any], key: str) -> Optional[int]:
    value = usage.get(key)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


class CodexEventNormalizer:
    """Per-query state: session id, last usage, last error text, start time."""

    def __init__(self, query: HarnessQuery):
        self.query = query
        self.session_id: Optional[str] = None
        self.usage: Optional[dict[str, Any]] = None
        self.last_error: Optional[str] = None
        self.started_at = time.monotonic()

    def parse_line(self, line: str) -> list[HarnessEvent]:
        event = parse_codex_event(json.loads(line))
        if event is None:
            return []

        event_type = event["type"]

        if event_type == "thread.started":
            thread_id = event.get("thread_id")
            events: list[HarnessEvent] = []
            if isinstance(thread_id, str) and thread_id:
                self.session_id = thread_id
                events.append(SessionStartedEvent(session_id=thread_id))
            events.append(
                MessageEvent(
                    message={
                        **event,
                        "session_id": thread_id,
                        "cwd": self.query.cwd,
                        "model": self.query.model,
                        "additional_directories": list(self.query.additional_directories),
                    }
                )
            )
            return events

        if event_type == "turn.completed" and isinstance(event.get("usage"), dict):
            self.usage = event["usage"]
        elif event_type == "error" and isinstance(event.get("message"), str):
            # Also sent for transient reconnects; only fatal if the process dies
            self.last_error = event["message"]

        events = [MessageEvent(message=event)]
        if event_type == "turn.failed":
            error = event.get("error")
            message = error.get("message") if isinstance(error, dict) else None
            events.append(ErrorEvent(error=message or "Turn failed", code="unknown"))
        return events

    def build_usage(self) -> HarnessUsage:
        usage = self.usage or {}
        input_tokens = _count(usage, "input_tokens") or 0
        output_tokens = _count(usage, "output_tokens") or 0
        cache_read = _count(usage, "cached_input_tokens")
        return HarnessUsage(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cache_read_tokens=cache_read,
            cost_usd=calculate_cost_usd(self.query.model, input_tokens, output_tokens, cache_read),
            duration_ms=int((time.monotonic() - self.started_at) * 1000),
        )

    def on_exit(self, code: Optional[int], stderr: str) -> Optional[HarnessEvent]:
        if code == 0 or self.usage is not None:
            return CompleteEvent(usage=self.build_usage())
        if code is not None:
            return ErrorEvent(
                error=stderr.strip() or self.last_error or f"Codex process exited with code {code}",
                code="process_crashed",
            )
        return None
