"""
Final plan text extraction from a finished execution's events.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from hyperharness.execution import StreamEvent


def _raw_messages(events: Iterable[StreamEvent], harness_id: str) -> list[dict[str, Any]]:
    return [
        e.message
        for e in events
        if e.type == "raw_message" and e.harness_id == harness_id and isinstance(e.message, dict)
    ]


def _claude_text(messages: list[dict[str, Any]]) -> Optional[str]:
    # The result message carries the complete final answer
    for message in reversed(messages):
        result = message.get("result")
        if message.get("type") == "result" and isinstance(result, str) and result:
            return result

    for message in reversed(messages):
        if message.get("type") != "assistant":
            continue
        inner = message.get("message")
        content = inner.get("content") if isinstance(inner, dict) else None
        if not isinstance(content, list):
            continue
        parts = [
            block["text"]
            for block in content
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ]
        if parts:
            return "\n".join(parts)
    return None


def _codex_text(messages: list[dict[str, Any]]) -> Optional[str]:
    parts = []
    for message in messages:
        if message.get("type") != "item.completed":
            continue
        item = message.get("item")
        if isinstance(item, dict) and item.get("type") == "agent_message" and isinstance(item.get("text"), str):
            parts.append(item["text"])
    return "\n".join(parts) if parts else None


def extract_plan_text(events: Iterable[StreamEvent], harness_id: str) -> Optional[str]:
    """Return the final assistant text of an execution, or None if there is none.

    Claude Code: the last non-empty ``result.result``, else the text blocks of
    the last assistant message that has any. Codex: every completed
    ``agent_message`` item, joined by newlines.
    """
    messages = _raw_messages(events, harness_id)
    if not messages:
        return None
    if harness_id == "claude-code":
        return _claude_text(messages)
    if harness_id == "codex":
        return _codex_text(messages)
    return None
