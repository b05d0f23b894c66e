"""
Buffered execution of a single harness query.

HarnessExecution runs one query as an asyncio task and records every event
it produces as a StreamEvent. Consumers can iterate raw backend messages as
they arrive, inspect the full buffer afterwards, and cancel the run.

Usage:
    execution = HarnessExecution(harness, query)
    execution.start()
    async for message in execution.stream():
        ...
    await execution.wait()
    print(execution.status, execution.session_id)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Literal, Optional

from hyperharness.exceptions import HarnessError
from hyperharness.logging_config import LogContext
from hyperharness.protocols import Harness
from hyperharness.types import (
    AbortController,
    CompleteEvent,
    ErrorEvent,
    HarnessEvent,
    HarnessQuery,
    MessageEvent,
    SessionStartedEvent,
    StderrEvent,
)

logger = logging.getLogger(__name__)

StreamEventType = Literal["raw_message", "session_started", "complete", "error", "stderr"]
ExecutionStatus = Literal["in_progress", "completed", "error", "aborted"]


@dataclass
class StreamEvent:
    """One buffered event of an execution, ready for persistence."""

    type: StreamEventType
    execution_id: str
    harness_id: str
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    direction: Literal["execution"] = "execution"

    @property
    def message(self) -> Any:
        return self.payload.get("message")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "execution_id": self.execution_id,
            "harness_id": self.harness_id,
            "direction": self.direction,
            **self.payload,
        }


def to_stream_event(event: HarnessEvent, execution_id: str, harness_id: str) -> StreamEvent:
    """Wrap an envelope event as a StreamEvent."""
    if isinstance(event, MessageEvent):
        return StreamEvent("raw_message", execution_id, harness_id, {"message": event.message})
    if isinstance(event, SessionStartedEvent):
        return StreamEvent("session_started", execution_id, harness_id, {"session_id": event.session_id})
    if isinstance(event, CompleteEvent):
        usage = event.usage.to_dict() if event.usage is not None else None
        return StreamEvent("complete", execution_id, harness_id, {"usage": usage})
    if isinstance(event, ErrorEvent):
        return StreamEvent("error", execution_id, harness_id, {"error": event.error, "code": event.code})
    if isinstance(event, StderrEvent):
        return StreamEvent("stderr", execution_id, harness_id, {"data": event.data})
    raise TypeError(f"Unknown harness event: {event!r}")


class HarnessExecution:
    """A single query run in the background with a full event buffer."""

    def __init__(self, harness: Harness, query: HarnessQuery, execution_id: Optional[str] = None):
        self.id = execution_id or str(uuid.uuid4())
        self.harness = harness
        self.harness_id: str = harness.id
        # Own controller, linked to the caller's signal
        self._controller = AbortController(query.signal)
        self.query = dataclasses.replace(query, signal=self._controller.signal)

        self.status: ExecutionStatus = "in_progress"
        self.session_id: Optional[str] = None
        self.events: list[StreamEvent] = []

        self._session_callbacks: list[Callable[[str], None]] = []
        self._changed = asyncio.Condition()
        self._task: Optional[asyncio.Task] = None
        self._notify_task: Optional[asyncio.Future] = None
        self._finished = False

    @property
    def is_complete(self) -> bool:
        return self.status != "in_progress"

    @property
    def is_aborted(self) -> bool:
        return self.status == "aborted"

    def start(self) -> HarnessExecution:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"harness-execution-{self.id}")
        return self

    async def wait(self) -> ExecutionStatus:
        """Wait for the run, including backend cleanup, to finish."""
        if self._task is not None:
            await self._task
        return self.status

    def abort(self) -> None:
        if self.status == "in_progress":
            self.status = "aborted"
        self._controller.abort()
        self._notify()

    def on_session_id(self, callback: Callable[[str], None]) -> None:
        """Call ``callback`` with the session id, now if already known."""
        if self.session_id:
            callback(self.session_id)
        self._session_callbacks.append(callback)

    def raw_messages(self) -> list[Any]:
        return [e.message for e in self.events if e.type == "raw_message"]

    def stderr_lines(self) -> list[str]:
        return [e.payload["data"] for e in self.events if e.type == "stderr"]

    async def stream(self) -> AsyncIterator[Any]:
        """Yield raw backend messages, replaying buffered ones first.

        Ends once the execution has completed, failed, or been aborted.
        """
        index = 0
        while True:
            async with self._changed:
                await self._changed.wait_for(
                    lambda: index < len(self.events) or self.is_complete or self._finished
                )
            while index < len(self.events):
                event = self.events[index]
                index += 1
                if event.type == "raw_message":
                    yield event.message
            if self.is_complete or self._finished:
                return

    # =========================================================================
    # Internals
    # =========================================================================

    def _notify(self) -> None:
        async def notify() -> None:
            async with self._changed:
                self._changed.notify_all()

        self._notify_task = asyncio.ensure_future(notify())

    def _record(self, event: HarnessEvent) -> None:
        stream_event = to_stream_event(event, self.id, self.harness_id)
        self.events.append(stream_event)

        if isinstance(event, SessionStartedEvent):
            self.session_id = event.session_id
            for callback in list(self._session_callbacks):
                try:
                    callback(event.session_id)
                except Exception as e:
                    logger.warning(f"Session id callback failed for execution {self.id}: {e}")
        elif isinstance(event, CompleteEvent):
            if self.status == "in_progress":
                self.status = "completed"
        elif isinstance(event, ErrorEvent):
            if self.status == "in_progress":
                self.status = "error"
            logger.warning(f"Execution {self.id} ({self.harness_id}) failed: {event.error}")

    async def _run(self) -> None:
        with LogContext(execution_id=self.id, harness_id=self.harness_id):
            await self._run_query()

    async def _run_query(self) -> None:
        logger.debug(f"Execution {self.id} starting on {self.harness_id}")
        try:
            async for event in self.harness.query(self.query):
                self._record(event)
                async with self._changed:
                    self._changed.notify_all()
        except HarnessError as e:
            self._record(ErrorEvent(error=e.message, code=e.code))
        except asyncio.CancelledError:
            if self.status == "in_progress":
                self.status = "aborted"
            raise
        except Exception as e:
            logger.exception(f"Execution {self.id} crashed")
            self._record(ErrorEvent(error=str(e) or type(e).__name__, code="unknown"))
        finally:
            if self.status == "in_progress":
                self.status = "aborted" if self._controller.signal.aborted else "completed"
            self._finished = True
            self._controller.detach()
            async with self._changed:
                self._changed.notify_all()
            logger.debug(f"Execution {self.id} finished with status {self.status}")
