"""
Subprocess streaming shared by every harness.

spawn_jsonl() starts a backend CLI, reads newline-delimited JSON from its
stdout and turns each line into envelope events through a harness-specific
parser. stderr lines are forwarded as ``stderr`` events. The child is always
terminated when the stream ends, whatever the reason.

Usage:
    from hyperharness.util.spawn import spawn_jsonl

    async with aclosing(
        spawn_jsonl("codex", ["exec", "--json", "hi"], signal=signal, parse_line=parse)
    ) as events:
        async for event in events:
            ...
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Mapping, Optional, Sequence, Union

from hyperharness.types import AbortSignal, ErrorEvent, HarnessEvent, StderrEvent, is_terminal_event

logger = logging.getLogger(__name__)

# Backend messages embed whole tool results, so single lines can be large
STREAM_LIMIT_BYTES = 64 * 1024 * 1024
DEFAULT_KILL_GRACE_SECONDS = 5.0

ParsedEvents = Union[HarnessEvent, Sequence[HarnessEvent], None]
LineParser = Callable[[str], ParsedEvents]
ExitHandler = Callable[[Optional[int], str], ParsedEvents]

_DONE = object()
_WAKE = object()


def _as_list(events: ParsedEvents) -> list[HarnessEvent]:
    if events is None:
        return []
    if isinstance(events, (list, tuple)):
        return list(events)
    return [events]  # type: ignore[list-item]


def _send_signal(proc: asyncio.subprocess.Process, kill: bool) -> None:
    if proc.returncode is not None:
        return
    try:
        if kill:
            proc.kill()
        else:
            proc.terminate()
    except ProcessLookupError:
        pass


async def terminate_process(
    proc: asyncio.subprocess.Process,
    grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
) -> None:
    """SIGTERM, then SIGKILL if the process is still alive after the grace period."""
    if proc.returncode is not None:
        return
    _send_signal(proc, kill=False)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.debug(f"Process {proc.pid} ignored SIGTERM, sending SIGKILL")
        _send_signal(proc, kill=True)
        await proc.wait()


async def spawn_jsonl(
    command: str,
    args: Sequence[str],
    *,
    signal: AbortSignal,
    parse_line: LineParser,
    on_exit: Optional[ExitHandler] = None,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
    line_limit: int = STREAM_LIMIT_BYTES,
) -> AsyncIterator[HarnessEvent]:
    """Spawn ``command`` and stream its JSONL stdout as envelope events.

    Args:
        command: Binary to execute.
        args: Argument list.
        signal: Cancellation token. Once aborted the child is sent SIGTERM
            (SIGKILL after ``kill_grace_seconds``) and the stream ends without
            any further events.
        parse_line: Maps one non-empty stdout line to zero or more events.
            Exceptions raised here drop the line.
        on_exit: Maps (exit code, accumulated stderr) to final events. When
            omitted a non-zero exit yields a ``process_crashed`` error.
        cwd: Working directory for the child.
        env: Extra environment merged over the current process environment.
        kill_grace_seconds: Delay between SIGTERM and SIGKILL.
        line_limit: Longest stdout line accepted. A longer line ends the
            stream with a ``process_crashed`` error.

    Yields:
        Envelope events in output order. Nothing follows a ``complete`` or
        ``error`` event.
    """
    if signal.aborted:
        return

    child_env = {**os.environ, **env} if env is not None else None
    try:
        proc = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            env=child_env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            limit=line_limit,
        )
    except OSError as e:
        logger.warning(f"Failed to spawn {command}: {e}")
        yield ErrorEvent(error=str(e), code="process_crashed")
        return

    logger.debug(f"Spawned {command} (pid {proc.pid}) with {len(args)} args")

    queue: asyncio.Queue = asyncio.Queue()
    stderr_chunks: list[str] = []
    loop = asyncio.get_running_loop()
    kill_timer: list[asyncio.TimerHandle] = []

    def on_abort() -> None:
        _send_signal(proc, kill=False)
        kill_timer.append(loop.call_later(kill_grace_seconds, _send_signal, proc, True))
        queue.put_nowait(_WAKE)

    async def read_stdout() -> None:
        assert proc.stdout is not None
        while True:
            try:
                raw = await proc.stdout.readline()
            except ValueError as e:
                # Line longer than the reader limit
                logger.warning(f"{command} (pid {proc.pid}) wrote a stdout line over {line_limit} bytes: {e}")
                queue.put_nowait(
                    ErrorEvent(error=f"Output line exceeded {line_limit} bytes", code="process_crashed")
                )
                _send_signal(proc, kill=False)
                return
            if not raw:
                break
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            try:
                events = _as_list(parse_line(line))
            except Exception as e:
                logger.debug(f"Dropping unparseable line from {command}: {e}")
                continue
            for event in events:
                queue.put_nowait(event)

    async def read_stderr() -> None:
        assert proc.stderr is not None
        while True:
            raw = await proc.stderr.readline()
            if not raw:
                break
            text = raw.decode("utf-8", errors="replace")
            stderr_chunks.append(text)
            trimmed = text.strip()
            if trimmed:
                queue.put_nowait(StderrEvent(data=trimmed))

    async def watch_exit() -> None:
        try:
            await asyncio.gather(read_stdout(), read_stderr())
            code = await proc.wait()
            logger.debug(f"{command} (pid {proc.pid}) exited with code {code}")
            if signal.aborted:
                return
            stderr_text = "".join(stderr_chunks)
            if on_exit is not None:
                final = _as_list(on_exit(code, stderr_text))
            elif code != 0:
                final = [
                    ErrorEvent(
                        error=stderr_text.strip() or f"Process exited with code {code}",
                        code="process_crashed",
                    )
                ]
            else:
                final = []
            for event in final:
                queue.put_nowait(event)
        finally:
            queue.put_nowait(_DONE)

    signal.add_listener(on_abort)
    watcher = asyncio.create_task(watch_exit())
    finished = False
    try:
        while True:
            item = await queue.get()
            if item is _DONE or signal.aborted:
                break
            if item is _WAKE:
                continue
            yield item
            if is_terminal_event(item):
                finished = True
                break
    finally:
        signal.remove_listener(on_abort)
        try:
            if finished and not signal.aborted and proc.returncode is None:
                # Let the backend finish writing its session state before terminating
                try:
                    await asyncio.wait_for(proc.wait(), timeout=kill_grace_seconds)
                except asyncio.TimeoutError:
                    pass
            await terminate_process(proc, kill_grace_seconds)
        finally:
            for handle in kill_timer:
                handle.cancel()
            if not watcher.done():
                watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)


@dataclass
class SpawnResult:
    """Outcome of a short, non-streaming command."""

    returncode: Optional[int]
    stdout: str
    stderr: str

    @property
    def combined(self) -> str:
        return self.stdout + self.stderr


async def run_command(
    command: str,
    args: Sequence[str],
    timeout: float,
    cwd: Optional[str] = None,
) -> SpawnResult:
    """Run a short command to completion and capture its output.

    Raises:
        OSError: The binary could not be executed.
        asyncio.TimeoutError: The command did not finish in time; it is killed.
    """
    proc = await asyncio.create_subprocess_exec(
        command,
        *args,
        cwd=cwd,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _send_signal(proc, kill=True)
        await proc.wait()
        raise
    return SpawnResult(
        returncode=proc.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
