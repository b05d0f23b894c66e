"""
Tests for subprocess JSONL streaming.

Each test drives spawn_jsonl() against a small fake CLI script.
"""

import asyncio
import json
import time

import pytest

from hyperharness.types import AbortController, CompleteEvent, ErrorEvent, MessageEvent, StderrEvent
from hyperharness.util.spawn import run_command, spawn_jsonl


def parse_json(line):
    return MessageEvent(json.loads(line))


async def collect(command, args=(), **kwargs):
    kwargs.setdefault("signal", AbortController().signal)
    kwargs.setdefault("parse_line", parse_json)
    kwargs.setdefault("kill_grace_seconds", 1.0)
    return [event async for event in spawn_jsonl(command, list(args), **kwargs)]


class TestSpawnJsonl:
    """Tests for spawn_jsonl."""

    @pytest.mark.asyncio
    async def test_messages_in_order(self, make_fake_cli):
        cli = make_fake_cli(
            """
            for i in range(3):
                print(json.dumps({"n": i}), flush=True)
            """
        )
        events = await collect(cli)
        assert [e.message["n"] for e in events] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_args_cwd_and_env(self, make_fake_cli, recorded_args, project_dir):
        cli = make_fake_cli("pass")
        await collect(cli, ["-p", "hello world"], cwd=project_dir, env={"HARNESS_TEST": "1"})
        recorded = recorded_args(cli)
        assert recorded["argv"] == ["-p", "hello world"]
        assert recorded["cwd"] == project_dir
        assert recorded["env"]["HARNESS_TEST"] == "1"
        assert "PATH" in recorded["env"]

    @pytest.mark.asyncio
    async def test_unparseable_and_blank_lines_dropped(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print("not json")
            print("")
            print(json.dumps({"ok": True}))
            """
        )
        events = await collect(cli)
        assert events == [MessageEvent({"ok": True})]

    @pytest.mark.asyncio
    async def test_parser_may_return_several_or_none(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print("skip")
            print("double")
            """
        )

        def parse(line):
            if line == "skip":
                return None
            return [MessageEvent({"i": 1}), MessageEvent({"i": 2})]

        events = await collect(cli, parse_line=parse)
        assert [e.message["i"] for e in events] == [1, 2]

    @pytest.mark.asyncio
    async def test_stderr_lines_become_events(self, make_fake_cli):
        cli = make_fake_cli(
            """
            sys.stderr.write("warning: slow\\n\\n")
            sys.stderr.flush()
            """
        )
        events = await collect(cli)
        assert StderrEvent("warning: slow") in events
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_handler(self, make_fake_cli):
        cli = make_fake_cli(
            """
            sys.stderr.write("fatal: broken\\n")
            sys.exit(3)
            """
        )
        events = await collect(cli)
        assert events[-1] == ErrorEvent("fatal: broken", "process_crashed")

    @pytest.mark.asyncio
    async def test_oversize_line_ends_stream_with_error(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print(json.dumps({"n": 0}), flush=True)
            print(json.dumps({"blob": "x" * 8192}), flush=True)
            print(json.dumps({"n": 1}), flush=True)
            """
        )
        events = await collect(cli, line_limit=1024)
        assert events == [
            MessageEvent({"n": 0}),
            ErrorEvent("Output line exceeded 1024 bytes", "process_crashed"),
        ]

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_stderr(self, make_fake_cli):
        cli = make_fake_cli("sys.exit(4)")
        events = await collect(cli)
        assert events == [ErrorEvent("Process exited with code 4", "process_crashed")]

    @pytest.mark.asyncio
    async def test_on_exit_receives_code_and_stderr(self, make_fake_cli):
        cli = make_fake_cli(
            """
            sys.stderr.write("bye\\n")
            sys.exit(0)
            """
        )
        seen = []

        def on_exit(code, stderr):
            seen.append((code, stderr))
            return CompleteEvent()

        events = await collect(cli, on_exit=on_exit)
        assert seen == [(0, "bye\n")]
        assert events[-1] == CompleteEvent()

    @pytest.mark.asyncio
    async def test_nothing_after_terminal_event(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print(json.dumps({"type": "result"}), flush=True)
            print(json.dumps({"type": "late"}), flush=True)
            """
        )

        def parse(line):
            message = json.loads(line)
            if message["type"] == "result":
                return [MessageEvent(message), CompleteEvent()]
            return MessageEvent(message)

        events = await collect(cli, parse_line=parse, on_exit=lambda code, err: ErrorEvent("should not appear"))
        assert events == [MessageEvent({"type": "result"}), CompleteEvent()]

    @pytest.mark.asyncio
    async def test_abort_ends_stream_without_error(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print(json.dumps({"type": "started"}), flush=True)
            time.sleep(30)
            """
        )
        controller = AbortController()
        events = []
        started = time.monotonic()
        async for event in spawn_jsonl(cli, [], signal=controller.signal, parse_line=parse_json, kill_grace_seconds=1.0):
            events.append(event)
            controller.abort()
        assert events == [MessageEvent({"type": "started"})]
        assert time.monotonic() - started < 10

    @pytest.mark.asyncio
    async def test_abort_escalates_to_kill(self, make_fake_cli):
        cli = make_fake_cli(
            """
            import signal
            signal.signal(signal.SIGTERM, signal.SIG_IGN)
            print(json.dumps({"type": "started"}), flush=True)
            time.sleep(30)
            """
        )
        controller = AbortController()
        events = []
        started = time.monotonic()
        async for event in spawn_jsonl(cli, [], signal=controller.signal, parse_line=parse_json, kill_grace_seconds=0.5):
            events.append(event)
            controller.abort()
        assert len(events) == 1
        assert time.monotonic() - started < 10

    @pytest.mark.asyncio
    async def test_pre_aborted_signal_spawns_nothing(self, make_fake_cli, tmp_path):
        cli = make_fake_cli('print(json.dumps({"x": 1}))')
        controller = AbortController()
        controller.abort()
        assert await collect(cli, signal=controller.signal) == []
        assert not (tmp_path / "fake-cli.args.json").exists()

    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        events = await collect(str(tmp_path / "does-not-exist"))
        assert len(events) == 1
        assert events[0].code == "process_crashed"

    @pytest.mark.asyncio
    async def test_consumer_break_terminates_child(self, make_fake_cli, tmp_path):
        marker = tmp_path / "still-running"
        cli = make_fake_cli(
            f"""
            print(json.dumps({{"type": "started"}}), flush=True)
            time.sleep(5)
            open({str(marker)!r}, "w").close()
            """
        )
        stream = spawn_jsonl(cli, [], signal=AbortController().signal, parse_line=parse_json, kill_grace_seconds=0.5)
        async for _ in stream:
            break
        await stream.aclose()
        await asyncio.sleep(0.1)
        assert not marker.exists()


class TestRunCommand:
    """Tests for run_command."""

    @pytest.mark.asyncio
    async def test_captures_output(self, make_fake_cli):
        cli = make_fake_cli(
            """
            print("1.2.3")
            sys.stderr.write("note\\n")
            """,
            record_args=False,
        )
        result = await run_command(cli, ["--version"], timeout=10)
        assert result.returncode == 0
        assert result.stdout.strip() == "1.2.3"
        assert result.combined == "1.2.3\nnote\n"

    @pytest.mark.asyncio
    async def test_timeout_kills(self, make_fake_cli):
        cli = make_fake_cli("time.sleep(30)", record_args=False)
        with pytest.raises(asyncio.TimeoutError):
            await run_command(cli, [], timeout=0.5)

    @pytest.mark.asyncio
    async def test_missing_binary_raises(self, tmp_path):
        with pytest.raises(OSError):
            await run_command(str(tmp_path / "missing"), [], timeout=1)
