"""Tests for the hyperharness command line."""

import json
import logging
from unittest.mock import patch

import pytest

from hyperharness.cli import build_parser, build_strategy, main
from hyperharness.hyperplan import AgentCouplet, is_standard_strategy
from hyperharness.registry import HarnessRegistry
from hyperharness.types import CompleteEvent, ErrorEvent, HarnessUsage, MessageEvent, SessionStartedEvent


def parse(*argv):
    return build_parser().parse_args(list(argv))


def output_lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines() if line.strip()]


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def registry(make_harness):
    def claude_script(query):
        return [
            SessionStartedEvent("sess-9"),
            MessageEvent({"type": "result", "result": f"plan for {query.prompt[:10]}"}),
            CompleteEvent(HarnessUsage(input_tokens=3, output_tokens=4)),
        ]

    registry = HarnessRegistry()
    registry.register(make_harness("claude-code", claude_script))
    registry.register(make_harness("codex", lambda q: [ErrorEvent("quota exceeded", "rate_limited")]))
    with patch("hyperharness.cli.create_default_registry", return_value=registry):
        yield registry


class TestParser:
    """Tests for build_parser."""

    def test_query_defaults(self):
        args = parse("query", "hello")
        assert args.harness == "claude-code"
        assert args.mode == "interactive-approval"
        assert args.cwd == "."
        assert args.add_dir == []
        assert args.model is None

    def test_query_options(self):
        args = parse(
            "query", "hi", "--harness", "codex", "--mode", "yolo", "--allow", "Read", "--allow", "Grep",
            "--thinking", "high", "--resume", "abc", "--fork",
        )
        assert args.mode == "yolo"
        assert args.allow == ["Read", "Grep"]
        assert args.resume == "abc"
        assert args.fork

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            parse("query", "hi", "--mode", "reckless")

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse()

    def test_plan_defaults(self):
        args = parse("plan", "Add retries")
        assert args.strategy == "standard"
        assert args.agent == []
        assert args.reconciler is None


class TestBuildStrategy:
    """Tests for build_strategy."""

    def test_default_is_standard_opus(self):
        strategy = build_strategy(parse("plan", "task"))
        assert is_standard_strategy(strategy)
        assert strategy.steps[0].agent == AgentCouplet("claude-code", "opus")

    def test_ensemble_reconciler_defaults_to_first_agent(self):
        args = parse("plan", "task", "--strategy", "ensemble", "--agent", "codex:gpt-5.3-codex", "--agent", "claude-code:sonnet")
        strategy = build_strategy(args)
        assert strategy.get_step("reconcile_0").agent == AgentCouplet("codex", "gpt-5.3-codex")
        assert len(strategy.steps) == 3

    def test_cross_review(self):
        args = parse(
            "plan", "task", "--strategy", "cross-review",
            "--agent", "claude-code:opus", "--agent", "codex:gpt-5.3-codex",
            "--reconciler", "codex:gpt-5.3-codex",
        )
        strategy = build_strategy(args)
        assert strategy.get_step("reconcile_0").agent.harness_id == "codex"
        assert strategy.get_step("review_b_of_a").agent.harness_id == "codex"

    def test_cross_review_needs_two_agents(self):
        with pytest.raises(ValueError, match="exactly two"):
            build_strategy(parse("plan", "task", "--strategy", "cross-review", "--agent", "codex:x"))

    def test_strategy_file(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text(
            json.dumps(
                {
                    "id": "solo",
                    "name": "Solo",
                    "steps": [{"id": "p", "primitive": "plan", "agent": {"harness_id": "codex", "model_id": "m"}}],
                    "terminal_step_id": "p",
                }
            )
        )
        strategy = build_strategy(parse("plan", "task", "--strategy", "ensemble", "--strategy-file", str(path)))
        assert strategy.id == "solo"


class TestMain:
    """Tests for main() with scripted harnesses."""

    def test_status(self, registry, capsys):
        assert main(["status"]) == 0
        lines = output_lines(capsys)
        assert [line["harness"] for line in lines] == ["claude-code", "codex"]
        assert lines[0]["installed"] is True
        assert lines[0]["version"] == "0.0.1"
        assert lines[0]["name"] == "Scripted claude-code"

    def test_commands(self, registry, capsys, tmp_path):
        assert main(["commands", str(tmp_path)]) == 0
        assert output_lines(capsys) == [{"name": "review", "type": "slash_command"}]

    def test_query(self, registry, capsys, tmp_path):
        code = main(["query", "Explain this", "--cwd", str(tmp_path), "--model", "opus", "--mode", "read-only"])
        assert code == 0
        lines = output_lines(capsys)
        assert [line["type"] for line in lines] == ["session_started", "message", "complete"]
        assert lines[-1]["usage"] == {"input_tokens": 3, "output_tokens": 4}

        sent = registry.get("claude-code").queries[0]
        assert sent.model == "claude-opus-4-6"
        assert sent.mode == "read-only"
        assert sent.cwd == str(tmp_path)

    def test_query_error_exit_code(self, registry, capsys):
        assert main(["query", "hi", "--harness", "codex"]) == 1
        assert output_lines(capsys) == [{"type": "error", "error": "quota exceeded", "code": "rate_limited"}]

    def test_unknown_harness(self, registry, capsys):
        assert main(["query", "hi", "--harness", "gemini"]) == 2
        lines = output_lines(capsys)
        assert lines[-1]["kind"] == "error"
        assert "gemini" in lines[-1]["error"]

    def test_plan(self, registry, capsys, tmp_path):
        assert main(["plan", "Add retries", "--cwd", str(tmp_path)]) == 0
        lines = output_lines(capsys)
        assert lines[0] == {"kind": "terminal_session_id", "session_id": "sess-9"}
        assert lines[-1] == {"kind": "result", "session_id": "sess-9", "success": True}
        assert {line["kind"] for line in lines} == {"terminal_session_id", "terminal_event", "result"}

    def test_plan_with_failing_planner(self, registry, capsys, tmp_path):
        argv = [
            "plan", "Add retries", "--cwd", str(tmp_path), "--strategy", "ensemble",
            "--agent", "claude-code:opus", "--agent", "codex:gpt-5.3-codex",
        ]
        assert main(argv) == 0
        lines = output_lines(capsys)
        statuses = [line for line in lines if line["kind"] == "sub_plan_status" and line["step_id"] == "plan_1"]
        assert statuses[-1]["status"] == "error"
        assert lines[-1]["success"] is True

    def test_invalid_strategy_file(self, registry, capsys, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(
            json.dumps(
                {
                    "id": "bad",
                    "steps": [{"id": "r", "primitive": "review", "agent": {"harness_id": "codex", "model_id": "m"}, "inputs": ["p"]}],
                    "terminal_step_id": "r",
                }
            )
        )
        assert main(["plan", "task", "--strategy-file", str(path)]) == 2
        assert output_lines(capsys)[-1]["kind"] == "error"
