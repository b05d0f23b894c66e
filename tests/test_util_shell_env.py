"""Tests for login shell environment capture."""

import os

import pytest

from hyperharness.util.shell_env import detect_shell_environment, parse_env_output


class TestParseEnvOutput:
    """Tests for parse_env_output."""

    def test_basic(self):
        output = "PATH=/usr/bin:/bin\nHOME=/home/dev\n"
        assert parse_env_output(output) == {"PATH": "/usr/bin:/bin", "HOME": "/home/dev"}

    def test_value_with_equals(self):
        assert parse_env_output("OPTS=--a=1 --b=2") == {"OPTS": "--a=1 --b=2"}

    def test_skips_continuation_lines(self):
        output = "PS1=line one\nline two continues\nFOO=bar"
        assert parse_env_output(output) == {"PS1": "line one", "FOO": "bar"}

    def test_skips_invalid_keys(self):
        assert parse_env_output("1BAD=x\n=empty\nGOOD_1=y") == {"GOOD_1": "y"}

    def test_empty_value(self):
        assert parse_env_output("EMPTY=") == {"EMPTY": ""}


class TestDetectShellEnvironment:
    """Tests for detect_shell_environment using a fake shell."""

    @pytest.mark.asyncio
    async def test_runs_login_shell_and_caches(self, make_fake_cli, recorded_args):
        shell = make_fake_cli(
            """
            print("PATH=/opt/agents/bin:/usr/bin")
            print("SHELL_MARKER=1")
            """,
            name="fake-shell",
        )
        env = await detect_shell_environment(shell)
        assert env["PATH"] == "/opt/agents/bin:/usr/bin"
        assert recorded_args(shell)["argv"] == ["-lic", "env"]

        # Cached: a different shell is not consulted
        again = await detect_shell_environment("/nonexistent/shell")
        assert again == env

    @pytest.mark.asyncio
    async def test_missing_shell_falls_back_uncached(self, make_fake_cli):
        env = await detect_shell_environment("/nonexistent/shell")
        assert env == dict(os.environ)

        shell = make_fake_cli('print("FROM_SHELL=yes")', name="fake-shell", record_args=False)
        assert (await detect_shell_environment(shell))["FROM_SHELL"] == "yes"

    @pytest.mark.asyncio
    async def test_empty_output_falls_back(self, make_fake_cli):
        shell = make_fake_cli("pass", name="quiet-shell", record_args=False)
        assert await detect_shell_environment(shell) == dict(os.environ)
