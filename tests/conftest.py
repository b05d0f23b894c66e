"""
Shared pytest fixtures for the hyperharness test suite.

Backend CLIs are replaced by small Python scripts written to a temp
directory and passed to harnesses through ``binary_path``. Tests that need a
real, logged-in Claude Code or Codex CLI are marked ``integration``.
"""

import asyncio
import json
import os
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable, Optional

import pytest

from hyperharness.logging_config import clear_context
from hyperharness.types import (
    CompleteEvent,
    HarnessCapabilities,
    HarnessInstallStatus,
    HarnessMeta,
    HarnessModel,
    SlashCommand,
)
from hyperharness.util.shell_env import clear_shell_environment_cache
from hyperharness.util.which import clear_executable_cache


# ============================================================================
# Test Tier Configuration
# ============================================================================


def pytest_configure(config):
    """Register custom pytest markers for test tiers.

    Test Tiers:
    - smoke: Quick sanity tests for CI
    - integration: Tests requiring an installed, authenticated backend CLI
    - slow: Long-running tests

    CI Strategy:
    - PR CI: pytest -m "not slow and not integration"
    - Nightly: pytest (full suite, on a machine with the CLIs logged in)
    """
    config.addinivalue_line("markers", "smoke: quick sanity tests for fast CI feedback")
    config.addinivalue_line(
        "markers", "integration: tests requiring an installed and authenticated backend CLI"
    )
    config.addinivalue_line("markers", "slow: long-running tests (>30 seconds)")
    config.addinivalue_line("markers", "unit: isolated unit tests with no external dependencies")
    config.addinivalue_line(
        "markers", "network: tests requiring external network calls (skip with -m 'not network')"
    )


# ============================================================================
# Global Test Setup
# ============================================================================


@pytest.fixture(autouse=True)
def reset_process_caches():
    """Clear the binary path and shell environment caches around every test."""
    clear_executable_cache()
    clear_shell_environment_cache()
    clear_context()
    yield
    clear_executable_cache()
    clear_shell_environment_cache()
    clear_context()


# ============================================================================
# Fake Backend CLIs
# ============================================================================

FakeCliFactory = Callable[..., str]


@pytest.fixture
def make_fake_cli(tmp_path: Path) -> FakeCliFactory:
    """Factory writing an executable Python script that stands in for a CLI.

    The script body runs with ``sys``, ``json``, ``os`` and ``time``
    imported. When ``record_args`` is true the script first dumps its argv
    (minus the program name), cwd and a few env vars to ``<name>.args.json``.

    Returns the script path.
    """

    def factory(body: str, name: str = "fake-cli", record_args: bool = True) -> str:
        path = tmp_path / name
        header = f"#!{sys.executable}\nimport json, os, sys, time\n"
        if record_args:
            record_path = tmp_path / f"{name}.args.json"
            header += (
                f"with open({str(record_path)!r}, 'w') as _f:\n"
                "    json.dump({'argv': sys.argv[1:], 'cwd': os.getcwd(), 'env': dict(os.environ)}, _f)\n"
            )
        path.write_text(header + textwrap.dedent(body))
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return factory


@pytest.fixture
def recorded_args() -> Callable[[str], dict]:
    """Loader for what a fake CLI recorded about its invocation."""

    def load(cli_path: str) -> dict:
        with open(f"{cli_path}.args.json") as f:
            return json.load(f)

    return load


@pytest.fixture
def project_dir(tmp_path: Path) -> str:
    """An empty directory used as the backend's working directory."""
    path = tmp_path / "project"
    path.mkdir()
    return str(path)

# Keep a stable locale for subprocesses that print text
os.environ.setdefault("PYTHONIOENCODING", "utf-8")


# ============================================================================
# In-process Harness
# ============================================================================


class ScriptedHarness:
    """Harness that replays a scripted event list instead of spawning a CLI.

    ``script`` maps each query to a list of items. Events are yielded in
    order; an exception instance is raised; the string ``"hang"`` blocks
    until the query's signal is aborted and then ends the stream cleanly.
    """

    def __init__(self, harness_id: str, script: Optional[Callable] = None):
        self.id = harness_id
        self.queries = []
        self.script = script or (lambda query: [CompleteEvent()])

    def meta(self) -> HarnessMeta:
        return HarnessMeta(id=self.id, name=f"Scripted {self.id}", vendor="Tests", website="https://example.invalid")

    def models(self) -> list[HarnessModel]:
        return [HarnessModel(id="scripted", label="Scripted", is_default=True)]

    def capabilities(self) -> HarnessCapabilities:
        flags = dict.fromkeys(HarnessCapabilities.__dataclass_fields__, False)
        return HarnessCapabilities(**flags)

    async def check_install_status(self) -> HarnessInstallStatus:
        return HarnessInstallStatus(installed=True, authenticated=True, version="0.0.1")

    async def discover_slash_commands(self, cwd, signal=None) -> list[SlashCommand]:
        return [SlashCommand(name="review", type="slash_command")]

    async def query(self, q):
        self.queries.append(q)
        for item in self.script(q):
            await asyncio.sleep(0)
            if q.signal.aborted:
                return
            if isinstance(item, str) and item == "hang":
                await q.signal.wait()
                return
            if isinstance(item, BaseException):
                raise item
            yield item


@pytest.fixture
def make_harness() -> Callable[..., ScriptedHarness]:
    """Factory for ScriptedHarness instances."""
    return ScriptedHarness
