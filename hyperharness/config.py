"""
Harness configuration module.

Provides per-backend configuration for the Claude Code and Codex harnesses,
with environment variable overrides layered on top of the defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from hyperharness.exceptions import ConfigurationError

DEFAULT_SETTING_SOURCES = ("user", "project", "local")
DEFAULT_KILL_GRACE_SECONDS = 5.0
DEFAULT_PROBE_TIMEOUT_SECONDS = 15.0


def _get_env_str(name: str) -> Optional[str]:
    """Get a non-empty string from environment variable, or None."""
    value = os.environ.get(name)
    return value if value else None


def _get_env_bool(name: str) -> Optional[bool]:
    """Get a boolean from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off"):
        return False
    return None


def _get_env_float(name: str) -> Optional[float]:
    """Get a float from environment variable, or None if not set/invalid."""
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _validate_timeouts(kill_grace_seconds: float, probe_timeout_seconds: float) -> None:
    if kill_grace_seconds <= 0:
        raise ConfigurationError("kill_grace_seconds must be positive")
    if probe_timeout_seconds <= 0:
        raise ConfigurationError("probe_timeout_seconds must be positive")


@dataclass(frozen=True)
class ClaudeCodeHarnessConfig:
    """Configuration for the Claude Code harness.

    Attributes:
        binary_path: Explicit path to the ``claude`` binary. Skips PATH lookup.
        disable_telemetry: Set DISABLE_TELEMETRY/DISABLE_ERROR_REPORTING in the child env.
        force_subagent_model: Pin every sub-agent the CLI spawns to the query's model.
        setting_sources: Values for ``--setting-sources``.
        kill_grace_seconds: Delay between SIGTERM and SIGKILL on cancellation.
        probe_timeout_seconds: Upper bound for the auth/slash-command probe.

    Example:
        config = ClaudeCodeHarnessConfig(binary_path="/opt/claude/bin/claude")
        quiet = config.with_overrides(disable_telemetry=True)
    """

    binary_path: Optional[str] = None
    disable_telemetry: bool = True
    force_subagent_model: bool = True
    setting_sources: tuple[str, ...] = DEFAULT_SETTING_SOURCES
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS
    probe_timeout_seconds: float = DEFAULT_PROBE_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.setting_sources:
            raise ConfigurationError("setting_sources must not be empty")
        _validate_timeouts(self.kill_grace_seconds, self.probe_timeout_seconds)

    def with_overrides(
        self,
        binary_path: Optional[str] = None,
        disable_telemetry: Optional[bool] = None,
        force_subagent_model: Optional[bool] = None,
        setting_sources: Optional[tuple[str, ...]] = None,
        kill_grace_seconds: Optional[float] = None,
        probe_timeout_seconds: Optional[float] = None,
    ) -> ClaudeCodeHarnessConfig:
        """Create a new config with the non-None overrides applied."""
        return ClaudeCodeHarnessConfig(
            binary_path=binary_path if binary_path is not None else self.binary_path,
            disable_telemetry=(
                disable_telemetry if disable_telemetry is not None else self.disable_telemetry
            ),
            force_subagent_model=(
                force_subagent_model
                if force_subagent_model is not None
                else self.force_subagent_model
            ),
            setting_sources=(
                tuple(setting_sources) if setting_sources is not None else self.setting_sources
            ),
            kill_grace_seconds=(
                kill_grace_seconds if kill_grace_seconds is not None else self.kill_grace_seconds
            ),
            probe_timeout_seconds=(
                probe_timeout_seconds
                if probe_timeout_seconds is not None
                else self.probe_timeout_seconds
            ),
        )

    @classmethod
    def from_env(cls) -> ClaudeCodeHarnessConfig:
        """Build a config from defaults plus environment overrides.

        Environment variables:
            HYPERHARNESS_CLAUDE_PATH: Explicit ``claude`` binary path
            HYPERHARNESS_DISABLE_TELEMETRY: "1"/"0"
            HYPERHARNESS_FORCE_SUBAGENT_MODEL: "1"/"0"
            HYPERHARNESS_SETTING_SOURCES: Comma separated setting sources
            HYPERHARNESS_KILL_GRACE_SECONDS: SIGTERM to SIGKILL delay
            HYPERHARNESS_PROBE_TIMEOUT_SECONDS: Probe timeout
        """
        sources = _get_env_str("HYPERHARNESS_SETTING_SOURCES")
        return cls().with_overrides(
            binary_path=_get_env_str("HYPERHARNESS_CLAUDE_PATH"),
            disable_telemetry=_get_env_bool("HYPERHARNESS_DISABLE_TELEMETRY"),
            force_subagent_model=_get_env_bool("HYPERHARNESS_FORCE_SUBAGENT_MODEL"),
            setting_sources=(
                tuple(s.strip() for s in sources.split(",") if s.strip()) if sources else None
            ),
            kill_grace_seconds=_get_env_float("HYPERHARNESS_KILL_GRACE_SECONDS"),
            probe_timeout_seconds=_get_env_float("HYPERHARNESS_PROBE_TIMEOUT_SECONDS"),
        )


@dataclass(frozen=True)
class CodexHarnessConfig:
    """Configuration for the Codex harness.

    Attributes:
        binary_path: Explicit path to the ``codex`` binary. Skips PATH lookup.
        kill_grace_seconds: Delay between SIGTERM and SIGKILL on cancellation.
        probe_timeout_seconds: Upper bound for ``--version`` and ``login status``.
    """

    binary_path: Optional[str] = None
    kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS
    probe_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        """Validate configuration values."""
        _validate_timeouts(self.kill_grace_seconds, self.probe_timeout_seconds)

    def with_overrides(self, **overrides) -> CodexHarnessConfig:
        """Create a new config with the non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    @classmethod
    def from_env(cls) -> CodexHarnessConfig:
        """Build a config from defaults plus environment overrides.

        Environment variables:
            HYPERHARNESS_CODEX_PATH: Explicit ``codex`` binary path
            HYPERHARNESS_KILL_GRACE_SECONDS: SIGTERM to SIGKILL delay
        """
        return cls().with_overrides(
            binary_path=_get_env_str("HYPERHARNESS_CODEX_PATH"),
            kill_grace_seconds=_get_env_float("HYPERHARNESS_KILL_GRACE_SECONDS"),
        )


__all__ = [
    "DEFAULT_SETTING_SOURCES",
    "ClaudeCodeHarnessConfig",
    "CodexHarnessConfig",
]
