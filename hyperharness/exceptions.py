"""
Custom exception types for hyperharness.

This module defines the exception hierarchy used throughout the package.
Setup failures (missing binary, invalid strategy, bad configuration) are
raised as exceptions; failures that happen while a backend is running are
reported as envelope events instead.
"""

from __future__ import annotations

from typing import Any, Optional

from hyperharness.types import HarnessErrorCode


class HyperHarnessError(Exception):
    """Base exception for all hyperharness errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class ConfigurationError(HyperHarnessError):
    """Raised when harness configuration is invalid."""

    pass


# ============================================================================
# Harness Errors
# ============================================================================


class HarnessError(HyperHarnessError):
    """Base exception for backend harness failures.

    Attributes:
        code: Error code shared with envelope ``error`` events.
        harness_id: Identifier of the harness that raised.
    """

    def __init__(
        self,
        message: str,
        code: HarnessErrorCode = "unknown",
        harness_id: Optional[str] = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.code = code
        self.harness_id = harness_id

    def __str__(self) -> str:
        return self.message


class HarnessNotInstalledError(HarnessError):
    """Raised when a backend CLI binary cannot be resolved."""

    def __init__(self, harness_id: str, instructions: Optional[str] = None):
        message = f"{harness_id} CLI is not installed"
        if instructions:
            message += f". {instructions}"
        super().__init__(message, "not_installed", harness_id)
        self.instructions = instructions


class HarnessNotRegisteredError(HarnessError):
    """Raised when a harness id is looked up but was never registered."""

    def __init__(self, harness_id: str):
        super().__init__(f'Harness "{harness_id}" is not registered', "unknown", harness_id)


class ToolBridgeError(HyperHarnessError):
    """Raised when the client tool bridge cannot be started."""

    pass


# ============================================================================
# Strategy Errors
# ============================================================================


class StrategyError(HyperHarnessError):
    """Base exception for HyperPlan strategy failures."""

    pass


class StrategyValidationError(StrategyError):
    """Raised when a strategy fails structural validation.

    All violations are collected so they can be reported together.
    """

    def __init__(self, errors: list[str]):
        super().__init__(f"Invalid strategy: {', '.join(errors)}", {"errors": list(errors)})
        self.errors = list(errors)

    def __str__(self) -> str:
        return self.message


__all__ = [
    "HyperHarnessError",
    "ConfigurationError",
    "HarnessError",
    "HarnessNotInstalledError",
    "HarnessNotRegisteredError",
    "ToolBridgeError",
    "StrategyError",
    "StrategyValidationError",
]
