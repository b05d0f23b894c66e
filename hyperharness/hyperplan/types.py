"""
HyperPlan data model.

A strategy is a small DAG of steps. Each step pairs a primitive (plan,
review, reconcile) with an agent, i.e. a harness and a model alias, and
names the steps whose output it consumes.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Optional

from hyperharness.types import HarnessId

StepPrimitive = Literal["plan", "review", "reconcile"]
SubPlanStatus = Literal["pending", "running", "completed", "error"]

STEP_PRIMITIVES: tuple[str, ...] = ("plan", "review", "reconcile")


@dataclass(frozen=True)
class AgentCouplet:
    """A harness + model pair, e.g. ``AgentCouplet("claude-code", "opus")``."""

    harness_id: HarnessId
    model_id: str

    @classmethod
    def parse(cls, value: str) -> AgentCouplet:
        """Parse ``harness:model`` (as used on the command line)."""
        harness_id, sep, model_id = value.partition(":")
        if not sep or not harness_id or not model_id:
            raise ValueError(f"Expected HARNESS:MODEL, got {value!r}")
        return cls(harness_id=harness_id, model_id=model_id)

    def __str__(self) -> str:
        return f"{self.harness_id}:{self.model_id}"


@dataclass(frozen=True)
class HyperPlanStep:
    id: str
    primitive: StepPrimitive
    agent: AgentCouplet
    # Step ids this step consumes. Empty for plan steps.
    inputs: tuple[str, ...] = ()


@dataclass(frozen=True)
class HyperPlanStrategy:
    id: str
    name: str
    description: str
    steps: tuple[HyperPlanStep, ...]
    terminal_step_id: str

    def get_step(self, step_id: str) -> Optional[HyperPlanStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for step in data["steps"]:
            step["inputs"] = list(step["inputs"])
        data["steps"] = list(data["steps"])
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HyperPlanStrategy:
        """Build a strategy from its ``to_dict`` form. Structure is not validated here."""
        steps = tuple(
            HyperPlanStep(
                id=step["id"],
                primitive=step["primitive"],
                agent=AgentCouplet(**step["agent"]),
                inputs=tuple(step.get("inputs", ())),
            )
            for step in data["steps"]
        )
        return cls(
            id=data["id"],
            name=data.get("name", data["id"]),
            description=data.get("description", ""),
            steps=steps,
            terminal_step_id=data["terminal_step_id"],
        )


@dataclass
class SubPlanState:
    """Runtime state of one non-terminal step."""

    step_id: str
    agent: AgentCouplet
    execution_id: str
    status: SubPlanStatus = "pending"
    result_text: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class HyperPlanResult:
    session_id: Optional[str] = None
    success: bool = False


@dataclass
class StepOutcome:
    text: str
    session_id: Optional[str] = field(default=None)
