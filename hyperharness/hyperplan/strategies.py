"""
Strategy presets, validation and DAG utilities.

To add a strategy, write a factory returning a HyperPlanStrategy and list it
in STRATEGY_PRESETS.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from hyperharness.hyperplan.types import AgentCouplet, HyperPlanStep, HyperPlanStrategy

# ============================================================================
# Presets
# ============================================================================


def standard_strategy(agent: AgentCouplet) -> HyperPlanStrategy:
    """One agent plans; no reconciliation."""
    return HyperPlanStrategy(
        id="standard",
        name="Standard",
        description="Plan with a single agent",
        steps=(HyperPlanStep("plan_0", "plan", agent),),
        terminal_step_id="plan_0",
    )


def ensemble_strategy(planners: Sequence[AgentCouplet], reconciler: AgentCouplet) -> HyperPlanStrategy:
    """N agents plan in parallel; one reconciles."""
    plan_steps = tuple(HyperPlanStep(f"plan_{i}", "plan", agent) for i, agent in enumerate(planners))
    reconcile = HyperPlanStep(
        "reconcile_0",
        "reconcile",
        reconciler,
        inputs=tuple(step.id for step in plan_steps),
    )
    return HyperPlanStrategy(
        id="ensemble",
        name="Ensemble",
        description="Multiple agents plan in parallel, then reconcile into one plan",
        steps=plan_steps + (reconcile,),
        terminal_step_id="reconcile_0",
    )


def cross_review_strategy(
    agent_a: AgentCouplet,
    agent_b: AgentCouplet,
    reconciler: AgentCouplet,
) -> HyperPlanStrategy:
    """Two agents plan, each reviews the other's plan, then one reconciles."""
    return HyperPlanStrategy(
        id="cross-review",
        name="Cross-Review",
        description="Two agents plan and cross-review each other, then reconcile",
        steps=(
            HyperPlanStep("plan_a", "plan", agent_a),
            HyperPlanStep("plan_b", "plan", agent_b),
            HyperPlanStep("review_a_of_b", "review", agent_a, inputs=("plan_b",)),
            HyperPlanStep("review_b_of_a", "review", agent_b, inputs=("plan_a",)),
            HyperPlanStep(
                "reconcile_0",
                "reconcile",
                reconciler,
                inputs=("plan_a", "plan_b", "review_a_of_b", "review_b_of_a"),
            ),
        ),
        terminal_step_id="reconcile_0",
    )


@dataclass(frozen=True)
class StrategyPreset:
    id: str
    name: str
    description: str
    # Minimum number of distinct agents the strategy needs
    min_agents: int


STRATEGY_PRESETS: tuple[StrategyPreset, ...] = (
    StrategyPreset("standard", "Standard", "Plan with a single agent", 1),
    StrategyPreset("ensemble", "Ensemble", "Multiple agents plan in parallel, then reconcile", 2),
    StrategyPreset("cross-review", "Cross-Review", "Two agents cross-review each other, then reconcile", 2),
)


def is_standard_strategy(strategy: HyperPlanStrategy) -> bool:
    return strategy.id == "standard" and len(strategy.steps) == 1


# ============================================================================
# Validation
# ============================================================================


def _has_cycle(step_map: dict[str, HyperPlanStep], start: str, visiting: set[str], visited: set[str]) -> bool:
    if start in visiting:
        return True
    if start in visited:
        return False
    visiting.add(start)
    step = step_map.get(start)
    if step is not None:
        for input_id in step.inputs:
            if _has_cycle(step_map, input_id, visiting, visited):
                return True
    visiting.discard(start)
    visited.add(start)
    return False


def validate_strategy(strategy: HyperPlanStrategy) -> list[str]:
    """Check the structural rules of a strategy.

    Returns every violation found, or an empty list when the strategy is valid.
    """
    errors: list[str] = []
    step_map = {step.id: step for step in strategy.steps}

    if len(step_map) != len(strategy.steps):
        errors.append("Duplicate step IDs")

    terminal = step_map.get(strategy.terminal_step_id)
    if terminal is None:
        errors.append(f'Terminal step "{strategy.terminal_step_id}" not found')
    elif terminal.primitive == "review":
        errors.append("Terminal step must produce a plan (plan or reconcile), not a review")

    for step in strategy.steps:
        if step.primitive == "plan" and step.inputs:
            errors.append(f'Plan step "{step.id}" must have no inputs')
        if step.primitive == "review" and len(step.inputs) != 1:
            errors.append(f'Review step "{step.id}" must have exactly 1 input')
        if step.primitive == "reconcile" and not step.inputs:
            errors.append(f'Reconcile step "{step.id}" must have at least 1 input')
        for input_id in step.inputs:
            if input_id not in step_map:
                errors.append(f'Step "{step.id}" references unknown input "{input_id}"')

    visiting: set[str] = set()
    visited: set[str] = set()
    for step in strategy.steps:
        if _has_cycle(step_map, step.id, visiting, visited):
            errors.append("Strategy contains a cycle")
            break

    depended = {input_id for step in strategy.steps for input_id in step.inputs}
    terminals = [step for step in strategy.steps if step.id not in depended]
    if len(terminals) != 1:
        ids = ", ".join(step.id for step in terminals)
        errors.append(f"Expected 1 terminal step, found {len(terminals)}: [{ids}]")
    elif terminals[0].id != strategy.terminal_step_id:
        errors.append(
            f'Terminal step "{strategy.terminal_step_id}" has dependents, '
            f'or orphan step "{terminals[0].id}" exists'
        )

    return errors


# ============================================================================
# DAG Utilities
# ============================================================================


def topological_sort(strategy: HyperPlanStrategy) -> list[HyperPlanStep]:
    """Steps ordered so every step follows its inputs."""
    step_map = {step.id: step for step in strategy.steps}
    visited: set[str] = set()
    result: list[HyperPlanStep] = []

    def visit(step_id: str) -> None:
        if step_id in visited:
            return
        visited.add(step_id)
        step = step_map.get(step_id)
        if step is None:
            return
        for input_id in step.inputs:
            visit(input_id)
        result.append(step)

    for step in strategy.steps:
        visit(step.id)
    return result


def group_by_depth(strategy: HyperPlanStrategy) -> list[list[HyperPlanStep]]:
    """Group steps into layers by longest-path depth from the roots.

    Steps in one layer never depend on each other and can run concurrently.
    Layers keep the strategy's step order.
    """
    step_map = {step.id: step for step in strategy.steps}
    depths: dict[str, int] = {}
    in_progress: set[str] = set()

    def depth(step_id: str) -> int:
        if step_id in depths:
            return depths[step_id]
        step = step_map.get(step_id)
        if step is None or not step.inputs or step_id in in_progress:
            # Unknown ids and cycle back-edges count as roots
            depths[step_id] = 0
            return 0
        in_progress.add(step_id)
        value = max(depth(input_id) for input_id in step.inputs) + 1
        in_progress.discard(step_id)
        depths[step_id] = value
        return value

    for step in strategy.steps:
        depth(step.id)

    if not depths:
        return []

    layers: list[list[HyperPlanStep]] = []
    for d in range(max(depths.values()) + 1):
        layer = [step for step in strategy.steps if depths.get(step.id) == d]
        if layer:
            layers.append(layer)
    return layers
