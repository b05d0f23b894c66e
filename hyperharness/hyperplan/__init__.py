"""
HyperPlan: multi-agent planning over harness executions.

Several harness+model agents plan the same task in parallel, optionally
review each other, and one agent reconciles the results into a final plan.
"""

from hyperharness.hyperplan.executor import HyperPlanCallbacks, HyperPlanExecutor, HyperPlanExecutorConfig
from hyperharness.hyperplan.extract import extract_plan_text
from hyperharness.hyperplan.prompts import (
    ReconcileInput,
    StepPrompt,
    build_plan_step_prompt,
    build_reconcile_step_prompt,
    build_review_step_prompt,
)
from hyperharness.hyperplan.strategies import (
    STRATEGY_PRESETS,
    StrategyPreset,
    cross_review_strategy,
    ensemble_strategy,
    group_by_depth,
    is_standard_strategy,
    standard_strategy,
    topological_sort,
    validate_strategy,
)
from hyperharness.hyperplan.types import (
    AgentCouplet,
    HyperPlanResult,
    HyperPlanStep,
    HyperPlanStrategy,
    SubPlanState,
)

__all__ = [
    "AgentCouplet",
    "HyperPlanStep",
    "HyperPlanStrategy",
    "HyperPlanResult",
    "SubPlanState",
    "HyperPlanCallbacks",
    "HyperPlanExecutor",
    "HyperPlanExecutorConfig",
    "extract_plan_text",
    "ReconcileInput",
    "StepPrompt",
    "build_plan_step_prompt",
    "build_review_step_prompt",
    "build_reconcile_step_prompt",
    "STRATEGY_PRESETS",
    "StrategyPreset",
    "standard_strategy",
    "ensemble_strategy",
    "cross_review_strategy",
    "is_standard_strategy",
    "validate_strategy",
    "topological_sort",
    "group_by_depth",
]
