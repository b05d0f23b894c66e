"""
HyperPlan executor.

Runs a strategy DAG layer by layer: every step in a layer runs concurrently
as its own harness execution, successful outputs feed the steps that depend
on them, and the terminal step's events become the main execution's events.

The executor has no persistence of its own; it reports progress through a
HyperPlanCallbacks instance.

Usage:
    executor = HyperPlanExecutor(
        HyperPlanExecutorConfig(
            strategy=ensemble_strategy(planners, reconciler),
            task_description="Add retry support to the client",
            cwd="/path/to/repo",
            registry=create_default_registry(),
            callbacks=MyCallbacks(),
        )
    )
    result = await executor.execute()
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from typing import Callable, Optional

from hyperharness.exceptions import HarnessError, StrategyValidationError
from hyperharness.execution import HarnessExecution, StreamEvent
from hyperharness.hyperplan.extract import extract_plan_text
from hyperharness.hyperplan.prompts import (
    ReconcileInput,
    StepPrompt,
    build_plan_step_prompt,
    build_reconcile_step_prompt,
    build_review_step_prompt,
)
from hyperharness.hyperplan.strategies import group_by_depth, is_standard_strategy, validate_strategy
from hyperharness.hyperplan.types import (
    HyperPlanResult,
    HyperPlanStep,
    HyperPlanStrategy,
    StepOutcome,
    SubPlanState,
    SubPlanStatus,
)
from hyperharness.logging_config import LogContext, get_logger
from hyperharness.models import get_model_full_id
from hyperharness.registry import HarnessRegistry
from hyperharness.types import AbortSignal, HarnessQuery, McpServerConfig

logger = get_logger(__name__)


class HyperPlanCallbacks:
    """Progress hooks. Override the ones you need; the defaults do nothing."""

    def on_sub_plan_started(self, step_id: str, execution_id: str) -> None:
        pass

    def on_sub_plan_event(self, step_id: str, event: StreamEvent) -> None:
        pass

    def on_sub_plan_status_change(
        self,
        step_id: str,
        status: SubPlanStatus,
        result_text: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        pass

    def on_terminal_event(self, event: StreamEvent) -> None:
        pass

    def on_terminal_session_id(self, session_id: str) -> None:
        pass


@dataclass
class HyperPlanExecutorConfig:
    """Everything one strategy run needs.

    Attributes:
        strategy: The DAG to run.
        task_description: The task every step plans, reviews or reconciles.
        cwd: Working directory for every backend.
        registry: Where step agents' harnesses are looked up.
        callbacks: Progress hooks.
        additional_directories: Extra directories every backend may read.
        mcp_servers: MCP servers made available to every step.
        signal: Optional cancellation token for the whole run.
        mode: Permission mode for every step.
        thinking: Thinking level for every step.
    """

    strategy: HyperPlanStrategy
    task_description: str
    cwd: str
    registry: HarnessRegistry
    callbacks: HyperPlanCallbacks = field(default_factory=HyperPlanCallbacks)
    additional_directories: list[str] = field(default_factory=list)
    mcp_servers: dict[str, McpServerConfig] = field(default_factory=dict)
    signal: Optional[AbortSignal] = None
    mode: str = "read-only"
    thinking: str = "high"


class HyperPlanExecutor:
    """Executes one HyperPlan strategy."""

    def __init__(self, config: HyperPlanExecutorConfig):
        self.config = config
        self.callbacks = config.callbacks
        self.step_results: dict[str, str] = {}
        self.sub_plans: dict[str, SubPlanState] = {}
        self._aborted = False
        self._active: list[HarnessExecution] = []
        if config.signal is not None:
            config.signal.add_listener(self.abort)

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self) -> None:
        """Abort every running step. Results already collected are kept."""
        if not self._aborted:
            logger.info(f"Aborting HyperPlan strategy {self.config.strategy.id}")
        self._aborted = True
        for execution in list(self._active):
            execution.abort()

    async def execute(self) -> HyperPlanResult:
        """Run the strategy.

        Raises:
            StrategyValidationError: The strategy is structurally invalid.
                Nothing is started.
        """
        strategy = self.config.strategy
        errors = validate_strategy(strategy)
        if errors:
            raise StrategyValidationError(errors)

        try:
            if is_standard_strategy(strategy):
                return await self._execute_single_plan(strategy.steps[0])
            return await self._execute_layers(strategy)
        finally:
            if self.config.signal is not None:
                self.config.signal.remove_listener(self.abort)

    async def _execute_layers(self, strategy: HyperPlanStrategy) -> HyperPlanResult:
        terminal_session_id: Optional[str] = None

        for depth, layer in enumerate(group_by_depth(strategy)):
            if self._aborted:
                break
            logger.debug(f"Running layer {depth}", steps=[step.id for step in layer])

            results = await asyncio.gather(
                *(self._execute_step(step) for step in layer),
                return_exceptions=True,
            )

            for step, result in zip(layer, results):
                if isinstance(result, Exception):
                    logger.warning(f"Step {step.id} failed: {result}")
                    if step.id != strategy.terminal_step_id:
                        self._set_status(step.id, "error", error=str(result))
                    continue
                if isinstance(result, BaseException):
                    raise result
                if result is not None:
                    self.step_results[step.id] = result.text
                    if step.id == strategy.terminal_step_id:
                        terminal_session_id = result.session_id

        success = strategy.terminal_step_id in self.step_results
        logger.info(f"HyperPlan strategy {strategy.id} finished", success=success, steps_succeeded=len(self.step_results))
        return HyperPlanResult(session_id=terminal_session_id, success=success)

    async def _execute_single_plan(self, step: HyperPlanStep) -> HyperPlanResult:
        prompt = build_plan_step_prompt(self.config.task_description)
        execution = self._start_execution(step, prompt)
        if execution is None:
            return HyperPlanResult(success=False)

        session_id: Optional[str] = None

        def on_session(sid: str) -> None:
            nonlocal session_id
            session_id = sid
            self.callbacks.on_terminal_session_id(sid)

        execution.on_session_id(on_session)
        try:
            await self._consume(execution, self.callbacks.on_terminal_event)
            text = extract_plan_text(execution.events, step.agent.harness_id)
            if text:
                self.step_results[step.id] = text
            return HyperPlanResult(session_id=session_id, success=execution.status == "completed")
        finally:
            await self._finish(execution)

    async def _execute_step(self, step: HyperPlanStep) -> Optional[StepOutcome]:
        with LogContext(step_id=step.id):
            return await self._run_step(step)

    async def _run_step(self, step: HyperPlanStep) -> Optional[StepOutcome]:
        strategy = self.config.strategy
        is_terminal = step.id == strategy.terminal_step_id

        execution_id = str(uuid.uuid4())
        if not is_terminal:
            # Tracked before the prompt is built so input failures are recorded too
            self.sub_plans[step.id] = SubPlanState(step.id, step.agent, execution_id)

        prompt = self._build_prompt(step, is_terminal)
        if prompt is None:
            return None

        if not is_terminal:
            self.callbacks.on_sub_plan_started(step.id, execution_id)

        execution = self._start_execution(step, prompt, execution_id)
        if execution is None:
            if not is_terminal:
                self._set_status(step.id, "error", error="Failed to start query")
            return None

        session_id: Optional[str] = None
        if is_terminal:

            def on_session(sid: str) -> None:
                nonlocal session_id
                session_id = sid
                self.callbacks.on_terminal_session_id(sid)

            execution.on_session_id(on_session)
        else:
            self._set_status(step.id, "running")

        forward: Callable[[StreamEvent], None]
        if is_terminal:
            forward = self.callbacks.on_terminal_event
        else:
            forward = lambda event: self.callbacks.on_sub_plan_event(step.id, event)  # noqa: E731

        try:
            await self._consume(execution, forward)
            text = extract_plan_text(execution.events, step.agent.harness_id)
            success = execution.status == "completed"

            if not is_terminal:
                if success:
                    self._set_status(step.id, "completed", result_text=text)
                else:
                    self._set_status(step.id, "error", result_text=text, error=f"Execution {execution.status}")

            if success and text:
                return StepOutcome(text=text, session_id=session_id)
            return None
        finally:
            await self._finish(execution)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _build_prompt(self, step: HyperPlanStep, is_terminal: bool) -> Optional[StepPrompt]:
        task = self.config.task_description

        if step.primitive == "plan":
            return build_plan_step_prompt(task)

        if step.primitive == "review":
            input_id = step.inputs[0]
            plan_text = self.step_results.get(input_id)
            if not plan_text:
                self._set_status(
                    step.id,
                    "error",
                    error=f'Review step "{step.id}" has no input text from "{input_id}"',
                )
                return None
            return build_review_step_prompt(task, plan_text, input_id)

        inputs: list[ReconcileInput] = []
        for input_id in step.inputs:
            text = self.step_results.get(input_id)
            input_step = self.config.strategy.get_step(input_id)
            if not text or input_step is None:
                # Failed inputs are skipped
                continue
            is_review = input_step.primitive == "review"
            inputs.append(
                ReconcileInput(
                    step_id=input_id,
                    primitive="review" if is_review else "plan",
                    text=text,
                    reviews_step_id=input_step.inputs[0] if is_review else None,
                )
            )

        if not inputs:
            message = f'Reconcile step "{step.id}" has no successful inputs'
            logger.warning(message)
            if not is_terminal:
                self._set_status(step.id, "error", error=message)
            return None

        return build_reconcile_step_prompt(task, inputs)

    def _start_execution(
        self,
        step: HyperPlanStep,
        prompt: StepPrompt,
        execution_id: Optional[str] = None,
    ) -> Optional[HarnessExecution]:
        if self._aborted:
            return None

        harness_id = step.agent.harness_id
        try:
            harness = self.config.registry.get_or_raise(harness_id)
        except HarnessError as e:
            logger.warning(f"Cannot start step {step.id}: {e}")
            return None

        query = HarnessQuery(
            prompt=prompt.user_message,
            cwd=self.config.cwd,
            append_system_prompt=prompt.system_prompt,
            mode=self.config.mode,
            model=get_model_full_id(step.agent.model_id, harness_id),
            thinking=self.config.thinking,
            additional_directories=list(self.config.additional_directories),
            mcp_servers=dict(self.config.mcp_servers),
        )
        execution = HarnessExecution(harness, query, execution_id)
        self._active.append(execution)
        logger.debug(
            f"Step {step.id} started",
            primitive=step.primitive,
            harness_id=harness_id,
            model=query.model,
            execution_id=execution.id,
        )
        return execution.start()

    async def _consume(self, execution: HarnessExecution, forward: Callable[[StreamEvent], None]) -> None:
        async for message in execution.stream():
            if self._aborted:
                break
            forward(StreamEvent("raw_message", execution.id, execution.harness_id, {"message": message}))

        await execution.wait()

        # Envelope events carry usage and cost (the only cost source for Codex)
        for event in execution.events:
            if event.type != "raw_message":
                forward(event)

    async def _finish(self, execution: HarnessExecution) -> None:
        if execution in self._active:
            self._active.remove(execution)
        if not execution.is_complete:
            execution.abort()
        await execution.wait()

    def _set_status(
        self,
        step_id: str,
        status: SubPlanStatus,
        result_text: Optional[str] = None,
        error: Optional[str] = None,
    ) -> None:
        state = self.sub_plans.get(step_id)
        if state is not None:
            state.status = status
            state.result_text = result_text
            state.error = error
        self.callbacks.on_sub_plan_status_change(step_id, status, result_text, error)
