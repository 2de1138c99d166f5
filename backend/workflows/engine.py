"""
Workflow Engine

Walks a graph of WorkflowSteps from a start step, one step at a time,
following each result's `next_step_id` until a step names no successor.

Retries: a failed step with a retry_config is attempted again up to
`max_retries` times, sleeping `backoff_ms * 2**i` ms before retry i. Every
attempt is kept in the run's results and the last attempt decides the
branch. The run succeeds only if every attempt succeeded, except the first
attempt of a step that a later retry recovered.

There is no cycle detection unless `max_steps` is set: a graph that loops
forever runs forever.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

from config import settings
from schemas.workflow import (
    StepExecutionResult,
    WorkflowExecutionContext,
    WorkflowRunResult,
    WorkflowStep,
)
from .steps import StepExecutor, build_step_map, step_not_found_result

logger = logging.getLogger(__name__)


class EngineEventType(str, Enum):
    """Events emitted while a workflow runs."""
    STEP_STARTED = "step_started"
    STEP_COMPLETED = "step_completed"
    STEP_RETRY = "step_retry"
    WORKFLOW_COMPLETED = "workflow_completed"


@dataclass
class EngineEvent:
    """A notification sent to the engine's listener."""
    type: EngineEventType
    run_id: str
    step_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


EventListener = Callable[[EngineEvent], Any]


class WorkflowEngine:
    """
    Executes workflow runs.

    Usage:
        engine = WorkflowEngine(tool_registry=my_registry)
        result = await engine.execute_workflow(steps, context)
    """

    def __init__(
        self,
        step_executor: Optional[StepExecutor] = None,
        max_steps: Optional[int] = None,
        listener: Optional[EventListener] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **collaborators
    ):
        """
        Args:
            step_executor: Executor for single steps. Built from
                `collaborators` (tool_registry, agent_lookup, run_agent,
                run_agent_with_tools, step_timeout_seconds,
                detect_variable_conflicts) when omitted.
            max_steps: Cap on step dispatches per run, None for no cap
            listener: Called with every EngineEvent
            sleep: Coroutine used for retry backoff (seconds)
        """
        if step_executor is not None and collaborators:
            raise ValueError("Pass either step_executor or collaborators, not both")
        self.step_executor = step_executor or StepExecutor(**collaborators)
        self.max_steps = max_steps if max_steps is not None else settings.WORKFLOW_MAX_STEPS
        self.listener = listener
        self._sleep = sleep

    def _emit(self, event: EngineEvent) -> None:
        if self.listener is None:
            return
        try:
            self.listener(event)
        except Exception as e:
            logger.error(f"Workflow event listener failed on {event.type.value}: {e}")

    async def execute_step(
        self,
        step: WorkflowStep,
        context: WorkflowExecutionContext,
        all_steps: Union[Mapping[str, WorkflowStep], Sequence[WorkflowStep]]
    ) -> StepExecutionResult:
        """Run a single attempt of one step."""
        return await self.step_executor.execute_step(step, context, all_steps)

    async def execute_workflow(
        self,
        steps: Sequence[WorkflowStep],
        context: WorkflowExecutionContext,
        start_step_id: Optional[str] = None
    ) -> WorkflowRunResult:
        """
        Run a workflow to completion.

        Args:
            steps: Every step the run may reach, including parallel children
            context: Run state, mutated in place. Step outputs land in
                `context.variables`; a plain dict given at construction
                is the store itself, not a copy.
            start_step_id: First step; defaults to the first of `steps`

        Returns:
            WorkflowRunResult with every attempt in completion order
        """
        start_time = time.perf_counter()
        step_map = build_step_map(steps)
        results: List[StepExecutionResult] = []
        final_results: List[StepExecutionResult] = []
        forgiven: Set[int] = set()
        resources_created: List[Any] = []

        current_step_id = start_step_id or (steps[0].id if steps else None)
        dispatched = 0

        logger.info(
            f"Starting workflow {context.workflow_id} run {context.run_id} "
            f"({len(step_map)} steps, start={current_step_id})"
        )

        while current_step_id:
            step = step_map.get(current_step_id)
            if step is None:
                logger.warning(f"Run {context.run_id}: step not found: {current_step_id}")
                missing = step_not_found_result(current_step_id)
                results.append(missing)
                final_results.append(missing)
                break

            if self.max_steps is not None and dispatched >= self.max_steps:
                logger.error(f"Run {context.run_id}: step limit of {self.max_steps} reached at {step.id}")
                exceeded = StepExecutionResult(
                    step_id=step.id,
                    step_type=step.type,
                    success=False,
                    error=f"Step limit exceeded ({self.max_steps}) before step {step.id}",
                )
                results.append(exceeded)
                final_results.append(exceeded)
                break
            dispatched += 1

            self._emit(EngineEvent(EngineEventType.STEP_STARTED, context.run_id, step.id))
            result = await self.step_executor.execute_step(step, context, step_map)
            results.append(result)
            resources_created.extend(result.resources_created)
            context.step_results[step.id] = result

            if not result.success and step.retry_config:
                first_attempt = result
                result = await self._retry(step, context, step_map, results, resources_created)
                if result.success:
                    # A recovered step's first failure does not count against the run
                    forgiven.add(id(first_attempt))

            final_results.append(result)
            self._emit(EngineEvent(
                EngineEventType.STEP_COMPLETED,
                context.run_id,
                step.id,
                {"success": result.success, "attempts": result.attempt, "next_step_id": result.next_step_id},
            ))
            logger.info(
                f"Run {context.run_id}: step {step.id} "
                f"{'succeeded' if result.success else 'failed'} -> {result.next_step_id or 'end'}"
            )

            current_step_id = result.next_step_id

        run_result = WorkflowRunResult(
            success=all(r.success for r in results if id(r) not in forgiven),
            results=results,
            total_execution_time_ms=int((time.perf_counter() - start_time) * 1000),
            resources_created=resources_created,
        )

        self._emit(EngineEvent(
            EngineEventType.WORKFLOW_COMPLETED,
            context.run_id,
            data={"success": run_result.success, "steps_executed": len(final_results)},
        ))
        logger.info(
            f"Workflow {context.workflow_id} run {context.run_id} "
            f"{'completed' if run_result.success else 'failed'} in {run_result.total_execution_time_ms}ms"
        )
        return run_result

    async def _retry(
        self,
        step: WorkflowStep,
        context: WorkflowExecutionContext,
        step_map: Dict[str, WorkflowStep],
        results: List[StepExecutionResult],
        resources_created: List[Any]
    ) -> StepExecutionResult:
        """Retry a failed step; returns the last attempt."""
        retry_config = step.retry_config
        result = context.step_results[step.id]

        for retry_index in range(retry_config.max_retries):
            delay_ms = retry_config.backoff_ms * (2 ** retry_index)
            logger.warning(
                f"Run {context.run_id}: retrying step {step.id} "
                f"({retry_index + 1}/{retry_config.max_retries}) in {delay_ms}ms: {result.error}"
            )
            self._emit(EngineEvent(
                EngineEventType.STEP_RETRY,
                context.run_id,
                step.id,
                {"attempt": retry_index + 2, "delay_ms": delay_ms, "error": result.error},
            ))
            await self._sleep(delay_ms / 1000)

            result = await self.step_executor.execute_step(step, context, step_map)
            result.attempt = retry_index + 2
            results.append(result)
            resources_created.extend(result.resources_created)
            context.step_results[step.id] = result

            if result.success:
                break

        return result


# Global engine instance using the default collaborators
workflow_engine = WorkflowEngine()


async def execute_step(
    step: WorkflowStep,
    context: WorkflowExecutionContext,
    all_steps: Union[Mapping[str, WorkflowStep], Sequence[WorkflowStep]]
) -> StepExecutionResult:
    """Run a single step with the global engine."""
    return await workflow_engine.execute_step(step, context, all_steps)


async def execute_workflow(
    steps: Sequence[WorkflowStep],
    context: WorkflowExecutionContext,
    start_step_id: Optional[str] = None
) -> WorkflowRunResult:
    """Run a workflow with the global engine."""
    return await workflow_engine.execute_workflow(steps, context, start_step_id)
