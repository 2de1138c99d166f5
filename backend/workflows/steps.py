"""
Workflow Step Handlers

One handler per step type, plus `execute_step`, which dispatches on the
step type. Handlers never raise: any exception becomes a failed
StepExecutionResult that routes to the step's `on_error` branch.

External collaborators (tool registry, agent lookup, agent execution) are
injected into StepExecutor so callers and tests can substitute their own.
"""

import asyncio
import functools
import inspect
import json
import logging
import time
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

from config import settings
from schemas.workflow import (
    AgentStepConfig,
    ConditionStepConfig,
    ParallelStepConfig,
    StepExecutionResult,
    StepType,
    ToolStepConfig,
    TransformStepConfig,
    WorkflowExecutionContext,
    WorkflowStep,
    note_variable_writes,
    record_variable_writes,
)
from services.agent_service import AgentNotFoundError, lookup_agent
from services.llm_service import execute_agent_with_context, execute_agent_with_tools
from tools.registry import ToolExecutionContext, coerce_tool_result, tool_registry as default_tool_registry
from .expressions import evaluate_expression
from .templating import (
    get_nested_value,
    has_nested_value,
    resolve_parameter_templates,
    to_template_text,
)
from .transforms import apply_transformations

logger = logging.getLogger(__name__)

StepMap = Mapping[str, WorkflowStep]


def _elapsed_ms(start_time: float) -> int:
    return max(0, int((time.perf_counter() - start_time) * 1000))


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def build_step_map(steps: Union[StepMap, Sequence[WorkflowStep]]) -> Dict[str, WorkflowStep]:
    """Index steps by id. A later step with a duplicate id replaces the earlier one."""
    if isinstance(steps, Mapping):
        return dict(steps)
    return {step.id: step for step in steps}


def step_not_found_result(step_id: str) -> StepExecutionResult:
    return StepExecutionResult(
        step_id=step_id,
        step_type=None,
        success=False,
        error=f"Step not found: {step_id}",
    )


def step_handler(step_type: StepType):
    """
    Wrap a handler so it always returns a result.

    Times the call, and turns any exception into a failed result routed to
    `step.on_error`.
    """
    def decorator(fn):
        @functools.wraps(fn)
        async def wrapper(self, step: WorkflowStep, context: WorkflowExecutionContext, *args):
            start_time = time.perf_counter()
            try:
                result = await fn(self, step, context, *args)
            except Exception as e:
                logger.error(f"Step {step.id} ({step_type.value}) failed: {e}")
                return StepExecutionResult(
                    step_id=step.id,
                    step_type=step_type,
                    success=False,
                    error=str(e) or type(e).__name__,
                    next_step_id=step.on_error,
                    execution_time_ms=_elapsed_ms(start_time),
                    metadata={"error_type": type(e).__name__},
                )
            result.execution_time_ms = _elapsed_ms(start_time)
            return result
        return wrapper
    return decorator


class StepExecutor:
    """Executes single workflow steps against a run context."""

    def __init__(
        self,
        tool_registry=None,
        agent_lookup: Optional[Callable[[str, str], Any]] = None,
        run_agent: Optional[Callable[..., Awaitable[Any]]] = None,
        run_agent_with_tools: Optional[Callable[..., Awaitable[Any]]] = None,
        step_timeout_seconds: Optional[float] = None,
        detect_variable_conflicts: Optional[bool] = None
    ):
        self.tool_registry = tool_registry or default_tool_registry
        self.agent_lookup = agent_lookup or lookup_agent
        self.run_agent = run_agent or execute_agent_with_context
        self.run_agent_with_tools = run_agent_with_tools or execute_agent_with_tools
        self.step_timeout_seconds = (
            step_timeout_seconds if step_timeout_seconds is not None
            else settings.WORKFLOW_STEP_TIMEOUT_SECONDS
        )
        self.detect_variable_conflicts = (
            detect_variable_conflicts if detect_variable_conflicts is not None
            else settings.WORKFLOW_DETECT_VARIABLE_CONFLICTS
        )

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def execute_step(
        self,
        step: WorkflowStep,
        context: WorkflowExecutionContext,
        all_steps: Union[StepMap, Sequence[WorkflowStep]]
    ) -> StepExecutionResult:
        """Run one attempt of `step`, dispatching on its type."""
        step_map = all_steps if isinstance(all_steps, Mapping) else build_step_map(all_steps)

        if step.type == StepType.TOOL:
            handler = self.execute_tool_step(step, context)
        elif step.type == StepType.AGENT:
            handler = self.execute_agent_step(step, context)
        elif step.type == StepType.CONDITION:
            handler = self.execute_condition_step(step, context)
        elif step.type == StepType.TRANSFORM:
            handler = self.execute_transform_step(step, context)
        elif step.type == StepType.PARALLEL:
            handler = self.execute_parallel_step(step, context, step_map)
        else:
            return StepExecutionResult(
                step_id=step.id,
                step_type=step.type,
                success=False,
                error=f"Unknown step type: {step.type}",
                next_step_id=step.on_error,
            )

        if not self.step_timeout_seconds:
            return await handler

        start_time = time.perf_counter()
        try:
            return await asyncio.wait_for(handler, timeout=self.step_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"Step {step.id} timed out after {self.step_timeout_seconds}s")
            return StepExecutionResult(
                step_id=step.id,
                step_type=step.type,
                success=False,
                error=f"Step timed out after {self.step_timeout_seconds}s",
                next_step_id=step.on_error,
                execution_time_ms=_elapsed_ms(start_time),
                metadata={"error_type": "TimeoutError"},
            )

    # =========================================================================
    # Handlers
    # =========================================================================

    @step_handler(StepType.TOOL)
    async def execute_tool_step(self, step: WorkflowStep, context: WorkflowExecutionContext) -> StepExecutionResult:
        config: ToolStepConfig = step.config

        resolved_params = resolve_parameter_templates(config.parameters, context.variables)
        tool_context = ToolExecutionContext(
            org_id=context.org_id,
            user_id=context.user_id,
            workflow_id=context.workflow_id,
            run_id=context.run_id,
        )

        result = coerce_tool_result(
            await self.tool_registry.execute_tool(config.tool_name, resolved_params, tool_context)
        )

        if config.output_mapping and result.success and result.data is not None:
            for source_path, variable_name in config.output_mapping.items():
                # A path the tool did not return is skipped, not an error
                if has_nested_value(result.data, source_path):
                    context.variables[variable_name] = get_nested_value(result.data, source_path)

        # Written even on failure, when data is usually None
        context.variables[step.id] = result.data

        return StepExecutionResult(
            step_id=step.id,
            step_type=StepType.TOOL,
            success=result.success,
            data=result.data,
            error=None if result.success else (result.error or f"Tool {config.tool_name} failed"),
            next_step_id=step.on_success if result.success else step.on_error,
            resources_created=result.resources_created,
            metadata={
                "tool_name": config.tool_name,
                "params": resolved_params,
            },
        )

    @step_handler(StepType.AGENT)
    async def execute_agent_step(self, step: WorkflowStep, context: WorkflowExecutionContext) -> StepExecutionResult:
        config: AgentStepConfig = step.config

        resolved_input = resolve_parameter_templates(config.input, context.variables)
        input_message = _agent_input_message(resolved_input)

        agent = await _maybe_await(self.agent_lookup(config.agent_id, context.org_id))
        if not agent:
            raise AgentNotFoundError(config.agent_id)

        agent_config = {
            "temperature": agent.temperature,
            "max_tokens": agent.max_tokens,
            "model": agent.model,
        }
        resources_created: List[Any] = []

        if config.enable_tools:
            tool_context = ToolExecutionContext(
                org_id=context.org_id,
                user_id=context.user_id,
                workflow_id=context.workflow_id,
                run_id=context.run_id,
                agent_id=config.agent_id,
            )
            tool_result = await self.run_agent_with_tools(
                agent_type=agent.type,
                agent_name=agent.name,
                user_input=input_message,
                system_prompt=agent.system_prompt,
                tool_context=tool_context,
                enabled_tools=config.allowed_tools,
                config=agent_config,
            )
            summary = {
                "response": tool_result.response,
                "tool_calls": len(tool_result.tool_calls),
                "tokens_used": tool_result.tokens_used,
            }
            resources_created = list(tool_result.resources_created or [])
        else:
            llm_result = await self.run_agent(
                agent_type=agent.type,
                agent_name=agent.name,
                user_input=input_message,
                system_prompt=agent.system_prompt,
                config=agent_config,
            )
            summary = {
                "response": llm_result.response,
                "tokens_used": llm_result.tokens_used,
            }

        context.variables[step.id] = summary

        return StepExecutionResult(
            step_id=step.id,
            step_type=StepType.AGENT,
            success=True,
            data=summary,
            next_step_id=step.on_success,
            resources_created=resources_created,
            metadata={
                "agent_id": config.agent_id,
                "agent_name": agent.name,
            },
        )

    @step_handler(StepType.CONDITION)
    async def execute_condition_step(self, step: WorkflowStep, context: WorkflowExecutionContext) -> StepExecutionResult:
        config: ConditionStepConfig = step.config

        result = evaluate_expression(config.expression, context.variables)

        return StepExecutionResult(
            step_id=step.id,
            step_type=StepType.CONDITION,
            success=True,
            data={"condition": config.expression, "result": result},
            next_step_id=config.true_step if result else config.false_step,
            metadata={
                "expression": config.expression,
                "evaluated_to": result,
            },
        )

    @step_handler(StepType.TRANSFORM)
    async def execute_transform_step(self, step: WorkflowStep, context: WorkflowExecutionContext) -> StepExecutionResult:
        config: TransformStepConfig = step.config

        input_data = {
            key: get_nested_value(context.variables, path)
            for key, path in config.input_mapping.items()
        }
        transformed = apply_transformations(input_data, config.transformations)

        context.variables[config.output_variable] = transformed
        context.variables[step.id] = transformed

        return StepExecutionResult(
            step_id=step.id,
            step_type=StepType.TRANSFORM,
            success=True,
            data=transformed,
            next_step_id=step.on_success,
            metadata={
                "transformations": len(config.transformations),
                "output_variable": config.output_variable,
            },
        )

    @step_handler(StepType.PARALLEL)
    async def execute_parallel_step(
        self,
        step: WorkflowStep,
        context: WorkflowExecutionContext,
        all_steps: StepMap
    ) -> StepExecutionResult:
        config: ParallelStepConfig = step.config

        children = [all_steps.get(child_id) for child_id in config.steps]
        missing = [child_id for child_id, child in zip(config.steps, children) if child is None]
        if missing:
            logger.warning(f"Parallel step {step.id} references unknown steps: {', '.join(missing)}")

        async def _run_child(child: WorkflowStep):
            # Each child runs in its own task, so its recorded writes are its own
            with record_variable_writes() as writes:
                result = await self.execute_step(child, context, all_steps)
            return result, writes

        outcomes = await asyncio.gather(
            *(_run_child(child) for child in children if child is not None),
            return_exceptions=True
        )

        # Rebuild results in submission order, including missing children
        results: List[StepExecutionResult] = []
        child_writes = []
        running = iter(zip([c for c in children if c is not None], outcomes))
        for child_id, child in zip(config.steps, children):
            if child is None:
                results.append(step_not_found_result(child_id))
                continue
            child, outcome = next(running)
            if isinstance(outcome, BaseException):
                results.append(StepExecutionResult(
                    step_id=child.id,
                    step_type=child.type,
                    success=False,
                    error=str(outcome) or type(outcome).__name__,
                    next_step_id=child.on_error,
                ))
                continue
            result, writes = outcome
            results.append(result)
            child_writes.append(writes)
            context.step_results[child.id] = result

        all_written = set().union(*child_writes) if child_writes else set()
        note_variable_writes(all_written)

        metadata: Dict[str, Any] = {
            "parallel_step_count": len(results),
            "success_count": sum(1 for r in results if r.success),
            "failed_count": sum(1 for r in results if not r.success),
        }
        if missing:
            metadata["missing_steps"] = missing

        if self.detect_variable_conflicts:
            counts = Counter(key for writes in child_writes for key in writes)
            conflicts = sorted(key for key, count in counts.items() if count > 1)
            if conflicts:
                logger.warning(
                    f"Parallel step {step.id}: variables written by more than one branch "
                    f"(last write wins): {', '.join(conflicts)}"
                )
                metadata["variable_conflicts"] = conflicts

        context.variables[step.id] = {
            "results": [
                {"step_id": r.step_id, "success": r.success, "data": r.data}
                for r in results
            ],
        }

        if not results:
            success = True
        elif config.wait_for_all:
            success = all(r.success for r in results)
        else:
            success = any(r.success for r in results)

        # Ordering across children follows submission, which callers must not rely on
        resources_created = [resource for r in results for resource in r.resources_created]

        return StepExecutionResult(
            step_id=step.id,
            step_type=StepType.PARALLEL,
            success=success,
            data={"parallel_results": [{"step_id": r.step_id, "success": r.success} for r in results]},
            error=None if success else _parallel_error(results),
            next_step_id=step.on_success if success else step.on_error,
            resources_created=resources_created,
            metadata=metadata,
        )


def _agent_input_message(resolved_input: Any) -> str:
    """The prompt field if there is one, else the whole input as JSON or text."""
    if isinstance(resolved_input, dict):
        prompt = resolved_input.get("prompt")
        if prompt not in (None, ""):
            return to_template_text(prompt)
        return json.dumps(resolved_input, default=str)
    if isinstance(resolved_input, list):
        return json.dumps(resolved_input, default=str)
    return to_template_text(resolved_input)


def _parallel_error(results: List[StepExecutionResult]) -> str:
    failed = [r for r in results if not r.success]
    return "; ".join(f"{r.step_id}: {r.error}" for r in failed) or "Parallel step failed"
