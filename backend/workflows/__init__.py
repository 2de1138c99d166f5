"""
Workflow Engine Package

Provides the workflow step-execution engine.
Workflows are graphs of steps linked by success/error branches and
conditions. Individual steps may use LLMs or tools, but the orchestration is
code-based.
"""

from schemas.workflow import (
    StepType,
    WorkflowStep,
    StepExecutionResult,
    WorkflowExecutionContext,
    WorkflowRunResult,
)
from .engine import (
    workflow_engine,
    WorkflowEngine,
    EngineEvent,
    EngineEventType,
    execute_step,
    execute_workflow,
)
from .expressions import ExpressionError, evaluate_expression
from .legacy import convert_legacy_workflow
from .steps import StepExecutor
from .templating import get_nested_value, set_nested_value, resolve_parameter_templates
from .transforms import TransformError, apply_transformations

__all__ = [
    # Schema types
    "StepType",
    "WorkflowStep",
    "StepExecutionResult",
    "WorkflowExecutionContext",
    "WorkflowRunResult",
    # Engine
    "workflow_engine",
    "WorkflowEngine",
    "EngineEvent",
    "EngineEventType",
    "StepExecutor",
    "execute_step",
    "execute_workflow",
    "convert_legacy_workflow",
    # Helpers
    "ExpressionError",
    "evaluate_expression",
    "TransformError",
    "apply_transformations",
    "get_nested_value",
    "set_nested_value",
    "resolve_parameter_templates",
]
