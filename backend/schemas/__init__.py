"""
Schemas package for the workflow engine
"""

from .workflow import (
    StepType,
    TransformOperation,
    RetryConfig,
    ToolStepConfig,
    AgentStepConfig,
    ConditionStepConfig,
    Transformation,
    TransformStepConfig,
    ParallelStepConfig,
    WorkflowStep,
    parse_workflow_steps,
    ResourceReference,
    VariableStore,
    StepExecutionResult,
    WorkflowExecutionContext,
    WorkflowRunResult,
)

__all__ = [
    # Definitions
    'StepType',
    'TransformOperation',
    'RetryConfig',
    'ToolStepConfig',
    'AgentStepConfig',
    'ConditionStepConfig',
    'Transformation',
    'TransformStepConfig',
    'ParallelStepConfig',
    'WorkflowStep',
    'parse_workflow_steps',
    # Execution state
    'ResourceReference',
    'VariableStore',
    'StepExecutionResult',
    'WorkflowExecutionContext',
    'WorkflowRunResult',
]
