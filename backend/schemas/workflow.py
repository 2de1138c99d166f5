"""
Workflow Engine Schema

Defines the core types for workflow step definitions and execution state.

Step definitions are pydantic models so they can be validated straight from
stored JSON (camelCase keys such as `onSuccess` or `toolName` are accepted).
Execution state is plain dataclasses, mutated by the engine during a run.
"""

from collections.abc import MutableMapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StepType(str, Enum):
    """Types of workflow steps."""
    TOOL = "tool"            # Call a registered tool
    AGENT = "agent"          # Run an agent, optionally with tool use
    CONDITION = "condition"  # Branch on an expression
    TRANSFORM = "transform"  # Reshape data already in the variable store
    PARALLEL = "parallel"    # Run several steps concurrently


class TransformOperation(str, Enum):
    """Operations a transform step can apply to a field."""
    EXTRACT = "extract"
    MAP = "map"
    FILTER = "filter"
    AGGREGATE = "aggregate"
    FORMAT = "format"
    PICK = "pick"
    RENAME = "rename"


# ============================================================================
# Step definitions
# ============================================================================

class _DefinitionModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RetryConfig(_DefinitionModel):
    """Retry policy for a step: `backoff_ms * 2**attempt` between attempts."""
    max_retries: int = Field(0, ge=0, alias="maxRetries")
    backoff_ms: int = Field(0, ge=0, alias="backoffMs")


class ToolStepConfig(_DefinitionModel):
    tool_name: str = Field(..., alias="toolName")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Template object resolved against variables")
    # Maps a path inside the tool's data to a variable name
    output_mapping: Optional[Dict[str, str]] = Field(None, alias="outputMapping")


class AgentStepConfig(_DefinitionModel):
    agent_id: str = Field(..., alias="agentId")
    input: Any = Field(default_factory=dict, description="Template resolved into the agent's user message")
    enable_tools: bool = Field(False, alias="enableTools")
    allowed_tools: Optional[List[str]] = Field(None, alias="allowedTools")


class ConditionStepConfig(_DefinitionModel):
    expression: str
    true_step: Optional[str] = Field(None, alias="trueStep")
    false_step: Optional[str] = Field(None, alias="falseStep")


class Transformation(_DefinitionModel):
    """One operation in a transform pipeline, applied to `data[field]`."""
    field: str
    operation: TransformOperation
    config: Dict[str, Any] = Field(default_factory=dict)


class TransformStepConfig(_DefinitionModel):
    # local key -> dotted path into the variable store
    input_mapping: Dict[str, str] = Field(default_factory=dict, alias="inputMapping")
    transformations: List[Transformation] = Field(default_factory=list)
    output_variable: str = Field(..., alias="outputVariable")


class ParallelStepConfig(_DefinitionModel):
    steps: List[str] = Field(default_factory=list)
    wait_for_all: bool = Field(True, alias="waitForAll")


StepConfig = Union[ToolStepConfig, AgentStepConfig, ConditionStepConfig, TransformStepConfig, ParallelStepConfig]

STEP_CONFIG_TYPES = {
    StepType.TOOL: ToolStepConfig,
    StepType.AGENT: AgentStepConfig,
    StepType.CONDITION: ConditionStepConfig,
    StepType.TRANSFORM: TransformStepConfig,
    StepType.PARALLEL: ParallelStepConfig,
}


class WorkflowStep(_DefinitionModel):
    """A node in the execution graph. Never mutated by the engine."""
    id: str
    type: StepType
    name: Optional[str] = None
    config: StepConfig
    on_success: Optional[str] = Field(None, alias="onSuccess")
    on_error: Optional[str] = Field(None, alias="onError")
    retry_config: Optional[RetryConfig] = Field(None, alias="retryConfig")

    @model_validator(mode="before")
    @classmethod
    def _parse_config_for_type(cls, data: Any) -> Any:
        # Pick the config model from the discriminator instead of letting the
        # union guess from the payload shape
        if not isinstance(data, dict):
            return data
        try:
            config_cls = STEP_CONFIG_TYPES[StepType(data.get("type"))]
        except ValueError:
            return data
        config = data.get("config")
        if isinstance(config, dict):
            data = {**data, "config": config_cls.model_validate(config)}
        return data

    @model_validator(mode="after")
    def _check_config_matches_type(self) -> "WorkflowStep":
        expected = STEP_CONFIG_TYPES[self.type]
        if not isinstance(self.config, expected):
            raise ValueError(
                f"Step '{self.id}' of type '{self.type.value}' needs a {expected.__name__}, "
                f"got {type(self.config).__name__}"
            )
        return self


def parse_workflow_steps(data: List[Dict[str, Any]]) -> List[WorkflowStep]:
    """Validate stored JSON step definitions."""
    return [WorkflowStep.model_validate(item) for item in data]


# ============================================================================
# Execution state
# ============================================================================

@dataclass
class ResourceReference:
    """A record created by a tool or agent during a run."""
    type: str
    id: str
    name: Optional[str] = None


_variable_writes: ContextVar[Optional[Set[str]]] = ContextVar("workflow_variable_writes", default=None)


@contextmanager
def record_variable_writes() -> Iterator[Set[str]]:
    """
    Collect the keys assigned on any VariableStore inside this block.

    Scoped to the current asyncio task, so concurrent parallel branches each
    see only their own writes.
    """
    writes: Set[str] = set()
    token = _variable_writes.set(writes)
    try:
        yield writes
    finally:
        _variable_writes.reset(token)


def note_variable_writes(keys: Set[str]) -> None:
    """Attribute writes made by nested branches to the enclosing recorder."""
    writes = _variable_writes.get()
    if writes is not None:
        writes.update(keys)


class VariableStore(MutableMapping):
    """
    The shared variable bag of one run, backed by a plain dict.

    The backing dict is used as is, never copied, so a caller holding it
    sees every write the run makes.

    Last write wins: assigning an existing key silently replaces its value.
    Sibling parallel branches writing the same key race; the engine reports
    such conflicts but does not prevent them. Only item assignment through
    the store is recorded.
    """

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self.data = {} if data is None else data

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.data[key] = value
        writes = _variable_writes.get()
        if writes is not None:
            writes.add(key)

    def __delitem__(self, key: str) -> None:
        del self.data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.data)

    def __len__(self) -> int:
        return len(self.data)

    def __repr__(self) -> str:
        return f"VariableStore({self.data!r})"


@dataclass
class StepExecutionResult:
    """Outcome of one attempt at one step."""
    step_id: str
    step_type: Optional[StepType]  # None for a step that was never found
    success: bool
    data: Any = None
    error: Optional[str] = None
    next_step_id: Optional[str] = None
    execution_time_ms: int = 0
    resources_created: List[Any] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    attempt: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "step_type": self.step_type.value if self.step_type else None,
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "next_step_id": self.next_step_id,
            "execution_time_ms": self.execution_time_ms,
            "resources_created": list(self.resources_created),
            "metadata": dict(self.metadata),
            "attempt": self.attempt,
        }


@dataclass
class WorkflowExecutionContext:
    """
    Mutable state of one run, passed by reference into every step handler.

    `variables` is the only channel for data between steps. A plain dict
    passed in becomes the backing dict of a VariableStore, so the caller's
    dict receives every step output as well.
    """
    workflow_id: str
    run_id: str
    org_id: str
    user_id: str
    variables: VariableStore = field(default_factory=VariableStore)
    # step id -> authoritative (last) attempt
    step_results: Dict[str, StepExecutionResult] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.variables, VariableStore):
            self.variables = VariableStore(self.variables)


@dataclass
class WorkflowRunResult:
    """Outcome of a whole run."""
    success: bool
    results: List[StepExecutionResult] = field(default_factory=list)
    total_execution_time_ms: int = 0
    resources_created: List[Any] = field(default_factory=list)

    @property
    def failed_results(self) -> List[StepExecutionResult]:
        return [r for r in self.results if not r.success]
