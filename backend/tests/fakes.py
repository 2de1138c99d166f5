"""Test doubles for the engine's external collaborators."""

from typing import Any, Dict, List, Optional

from schemas.workflow import WorkflowStep
from services.agent_service import AgentDefinition
from services.llm_service import AgentResponse, AgentToolResponse
from tools.registry import ToolConfig, ToolExecutionResult, ToolRegistry


def make_step(step_id: str, step_type: str, config: Dict[str, Any], **extra) -> WorkflowStep:
    """Build a step from the JSON shape workflows are stored in."""
    return WorkflowStep.model_validate({"id": step_id, "type": step_type, "config": config, **extra})


class ScriptedTool:
    """
    Tool executor that returns queued results in order, repeating the last
    one once the queue runs dry. Records every call's params.
    """

    def __init__(self, *results):
        self.results = list(results) or [ToolExecutionResult(success=True, data=None)]
        self.calls: List[Dict[str, Any]] = []

    async def __call__(self, params: Dict[str, Any], context) -> Any:
        self.calls.append(params)
        index = min(len(self.calls) - 1, len(self.results) - 1)
        result = self.results[index]
        if isinstance(result, Exception):
            raise result
        return result


def registry_with(**tools) -> ToolRegistry:
    """A fresh ToolRegistry with the given name -> executor tools."""
    registry = ToolRegistry()
    for name, executor in tools.items():
        registry.register(ToolConfig(
            name=name,
            description=f"Test tool {name}",
            input_schema={"type": "object", "properties": {}},
            executor=executor,
        ))
    return registry


class FakeAgentLookup:
    """Agent lookup backed by a dict keyed by (agent_id, org_id)."""

    def __init__(self, *agents: AgentDefinition, org_id: str = "org-1"):
        self.agents = {(a.agent_id, org_id): a for a in agents}
        self.calls: List[tuple] = []

    def __call__(self, agent_id: str, org_id: str) -> Optional[AgentDefinition]:
        self.calls.append((agent_id, org_id))
        return self.agents.get((agent_id, org_id))


class FakeLLM:
    """Records agent executions and answers with canned responses."""

    def __init__(self, response: str = "agent says hi", tokens_used: int = 42, error: Exception = None):
        self.response = response
        self.tokens_used = tokens_used
        self.error = error
        self.calls: List[Dict[str, Any]] = []
        self.tool_calls: List[Dict[str, Any]] = []
        self.resources_created: List[Any] = []

    async def run_agent(self, **kwargs) -> AgentResponse:
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return AgentResponse(response=self.response, tokens_used=self.tokens_used, model="test-model")

    async def run_agent_with_tools(self, **kwargs) -> AgentToolResponse:
        self.tool_calls.append(kwargs)
        if self.error:
            raise self.error
        return AgentToolResponse(
            response=self.response,
            tool_calls=[object(), object()],
            tokens_used=self.tokens_used,
            model="test-model",
            resources_created=list(self.resources_created),
        )


class FakeSleep:
    """Replaces asyncio.sleep for retry backoff; records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
