"""
LLM Service

Runs agents against the Anthropic messages API, with or without tool use.
Agent steps call these two entry points:

- execute_agent_with_context: a single completion, no tools
- execute_agent_with_tools: an iterative tool-use loop against the tool registry
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import anthropic
import json
import logging

from config import settings
from tools.registry import ToolExecutionContext, ToolExecutionResult, ToolRegistry, tool_registry

logger = logging.getLogger(__name__)


AGENT_SYSTEM_PROMPTS = {
    "RESEARCH": """You are a research agent specialized in consumer insights and market research.
Your task is to analyze the provided data and generate comprehensive research findings with:
- Demographic profiles and audience segmentation
- Behavioral patterns and trends
- Market opportunities and gaps
- Actionable recommendations backed by data

Always structure your response in markdown format with clear sections and bullet points.""",

    "ANALYSIS": """You are an analysis agent specialized in data interpretation and pattern recognition.
Your task is to process the provided data and generate detailed analytical reports with:
- Key metrics and statistical insights
- Trend analysis and correlations
- Anomaly detection and outliers
- Predictive insights and forecasts

Present findings with quantitative evidence and visual descriptions where applicable.""",

    "REPORTING": """You are a reporting agent specialized in generating executive summaries and business reports.
Your task is to create clear, structured reports with:
- Executive summary highlighting key takeaways
- Detailed findings with supporting data
- Strategic recommendations and next steps""",

    "MONITORING": """You are a monitoring agent that watches metrics and data feeds for notable changes.
Report significant movements, threshold breaches and emerging trends concisely.""",
}

DEFAULT_SYSTEM_PROMPT = "You are a helpful AI assistant for consumer insights and market research."


class LLMServiceError(Exception):
    """Base exception for LLM service errors."""
    pass


@dataclass
class AgentResponse:
    """Result of a plain agent execution."""
    response: str
    tokens_used: int
    model: str


@dataclass
class ToolCallRecord:
    """One tool call made by an agent."""
    tool_name: str
    input: Dict[str, Any]
    result: ToolExecutionResult
    started_at: datetime
    completed_at: datetime


@dataclass
class AgentToolResponse:
    """Result of a tool-augmented agent execution."""
    response: str
    tool_calls: List[ToolCallRecord]
    tokens_used: int
    model: str
    resources_created: List[Any] = field(default_factory=list)


_client: Optional[anthropic.AsyncAnthropic] = None


def get_client() -> anthropic.AsyncAnthropic:
    """Shared async client, created on first use."""
    global _client
    if _client is None:
        if not settings.ANTHROPIC_API_KEY:
            raise LLMServiceError("ANTHROPIC_API_KEY not configured")
        _client = anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
    return _client


def get_agent_system_prompt(agent_type: str, custom_prompt: Optional[str] = None) -> str:
    """Custom prompt if the agent has one, else the default for its type."""
    if custom_prompt:
        return custom_prompt
    return AGENT_SYSTEM_PROMPTS.get(agent_type, DEFAULT_SYSTEM_PROMPT)


def _request_options(config: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    config = config or {}
    temperature = config.get("temperature")
    return {
        "model": config.get("model") or settings.DEFAULT_AGENT_MODEL,
        "max_tokens": config.get("max_tokens") or settings.DEFAULT_AGENT_MAX_TOKENS,
        "temperature": settings.DEFAULT_AGENT_TEMPERATURE if temperature is None else temperature,
    }


def _usage_tokens(response: Any) -> int:
    usage = getattr(response, "usage", None)
    if not usage:
        return 0
    return (usage.input_tokens or 0) + (usage.output_tokens or 0)


def _text_of(content: List[Any]) -> str:
    return "\n".join(block.text for block in content if block.type == "text")


def _describe_resource(resource: Any) -> str:
    if isinstance(resource, dict):
        return f"{resource.get('type')}:{resource.get('id')}"
    return f"{getattr(resource, 'type', None)}:{getattr(resource, 'id', None)}"


def _block_to_param(block: Any) -> Dict[str, Any]:
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return {"type": "text", "text": getattr(block, "text", "")}


async def execute_agent_with_context(
    agent_type: str,
    agent_name: str,
    user_input: str,
    system_prompt: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    client: Optional[anthropic.AsyncAnthropic] = None
) -> AgentResponse:
    """Run one completion for an agent without tools."""
    client = client or get_client()
    options = _request_options(config)

    logger.info(f"Running agent '{agent_name}' ({agent_type}) with model {options['model']}")
    response = await client.messages.create(
        system=get_agent_system_prompt(agent_type, system_prompt),
        messages=[{"role": "user", "content": user_input}],
        **options
    )

    return AgentResponse(
        response=_text_of(response.content),
        tokens_used=_usage_tokens(response),
        model=options["model"],
    )


async def execute_agent_with_tools(
    agent_type: str,
    agent_name: str,
    user_input: str,
    tool_context: ToolExecutionContext,
    system_prompt: Optional[str] = None,
    enabled_tools: Optional[List[str]] = None,
    config: Optional[Dict[str, Any]] = None,
    max_tool_calls: Optional[int] = None,
    registry: Optional[ToolRegistry] = None,
    client: Optional[anthropic.AsyncAnthropic] = None
) -> AgentToolResponse:
    """
    Run an agent that may call tools.

    The agent is called repeatedly; each round's tool calls are executed
    through the registry and fed back as tool results, until the agent
    answers without tools or the tool-call budget is spent.
    """
    client = client or get_client()
    registry = registry or tool_registry
    max_tool_calls = max_tool_calls or settings.AGENT_MAX_TOOL_CALLS
    options = _request_options(config)

    tool_schemas = registry.get_tools_for_anthropic(enabled_tools)
    tool_lines = "\n".join(f"- {t['name']}: {t['description']}" for t in tool_schemas)
    system = f"""{get_agent_system_prompt(agent_type, system_prompt)}

You have access to the following tools to help complete tasks:
{tool_lines}

When you need to perform data operations, use the appropriate tool. You can use multiple tools in sequence to accomplish complex tasks. After using tools, synthesize the results into a helpful response."""

    messages: List[Dict[str, Any]] = [{"role": "user", "content": user_input}]
    tool_calls: List[ToolCallRecord] = []
    resources_created: List[Any] = []
    tokens_used = 0
    final_response = ""

    logger.info(f"Running agent '{agent_name}' ({agent_type}) with {len(tool_schemas)} tools")

    while len(tool_calls) < max_tool_calls:
        request = dict(options, system=system, messages=messages)
        if tool_schemas:
            request["tools"] = tool_schemas
        response = await client.messages.create(**request)
        tokens_used += _usage_tokens(response)

        tool_use_blocks = [b for b in response.content if b.type == "tool_use"]
        if not tool_use_blocks or response.stop_reason == "end_turn":
            final_response = _text_of(response.content)
            break

        tool_results = []
        for tool_use in tool_use_blocks:
            started_at = datetime.utcnow()
            result = await registry.execute_tool(tool_use.name, dict(tool_use.input or {}), tool_context)
            tool_calls.append(ToolCallRecord(
                tool_name=tool_use.name,
                input=dict(tool_use.input or {}),
                result=result,
                started_at=started_at,
                completed_at=datetime.utcnow(),
            ))
            resources_created.extend(result.resources_created)
            tool_results.append({
                "type": "tool_result",
                "tool_use_id": tool_use.id,
                "content": json.dumps(result.data, default=str) if result.success else f"Error: {result.error}",
                "is_error": not result.success,
            })

        messages.append({"role": "assistant", "content": [_block_to_param(b) for b in response.content]})
        messages.append({"role": "user", "content": tool_results})

    if not final_response and tool_calls:
        created = ", ".join(_describe_resource(r) for r in resources_created)
        final_response = f"Completed {len(tool_calls)} tool operations. Resources created: {created}"

    return AgentToolResponse(
        response=final_response,
        tool_calls=tool_calls,
        tokens_used=tokens_used,
        model=options["model"],
        resources_created=resources_created,
    )
