"""
Tool Registry

Central registry of tools that workflow steps and tool-using agents can call.
A tool executor is a sync or async callable taking (params, context) and
returning a ToolExecutionResult, a dict with the same keys, or bare data.
"""

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


@dataclass
class ToolExecutionContext:
    """Who and what a tool call is running on behalf of."""
    org_id: str
    user_id: str
    workflow_id: Optional[str] = None
    run_id: Optional[str] = None
    agent_id: Optional[str] = None


@dataclass
class ToolExecutionResult:
    """Result of a tool call."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    # execution_time_ms, resources_created, ...
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def resources_created(self) -> List[Any]:
        resources = self.metadata.get("resources_created")
        if resources is None:
            resources = self.metadata.get("resourcesCreated")
        return list(resources or [])


ToolExecutor = Callable[[Dict[str, Any], ToolExecutionContext], Union[Any, Awaitable[Any]]]


@dataclass
class ToolConfig:
    """Configuration for a registered tool."""
    name: str
    description: str
    input_schema: Dict[str, Any]
    executor: ToolExecutor
    category: str = "general"


def _normalize_metadata(metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    metadata = dict(metadata or {})
    # Tools written against the JSON API report camelCase keys
    if "resourcesCreated" in metadata and "resources_created" not in metadata:
        metadata["resources_created"] = metadata.pop("resourcesCreated")
    return metadata


def coerce_tool_result(raw: Any) -> ToolExecutionResult:
    """Normalize whatever an executor returned into a ToolExecutionResult."""
    if isinstance(raw, ToolExecutionResult):
        raw.metadata = _normalize_metadata(raw.metadata)
        return raw
    if isinstance(raw, dict) and "success" in raw:
        return ToolExecutionResult(
            success=bool(raw["success"]),
            data=raw.get("data"),
            error=raw.get("error"),
            metadata=_normalize_metadata(raw.get("metadata")),
        )
    return ToolExecutionResult(success=True, data=raw)


def _is_async_callable(fn: Any) -> bool:
    return inspect.iscoroutinefunction(fn) or inspect.iscoroutinefunction(getattr(fn, "__call__", None))


class ToolRegistry:
    """
    Registry for tool definitions.

    Tools are registered at startup and executed by name.
    """

    def __init__(self):
        self._tools: Dict[str, ToolConfig] = {}

    def register(self, tool: ToolConfig) -> None:
        """Register a tool, replacing any tool with the same name."""
        if tool.name in self._tools:
            logger.warning(f"Replacing registered tool '{tool.name}'")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[ToolConfig]:
        return self._tools.get(name)

    def get_all(self) -> List[ToolConfig]:
        return list(self._tools.values())

    def get_by_category(self, category: str) -> List[ToolConfig]:
        return [t for t in self._tools.values() if t.category == category]

    def get_tool_names(self) -> List[str]:
        return list(self._tools.keys())

    def get_tools_for_anthropic(self, names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Tool schemas in Anthropic API format, optionally limited to `names`."""
        if names is None:
            tools = self.get_all()
        else:
            tools = [self._tools[n] for n in names if n in self._tools]
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.input_schema,
            }
            for tool in tools
        ]

    @staticmethod
    def validate_params(tool: ToolConfig, params: Dict[str, Any]) -> Optional[str]:
        """Return an error message when a required parameter is missing."""
        missing = [
            name for name in tool.input_schema.get("required", [])
            if params.get(name) is None
        ]
        if missing:
            return f"Missing required parameter(s) for {tool.name}: {', '.join(missing)}"
        return None

    async def execute_tool(
        self,
        name: str,
        params: Dict[str, Any],
        context: ToolExecutionContext
    ) -> ToolExecutionResult:
        """
        Execute a tool by name.

        Never raises: unknown tools, invalid parameters and executor
        exceptions all come back as a failed result.
        """
        start_time = time.perf_counter()

        def _elapsed_ms() -> int:
            return int((time.perf_counter() - start_time) * 1000)

        tool = self._tools.get(name)
        if not tool:
            return ToolExecutionResult(
                success=False,
                error=f"Tool not found: {name}",
                metadata={"execution_time_ms": 0},
            )

        validation_error = self.validate_params(tool, params)
        if validation_error:
            return ToolExecutionResult(
                success=False,
                error=validation_error,
                metadata={"execution_time_ms": _elapsed_ms()},
            )

        try:
            if _is_async_callable(tool.executor):
                raw = await tool.executor(params, context)
            else:
                # Keep blocking tools off the event loop
                raw = await asyncio.to_thread(tool.executor, params, context)
                if inspect.isawaitable(raw):
                    raw = await raw
        except Exception as e:
            logger.error(f"Tool execution failed: {name}: {e}", exc_info=True)
            return ToolExecutionResult(
                success=False,
                error=str(e),
                metadata={"execution_time_ms": _elapsed_ms()},
            )

        result = coerce_tool_result(raw)
        result.metadata.setdefault("execution_time_ms", _elapsed_ms())
        logger.info(
            f"Tool {name} {'succeeded' if result.success else 'failed'} "
            f"(org={context.org_id}, run={context.run_id})"
        )
        return result


# Global registry instance
tool_registry = ToolRegistry()


def register_tool(tool: ToolConfig) -> None:
    tool_registry.register(tool)


def get_tool(name: str) -> Optional[ToolConfig]:
    return tool_registry.get(name)


def get_all_tools() -> List[ToolConfig]:
    return tool_registry.get_all()


def get_tools_by_category(category: str) -> List[ToolConfig]:
    return tool_registry.get_by_category(category)


def get_tools_for_anthropic(names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
    return tool_registry.get_tools_for_anthropic(names)
