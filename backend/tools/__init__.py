"""
Tools Package

This package contains the tool registry used by workflow tool steps and by
tool-using agents.
"""

from .registry import (
    ToolConfig,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolRegistry,
    coerce_tool_result,
    tool_registry,
    register_tool,
    get_tool,
    get_all_tools,
    get_tools_by_category,
    get_tools_for_anthropic
)

__all__ = [
    # Registry types
    'ToolConfig',
    'ToolExecutionContext',
    'ToolExecutionResult',
    'ToolRegistry',
    'coerce_tool_result',
    # Registry functions
    'tool_registry',
    'register_tool',
    'get_tool',
    'get_all_tools',
    'get_tools_by_category',
    'get_tools_for_anthropic'
]
