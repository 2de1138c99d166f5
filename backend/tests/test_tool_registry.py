"""Tests for the tool registry."""

import pytest

from tools.registry import (
    ToolConfig,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolRegistry,
    coerce_tool_result,
)


@pytest.fixture
def tool_context():
    return ToolExecutionContext(org_id="org-1", user_id="user-1", run_id="run-1")


def search_tool(executor, category="general", required=None):
    return ToolConfig(
        name="search",
        description="Search the web",
        input_schema={"type": "object", "properties": {"q": {"type": "string"}}, "required": required or []},
        executor=executor,
        category=category,
    )


class TestRegistration:

    def test_register_and_lookup(self):
        registry = ToolRegistry()
        tool = search_tool(lambda p, c: None, category="research")
        registry.register(tool)

        assert registry.get("search") is tool
        assert registry.get_tool_names() == ["search"]
        assert registry.get_by_category("research") == [tool]
        assert registry.get_by_category("other") == []

    def test_unregister(self):
        registry = ToolRegistry()
        registry.register(search_tool(lambda p, c: None))
        registry.unregister("search")
        assert registry.get("search") is None

    def test_anthropic_format_filters_by_name(self):
        registry = ToolRegistry()
        registry.register(search_tool(lambda p, c: None))

        assert registry.get_tools_for_anthropic(["search", "unknown"]) == [{
            "name": "search",
            "description": "Search the web",
            "input_schema": {"type": "object", "properties": {"q": {"type": "string"}}, "required": []},
        }]
        assert registry.get_tools_for_anthropic([]) == []
        assert len(registry.get_tools_for_anthropic()) == 1


class TestExecution:

    @pytest.mark.asyncio
    async def test_sync_executor(self, tool_context):
        registry = ToolRegistry()
        registry.register(search_tool(lambda params, ctx: {"hits": [params["q"]], "org": ctx.org_id}))

        result = await registry.execute_tool("search", {"q": "ev"}, tool_context)

        assert result.success
        assert result.data == {"hits": ["ev"], "org": "org-1"}
        assert "execution_time_ms" in result.metadata

    @pytest.mark.asyncio
    async def test_async_executor_returning_result(self, tool_context):
        async def executor(params, ctx):
            return ToolExecutionResult(success=False, error="no results")

        registry = ToolRegistry()
        registry.register(search_tool(executor))

        result = await registry.execute_tool("search", {}, tool_context)

        assert not result.success
        assert result.error == "no results"

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tool_context):
        result = await ToolRegistry().execute_tool("nope", {}, tool_context)
        assert not result.success
        assert result.error == "Tool not found: nope"

    @pytest.mark.asyncio
    async def test_missing_required_param(self, tool_context):
        registry = ToolRegistry()
        registry.register(search_tool(lambda p, c: None, required=["q"]))

        result = await registry.execute_tool("search", {}, tool_context)

        assert not result.success
        assert "q" in result.error

    @pytest.mark.asyncio
    async def test_executor_exception(self, tool_context):
        def executor(params, ctx):
            raise ConnectionError("timeout talking to search backend")

        registry = ToolRegistry()
        registry.register(search_tool(executor))

        result = await registry.execute_tool("search", {}, tool_context)

        assert not result.success
        assert result.error == "timeout talking to search backend"


class TestCoerce:

    def test_dict_with_success_key(self):
        result = coerce_tool_result({"success": False, "error": "bad", "metadata": {"resources_created": [1]}})
        assert not result.success
        assert result.error == "bad"
        assert result.resources_created == [1]

    def test_camel_case_resources_created(self):
        result = coerce_tool_result({"success": True, "metadata": {"resourcesCreated": [{"type": "x", "id": "1"}]}})
        assert result.resources_created == [{"type": "x", "id": "1"}]
        assert result.metadata == {"resources_created": [{"type": "x", "id": "1"}]}

    def test_camel_case_on_result_instance(self):
        raw = ToolExecutionResult(success=True, metadata={"resourcesCreated": ["doc-1"]})
        assert coerce_tool_result(raw).resources_created == ["doc-1"]

    def test_bare_value(self):
        result = coerce_tool_result([1, 2])
        assert result.success
        assert result.data == [1, 2]
