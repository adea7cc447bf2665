"""
Unit tests for ToolRegistry

Tests registration, lookup, catalogue ordering, parameter validation and
error wrapping of tool execution.
"""

from unittest.mock import AsyncMock

import pytest

from failure_analyst.core.domain.errors import (
    DuplicateToolError,
    InvalidParametersError,
    ToolExecutionError,
    UnknownToolError,
)
from failure_analyst.core.tools.registry import ToolDefinition, ToolParameter, ToolRegistry


def make_tool(name: str, result: str = "ok", parameters=None, markers=()) -> ToolDefinition:
    return ToolDefinition(
        name=name,
        description=f"{name} description",
        execute=AsyncMock(return_value=result),
        parameters=parameters or [],
        empty_result_markers=markers,
    )


@pytest.fixture
def registry():
    return ToolRegistry(
        [
            make_tool(
                "logs_tool",
                parameters=[
                    ToolParameter("pattern", "string", "Search pattern", required=True),
                    ToolParameter("limit", "integer", "Max lines"),
                    ToolParameter("services", "array", "Services"),
                ],
            ),
            make_tool("metrics_tool"),
        ]
    )


class TestRegistration:
    def test_register_and_get(self, registry):
        assert registry.get_tool("metrics_tool").name == "metrics_tool"
        assert "logs_tool" in registry
        assert len(registry) == 2

    def test_duplicate_name_rejected(self, registry):
        with pytest.raises(DuplicateToolError, match="metrics_tool"):
            registry.register_tool(make_tool("metrics_tool"))

    def test_unknown_tool_raises(self, registry):
        with pytest.raises(UnknownToolError, match="missing_tool"):
            registry.get_tool("missing_tool")


class TestToolDescriptions:
    def test_registration_order(self, registry):
        registry.register_tool(make_tool("audit_tool"))
        names = [d.name for d in registry.list_tool_descriptions()]
        assert names == ["logs_tool", "metrics_tool", "audit_tool"]

    def test_iterable_is_restartable_and_lazy(self, registry):
        descriptions = registry.list_tool_descriptions()
        first = [d.name for d in descriptions]
        registry.register_tool(make_tool("trace_tool"))
        second = [d.name for d in descriptions]

        assert first == ["logs_tool", "metrics_tool"]
        assert second == ["logs_tool", "metrics_tool", "trace_tool"]

    def test_schema(self, registry):
        schema = registry.get_tool("logs_tool").describe().to_schema()
        assert schema["required"] == ["pattern"]
        assert schema["properties"]["limit"]["type"] == "integer"
        assert schema["properties"]["services"]["items"] == {"type": "string"}


class TestExecute:
    @pytest.mark.asyncio
    async def test_execute_returns_result(self, registry):
        result = await registry.execute("logs_tool", {"pattern": "timeout"})

        assert result == "ok"
        registry.get_tool("logs_tool").execute.assert_awaited_once_with({"pattern": "timeout"})

    @pytest.mark.asyncio
    async def test_missing_tool(self, registry):
        with pytest.raises(UnknownToolError):
            await registry.execute("missing_tool", {})

    @pytest.mark.asyncio
    async def test_missing_required_parameter(self, registry):
        with pytest.raises(InvalidParametersError, match="pattern"):
            await registry.execute("logs_tool", {})

    @pytest.mark.asyncio
    async def test_none_counts_as_missing(self, registry):
        with pytest.raises(InvalidParametersError):
            await registry.execute("logs_tool", {"pattern": None})

    @pytest.mark.asyncio
    async def test_type_mismatch_lists_every_problem(self, registry):
        with pytest.raises(InvalidParametersError) as exc_info:
            await registry.execute(
                "logs_tool", {"pattern": "x", "limit": "ten", "services": ["api", 3]}
            )

        assert len(exc_info.value.problems) == 2
        registry.get_tool("logs_tool").execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_boolean_is_not_an_integer(self, registry):
        with pytest.raises(InvalidParametersError):
            await registry.execute("logs_tool", {"pattern": "x", "limit": True})

    @pytest.mark.asyncio
    async def test_capability_failure_is_wrapped(self, registry):
        registry.get_tool("metrics_tool").execute.side_effect = ConnectionError("backend down")

        with pytest.raises(ToolExecutionError) as exc_info:
            await registry.execute("metrics_tool", {})

        assert isinstance(exc_info.value.cause, ConnectionError)
        assert "backend down" in str(exc_info.value)


class TestHasData:
    def test_markers(self):
        tool = make_tool("logs_tool", markers=("No entries",))
        assert tool.has_data("3 errors found")
        assert not tool.has_data("-- no entries --")
        assert not tool.has_data("   ")
