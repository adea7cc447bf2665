"""
Tool Registry

Holds the diagnostic tools available to an investigation. Tools are plain
definitions (name, description, parameter schema, async capability) so the
agent loop never hard-codes tool identities; it only looks tools up by name.
"""

from collections.abc import Awaitable, Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import structlog

from failure_analyst.core.domain.errors import (
    DuplicateToolError,
    InvalidParametersError,
    ToolExecutionError,
    UnknownToolError,
)

ToolCapability = Callable[[dict[str, Any]], Awaitable[str]]

_TYPE_CHECKS: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "integer": lambda v: isinstance(v, int) and not isinstance(v, bool),
    "boolean": lambda v: isinstance(v, bool),
    "array": lambda v: isinstance(v, (list, tuple)) and all(isinstance(i, str) for i in v),
}


@dataclass(frozen=True)
class ToolParameter:
    """Declared parameter of a tool."""

    name: str
    type: str = "string"
    description: str = ""
    required: bool = False


@dataclass(frozen=True)
class ToolDescription:
    """Read-only view of a tool used to build prompts."""

    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()

    def to_schema(self) -> dict[str, Any]:
        """Return the parameters as a JSON schema object."""
        properties: dict[str, Any] = {}
        for param in self.parameters:
            spec: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.type == "array":
                spec["items"] = {"type": "string"}
            properties[param.name] = spec
        return {
            "type": "object",
            "properties": properties,
            "required": [p.name for p in self.parameters if p.required],
        }


@dataclass
class ToolDefinition:
    """
    A diagnostic tool.

    Attributes:
        name: Unique registry key the model uses in <Action> blocks
        description: What the tool returns, shown to the model
        parameters: Declared parameters in display order
        execute: Async capability taking the parameter mapping, returning text
        empty_result_markers: Substrings in a result that mean "no data found"
    """

    name: str
    description: str
    execute: ToolCapability
    parameters: list[ToolParameter] = field(default_factory=list)
    empty_result_markers: tuple[str, ...] = ()

    def describe(self) -> ToolDescription:
        return ToolDescription(
            name=self.name,
            description=self.description,
            parameters=tuple(self.parameters),
        )

    def has_data(self, result: str) -> bool:
        """Whether a result carries data, judged by the empty-result markers."""
        if not result or not result.strip():
            return False
        lowered = result.lower()
        return not any(marker.lower() in lowered for marker in self.empty_result_markers)


class _ToolDescriptions:
    """Restartable iterable over the registry, evaluated on each iteration."""

    def __init__(self, tools: dict[str, ToolDefinition]):
        self._tools = tools

    def __iter__(self) -> Iterator[ToolDescription]:
        for definition in list(self._tools.values()):
            yield definition.describe()

    def __len__(self) -> int:
        return len(self._tools)


class ToolRegistry:
    """
    Registry of diagnostic tools keyed by name.

    Registration order is preserved and is the order tools are shown to the
    model.

    Example:
        >>> registry = ToolRegistry()
        >>> registry.register_tool(ToolDefinition("metrics_tool", "CPU metrics", fetch))
        >>> await registry.execute("metrics_tool", {})
    """

    def __init__(self, tools: Iterable[ToolDefinition] | None = None):
        self._tools: dict[str, ToolDefinition] = {}
        self.logger = structlog.get_logger().bind(component="tool_registry")
        for definition in tools or ():
            self.register_tool(definition)

    def register_tool(self, definition: ToolDefinition) -> None:
        """
        Register a tool.

        Raises:
            DuplicateToolError: If a tool with the same name exists
        """
        if definition.name in self._tools:
            raise DuplicateToolError(definition.name)
        self._tools[definition.name] = definition
        self.logger.debug("tool_registered", tool=definition.name)

    def get_tool(self, name: str) -> ToolDefinition:
        """
        Look up a tool by name.

        Raises:
            UnknownToolError: If no tool with that name is registered
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def tool_names(self) -> list[str]:
        return list(self._tools)

    def list_tool_descriptions(self) -> Iterable[ToolDescription]:
        """Return the tool catalogue in registration order (can be iterated repeatedly)."""
        return _ToolDescriptions(self._tools)

    def validate_parameters(self, definition: ToolDefinition, parameters: dict[str, Any]) -> None:
        """
        Check required parameters are present and values have plausible types.

        Unknown declared types are not checked; undeclared parameters pass through.

        Raises:
            InvalidParametersError: Listing every problem found
        """
        problems: list[str] = []
        for param in definition.parameters:
            value = parameters.get(param.name)
            if value is None:
                if param.required:
                    problems.append(f"missing required parameter '{param.name}'")
                continue
            check = _TYPE_CHECKS.get(param.type)
            if check is not None and not check(value):
                problems.append(
                    f"parameter '{param.name}' should be {param.type}, got {type(value).__name__}"
                )
        if problems:
            raise InvalidParametersError(definition.name, problems)

    async def execute(self, name: str, parameters: dict[str, Any] | None = None) -> str:
        """
        Validate parameters and run a tool.

        Args:
            name: Registered tool name
            parameters: Parameter mapping from the model's action

        Returns:
            Tool result text

        Raises:
            UnknownToolError: If the tool is not registered
            InvalidParametersError: If validation fails
            ToolExecutionError: If the capability raises
        """
        parameters = dict(parameters or {})
        definition = self.get_tool(name)
        self.validate_parameters(definition, parameters)

        self.logger.info("tool_execution_started", tool=name, parameters=list(parameters))
        try:
            result = await definition.execute(parameters)
        except Exception as e:
            self.logger.warning(
                "tool_execution_failed", tool=name, error_type=type(e).__name__, error=str(e)[:200]
            )
            raise ToolExecutionError(name, e) from e

        text = result if isinstance(result, str) else str(result)
        self.logger.info("tool_execution_completed", tool=name, result_chars=len(text))
        return text

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools
