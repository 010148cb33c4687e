"""Tool definitions, registration and execution."""

import inspect
import logging
import types
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol, Union, get_args, get_origin, get_type_hints

from parley.llm.client import ToolCall

if TYPE_CHECKING:
    from parley.segmentation.manager import SegmentationManager

logger = logging.getLogger(__name__)

CONTEXT_PARAM = "context"


@dataclass
class ToolParameter:
    """Definition of a tool parameter."""

    name: str
    type: str  # JSON Schema type
    description: str
    required: bool = True
    enum: list[str] | None = None


@dataclass
class ToolSchema:
    """JSON Schema representation of a tool for model function calling."""

    name: str
    description: str
    parameters: list[ToolParameter]

    def to_openai_format(self) -> dict[str, Any]:
        """Convert to OpenAI function calling format.

        Returns:
            Dictionary matching OpenAI's function schema format
        """
        properties: dict[str, Any] = {}
        required = []

        for param in self.parameters:
            param_schema: dict[str, Any] = {"type": param.type, "description": param.description}
            if param.enum:
                param_schema["enum"] = param.enum
            properties[param.name] = param_schema
            if param.required:
                required.append(param.name)

        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {"type": "object", "properties": properties, "required": required},
            },
        }


@dataclass
class RequestContext:
    """Per-request state shared with tools.

    Tools that declare a ``context`` parameter receive this object; the
    parameter is not exposed to the model.
    """

    session_id: str
    gateway_id: str = "default"
    agent_id: str | None = None
    user_id: str | None = None
    message_id: str | None = None  # The triggering user message
    segmentation: "SegmentationManager | None" = None
    new_conversation_id: str | None = None  # Set when a tool switched segments


ToolFunction = Callable[..., Awaitable[str]]


@dataclass
class Tool:
    """A tool the model can call."""

    schema: ToolSchema
    fn: ToolFunction
    wants_context: bool = False

    async def execute(self, context: RequestContext, **kwargs: Any) -> str:
        if self.wants_context:
            kwargs[CONTEXT_PARAM] = context
        return await self.fn(**kwargs)


@dataclass
class ToolResult:
    """Outcome of one tool call."""

    tool_call_id: str
    name: str
    content: str
    is_error: bool = False


def _python_type_to_json_schema(py_type: Any) -> str:
    origin = get_origin(py_type)
    if origin is Union or origin is types.UnionType:
        non_none = [arg for arg in get_args(py_type) if arg is not type(None)]
        if non_none:
            py_type = non_none[0]
            origin = get_origin(py_type)

    type_map = {
        str: "string",
        int: "integer",
        float: "number",
        bool: "boolean",
        list: "array",
        dict: "object",
    }
    return type_map.get(origin or py_type, "string")


def _param_description(fn: ToolFunction, name: str) -> str:
    for line in (fn.__doc__ or "").split("\n"):
        line = line.strip()
        if line.startswith(f"{name}:"):
            return line[len(name) + 1 :].strip()
    return f"Parameter {name}"


def build_tool(fn: ToolFunction, description: str, name: str | None = None) -> Tool:
    """Build a tool by introspecting a function's signature and docstring.

    Args:
        fn: Async tool function returning a string
        description: Human-readable description of what the tool does
        name: Tool name (defaults to the function name)

    Returns:
        Tool instance
    """
    hints = get_type_hints(fn)
    parameters: list[ToolParameter] = []
    wants_context = False

    for param_name, param in inspect.signature(fn).parameters.items():
        if param_name == CONTEXT_PARAM:
            wants_context = True
            continue
        parameters.append(
            ToolParameter(
                name=param_name,
                type=_python_type_to_json_schema(hints.get(param_name, str)),
                description=_param_description(fn, param_name),
                required=param.default is inspect.Parameter.empty,
            )
        )

    schema = ToolSchema(name=name or fn.__name__, description=description, parameters=parameters)
    return Tool(schema=schema, fn=fn, wants_context=wants_context)


class ToolRegistry:
    """A set of tools available to one executor."""

    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {t.schema.name: t for t in tools or []}

    def register(self, tool: Tool) -> None:
        self._tools[tool.schema.name] = tool

    def tool(self, description: str, name: str | None = None) -> Callable[[ToolFunction], ToolFunction]:
        """Decorator registering a function as a tool.

        Example:
            @registry.tool(description="Look up the weather")
            async def weather(city: str) -> str:
                '''Get the weather.

                Args:
                    city: City name
                '''
                ...
        """

        def decorator(fn: ToolFunction) -> ToolFunction:
            self.register(build_tool(fn, description, name))
            return fn

        return decorator

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        """Tool definitions in OpenAI function format."""
        return [t.schema.to_openai_format() for t in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)


class ToolExecutor(Protocol):
    """Executes the tool calls of one model round."""

    def schemas(self) -> list[dict[str, Any]]:
        """Tool definitions offered to the model."""
        ...

    async def execute(self, calls: list[ToolCall], context: RequestContext) -> list[ToolResult]:
        """Run tool calls, returning one result per call in order."""
        ...


class LocalToolExecutor:
    """Runs registered tools in-process, one call at a time.

    Unknown tools, invalid arguments and exceptions raised by a tool are
    returned as error results for the model to see. When ``wrap_result`` is
    given, successful output passes through it before reaching the model.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        wrap_result: Callable[[str, str], str] | None = None,
    ):
        self.registry = registry
        self.wrap_result = wrap_result

    def schemas(self) -> list[dict[str, Any]]:
        return self.registry.schemas()

    async def execute(self, calls: list[ToolCall], context: RequestContext) -> list[ToolResult]:
        return [await self._execute_one(call, context) for call in calls]

    async def _execute_one(self, call: ToolCall, context: RequestContext) -> ToolResult:
        tool = self.registry.get(call.name)
        if tool is None:
            return ToolResult(call.id, call.name, f"Error: Unknown tool '{call.name}'", is_error=True)

        try:
            content = await tool.execute(context, **call.arguments)
        except TypeError as e:
            return ToolResult(
                call.id, call.name, f"Error: Invalid arguments for tool '{call.name}': {e}", is_error=True
            )
        except Exception as e:
            logger.warning("Tool %s failed: %s", call.name, e)
            return ToolResult(call.id, call.name, f"Error executing tool '{call.name}': {e}", is_error=True)

        if self.wrap_result is not None:
            content = self.wrap_result(call.name, content)
        return ToolResult(call.id, call.name, content)
