"""Tool-calling orchestration.

Streams model rounds, executes requested tools between rounds, tracks
active runs and prices and caches responses.
"""

from parley.orchestrator.builtin import builtin_registry, new_conversation
from parley.orchestrator.cache import ResponseCache, cache_key
from parley.orchestrator.events import (
    DoneEvent,
    ErrorEvent,
    OutputEvent,
    TokenEvent,
    ToolUseEvent,
    to_sse,
)
from parley.orchestrator.loop import MAX_TOOL_ROUNDS, LoopResult, ToolCallingLoop
from parley.orchestrator.pricing import compute_cost
from parley.orchestrator.runs import BackgroundTask, RunTracker
from parley.orchestrator.tools import (
    LocalToolExecutor,
    RequestContext,
    Tool,
    ToolExecutor,
    ToolParameter,
    ToolRegistry,
    ToolResult,
    ToolSchema,
    build_tool,
)

__all__ = [
    "MAX_TOOL_ROUNDS",
    "BackgroundTask",
    "DoneEvent",
    "ErrorEvent",
    "LocalToolExecutor",
    "LoopResult",
    "OutputEvent",
    "RequestContext",
    "ResponseCache",
    "RunTracker",
    "TokenEvent",
    "Tool",
    "ToolCallingLoop",
    "ToolExecutor",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "ToolSchema",
    "ToolUseEvent",
    "build_tool",
    "builtin_registry",
    "cache_key",
    "compute_cost",
    "new_conversation",
    "to_sse",
]
