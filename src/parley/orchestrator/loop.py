"""Streaming tool-calling loop."""

import logging
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field

from parley.llm.client import (
    Done,
    Message,
    Model,
    ModelContext,
    ModelProvider,
    StreamOptions,
    TextDelta,
    ToolCall,
    ToolCallEnd,
    Usage,
)
from parley.orchestrator.events import TokenEvent, ToolUseEvent
from parley.orchestrator.runs import RunTracker
from parley.orchestrator.tools import RequestContext, ToolExecutor
from parley.store.schema import ActiveRun

logger = logging.getLogger(__name__)

MAX_TOOL_ROUNDS = 5


@dataclass
class LoopResult:
    """Accumulated outcome of a tool-calling loop.

    Yielded as the final item of :meth:`ToolCallingLoop.run`.
    """

    text: str = ""
    usage: Usage = field(default_factory=Usage)
    tool_names: list[str] = field(default_factory=list)
    rounds: int = 0
    assistant_turns: list[Message] = field(default_factory=list)
    cancelled: bool = False
    round_limit_reached: bool = False


class ToolCallingLoop:
    """Streams model rounds, executing requested tools between them.

    Round 0 is the first model call; up to ``max_rounds`` further rounds
    follow tool executions, so a request makes at most ``max_rounds + 1``
    model calls. Running out of rounds is not an error: the text gathered
    so far is the answer.
    """

    def __init__(
        self,
        provider: ModelProvider,
        executor: ToolExecutor,
        runs: RunTracker | None = None,
        max_rounds: int = MAX_TOOL_ROUNDS,
    ):
        """Initialize the loop.

        Args:
            provider: Model provider used to stream rounds
            executor: Tool executor for requested tool calls
            runs: Run tracker for partial-text persistence (optional)
            max_rounds: Tool rounds allowed after the first model call
        """
        self.provider = provider
        self.executor = executor
        self.runs = runs
        self.max_rounds = max_rounds

    async def run(
        self,
        model: Model,
        context: ModelContext,
        options: StreamOptions,
        request_context: RequestContext,
        run: ActiveRun | None = None,
    ) -> AsyncIterator[TokenEvent | ToolUseEvent | LoopResult]:
        """Run the loop, appending assistant and tool turns to ``context``.

        Args:
            model: Resolved model
            context: System prompt, conversation turns and tool definitions
            options: Credentials, limits and the cancellation token
            request_context: State shared with tools
            run: Active run to update with partial text and tool names

        Yields:
            Token and tool-use events, then one LoopResult

        Raises:
            ProviderStreamError: If a model stream fails
        """
        result = LoopResult()
        cancel = options.cancel

        for round_index in range(self.max_rounds + 1):
            result.rounds = round_index + 1
            tool_calls: list[ToolCall] = []
            done: Done | None = None

            async with aclosing(self.provider.stream(model, context, options)) as stream:
                async for event in stream:
                    if cancel is not None and cancel.cancelled:
                        break
                    if isinstance(event, TextDelta):
                        result.text += event.text
                        if self.runs is not None and run is not None:
                            await self.runs.stream_text(run, result.text)
                        yield TokenEvent(event.text)
                    elif isinstance(event, ToolCallEnd):
                        tool_calls.append(event.tool_call)
                    elif isinstance(event, Done):
                        done = event

            if cancel is not None and cancel.cancelled:
                logger.info("Loop cancelled in round %d: %s", round_index, cancel.reason)
                result.cancelled = True
                break

            if done is not None:
                result.usage.add(done.usage)
                assistant = done.message
                if tool_calls and not assistant.tool_calls:
                    assistant.tool_calls = tool_calls
            else:
                assistant = Message(role="assistant", content="", tool_calls=tool_calls or None)
            context.messages.append(assistant)
            result.assistant_turns.append(assistant)

            if not tool_calls:
                break

            names = [call.name for call in tool_calls]
            result.tool_names.extend(names)
            yield ToolUseEvent(names)
            if self.runs is not None and run is not None:
                await self.runs.add_tools(run, names)

            if round_index == self.max_rounds:
                logger.warning("Tool round limit (%d) reached", self.max_rounds)
                result.round_limit_reached = True
                break

            for tool_result in await self.executor.execute(tool_calls, request_context):
                context.messages.append(
                    Message(
                        role="tool",
                        content=tool_result.content,
                        tool_call_id=tool_result.tool_call_id,
                        name=tool_result.name,
                        is_error=tool_result.is_error,
                    )
                )

        yield result
