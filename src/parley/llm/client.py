"""Model provider protocol and data types."""

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass
class ToolCall:
    """A tool call requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class Message:
    """A turn in the model context."""

    role: str  # "user", "assistant", "tool"
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None  # For tool result turns
    name: str | None = None  # Tool name for tool result turns
    is_error: bool = False  # Tool result reported a failure
    thinking: list[dict[str, Any]] | None = None  # Provider thinking blocks to replay


@dataclass
class Usage:
    """Token usage totals."""

    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

    def add(self, other: "Usage") -> None:
        """Accumulate another usage record into this one."""
        self.input += other.input
        self.output += other.output


# Closed set of events a model stream can produce.


@dataclass(frozen=True)
class TextDelta:
    """Incremental assistant text."""

    text: str


@dataclass(frozen=True)
class ToolCallEnd:
    """A fully assembled tool call."""

    tool_call: ToolCall


@dataclass(frozen=True)
class Done:
    """Terminal event carrying the finalized assistant turn and usage totals."""

    message: Message
    usage: Usage


StreamEvent = TextDelta | ToolCallEnd | Done


@dataclass
class Model:
    """A concrete model exposed by a provider."""

    provider: str
    id: str
    api: str  # "anthropic-messages" or "openai-completions"
    base_url: str
    context_window: int = 128000
    max_output_tokens: int = 4096


@dataclass
class ModelContext:
    """Everything sent to the model for one round."""

    system_prompt: str
    messages: list[Message]
    tools: list[dict[str, Any]] = field(default_factory=list)  # OpenAI function format


class CancelToken:
    """Cooperative cancellation flag threaded through stream read loops."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


@dataclass
class StreamOptions:
    """Per-call options for a model stream."""

    api_key: str
    max_tokens: int | None = None
    temperature: float | None = None
    base_url: str | None = None
    cancel: CancelToken | None = None
    extra_params: dict[str, Any] = field(default_factory=dict)  # Provider-specific fields


class ModelProvider(Protocol):
    """Protocol for model provider clients."""

    def resolve(self, provider: str, model: str) -> Model | None:
        """Look up a concrete model.

        Args:
            provider: Provider slug (e.g., "anthropic")
            model: Model id

        Returns:
            Model or None if the provider/model combination is unknown
        """
        ...

    def stream(
        self,
        model: Model,
        context: ModelContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn.

        Args:
            model: Resolved model
            context: System prompt, turns and tool definitions
            options: API key, limits and cancellation token

        Yields:
            TextDelta and ToolCallEnd events, then exactly one Done event
        """
        ...


class TextModel(Protocol):
    """A single-shot text generator used by classifiers and summarizers."""

    async def generate(self, prompt: str, system_prompt: str = "", max_tokens: int = 500) -> str:
        """Generate a complete text response for a prompt."""
        ...


async def collect_text(stream: AsyncIterator[StreamEvent]) -> tuple[str, Usage]:
    """Drain a stream into its text and usage.

    Args:
        stream: Model event stream

    Returns:
        Tuple of (text, usage)
    """
    parts: list[str] = []
    usage = Usage()
    async for event in stream:
        if isinstance(event, TextDelta):
            parts.append(event.text)
        elif isinstance(event, Done):
            usage = event.usage
    return "".join(parts), usage
