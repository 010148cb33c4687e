"""Output events produced for streaming clients."""

import json
from dataclasses import asdict, dataclass, field
from typing import Any


@dataclass(frozen=True)
class TokenEvent:
    """A chunk of assistant text."""

    text: str
    type: str = field(default="token", init=False)


@dataclass(frozen=True)
class ToolUseEvent:
    """The model requested tools in this round."""

    tools: list[str]
    type: str = field(default="tool_use", init=False)


@dataclass(frozen=True)
class DoneEvent:
    """The response is complete and persisted."""

    session_id: str
    text: str = ""
    message_id: str | None = None
    conversation_id: str | None = None
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    latency_ms: int = 0
    cached: bool = False
    stopped: bool = False
    type: str = field(default="done", init=False)


@dataclass(frozen=True)
class ErrorEvent:
    """The request failed or was refused."""

    message: str
    code: str | None = None
    type: str = field(default="error", init=False)


OutputEvent = TokenEvent | ToolUseEvent | DoneEvent | ErrorEvent


def to_sse(event: OutputEvent) -> dict[str, Any]:
    """Format an event for ``EventSourceResponse``."""
    payload = asdict(event)
    return {"event": payload.pop("type"), "data": json.dumps(payload)}
