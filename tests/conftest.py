"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncIterator
from typing import Any

import pytest

from parley.config.schema import ParleyConfig
from parley.gateway.service import ChatService
from parley.llm.client import (
    Done,
    Message,
    Model,
    ModelContext,
    StreamEvent,
    StreamOptions,
    TextDelta,
    ToolCall,
    ToolCallEnd,
    Usage,
)
from parley.store.memory import InMemoryStore


class ScriptedProvider:
    """Model provider replaying a fixed script, one step per model call.

    A step is either a string (a text reply streamed word by word), a dict
    with ``tool``/``args`` (and optional ``text``) requesting a tool call, an
    exception to raise, or a callable taking the stream options and returning
    an async iterator of stream events. An exhausted script answers "ok".
    """

    def __init__(self, script: list[Any] | None = None, unknown_models: set[str] | None = None):
        self.script = list(script or [])
        self.unknown_models = unknown_models or set()
        self.calls: list[ModelContext] = []
        self.models: list[str] = []
        self._tool_ids = 0

    def resolve(self, provider: str, model: str) -> Model | None:
        if model in self.unknown_models:
            return None
        return Model(provider=provider, id=model, api="anthropic-messages", base_url="http://test")

    async def stream(
        self, model: Model, context: ModelContext, options: StreamOptions
    ) -> AsyncIterator[StreamEvent]:
        self.calls.append(
            ModelContext(
                system_prompt=context.system_prompt,
                messages=list(context.messages),
                tools=list(context.tools),
            )
        )
        self.models.append(model.id)
        step = self.script.pop(0) if self.script else "ok"

        if isinstance(step, Exception):
            raise step

        if callable(step):
            async for event in step(options):
                yield event
            return

        if isinstance(step, str):
            words = step.split(" ")
            for i, word in enumerate(words):
                yield TextDelta(word if i == 0 else f" {word}")
            yield Done(Message(role="assistant", content=step), Usage(input=10, output=5))
            return

        text = step.get("text", "")
        if text:
            yield TextDelta(text)
        self._tool_ids += 1
        call = ToolCall(id=f"call_{self._tool_ids}", name=step["tool"], arguments=step.get("args", {}))
        yield ToolCallEnd(call)
        yield Done(
            Message(role="assistant", content=text, tool_calls=[call]), Usage(input=10, output=5)
        )


@pytest.fixture
def store() -> InMemoryStore:
    """Provide an empty in-memory document store."""
    return InMemoryStore()


@pytest.fixture
def config() -> ParleyConfig:
    """Provide a configuration with a keyed default provider and quiet background work."""
    config = ParleyConfig()
    config.storage.backend = "memory"
    config.orchestrator.run_cleanup_delay = 0
    config.segmentation.classifier_enabled = False
    config.segmentation.summarize_on_close = False
    config.routing.legacy.provider = "anthropic"
    config.routing.legacy.api_key = "sk-test"
    return config


@pytest.fixture
def make_provider():
    """Factory for scripted model providers."""
    return ScriptedProvider


@pytest.fixture
def make_service(config: ParleyConfig, store: InMemoryStore):
    """Factory building a chat service over a scripted provider."""

    def factory(script: list[Any] | None = None, **kwargs: Any) -> ChatService:
        provider = kwargs.pop("provider", None) or ScriptedProvider(script)
        return ChatService(config, store, provider, env={}, **kwargs)

    return factory
