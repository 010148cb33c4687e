"""Tests for the provider catalogue and dispatching registry."""

from unittest.mock import patch

import pytest

from parley.llm.client import Done, Message, ModelContext, StreamOptions, TextDelta, Usage
from parley.llm.registry import (
    ANTHROPIC_MESSAGES,
    OPENAI_COMPLETIONS,
    ProviderRegistry,
    get_provider_spec,
)


def test_resolve_known_model():
    model = ProviderRegistry().resolve("anthropic", "claude-opus-4-20250514")

    assert model.api == ANTHROPIC_MESSAGES
    assert model.context_window == 200000


def test_resolve_unknown_combinations():
    registry = ProviderRegistry()

    assert registry.resolve("anthropic", "gpt-4o") is None
    assert registry.resolve("nobody", "x") is None


def test_open_catalogue_accepts_any_model():
    model = ProviderRegistry().resolve("openrouter", "meta-llama/llama-4")

    assert model.api == OPENAI_COMPLETIONS
    assert model.context_window == 128000


def test_get_provider_spec():
    assert get_provider_spec("openai").default_model == "gpt-4o"
    assert get_provider_spec("missing") is None


class FakeClient:
    instances: list["FakeClient"] = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.closed = False
        FakeClient.instances.append(self)

    async def stream(self, model_id, context, max_tokens=None, temperature=None, cancel=None, extra=None):
        self.max_tokens = max_tokens
        yield TextDelta("hi")
        yield Done(Message(role="assistant", content="hi"), Usage(1, 1))

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_stream_dispatches_by_api_and_closes_client():
    FakeClient.instances.clear()
    registry = ProviderRegistry()
    model = registry.resolve("groq", "llama-3.1-8b-instant")
    context = ModelContext(system_prompt="", messages=[Message(role="user", content="hi")])

    with patch("parley.llm.registry.OpenAICompatibleStreamClient", FakeClient):
        events = [
            e
            async for e in registry.stream(
                model, context, StreamOptions(api_key="k", base_url="http://proxy/v1")
            )
        ]

    client = FakeClient.instances[0]
    assert events[0] == TextDelta("hi")
    assert client.kwargs["base_url"] == "http://proxy/v1"
    assert client.kwargs["provider"] == "groq"
    assert client.max_tokens == model.max_output_tokens
    assert client.closed is True
