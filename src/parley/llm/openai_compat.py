"""Streaming client for OpenAI-compatible chat completion APIs."""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import openai
from openai import AsyncOpenAI

from parley.errors import ProviderStreamError
from parley.llm.client import (
    CancelToken,
    Done,
    Message,
    ModelContext,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallEnd,
    Usage,
)

logger = logging.getLogger(__name__)


class OpenAICompatibleStreamClient:
    """Streaming client for any OpenAI-compatible endpoint.

    OpenAI, Google (via its OpenAI compatibility layer), OpenRouter, Groq
    and xAI all expose ``/chat/completions`` with the same streaming
    delta format, so a single client covers them.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        provider: str = "openai",
        timeout: int = 120,
    ) -> None:
        """Initialise the client.

        Args:
            api_key: Provider API key.
            base_url: OpenAI-compatible endpoint.
            provider: Provider slug, used in error reports.
            timeout: Request timeout in seconds.
        """
        self.provider = provider
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key, timeout=timeout)

    def _convert_messages(self, system_prompt: str, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert internal turns to OpenAI format."""
        openai_messages: list[dict[str, Any]] = []
        if system_prompt:
            openai_messages.append({"role": "system", "content": system_prompt})

        for msg in messages:
            message_dict: dict[str, Any] = {
                "role": msg.role,
                "content": msg.content,
            }

            if msg.tool_calls:
                message_dict["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]

            if msg.tool_call_id:
                message_dict["tool_call_id"] = msg.tool_call_id
            if msg.name and msg.role == "tool":
                message_dict["name"] = msg.name

            openai_messages.append(message_dict)

        return openai_messages

    async def stream(
        self,
        model_id: str,
        context: ModelContext,
        max_tokens: int | None = None,
        temperature: float | None = None,
        cancel: CancelToken | None = None,
        extra: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn.

        Args:
            model_id: Model name served by the provider.
            context: System prompt, turns and tools.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature override.
            cancel: Optional cancellation token checked between chunks.
            extra: Provider-specific request fields sent in the body.

        Yields:
            TextDelta and ToolCallEnd events followed by one Done event.

        Raises:
            ProviderStreamError: If the request or the stream fails.
        """
        params: dict[str, Any] = {
            "model": model_id,
            "messages": self._convert_messages(context.system_prompt, context.messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if context.tools:
            params["tools"] = context.tools
            params["tool_choice"] = "auto"
        if max_tokens:
            params["max_tokens"] = max_tokens
        if temperature is not None:
            params["temperature"] = temperature
        if extra:
            params["extra_body"] = extra

        text_parts: list[str] = []
        usage = Usage()
        # index -> {"id", "name", "arguments"}
        pending_tools: dict[int, dict[str, str]] = {}

        try:
            stream = await self.client.chat.completions.create(**params)
            try:
                async for chunk in stream:
                    if cancel is not None and cancel.cancelled:
                        logger.info("%s stream cancelled: %s", self.provider, cancel.reason)
                        break

                    if chunk.usage is not None:
                        usage = Usage(
                            input=chunk.usage.prompt_tokens or 0,
                            output=chunk.usage.completion_tokens or 0,
                        )

                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta

                    if delta.content:
                        text_parts.append(delta.content)
                        yield TextDelta(text=delta.content)

                    for tc in delta.tool_calls or []:
                        pending = pending_tools.setdefault(
                            tc.index, {"id": "", "name": "", "arguments": ""}
                        )
                        if tc.id:
                            pending["id"] = tc.id
                        if tc.function is not None:
                            if tc.function.name:
                                pending["name"] += tc.function.name
                            if tc.function.arguments:
                                pending["arguments"] += tc.function.arguments
            finally:
                await stream.close()

        except openai.APIStatusError as e:
            raise ProviderStreamError(
                f"{self.provider} API error {e.status_code}: {e.message}",
                provider=self.provider,
                status_code=e.status_code,
            ) from e
        except openai.OpenAIError as e:
            raise ProviderStreamError(
                f"{self.provider} request failed: {e}", provider=self.provider
            ) from e

        tool_calls: list[ToolCall] = []
        for index in sorted(pending_tools):
            pending = pending_tools[index]
            try:
                arguments = json.loads(pending["arguments"]) if pending["arguments"] else {}
            except json.JSONDecodeError as e:
                raise ProviderStreamError(
                    f"{self.provider} returned malformed tool arguments for {pending['name']}",
                    provider=self.provider,
                ) from e
            tool_call = ToolCall(id=pending["id"], name=pending["name"], arguments=arguments)
            tool_calls.append(tool_call)
            yield ToolCallEnd(tool_call=tool_call)

        yield Done(
            message=Message(
                role="assistant",
                content="".join(text_parts),
                tool_calls=tool_calls or None,
            ),
            usage=usage,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.close()
