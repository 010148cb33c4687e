"""Anthropic Claude streaming client using httpx.

Implements streaming over the Anthropic Messages API. Uses httpx directly
to avoid adding the anthropic SDK as a dependency.
"""

import json
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx

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

ANTHROPIC_BASE_URL = "https://api.anthropic.com"
ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicStreamClient:
    """Streaming client for the Anthropic Messages API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = ANTHROPIC_BASE_URL,
        timeout: int = 120,
    ):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
            base_url: API base URL
            timeout: Request timeout in seconds
        """
        self.client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_API_VERSION,
                "content-type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
        )

    def _convert_messages(self, messages: list[Message]) -> list[dict[str, Any]]:
        """Convert internal turns to Anthropic format.

        Consecutive tool results are merged into one user turn, since
        Anthropic expects every tool_result for an assistant turn together.

        Args:
            messages: Context turns (system prompt is sent separately)

        Returns:
            Anthropic messages array
        """
        anthropic_messages: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "assistant" and msg.tool_calls:
                # Thinking blocks must precede tool_use when thinking is enabled
                content_blocks: list[dict[str, Any]] = list(msg.thinking or [])
                if msg.content:
                    content_blocks.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content_blocks.append(
                        {
                            "type": "tool_use",
                            "id": tc.id,
                            "name": tc.name,
                            "input": tc.arguments,
                        }
                    )
                anthropic_messages.append({"role": "assistant", "content": content_blocks})

            elif msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                    "is_error": msg.is_error,
                }
                previous = anthropic_messages[-1] if anthropic_messages else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    anthropic_messages.append({"role": "user", "content": [block]})

            else:
                anthropic_messages.append({"role": msg.role, "content": msg.content})

        return anthropic_messages

    def _convert_tools(self, tools: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Convert OpenAI function format to Anthropic tool format."""
        anthropic_tools = []
        for tool in tools:
            func = tool.get("function", tool)
            anthropic_tools.append(
                {
                    "name": func["name"],
                    "description": func.get("description", ""),
                    "input_schema": func.get("parameters", {"type": "object", "properties": {}}),
                }
            )
        return anthropic_tools

    async def stream(
        self,
        model_id: str,
        context: ModelContext,
        max_tokens: int = 4096,
        temperature: float | None = None,
        cancel: CancelToken | None = None,
        extra: dict[str, Any] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn from Anthropic Claude.

        Args:
            model_id: Model name (e.g., "claude-sonnet-4-20250514")
            context: System prompt, turns and tools
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature override
            cancel: Optional cancellation token checked between events
            extra: Additional payload fields (e.g. ``thinking``)

        Yields:
            TextDelta and ToolCallEnd events followed by one Done event

        Raises:
            ProviderStreamError: If the request fails or the stream reports an error
        """
        payload: dict[str, Any] = {
            "model": model_id,
            "messages": self._convert_messages(context.messages),
            "max_tokens": max_tokens,
            "stream": True,
        }
        if context.system_prompt:
            payload["system"] = context.system_prompt
        if temperature is not None:
            payload["temperature"] = temperature
        if context.tools:
            payload["tools"] = self._convert_tools(context.tools)
        if extra:
            payload.update(extra)
            thinking = extra.get("thinking")
            if thinking:
                # Thinking rejects custom temperatures and counts against max_tokens
                payload.pop("temperature", None)
                payload["max_tokens"] = max_tokens + thinking.get("budget_tokens", 0)

        text_parts: list[str] = []
        tool_calls: list[ToolCall] = []
        thinking_blocks: list[dict[str, Any]] = []
        usage = Usage()
        # index -> {"id", "name", "json"}
        pending_tools: dict[int, dict[str, Any]] = {}
        pending_thinking: dict[int, dict[str, Any]] = {}

        try:
            async with self.client.stream("POST", "/v1/messages", json=payload) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise ProviderStreamError(
                        f"Anthropic API error {response.status_code}: {body[:500]}",
                        provider="anthropic",
                        status_code=response.status_code,
                    )

                async for line in response.aiter_lines():
                    if cancel is not None and cancel.cancelled:
                        logger.info("Anthropic stream cancelled: %s", cancel.reason)
                        break
                    if not line.startswith("data: "):
                        continue
                    data = json.loads(line[6:])
                    event_type = data.get("type")

                    if event_type == "message_start":
                        message_usage = data.get("message", {}).get("usage", {})
                        usage.input = message_usage.get("input_tokens", 0)
                        usage.output = message_usage.get("output_tokens", 0)

                    elif event_type == "content_block_start":
                        block = data.get("content_block", {})
                        if block.get("type") == "tool_use":
                            pending_tools[data["index"]] = {
                                "id": block["id"],
                                "name": block["name"],
                                "json": "",
                            }
                        elif block.get("type") == "thinking":
                            pending_thinking[data["index"]] = {
                                "type": "thinking",
                                "thinking": block.get("thinking", ""),
                                "signature": block.get("signature", ""),
                            }
                        elif block.get("type") == "redacted_thinking":
                            pending_thinking[data["index"]] = dict(block)

                    elif event_type == "content_block_delta":
                        delta = data.get("delta", {})
                        if delta.get("type") == "text_delta":
                            text_parts.append(delta["text"])
                            yield TextDelta(text=delta["text"])
                        elif delta.get("type") == "input_json_delta":
                            pending = pending_tools.get(data["index"])
                            if pending is not None:
                                pending["json"] += delta.get("partial_json", "")
                        elif delta.get("type") in ("thinking_delta", "signature_delta"):
                            thought = pending_thinking.get(data["index"])
                            if thought is not None and "thinking" in delta:
                                thought["thinking"] += delta["thinking"]
                            elif thought is not None and "signature" in delta:
                                thought["signature"] = delta["signature"]

                    elif event_type == "content_block_stop":
                        thought = pending_thinking.pop(data.get("index"), None)
                        if thought is not None:
                            thinking_blocks.append(thought)
                        pending = pending_tools.pop(data.get("index"), None)
                        if pending is not None:
                            arguments = json.loads(pending["json"]) if pending["json"] else {}
                            tool_call = ToolCall(
                                id=pending["id"],
                                name=pending["name"],
                                arguments=arguments,
                            )
                            tool_calls.append(tool_call)
                            yield ToolCallEnd(tool_call=tool_call)

                    elif event_type == "message_delta":
                        delta_usage = data.get("usage", {})
                        if "output_tokens" in delta_usage:
                            usage.output = delta_usage["output_tokens"]

                    elif event_type == "error":
                        error = data.get("error", {})
                        raise ProviderStreamError(
                            f"Anthropic stream error: {error.get('message', 'unknown error')}",
                            provider="anthropic",
                        )

        except (httpx.HTTPError, json.JSONDecodeError) as e:
            raise ProviderStreamError(f"Anthropic request failed: {e}", provider="anthropic") from e

        yield Done(
            message=Message(
                role="assistant",
                content="".join(text_parts),
                tool_calls=tool_calls or None,
                thinking=thinking_blocks or None,
            ),
            usage=usage,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.client.aclose()
