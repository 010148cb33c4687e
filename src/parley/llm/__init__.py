"""Model provider implementations."""

from .anthropic import AnthropicStreamClient
from .client import (
    CancelToken,
    Done,
    Message,
    Model,
    ModelContext,
    ModelProvider,
    StreamEvent,
    StreamOptions,
    TextDelta,
    TextModel,
    ToolCall,
    ToolCallEnd,
    Usage,
)
from .openai_compat import OpenAICompatibleStreamClient
from .registry import PROVIDERS, ProviderRegistry, ProviderSpec

__all__ = [
    "PROVIDERS",
    "AnthropicStreamClient",
    "CancelToken",
    "Done",
    "Message",
    "Model",
    "ModelContext",
    "ModelProvider",
    "OpenAICompatibleStreamClient",
    "ProviderRegistry",
    "ProviderSpec",
    "StreamEvent",
    "StreamOptions",
    "TextDelta",
    "TextModel",
    "ToolCall",
    "ToolCallEnd",
    "Usage",
]
