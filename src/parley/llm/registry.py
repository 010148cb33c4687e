"""Built-in provider catalogue and the dispatching model provider."""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from parley.llm.anthropic import ANTHROPIC_BASE_URL, AnthropicStreamClient
from parley.llm.client import Model, ModelContext, StreamEvent, StreamOptions
from parley.llm.openai_compat import OpenAICompatibleStreamClient

logger = logging.getLogger(__name__)

ANTHROPIC_MESSAGES = "anthropic-messages"
OPENAI_COMPLETIONS = "openai-completions"


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of a model provider."""

    slug: str
    api: str
    base_url: str
    default_model: str
    models: tuple[str, ...] = ()
    open_catalogue: bool = False  # Accepts any model id (routers like OpenRouter)
    context_windows: dict[str, int] = field(default_factory=dict)


PROVIDERS: dict[str, ProviderSpec] = {
    "anthropic": ProviderSpec(
        slug="anthropic",
        api=ANTHROPIC_MESSAGES,
        base_url=ANTHROPIC_BASE_URL,
        default_model="claude-sonnet-4-20250514",
        models=(
            "claude-opus-4-20250514",
            "claude-sonnet-4-20250514",
            "claude-haiku-3-20250514",
            "claude-3-5-haiku-20241022",
            "claude-3-haiku-20240307",
        ),
        context_windows={"*": 200000},
    ),
    "openai": ProviderSpec(
        slug="openai",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.openai.com/v1",
        default_model="gpt-4o",
        models=("gpt-4o", "gpt-4o-mini", "gpt-4.1", "gpt-4.1-mini", "o3-mini"),
    ),
    "google": ProviderSpec(
        slug="google",
        api=OPENAI_COMPLETIONS,
        base_url="https://generativelanguage.googleapis.com/v1beta/openai/",
        default_model="gemini-2.5-pro",
        models=("gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash"),
        context_windows={"*": 1000000},
    ),
    "openrouter": ProviderSpec(
        slug="openrouter",
        api=OPENAI_COMPLETIONS,
        base_url="https://openrouter.ai/api/v1",
        default_model="anthropic/claude-sonnet-4",
        open_catalogue=True,
    ),
    "groq": ProviderSpec(
        slug="groq",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.groq.com/openai/v1",
        default_model="llama-3.3-70b-versatile",
        models=("llama-3.3-70b-versatile", "llama-3.1-8b-instant"),
    ),
    "xai": ProviderSpec(
        slug="xai",
        api=OPENAI_COMPLETIONS,
        base_url="https://api.x.ai/v1",
        default_model="grok-3",
        models=("grok-3", "grok-3-mini"),
    ),
}


def get_provider_spec(slug: str) -> ProviderSpec | None:
    """Get a provider by slug."""
    return PROVIDERS.get(slug)


class ProviderRegistry:
    """Model provider that resolves models from the catalogue and streams them.

    A fresh HTTP client is opened per stream because credentials are resolved
    per request and may differ between calls.
    """

    def __init__(self, providers: dict[str, ProviderSpec] | None = None, timeout: int = 120):
        """Initialize registry.

        Args:
            providers: Provider catalogue (defaults to the built-in one)
            timeout: Request timeout in seconds for stream clients
        """
        self.providers = providers if providers is not None else PROVIDERS
        self.timeout = timeout

    def resolve(self, provider: str, model: str) -> Model | None:
        """Resolve a provider/model pair to a concrete model.

        Args:
            provider: Provider slug
            model: Model id

        Returns:
            Model, or None when the provider is unknown or does not serve the model
        """
        spec = self.providers.get(provider)
        if spec is None:
            return None
        if not spec.open_catalogue and model not in spec.models:
            return None

        context_window = spec.context_windows.get(model, spec.context_windows.get("*", 128000))
        return Model(
            provider=spec.slug,
            id=model,
            api=spec.api,
            base_url=spec.base_url,
            context_window=context_window,
        )

    async def stream(
        self,
        model: Model,
        context: ModelContext,
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        """Stream one assistant turn from the model's provider API.

        Args:
            model: Resolved model
            context: System prompt, turns and tools
            options: API key, limits and cancellation token

        Yields:
            Stream events ending with Done
        """
        base_url = options.base_url or model.base_url
        client: AnthropicStreamClient | OpenAICompatibleStreamClient
        if model.api == ANTHROPIC_MESSAGES:
            client = AnthropicStreamClient(
                api_key=options.api_key, base_url=base_url, timeout=self.timeout
            )
        else:
            client = OpenAICompatibleStreamClient(
                api_key=options.api_key,
                base_url=base_url,
                provider=model.provider,
                timeout=self.timeout,
            )

        logger.debug("Streaming %s/%s via %s", model.provider, model.id, base_url)
        try:
            async for event in client.stream(
                model.id,
                context,
                max_tokens=options.max_tokens or model.max_output_tokens,
                temperature=options.temperature,
                cancel=options.cancel,
                extra=options.extra_params,
            ):
                yield event
        finally:
            await client.close()
