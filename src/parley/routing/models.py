"""Model defaults, fallback chains and allowlist/alias constraints."""

from parley.llm.registry import PROVIDERS, get_provider_spec
from parley.routing.types import ModelConstraints

# Ordered most capable first, cheapest last
FALLBACK_CHAINS: dict[str, list[str]] = {
    "anthropic": [
        "claude-opus-4-20250514",
        "claude-sonnet-4-20250514",
        "claude-haiku-3-20250514",
    ],
    "openai": ["gpt-4o", "gpt-4o-mini"],
    "google": ["gemini-2.5-pro", "gemini-2.5-flash", "gemini-2.0-flash"],
}

DEFAULT_PROVIDER = "anthropic"

CAPABILITY_TASK_TYPES: dict[str, str] = {
    "chat": "chat",
    "tool_use": "tool_use",
    "summary": "summary",
    "code": "code",
    "analysis": "analysis",
    "classifier": "analysis",
    "reflection": "analysis",
    "parse_pdf": "analysis",
    "voice_tts": "chat",
    "voice_stt": "chat",
    "onboarding": "chat",
}


def capability_to_task_type(capability: str) -> str:
    """Map a capability name to the task type used for route lookup."""
    return CAPABILITY_TASK_TYPES.get(capability, "chat")


def default_model_for_provider(provider: str) -> str:
    """Get the built-in default model for a provider."""
    spec = get_provider_spec(provider) or PROVIDERS[DEFAULT_PROVIDER]
    return spec.default_model


def cheaper_alternative(model: str) -> str | None:
    """Next cheaper model in the model's fallback chain, if any."""
    for chain in FALLBACK_CHAINS.values():
        if model in chain:
            idx = chain.index(model)
            if idx < len(chain) - 1:
                return chain[idx + 1]
    return None


def cheapest(model: str) -> str:
    """Cheapest model in the model's fallback chain (or the model itself)."""
    for chain in FALLBACK_CHAINS.values():
        if model in chain:
            return chain[-1]
    return model


def constrain_model(model: str, constraints: ModelConstraints) -> str:
    """Apply aliases and the allowlist to a candidate model.

    Aliases are exact-name substitutions applied before the allowlist check.
    A model that is not allowlisted is replaced by the first fallback chain
    entry that is allowlisted, else by the first allowlisted model.

    Args:
        model: Candidate model id
        constraints: Configured constraints

    Returns:
        Model id to use
    """
    candidate = constraints.aliases.get(model, model)

    if not constraints.allowlist or candidate in constraints.allowlist:
        return candidate

    for fallback in constraints.fallback_chain:
        fallback = constraints.aliases.get(fallback, fallback)
        if fallback in constraints.allowlist:
            return fallback
    return constraints.allowlist[0]
