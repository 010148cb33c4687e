"""Extended-thinking levels and their provider request parameters."""

from typing import Any

THINKING_BUDGETS: dict[str, int] = {
    "off": 0,
    "low": 2048,
    "medium": 8192,
    "high": 32768,
}


def is_valid_thinking_level(level: str | None) -> bool:
    return level in THINKING_BUDGETS


def thinking_params(level: str, provider: str) -> dict[str, Any]:
    """Request parameters enabling a thinking level on a provider.

    Args:
        level: One of off, low, medium, high
        provider: Provider slug

    Returns:
        Extra request fields; empty when thinking is off or unsupported
    """
    budget = THINKING_BUDGETS.get(level, 0)
    if budget == 0:
        return {}
    if provider == "anthropic":
        return {"thinking": {"type": "enabled", "budget_tokens": budget}}
    if provider == "openai":
        return {"reasoning_effort": level}
    if provider == "google":
        return {"thinking_budget": budget}
    return {}
