"""API key resolution: OAuth, stored keys and environment fallbacks."""

import json
import logging
from collections.abc import Mapping
from typing import Any

from parley.errors import ConfigurationError

logger = logging.getLogger(__name__)

PROVIDER_ENV_MAP: dict[str, str] = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GEMINI_API_KEY",
    "xai": "XAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
    "groq": "GROQ_API_KEY",
    "minimax": "MINIMAX_API_KEY",
    "moonshot": "MOONSHOT_API_KEY",
    "github-copilot": "COPILOT_GITHUB_TOKEN",
}

OAUTH_PROVIDERS: dict[str, str] = {
    "anthropic": "anthropic",
    "openai-codex": "openai-codex",
    "google-gemini-cli": "google-gemini-cli",
    "google-antigravity": "google-antigravity",
    "github-copilot": "github-copilot",
    "copilot": "github-copilot",
}


def clean(value: str | None) -> str | None:
    """Strip a string, mapping blank values to None."""
    if not value:
        return None
    value = value.strip()
    return value or None


def _decode_oauth_credentials(raw: str, oauth_provider: str) -> dict[str, Any] | None:
    """Decode a credential blob and pick the entry for an OAuth provider.

    The blob is either keyed by OAuth provider id or a single flat
    ``{"access", "refresh", "expires"}`` object.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None

    nested = parsed.get(oauth_provider)
    if isinstance(nested, dict):
        return nested
    if parsed.get("access") and parsed.get("refresh") and parsed.get("expires"):
        return parsed
    return None


def resolve_oauth_key(
    provider: str,
    auth_method: str | None,
    oauth_provider: str | None,
    oauth_credentials: str | None,
    now_ms: int,
) -> str | None:
    """Derive an API key from stored OAuth credentials.

    Only applies when the auth method is "oauth" and the credentials decode
    into an unexpired access token for the chosen provider.

    Args:
        provider: Resolved model provider slug
        auth_method: Configured auth method
        oauth_provider: Configured OAuth provider id (inferred from provider if unset)
        oauth_credentials: JSON credential blob
        now_ms: Current time in epoch milliseconds

    Returns:
        Access token or None
    """
    if clean(auth_method) != "oauth":
        return None
    oauth_id = clean(oauth_provider) or OAUTH_PROVIDERS.get(provider)
    if not oauth_id or OAUTH_PROVIDERS.get(provider, provider) != oauth_id:
        return None
    raw = clean(oauth_credentials)
    if not raw:
        return None

    credentials = _decode_oauth_credentials(raw, oauth_id)
    if credentials is None:
        logger.warning("OAuth credentials for %s could not be decoded", oauth_id)
        return None

    expires = credentials.get("expires")
    if isinstance(expires, int | float) and expires <= now_ms:
        logger.warning("OAuth access token for %s has expired", oauth_id)
        return None

    access = credentials.get("access")
    return clean(access) if isinstance(access, str) else None


def resolve_env_key(provider: str, env: Mapping[str, str]) -> str | None:
    """Look up the environment-variable API key for a provider."""
    env_var = PROVIDER_ENV_MAP.get(provider)
    if not env_var:
        return None
    return clean(env.get(env_var))


def require_api_key(provider: str, api_key: str) -> str:
    """Fail the request when no credentials resolved.

    Raises:
        ConfigurationError: If the key is empty
    """
    if not api_key:
        raise ConfigurationError(
            f"No API key configured for provider '{provider}'",
            code=ConfigurationError.NO_API_KEY,
        )
    return api_key
