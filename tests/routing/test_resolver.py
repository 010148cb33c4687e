"""Tests for capability routing resolution."""

import json

from parley.config.schema import RoutingConfig
from parley.routing.resolver import (
    LEGACY_PROFILE_ID,
    RoutingRequest,
    RoutingSnapshot,
    pick_default_profile,
    resolve,
)
from parley.routing.types import (
    BudgetState,
    KeywordRoute,
    LegacyProviderConfig,
    ModelConstraints,
    ProviderProfile,
    RouteCondition,
    RouteTarget,
)

NOW_MS = 1_700_000_000_000


def _snapshot(env: dict[str, str] | None = None, **routing) -> RoutingSnapshot:
    return RoutingSnapshot.from_config(RoutingConfig(**routing), env=env or {}, now_ms=NOW_MS)


def _profiles() -> list[ProviderProfile]:
    return [
        ProviderProfile(id="main", provider="anthropic", api_key="sk-ant", is_default=True),
        ProviderProfile(
            id="oa", provider="openai", api_key="sk-oa", default_model="gpt-4o-mini", base_url="https://proxy"
        ),
    ]


def _code_route() -> KeywordRoute:
    return KeywordRoute(
        name="code",
        condition=RouteCondition(type="keyword", keywords=["stack trace"]),
        target_model="claude-opus-4-20250514",
    )


def test_built_in_default_without_configuration():
    """With nothing configured the built-in provider default applies."""
    resolution = resolve(_snapshot(), RoutingRequest())

    assert resolution.provider == "anthropic"
    assert resolution.model == "claude-sonnet-4-20250514"
    assert resolution.api_key == ""
    assert resolution.model_source == "provider_default"


def test_env_key_fallback():
    resolution = resolve(_snapshot(env={"ANTHROPIC_API_KEY": "sk-env"}), RoutingRequest())

    assert resolution.api_key == "sk-env"


def test_default_profile_credentials():
    resolution = resolve(_snapshot(provider_profiles=_profiles()), RoutingRequest())

    assert resolution.provider_profile_id == "main"
    assert resolution.api_key == "sk-ant"


def test_capability_route_selects_profile_and_model_default():
    """A capability route to another profile uses that profile's default model."""
    snapshot = _snapshot(
        provider_profiles=_profiles(),
        capability_routes={"summary": RouteTarget(provider_profile_id="oa")},
    )

    resolution = resolve(snapshot, RoutingRequest(capability="summary"))

    assert resolution.provider == "openai"
    assert resolution.model == "gpt-4o-mini"
    assert resolution.api_key == "sk-oa"
    assert resolution.base_url == "https://proxy"
    assert resolution.model_source == "profile_default"


def test_capability_falls_back_to_task_type_then_chat():
    snapshot = _snapshot(
        capability_routes={
            "analysis": RouteTarget(model="claude-opus-4-20250514"),
            "chat": RouteTarget(model="claude-haiku-3-20250514"),
        }
    )

    classifier = resolve(snapshot, RoutingRequest(capability="classifier"))
    other = resolve(snapshot, RoutingRequest(capability="voice_tts"))

    assert classifier.model == "claude-opus-4-20250514"
    assert other.model == "claude-haiku-3-20250514"
    assert other.model_source == "capability_route"


def test_precedence_override_over_keyword_over_capability():
    """Per-call override beats a keyword match, which beats the capability route."""
    snapshot = _snapshot(
        capability_routes={"chat": RouteTarget(model="claude-haiku-3-20250514")},
        keyword_routes=[_code_route()],
    )

    by_capability = resolve(snapshot, RoutingRequest(message="hello there"))
    by_keyword = resolve(snapshot, RoutingRequest(message="here is my stack trace"))
    by_override = resolve(
        snapshot,
        RoutingRequest(
            message="here is my stack trace",
            route_override=RouteTarget(model="claude-sonnet-4-20250514"),
        ),
    )

    assert by_capability.model == "claude-haiku-3-20250514"
    assert by_keyword.model == "claude-opus-4-20250514"
    assert by_keyword.model_source == "keyword_route"
    assert by_keyword.matched_route == "code"
    assert by_override.model == "claude-sonnet-4-20250514"
    assert by_override.model_source == "override"


def test_route_provider_switches_profile():
    """A route naming only a provider picks an enabled profile for it."""
    snapshot = _snapshot(
        provider_profiles=_profiles(),
        capability_routes={"code": RouteTarget(provider="openai", model="gpt-4o")},
    )

    resolution = resolve(snapshot, RoutingRequest(capability="code"))

    assert resolution.provider == "openai"
    assert resolution.provider_profile_id == "oa"
    assert resolution.api_key == "sk-oa"


def test_agent_model_after_capability_route():
    snapshot = _snapshot(capability_routes={"summary": RouteTarget(model="claude-haiku-3-20250514")})

    pinned = resolve(snapshot, RoutingRequest(agent_model="claude-opus-4-20250514"))
    routed = resolve(
        snapshot, RoutingRequest(capability="summary", agent_model="claude-opus-4-20250514")
    )

    assert pinned.model == "claude-opus-4-20250514"
    assert pinned.model_source == "agent"
    assert routed.model == "claude-haiku-3-20250514"


def test_budget_signals():
    """A suggested model only replaces defaults; near-zero budget forces the cheapest model."""
    snapshot = _snapshot()

    suggested = resolve(
        snapshot, RoutingRequest(budget=BudgetState(suggested_model="claude-haiku-3-20250514"))
    )
    exhausted = resolve(snapshot, RoutingRequest(budget=BudgetState(remaining_usd=0.001)))
    pinned = resolve(
        snapshot,
        RoutingRequest(
            agent_model="claude-opus-4-20250514",
            budget=BudgetState(suggested_model="claude-haiku-3-20250514"),
        ),
    )

    assert suggested.model == "claude-haiku-3-20250514"
    assert suggested.model_source == "budget"
    assert exhausted.model == "claude-haiku-3-20250514"
    assert pinned.model == "claude-opus-4-20250514"


def test_constraints_applied_last():
    snapshot = _snapshot(
        capability_routes={"chat": RouteTarget(model="claude-opus-4-20250514")},
        constraints=ModelConstraints(allowlist=["claude-sonnet-4-20250514"]),
    )

    assert resolve(snapshot, RoutingRequest()).model == "claude-sonnet-4-20250514"


def test_legacy_settings_act_as_profile():
    snapshot = _snapshot(
        legacy=LegacyProviderConfig(provider="openai", api_key="sk-legacy", model="gpt-4o-mini")
    )

    resolution = resolve(snapshot, RoutingRequest())

    assert resolution.provider == "openai"
    assert resolution.model == "gpt-4o-mini"
    assert resolution.api_key == "sk-legacy"
    assert resolution.provider_profile_id == LEGACY_PROFILE_ID


def test_legacy_key_only_for_its_provider():
    """Legacy credentials are not sent to a different provider."""
    snapshot = _snapshot(
        env={"OPENAI_API_KEY": "sk-env-openai"},
        legacy=LegacyProviderConfig(provider="anthropic", api_key="sk-legacy"),
        capability_routes={"code": RouteTarget(provider="openai", model="gpt-4o")},
    )

    resolution = resolve(snapshot, RoutingRequest(capability="code"))

    assert resolution.provider == "openai"
    assert resolution.api_key == "sk-env-openai"


def test_legacy_task_models_fill_missing_routes():
    snapshot = _snapshot(
        legacy_task_models={"summary": "claude-haiku-3-20250514", "bogus": "x"},
        capability_routes={"code": RouteTarget(model="claude-opus-4-20250514")},
    )

    assert "bogus" not in snapshot.capability_routes
    assert resolve(snapshot, RoutingRequest(capability="summary")).model == "claude-haiku-3-20250514"


def test_oauth_profile_token():
    creds = json.dumps({"access": "oauth-access", "refresh": "r", "expires": NOW_MS + 1000})
    snapshot = _snapshot(
        provider_profiles=[
            ProviderProfile(
                id="oauth", provider="anthropic", auth_method="oauth", oauth_credentials=creds
            )
        ]
    )

    resolution = resolve(snapshot, RoutingRequest())

    assert resolution.api_key == "oauth-access"
    assert resolution.auth_method == "oauth"


def test_pick_default_profile_order():
    """Marked default, then configured id, then first enabled."""
    a = ProviderProfile(id="a", provider="openai", enabled=False)
    b = ProviderProfile(id="b", provider="openai")
    c = ProviderProfile(id="c", provider="openai")

    assert pick_default_profile((a, b, c), "c").id == "c"
    assert pick_default_profile((a, b, c), None).id == "b"
    assert pick_default_profile((a, b, c.model_copy(update={"is_default": True})), "b").id == "c"
    assert pick_default_profile((a,), None) is None
