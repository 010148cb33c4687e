"""Capability to (provider, model, credentials) resolution.

``resolve`` is a pure function over a :class:`RoutingSnapshot`: it performs
no I/O, so every precedence rule can be tested with plain data. Callers
build one snapshot per request and treat it as read-only.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from parley.routing.credentials import clean, resolve_env_key, resolve_oauth_key
from parley.routing.models import (
    DEFAULT_PROVIDER,
    capability_to_task_type,
    cheapest,
    constrain_model,
    default_model_for_provider,
)
from parley.routing.rules import DEFAULT_ROUTES, find_matching_route
from parley.routing.types import (
    TASK_TYPES,
    BudgetState,
    KeywordRoute,
    LegacyProviderConfig,
    ModelConstraints,
    ProviderProfile,
    RouteTarget,
)

if TYPE_CHECKING:
    from parley.config.schema import RoutingConfig

logger = logging.getLogger(__name__)

LEGACY_PROFILE_ID = "legacy-default"


@dataclass(frozen=True)
class RoutingSnapshot:
    """Read-only routing configuration captured for one request."""

    profiles: tuple[ProviderProfile, ...] = ()
    default_profile_id: str | None = None
    capability_routes: Mapping[str, RouteTarget] = field(default_factory=dict)
    keyword_routes: tuple[KeywordRoute, ...] = ()
    constraints: ModelConstraints = field(default_factory=ModelConstraints)
    legacy: LegacyProviderConfig = field(default_factory=LegacyProviderConfig)
    env: Mapping[str, str] = field(default_factory=dict)
    now_ms: int = 0

    @classmethod
    def from_config(
        cls,
        config: "RoutingConfig",
        env: Mapping[str, str] | None = None,
        now_ms: int | None = None,
    ) -> "RoutingSnapshot":
        """Capture a snapshot from the routing configuration section.

        Legacy per-task model routing is folded into capability routes
        without overriding explicit capability entries.

        Args:
            config: Routing configuration
            env: Environment for key fallbacks (copied)
            now_ms: Clock reading used for OAuth expiry checks

        Returns:
            Routing snapshot
        """
        routes: dict[str, RouteTarget] = dict(config.capability_routes)
        for task, model in config.legacy_task_models.items():
            if task in TASK_TYPES and task not in routes:
                routes[task] = RouteTarget(model=model)

        keyword_routes = list(config.keyword_routes)
        if config.use_default_routes:
            keyword_routes.extend(DEFAULT_ROUTES)

        return cls(
            profiles=merge_legacy_profile(config.provider_profiles, config.legacy),
            default_profile_id=config.default_profile_id,
            capability_routes=routes,
            keyword_routes=tuple(keyword_routes),
            constraints=config.constraints,
            legacy=config.legacy,
            env=dict(env or {}),
            now_ms=now_ms if now_ms is not None else int(time.time() * 1000),
        )


@dataclass
class RoutingRequest:
    """Inputs for one resolution."""

    capability: str = "chat"
    message: str | None = None
    route_override: RouteTarget | None = None
    agent_model: str | None = None
    budget: BudgetState = field(default_factory=BudgetState)


@dataclass
class Resolution:
    """Fully resolved provider, model and credentials."""

    provider: str
    model: str
    api_key: str
    auth_method: str | None = None
    base_url: str | None = None
    account_id: str | None = None
    project_id: str | None = None
    location: str | None = None
    provider_profile_id: str | None = None
    model_source: str = "provider_default"
    matched_route: str | None = None


def build_legacy_profile(legacy: LegacyProviderConfig) -> ProviderProfile | None:
    """Synthesize the flat provider settings into a pseudo-profile."""
    provider = clean(legacy.provider)
    api_key = clean(legacy.api_key)
    if not provider and not api_key:
        return None
    return ProviderProfile(
        id=LEGACY_PROFILE_ID,
        name="Legacy Default",
        provider=provider or DEFAULT_PROVIDER,
        api_key=api_key,
        auth_method=clean(legacy.auth_method),
        oauth_provider=clean(legacy.oauth_provider),
        oauth_credentials=clean(legacy.oauth_credentials),
        base_url=clean(legacy.base_url),
        account_id=clean(legacy.account_id),
        project_id=clean(legacy.project_id),
        location=clean(legacy.location),
        default_model=clean(legacy.model),
        enabled=True,
    )


def merge_legacy_profile(
    profiles: list[ProviderProfile], legacy: LegacyProviderConfig
) -> tuple[ProviderProfile, ...]:
    """Append the legacy pseudo-profile after the configured profiles."""
    legacy_profile = build_legacy_profile(legacy)
    if legacy_profile is None or any(p.id == legacy_profile.id for p in profiles):
        return tuple(profiles)
    return (*profiles, legacy_profile)


def pick_default_profile(
    profiles: tuple[ProviderProfile, ...], default_profile_id: str | None
) -> ProviderProfile | None:
    """Choose the default profile.

    Order: a profile marked default, the configured default id, the first
    enabled profile (the legacy pseudo-profile sorts last).
    """
    enabled = [p for p in profiles if p.enabled]
    for profile in enabled:
        if profile.is_default:
            return profile
    if default_profile_id:
        for profile in enabled:
            if profile.id == default_profile_id:
                return profile
    return enabled[0] if enabled else None


def apply_route(base: RouteTarget, override: RouteTarget | None) -> RouteTarget:
    """Overlay the non-empty fields of ``override`` onto ``base``."""
    if override is None:
        return base
    return RouteTarget(
        provider_profile_id=clean(override.provider_profile_id) or base.provider_profile_id,
        provider=clean(override.provider) or base.provider,
        model=clean(override.model) or base.model,
    )


def _find_profile(
    profiles: tuple[ProviderProfile, ...],
    profile_id: str | None = None,
    provider: str | None = None,
) -> ProviderProfile | None:
    for profile in profiles:
        if not profile.enabled:
            continue
        if profile_id and profile.id == profile_id:
            return profile
        if provider and not profile_id and profile.provider == provider:
            return profile
    return None


def capability_route(snapshot: RoutingSnapshot, capability: str) -> RouteTarget:
    """Look up the route for a capability, then its task type, then chat."""
    task_type = capability_to_task_type(capability)
    routes = snapshot.capability_routes
    return routes.get(capability) or routes.get(task_type) or routes.get("chat") or RouteTarget()


def resolve(snapshot: RoutingSnapshot, request: RoutingRequest) -> Resolution:
    """Resolve a capability to a concrete provider, model and credentials.

    Field precedence, highest first: per-call override, first matching keyword
    route, capability route, default profile, built-in provider default. The
    agent-pinned model applies after the capability route; a budget-suggested
    model only replaces the default-profile or built-in model.

    Args:
        snapshot: Routing configuration snapshot
        request: Capability, message, override, agent model and budget

    Returns:
        Resolution (``api_key`` is empty when no credentials resolved)
    """
    target = capability_route(snapshot, request.capability)
    model_source = "capability_route" if clean(target.model) else None

    matched = find_matching_route(request.message or "", list(snapshot.keyword_routes))
    if matched is not None:
        target = apply_route(target, matched.target())
        if clean(matched.target_model):
            model_source = "keyword_route"

    if request.route_override is not None:
        target = apply_route(target, request.route_override)
        if clean(request.route_override.model):
            model_source = "override"

    default_profile = pick_default_profile(snapshot.profiles, snapshot.default_profile_id)
    profile = _find_profile(snapshot.profiles, profile_id=clean(target.provider_profile_id))
    if profile is None:
        profile = default_profile

    route_provider = clean(target.provider)
    if route_provider and (profile is None or profile.provider != route_provider):
        profile = _find_profile(snapshot.profiles, provider=route_provider)

    legacy_provider = clean(snapshot.legacy.provider)
    provider = (
        route_provider
        or (profile.provider if profile else None)
        or legacy_provider
        or DEFAULT_PROVIDER
    )

    model = clean(target.model)
    if model is None and clean(request.agent_model):
        model = clean(request.agent_model)
        model_source = "agent"
    if model is None and clean(request.budget.suggested_model):
        model = clean(request.budget.suggested_model)
        model_source = "budget"
    if model is None:
        profile_model = clean(profile.default_model) if profile else None
        if profile_model:
            model = profile_model
            model_source = "profile_default"
        else:
            model = default_model_for_provider(provider)
            model_source = "provider_default"
        if request.budget.remaining_usd is not None and request.budget.remaining_usd < 0.01:
            model = cheapest(model)
            model_source = "budget"

    model = constrain_model(model, snapshot.constraints)

    # Legacy flat settings only vouch for the provider they were written for
    legacy_applies = (legacy_provider or DEFAULT_PROVIDER) == provider
    legacy = snapshot.legacy

    def pick(profile_value: str | None, legacy_value: str | None) -> str | None:
        return clean(profile_value) or (clean(legacy_value) if legacy_applies else None)

    auth_method = pick(profile.auth_method if profile else None, legacy.auth_method)
    oauth_key = resolve_oauth_key(
        provider,
        auth_method,
        pick(profile.oauth_provider if profile else None, legacy.oauth_provider),
        pick(profile.oauth_credentials if profile else None, legacy.oauth_credentials),
        snapshot.now_ms,
    )
    api_key = (
        oauth_key
        or clean(profile.api_key if profile else None)
        or (clean(legacy.api_key) if legacy_applies else None)
        or resolve_env_key(provider, snapshot.env)
        or ""
    )

    resolution = Resolution(
        provider=provider,
        model=model,
        api_key=api_key,
        auth_method=auth_method,
        base_url=pick(profile.base_url if profile else None, legacy.base_url),
        account_id=pick(profile.account_id if profile else None, legacy.account_id),
        project_id=pick(profile.project_id if profile else None, legacy.project_id),
        location=pick(profile.location if profile else None, legacy.location),
        provider_profile_id=profile.id if profile else None,
        model_source=model_source or "provider_default",
        matched_route=matched.name if matched else None,
    )
    logger.debug(
        "Resolved capability=%s to %s/%s (source=%s, profile=%s)",
        request.capability,
        resolution.provider,
        resolution.model,
        resolution.model_source,
        resolution.provider_profile_id,
    )
    return resolution
