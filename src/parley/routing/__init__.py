"""Provider/model routing.

Resolves a logical capability (chat, tool_use, summary, code, analysis) to a
concrete provider, model and credentials through a layered precedence chain:
per-call override, keyword routes, capability routes, the default provider
profile and finally the provider's built-in default model.

Usage::

    from parley.routing import RoutingRequest, RoutingSnapshot, resolve

    snapshot = RoutingSnapshot.from_config(config.routing, env=os.environ)
    resolution = resolve(snapshot, RoutingRequest(capability="tool_use", message=text))
"""

from parley.routing.credentials import require_api_key
from parley.routing.models import capability_to_task_type, constrain_model
from parley.routing.resolver import Resolution, RoutingRequest, RoutingSnapshot, resolve
from parley.routing.rules import DEFAULT_ROUTES, classify_message
from parley.routing.types import (
    BudgetState,
    KeywordRoute,
    LegacyProviderConfig,
    ModelConstraints,
    ProviderProfile,
    RouteCondition,
    RouteTarget,
)

__all__ = [
    "DEFAULT_ROUTES",
    "BudgetState",
    "KeywordRoute",
    "LegacyProviderConfig",
    "ModelConstraints",
    "ProviderProfile",
    "Resolution",
    "RouteCondition",
    "RouteTarget",
    "RoutingRequest",
    "RoutingSnapshot",
    "capability_to_task_type",
    "classify_message",
    "constrain_model",
    "require_api_key",
    "resolve",
]
