"""Pydantic models for provider profiles, routes and model constraints."""

from typing import Literal

from pydantic import BaseModel, Field

TaskType = Literal["chat", "tool_use", "summary", "code", "analysis"]

TASK_TYPES: tuple[str, ...] = ("chat", "tool_use", "summary", "code", "analysis")


class ProviderProfile(BaseModel):
    """Named credential/model bundle usable by capability routing."""

    id: str = Field(description="Unique profile identifier")
    name: str = Field(default="", description="Display name")
    provider: str = Field(description="Provider slug (anthropic, openai, google, ...)")
    api_key: str | None = Field(default=None, description="Stored API key")
    auth_method: str | None = Field(default=None, description="'api_key' or 'oauth'")
    oauth_provider: str | None = Field(default=None, description="OAuth provider id")
    oauth_credentials: str | None = Field(
        default=None, description="JSON-encoded OAuth credential blob"
    )
    base_url: str | None = Field(default=None, description="Custom API base URL")
    account_id: str | None = Field(default=None, description="Provider account id")
    project_id: str | None = Field(default=None, description="Cloud project id")
    location: str | None = Field(default=None, description="Cloud region/location")
    default_model: str | None = Field(default=None, description="Model used when nothing else picks one")
    enabled: bool = Field(default=True, description="Whether this profile can be selected")
    is_default: bool = Field(default=False, description="Marked as the default profile")


class RouteTarget(BaseModel):
    """Partial (profile, provider, model) override."""

    provider_profile_id: str | None = None
    provider: str | None = None
    model: str | None = None


class RouteCondition(BaseModel):
    """Condition evaluated against the literal user message."""

    type: Literal["message_length", "has_code", "keyword", "combined"]
    min_length: int | None = None
    max_length: int | None = None
    code_detection: bool = True
    keywords: list[str] = Field(default_factory=list)
    conditions: list["RouteCondition"] = Field(default_factory=list)


class KeywordRoute(BaseModel):
    """Content-matched custom routing rule."""

    name: str
    description: str = ""
    condition: RouteCondition
    target_model: str | None = None
    target_provider: str | None = None
    target_provider_profile_id: str | None = None
    priority: int = 0
    enabled: bool = True

    def target(self) -> RouteTarget:
        return RouteTarget(
            provider_profile_id=self.target_provider_profile_id,
            provider=self.target_provider,
            model=self.target_model,
        )


class ModelConstraints(BaseModel):
    """Allowlist, aliases and fallback chain applied to every resolved model."""

    allowlist: list[str] = Field(default_factory=list)
    aliases: dict[str, str] = Field(default_factory=dict)
    fallback_chain: list[str] = Field(default_factory=list)


class LegacyProviderConfig(BaseModel):
    """Flat single-provider settings predating provider profiles."""

    provider: str | None = None
    api_key: str | None = None
    model: str | None = None
    auth_method: str | None = None
    oauth_provider: str | None = None
    oauth_credentials: str | None = None
    base_url: str | None = None
    account_id: str | None = None
    project_id: str | None = None
    location: str | None = None


class BudgetState(BaseModel):
    """Spend signal handed to the resolver by the caller."""

    allowed: bool = True
    suggested_model: str | None = None
    remaining_usd: float | None = None
