"""Pydantic models for parley.yaml configuration."""

from typing import Literal

from pydantic import BaseModel, Field

from parley.routing.types import (
    KeywordRoute,
    LegacyProviderConfig,
    ModelConstraints,
    ProviderProfile,
    RouteTarget,
)


class ServerConfig(BaseModel):
    """API server configuration."""

    host: str = Field(default="127.0.0.1", description="Server bind address")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        description="Allowed CORS origins (use ['*'] for development only)",
    )


class StorageConfig(BaseModel):
    """Document store configuration."""

    backend: Literal["memory", "sqlite"] = Field(
        default="sqlite",
        description="Store backend: 'memory' (process-local) or 'sqlite'",
    )
    path: str = Field(
        default="~/.parley/parley.db",
        description="Path to SQLite database (sqlite backend only)",
    )


class AgentConfig(BaseModel):
    """Default agent created on first use."""

    id: str = Field(default="default", description="Agent identifier")
    name: str = Field(default="Parley", description="Agent display name")
    system_prompt: str = Field(
        default=(
            "You are a helpful AI assistant. Be direct and genuinely useful, use the "
            "tools available to you when they help, and say so when you are unsure."
        ),
        description="Base persona used once the agent has an identity",
    )
    model: str | None = Field(default=None, description="Agent-pinned model (optional)")
    gateway_id: str = Field(default="default", description="Gateway the agent belongs to")


class EmbeddingConfig(BaseModel):
    """Embedding client for semantic knowledge relevance."""

    enabled: bool = Field(default=False, description="Score knowledge with embeddings")
    model: str = Field(default="nomic-embed-text", description="Ollama embedding model")
    host: str = Field(default="http://localhost:11434", description="Ollama server URL")
    top_k: int = Field(default=15, description="Semantic search result count", ge=1, le=100)


class ContextConfig(BaseModel):
    """Context assembly configuration."""

    token_budget: int = Field(
        default=5000, description="Soft token budget for prompt plus messages", ge=256
    )
    relevance_threshold: float = Field(
        default=0.05, description="Minimum knowledge relevance score", ge=0.0, le=1.0
    )
    topic_token_budget: int = Field(
        default=800, description="Soft cap for the related-conversations block", ge=0
    )
    chain_max_depth: int = Field(
        default=5, description="How many linked segments to summarize", ge=1, le=50
    )
    onboarding: bool = Field(
        default=True, description="Inject first-run onboarding when no persona exists"
    )
    embeddings: EmbeddingConfig = Field(default_factory=EmbeddingConfig)


class OrchestratorConfig(BaseModel):
    """Tool-calling loop configuration."""

    max_tool_rounds: int = Field(
        default=5, description="Tool rounds after the first model call", ge=0, le=20
    )
    max_tokens: int = Field(default=4096, description="Max output tokens per round", ge=1)
    temperature: float | None = Field(
        default=None, description="Sampling temperature override", ge=0.0, le=2.0
    )
    response_cache: bool = Field(default=True, description="Cache tool-free responses")
    cache_ttl_seconds: int = Field(default=3600, description="Response cache TTL", ge=1)
    run_cleanup_delay: float = Field(
        default=5.0, description="Seconds before completed runs are removed", ge=0.0
    )
    serialize_sessions: bool = Field(
        default=True,
        description="Process requests for the same session one at a time",
    )
    thinking_level: Literal["off", "low", "medium", "high"] = Field(
        default="off", description="Default extended-thinking level (sessions may override)"
    )


class SegmentationConfig(BaseModel):
    """Conversation segmentation configuration."""

    enabled: bool = Field(default=True, description="Split sessions into conversation segments")
    timeout_seconds: int = Field(
        default=2 * 60 * 60, description="Inactivity gap that starts a new segment", ge=60
    )
    classify_after: int = Field(
        default=6, description="Message count at which topic classification starts", ge=1
    )
    classify_every: int = Field(
        default=3, description="Classify again every N messages after that", ge=1
    )
    classifier_enabled: bool = Field(default=True, description="Run model topic classification")
    summarize_on_close: bool = Field(default=True, description="Summarize closed segments")


class LimitsConfig(BaseModel):
    """Channel rate limiting and deduplication."""

    rate_limit_max: int = Field(default=60, description="Requests per window per channel", ge=1)
    rate_limit_window_ms: int = Field(default=60_000, description="Sliding window length", ge=1000)
    sweep_interval_seconds: float = Field(
        default=60.0, description="How often stale channels are evicted", ge=1.0
    )
    max_tracked_channels: int = Field(
        default=10_000, description="Upper bound on tracked channels (LRU eviction)", ge=1
    )
    dedup_window_ms: int = Field(
        default=2000, description="Identical session/content suppression window", ge=0
    )


class DefenseConfig(BaseModel):
    """Prompt-injection defense for inbound messages."""

    enabled: bool = Field(default=True, description="Sanitize and score inbound messages")
    max_input_length: int = Field(
        default=10_000, description="Inbound messages are truncated to this length", ge=1
    )
    threat_threshold: float = Field(
        default=0.7, description="Threat score at which a message is rejected", ge=0.0, le=1.0
    )
    wrap_tool_results: bool = Field(
        default=True, description="Delimit tool output before returning it to the model"
    )


class BudgetConfig(BaseModel):
    """Spend limits checked before any model call."""

    daily_limit_usd: float | None = Field(default=None, description="Daily spend limit", ge=0.0)
    monthly_limit_usd: float | None = Field(
        default=None, description="Monthly spend limit", ge=0.0
    )
    action: Literal["block", "warn"] = Field(
        default="block", description="What happens when a limit is reached"
    )
    downgrade_fraction: float = Field(
        default=0.8,
        description="Fraction of the monthly limit at which a cheaper model is suggested",
        ge=0.0,
        le=1.0,
    )
    downgrade_model: str = Field(
        default="claude-haiku-3-20250514", description="Model suggested under spend pressure"
    )


class RoutingConfig(BaseModel):
    """Provider profiles, capability routes and model constraints."""

    provider_profiles: list[ProviderProfile] = Field(default_factory=list)
    default_profile_id: str | None = Field(default=None, description="Default profile id")
    capability_routes: dict[str, RouteTarget] = Field(
        default_factory=dict, description="Capability name to route override"
    )
    legacy_task_models: dict[str, str] = Field(
        default_factory=dict, description="Legacy task type to model mapping"
    )
    keyword_routes: list[KeywordRoute] = Field(
        default_factory=list, description="Content-matched routing rules"
    )
    use_default_routes: bool = Field(
        default=False, description="Append the built-in greeting/short/code routes"
    )
    constraints: ModelConstraints = Field(default_factory=ModelConstraints)
    legacy: LegacyProviderConfig = Field(
        default_factory=LegacyProviderConfig,
        description="Flat single-provider settings (acts as an extra profile)",
    )


class ParleyConfig(BaseModel):
    """Root configuration for parley."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    context: ContextConfig = Field(default_factory=ContextConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    defense: DefenseConfig = Field(default_factory=DefenseConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
