"""Pydantic records persisted by the document store."""

import uuid
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


class TokenUsage(BaseModel):
    """Token usage for one assistant message."""

    input: int = 0
    output: int = 0


class Session(BaseModel):
    """One logical end-user thread on one channel."""

    id: str = Field(default_factory=new_id)
    agent_id: str
    gateway_id: str = "default"
    channel_id: str | None = None
    external_user_id: str | None = None
    message_count: int = 0
    last_activity_at: datetime = Field(default_factory=utcnow)
    created_at: datetime = Field(default_factory=utcnow)
    # Per-session overrides of escalation-level defaults
    message_limit: int | None = None
    token_budget: int | None = None
    thinking_level: Literal["off", "low", "medium", "high"] | None = None


class MessageRecord(BaseModel):
    """A message in a session. Immutable once written, except for relabeling."""

    id: str = Field(default_factory=new_id)
    session_id: str
    role: Literal["user", "assistant", "system"]
    content: str
    seq: int | None = None  # Assigned by the store on write
    conversation_id: str | None = None
    usage: TokenUsage | None = None
    cost: float | None = None
    model: str | None = None
    latency_ms: int | None = None
    created_at: datetime = Field(default_factory=utcnow)


class Decision(BaseModel):
    """A decision recorded in a conversation summary."""

    what: str
    reasoning: str | None = None


class Conversation(BaseModel):
    """A topic-scoped, chainable segment of a session's message stream."""

    id: str = Field(default_factory=new_id)
    session_id: str
    gateway_id: str = "default"
    user_id: str | None = None
    status: Literal["active", "closed"] = "active"
    start_seq: int | None = None
    end_seq: int | None = None
    previous_convo_id: str | None = None
    depth: int = 1
    message_count: int = 0
    first_message_at: datetime = Field(default_factory=utcnow)
    last_message_at: datetime = Field(default_factory=utcnow)
    title: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    topics: list[str] = Field(default_factory=list)
    decisions: list[Decision] = Field(default_factory=list)
    state_updates: list[str] = Field(default_factory=list)
    escalation_level: int = Field(default=0, ge=0, le=3)
    project_id: str | None = None
    closed_at: datetime | None = None


class ActiveRun(BaseModel):
    """Ephemeral processing record for one request on a session."""

    id: str = Field(default_factory=new_id)
    session_id: str
    status: Literal["thinking", "streaming", "complete", "error"] = "thinking"
    partial_text: str = ""
    tools: list[str] = Field(default_factory=list)
    model: str | None = None
    error: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class KnowledgeEntry(BaseModel):
    """A category/key/value fact about a user."""

    id: str = Field(default_factory=new_id)
    agent_id: str
    user_id: str | None = None
    category: str
    key: str
    value: str
    embedding: list[float] | None = None
    source: str = "manual"
    confidence: float = 1.0
    updated_at: datetime = Field(default_factory=utcnow)


class Agent(BaseModel):
    """An agent configured on a gateway."""

    id: str = Field(default_factory=new_id)
    gateway_id: str = "default"
    name: str
    system_prompt: str = ""
    model: str | None = None


class Soul(BaseModel):
    """Persona discovered for a gateway's agent during onboarding."""

    gateway_id: str
    name: str | None = None
    personality: str | None = None
    purpose: str | None = None
    tone: str | None = None


class ResponseStyle(BaseModel):
    """Response style preferences (0..1 sliders)."""

    verbosity: float = 0.5
    formality: float = 0.5
    tone_preset: str | None = None
    custom_tone: str | None = None


class SoulInsight(BaseModel):
    """A pattern the agent learned about the relationship over time."""

    id: str = Field(default_factory=new_id)
    agent_id: str
    insight: str
    created_at: datetime = Field(default_factory=utcnow)


class UsageRecord(BaseModel):
    """Billing usage for one assistant response."""

    id: str = Field(default_factory=new_id)
    gateway_id: str
    session_id: str
    agent_id: str
    model: str
    input_tokens: int
    output_tokens: int
    cost: float
    date: str  # YYYY-MM-DD
    created_at: datetime = Field(default_factory=utcnow)


class CacheEntry(BaseModel):
    """Cached model response."""

    key: str
    response: str
    model: str
    expires_at: datetime


class FileArtifact(BaseModel):
    """A file attached to a conversation segment."""

    id: str = Field(default_factory=new_id)
    conversation_id: str
    file_id: str
    filename: str
    mime_type: str | None = None


class Project(BaseModel):
    """A project a conversation can be linked to."""

    id: str = Field(default_factory=new_id)
    name: str
    context: str = ""
