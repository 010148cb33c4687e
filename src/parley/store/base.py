"""Document store protocol and the shared entity layer of the adapters."""

import asyncio
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel

from parley.store.schema import (
    ActiveRun,
    Agent,
    CacheEntry,
    Conversation,
    FileArtifact,
    KnowledgeEntry,
    MessageRecord,
    Project,
    Session,
    Soul,
    SoulInsight,
    UsageRecord,
)

RecordT = TypeVar("RecordT", bound=BaseModel)


class DocumentStore(Protocol):
    """Storage-agnostic entity operations consumed by the pipeline.

    Each call is atomic on its own; no multi-entity transactions are assumed.
    Message ``seq`` numbers are assigned by the store and strictly increase
    within a session.
    """

    async def get_session(self, session_id: str) -> Session | None: ...

    async def create_session(self, session: Session) -> Session: ...

    async def patch_session(self, session_id: str, **fields: Any) -> Session | None: ...

    async def create_message(self, message: MessageRecord) -> MessageRecord: ...

    async def get_message(self, message_id: str) -> MessageRecord | None: ...

    async def relabel_message(self, message_id: str, conversation_id: str) -> MessageRecord | None: ...

    async def recent_messages(self, session_id: str, limit: int) -> list[MessageRecord]: ...

    async def conversation_messages(
        self, session_id: str, conversation_id: str, limit: int
    ) -> list[MessageRecord]: ...

    async def messages_by_seq_range(
        self, session_id: str, start_seq: int, end_seq: int
    ) -> list[MessageRecord]: ...

    async def get_conversation(self, conversation_id: str) -> Conversation | None: ...

    async def get_active_conversation(self, session_id: str) -> Conversation | None: ...

    async def create_conversation(self, conversation: Conversation) -> Conversation: ...

    async def patch_conversation(self, conversation_id: str, **fields: Any) -> Conversation | None: ...

    async def list_conversations(
        self, gateway_id: str, status: str | None = None, limit: int = 100
    ) -> list[Conversation]: ...

    async def save_run(self, run: ActiveRun) -> ActiveRun: ...

    async def get_run(self, session_id: str) -> ActiveRun | None: ...

    async def delete_run(self, session_id: str, run_id: str | None = None) -> None: ...

    async def list_knowledge(
        self, agent_id: str, user_id: str | None = None, limit: int = 20
    ) -> list[KnowledgeEntry]: ...

    async def upsert_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry: ...

    async def get_agent(self, agent_id: str) -> Agent | None: ...

    async def save_agent(self, agent: Agent) -> Agent: ...

    async def get_soul(self, gateway_id: str) -> Soul | None: ...

    async def save_soul(self, soul: Soul) -> Soul: ...

    async def get_setting(self, gateway_id: str, key: str) -> str | None: ...

    async def set_setting(self, gateway_id: str, key: str, value: str) -> None: ...

    async def list_insights(self, agent_id: str, limit: int = 20) -> list[SoulInsight]: ...

    async def add_insight(self, insight: SoulInsight) -> SoulInsight: ...

    async def record_usage(self, record: UsageRecord) -> UsageRecord: ...

    async def list_usage(self, gateway_id: str, since_date: str) -> list[UsageRecord]: ...

    async def get_cache(self, key: str) -> CacheEntry | None: ...

    async def put_cache(self, entry: CacheEntry) -> None: ...

    async def list_files(self, conversation_ids: list[str]) -> list[FileArtifact]: ...

    async def save_file(self, artifact: FileArtifact) -> FileArtifact: ...

    async def get_project(self, project_id: str) -> Project | None: ...

    async def save_project(self, project: Project) -> Project: ...


class BaseDocumentStore:
    """Entity operations written over four primitives.

    Adapters implement ``_put``, ``_get``, ``_delete`` and ``_scan`` over
    documents grouped by kind, with an optional scope key (session, agent,
    gateway or conversation id) used for filtered scans.
    """

    def __init__(self) -> None:
        self._write_lock = asyncio.Lock()

    async def _put(self, kind: str, doc_id: str, data: dict[str, Any], scope: str | None) -> None:
        raise NotImplementedError

    async def _get(self, kind: str, doc_id: str) -> dict[str, Any] | None:
        raise NotImplementedError

    async def _delete(self, kind: str, doc_id: str) -> None:
        raise NotImplementedError

    async def _scan(self, kind: str, scope: str | None = None) -> list[dict[str, Any]]:
        raise NotImplementedError

    async def _save(self, kind: str, doc_id: str, record: RecordT, scope: str | None) -> RecordT:
        await self._put(kind, doc_id, record.model_dump(mode="json"), scope)
        return record

    async def _load(self, kind: str, doc_id: str, model: type[RecordT]) -> RecordT | None:
        data = await self._get(kind, doc_id)
        return model.model_validate(data) if data is not None else None

    async def _patch(
        self,
        kind: str,
        doc_id: str,
        model: type[RecordT],
        scope_field: str | None,
        fields: dict[str, Any],
    ) -> RecordT | None:
        async with self._write_lock:
            current = await self._load(kind, doc_id, model)
            if current is None:
                return None
            updated = model.model_validate({**current.model_dump(), **fields})
            scope = getattr(updated, scope_field) if scope_field else None
            return await self._save(kind, doc_id, updated, scope)

    # Sessions

    async def get_session(self, session_id: str) -> Session | None:
        return await self._load("sessions", session_id, Session)

    async def create_session(self, session: Session) -> Session:
        return await self._save("sessions", session.id, session, session.gateway_id)

    async def patch_session(self, session_id: str, **fields: Any) -> Session | None:
        return await self._patch("sessions", session_id, Session, "gateway_id", fields)

    # Messages

    async def create_message(self, message: MessageRecord) -> MessageRecord:
        """Write a message, assigning the next ``seq`` for its session."""
        async with self._write_lock:
            counter = await self._get("seq", message.session_id)
            seq = (counter["value"] if counter else 0) + 1
            await self._put("seq", message.session_id, {"value": seq}, None)
            stored = message.model_copy(update={"seq": seq})
            await self._save("messages", stored.id, stored, stored.session_id)

            session = await self._load("sessions", message.session_id, Session)
            if session is not None:
                session = session.model_copy(
                    update={
                        "message_count": session.message_count + 1,
                        "last_activity_at": stored.created_at,
                    }
                )
                await self._save("sessions", session.id, session, session.gateway_id)
            return stored

    async def get_message(self, message_id: str) -> MessageRecord | None:
        return await self._load("messages", message_id, MessageRecord)

    async def relabel_message(self, message_id: str, conversation_id: str) -> MessageRecord | None:
        return await self._patch(
            "messages",
            message_id,
            MessageRecord,
            "session_id",
            {"conversation_id": conversation_id},
        )

    async def _session_messages(self, session_id: str) -> list[MessageRecord]:
        records = [MessageRecord.model_validate(d) for d in await self._scan("messages", session_id)]
        records.sort(key=lambda m: m.seq or 0)
        return records

    async def recent_messages(self, session_id: str, limit: int) -> list[MessageRecord]:
        """Most recent messages of a session, oldest first."""
        messages = await self._session_messages(session_id)
        return messages[-limit:] if limit > 0 else []

    async def conversation_messages(
        self, session_id: str, conversation_id: str, limit: int
    ) -> list[MessageRecord]:
        """Most recent messages attached to a conversation, oldest first."""
        messages = [
            m for m in await self._session_messages(session_id) if m.conversation_id == conversation_id
        ]
        return messages[-limit:] if limit > 0 else []

    async def messages_by_seq_range(
        self, session_id: str, start_seq: int, end_seq: int
    ) -> list[MessageRecord]:
        return [
            m
            for m in await self._session_messages(session_id)
            if m.seq is not None and start_seq <= m.seq <= end_seq
        ]

    # Conversations

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        return await self._load("conversations", conversation_id, Conversation)

    async def get_active_conversation(self, session_id: str) -> Conversation | None:
        active = [
            c
            for c in (Conversation.model_validate(d) for d in await self._scan("conversations", session_id))
            if c.status == "active"
        ]
        active.sort(key=lambda c: c.first_message_at, reverse=True)
        return active[0] if active else None

    async def create_conversation(self, conversation: Conversation) -> Conversation:
        return await self._save("conversations", conversation.id, conversation, conversation.session_id)

    async def patch_conversation(self, conversation_id: str, **fields: Any) -> Conversation | None:
        return await self._patch("conversations", conversation_id, Conversation, "session_id", fields)

    async def list_conversations(
        self, gateway_id: str, status: str | None = None, limit: int = 100
    ) -> list[Conversation]:
        """Conversations of a gateway, most recently active first."""
        conversations = [
            c
            for c in (Conversation.model_validate(d) for d in await self._scan("conversations"))
            if c.gateway_id == gateway_id and (status is None or c.status == status)
        ]
        conversations.sort(key=lambda c: c.last_message_at, reverse=True)
        return conversations[:limit]

    # Active runs (keyed by session; most recent wins)

    async def save_run(self, run: ActiveRun) -> ActiveRun:
        return await self._save("runs", run.session_id, run, run.session_id)

    async def get_run(self, session_id: str) -> ActiveRun | None:
        return await self._load("runs", session_id, ActiveRun)

    async def delete_run(self, session_id: str, run_id: str | None = None) -> None:
        """Delete a session's run, only if it is still ``run_id`` when given."""
        async with self._write_lock:
            if run_id is not None:
                current = await self.get_run(session_id)
                if current is None or current.id != run_id:
                    return
            await self._delete("runs", session_id)

    # Knowledge

    async def list_knowledge(
        self, agent_id: str, user_id: str | None = None, limit: int = 20
    ) -> list[KnowledgeEntry]:
        """Shared and user-specific knowledge for an agent, newest first."""
        entries = [
            e
            for e in (KnowledgeEntry.model_validate(d) for d in await self._scan("knowledge", agent_id))
            if e.user_id is None or e.user_id == user_id
        ]
        entries.sort(key=lambda e: e.updated_at, reverse=True)
        return entries[:limit]

    async def upsert_knowledge(self, entry: KnowledgeEntry) -> KnowledgeEntry:
        """Insert an entry, replacing one with the same agent/user/category/key."""
        async with self._write_lock:
            for data in await self._scan("knowledge", entry.agent_id):
                existing = KnowledgeEntry.model_validate(data)
                if (existing.user_id, existing.category, existing.key) == (
                    entry.user_id,
                    entry.category,
                    entry.key,
                ):
                    entry = entry.model_copy(update={"id": existing.id})
                    break
            return await self._save("knowledge", entry.id, entry, entry.agent_id)

    # Agents, souls, settings, insights

    async def get_agent(self, agent_id: str) -> Agent | None:
        return await self._load("agents", agent_id, Agent)

    async def save_agent(self, agent: Agent) -> Agent:
        return await self._save("agents", agent.id, agent, agent.gateway_id)

    async def get_soul(self, gateway_id: str) -> Soul | None:
        return await self._load("souls", gateway_id, Soul)

    async def save_soul(self, soul: Soul) -> Soul:
        return await self._save("souls", soul.gateway_id, soul, soul.gateway_id)

    async def get_setting(self, gateway_id: str, key: str) -> str | None:
        data = await self._get("settings", f"{gateway_id}:{key}")
        return data["value"] if data else None

    async def set_setting(self, gateway_id: str, key: str, value: str) -> None:
        await self._put("settings", f"{gateway_id}:{key}", {"value": value}, gateway_id)

    async def list_insights(self, agent_id: str, limit: int = 20) -> list[SoulInsight]:
        insights = [SoulInsight.model_validate(d) for d in await self._scan("insights", agent_id)]
        insights.sort(key=lambda i: i.created_at, reverse=True)
        return insights[:limit]

    async def add_insight(self, insight: SoulInsight) -> SoulInsight:
        return await self._save("insights", insight.id, insight, insight.agent_id)

    # Usage and cache

    async def record_usage(self, record: UsageRecord) -> UsageRecord:
        return await self._save("usage", record.id, record, record.gateway_id)

    async def list_usage(self, gateway_id: str, since_date: str) -> list[UsageRecord]:
        """Usage records of a gateway dated on or after ``since_date`` (YYYY-MM-DD)."""
        return [
            r
            for r in (UsageRecord.model_validate(d) for d in await self._scan("usage", gateway_id))
            if r.date >= since_date
        ]

    async def get_cache(self, key: str) -> CacheEntry | None:
        return await self._load("cache", key, CacheEntry)

    async def put_cache(self, entry: CacheEntry) -> None:
        await self._save("cache", entry.key, entry, None)

    # Files and projects

    async def list_files(self, conversation_ids: list[str]) -> list[FileArtifact]:
        artifacts: list[FileArtifact] = []
        for conversation_id in conversation_ids:
            artifacts.extend(
                FileArtifact.model_validate(d) for d in await self._scan("files", conversation_id)
            )
        return artifacts

    async def save_file(self, artifact: FileArtifact) -> FileArtifact:
        return await self._save("files", artifact.id, artifact, artifact.conversation_id)

    async def get_project(self, project_id: str) -> Project | None:
        return await self._load("projects", project_id, Project)

    async def save_project(self, project: Project) -> Project:
        return await self._save("projects", project.id, project, None)
