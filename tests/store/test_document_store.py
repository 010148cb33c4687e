"""Tests for the in-memory and SQLite document stores."""

from datetime import timedelta

import pytest

from parley.store import create_store
from parley.store.memory import InMemoryStore
from parley.store.schema import (
    ActiveRun,
    Agent,
    Conversation,
    KnowledgeEntry,
    MessageRecord,
    Session,
    UsageRecord,
    utcnow,
)
from parley.store.sqlite import SQLiteStore


@pytest.fixture(params=["memory", "sqlite"])
def doc_store(request, tmp_path):
    """Provide each store backend."""
    if request.param == "memory":
        return InMemoryStore()
    return SQLiteStore(tmp_path / "parley.db")


@pytest.mark.asyncio
async def test_messages_get_increasing_seq(doc_store):
    """Messages are numbered per session in write order."""
    session = await doc_store.create_session(Session(agent_id="a1"))
    first = await doc_store.create_message(
        MessageRecord(session_id=session.id, role="user", content="one")
    )
    second = await doc_store.create_message(
        MessageRecord(session_id=session.id, role="assistant", content="two")
    )
    other = await doc_store.create_message(MessageRecord(session_id="other", role="user", content="x"))

    assert (first.seq, second.seq) == (1, 2)
    assert other.seq == 1

    updated = await doc_store.get_session(session.id)
    assert updated.message_count == 2


@pytest.mark.asyncio
async def test_recent_messages_oldest_first(doc_store):
    """recent_messages returns the newest N in chronological order."""
    session = await doc_store.create_session(Session(agent_id="a1"))
    for i in range(5):
        await doc_store.create_message(
            MessageRecord(session_id=session.id, role="user", content=f"m{i}")
        )

    recent = await doc_store.recent_messages(session.id, 3)

    assert [m.content for m in recent] == ["m2", "m3", "m4"]
    assert await doc_store.recent_messages(session.id, 0) == []


@pytest.mark.asyncio
async def test_conversation_messages_and_seq_range(doc_store):
    """Messages can be read by conversation label or by seq range."""
    session = await doc_store.create_session(Session(agent_id="a1"))
    for i, convo in enumerate(["c1", "c1", "c2", "c2"]):
        await doc_store.create_message(
            MessageRecord(session_id=session.id, role="user", content=f"m{i}", conversation_id=convo)
        )

    labeled = await doc_store.conversation_messages(session.id, "c2", 10)
    ranged = await doc_store.messages_by_seq_range(session.id, 2, 3)

    assert [m.content for m in labeled] == ["m2", "m3"]
    assert [m.seq for m in ranged] == [2, 3]


@pytest.mark.asyncio
async def test_relabel_message(doc_store):
    """Relabeling moves a message to another conversation."""
    message = await doc_store.create_message(
        MessageRecord(session_id="s1", role="user", content="hi", conversation_id="old")
    )

    relabeled = await doc_store.relabel_message(message.id, "new")

    assert relabeled.conversation_id == "new"
    assert relabeled.seq == message.seq
    assert await doc_store.relabel_message("missing", "new") is None


@pytest.mark.asyncio
async def test_active_conversation_and_patch(doc_store):
    """Closing a conversation removes it from the active lookup."""
    convo = await doc_store.create_conversation(Conversation(session_id="s1"))
    assert (await doc_store.get_active_conversation("s1")).id == convo.id

    closed = await doc_store.patch_conversation(convo.id, status="closed", title="Done")

    assert closed.status == "closed"
    assert closed.title == "Done"
    assert await doc_store.get_active_conversation("s1") is None
    assert await doc_store.patch_conversation("missing", title="x") is None


@pytest.mark.asyncio
async def test_list_conversations_filters_and_orders(doc_store):
    """Conversations are listed per gateway, most recently active first."""
    now = utcnow()
    old = await doc_store.create_conversation(
        Conversation(session_id="s1", status="closed", last_message_at=now - timedelta(hours=2))
    )
    new = await doc_store.create_conversation(
        Conversation(session_id="s2", status="closed", last_message_at=now)
    )
    await doc_store.create_conversation(Conversation(session_id="s3"))
    await doc_store.create_conversation(
        Conversation(session_id="s4", gateway_id="other", status="closed")
    )

    closed = await doc_store.list_conversations("default", status="closed")

    assert [c.id for c in closed] == [new.id, old.id]


@pytest.mark.asyncio
async def test_delete_run_only_when_id_matches(doc_store):
    """A stale run id does not delete a newer run."""
    first = await doc_store.save_run(ActiveRun(session_id="s1"))
    second = await doc_store.save_run(ActiveRun(session_id="s1"))

    await doc_store.delete_run("s1", first.id)
    assert (await doc_store.get_run("s1")).id == second.id

    await doc_store.delete_run("s1", second.id)
    assert await doc_store.get_run("s1") is None


@pytest.mark.asyncio
async def test_knowledge_shared_and_user_scoped(doc_store):
    """Users see shared entries plus their own; upserts replace by key."""
    await doc_store.upsert_knowledge(
        KnowledgeEntry(agent_id="a1", category="identity", key="name", value="Sam")
    )
    await doc_store.upsert_knowledge(
        KnowledgeEntry(agent_id="a1", user_id="u1", category="prefs", key="food", value="sushi")
    )
    await doc_store.upsert_knowledge(
        KnowledgeEntry(agent_id="a1", user_id="u2", category="prefs", key="food", value="pizza")
    )
    await doc_store.upsert_knowledge(
        KnowledgeEntry(agent_id="a1", user_id="u1", category="prefs", key="food", value="ramen")
    )

    entries = await doc_store.list_knowledge("a1", "u1")

    values = sorted(e.value for e in entries)
    assert values == ["Sam", "ramen"]


@pytest.mark.asyncio
async def test_settings_agents_and_usage(doc_store):
    """Settings, agents and usage records round through the store."""
    await doc_store.set_setting("gw", "owner_name", "Alex")
    await doc_store.save_agent(Agent(id="a1", name="Helper"))
    await doc_store.record_usage(
        UsageRecord(
            gateway_id="gw",
            session_id="s1",
            agent_id="a1",
            model="m",
            input_tokens=1,
            output_tokens=1,
            cost=0.5,
            date="2026-03-02",
        )
    )
    await doc_store.record_usage(
        UsageRecord(
            gateway_id="gw",
            session_id="s1",
            agent_id="a1",
            model="m",
            input_tokens=1,
            output_tokens=1,
            cost=0.5,
            date="2026-02-27",
        )
    )

    assert await doc_store.get_setting("gw", "owner_name") == "Alex"
    assert await doc_store.get_setting("gw", "missing") is None
    assert (await doc_store.get_agent("a1")).name == "Helper"
    assert len(await doc_store.list_usage("gw", "2026-03-01")) == 1


def test_sqlite_persists_across_instances(tmp_path):
    """SQLite data survives reopening the database."""
    import asyncio

    path = tmp_path / "nested" / "parley.db"

    async def write_then_read():
        await SQLiteStore(path).save_agent(Agent(id="a1", name="Helper"))
        return await SQLiteStore(path).get_agent("a1")

    agent = asyncio.run(write_then_read())

    assert agent is not None
    assert agent.name == "Helper"


def test_create_store_backends(tmp_path):
    """create_store builds the configured backend."""
    assert isinstance(create_store("memory"), InMemoryStore)
    assert isinstance(create_store("sqlite", str(tmp_path / "p.db")), SQLiteStore)
    with pytest.raises(ValueError):
        create_store("redis")


@pytest.mark.asyncio
async def test_sqlite_queries_run_off_the_event_loop(tmp_path):
    """Database work happens in a worker thread, not on the loop thread."""
    import threading

    store = SQLiteStore(tmp_path / "parley.db")
    loop_thread = threading.get_ident()
    query_threads = []
    original = store._get_sync

    def recording_get(kind, doc_id):
        query_threads.append(threading.get_ident())
        return original(kind, doc_id)

    store._get_sync = recording_get
    await store.save_agent(Agent(id="a1", name="Helper"))
    agent = await store.get_agent("a1")

    assert agent.name == "Helper"
    assert query_threads
    assert loop_thread not in query_threads
