"""Tests for context assembly."""

import pytest

from parley.config.schema import ContextConfig
from parley.context.assembler import ContextAssembler, escalation_params, trim_messages
from parley.context.prompts import DEFAULT_SYSTEM_PROMPT, ESCALATION_HINT
from parley.errors import NotFoundError
from parley.llm.client import Message
from parley.store.memory import InMemoryStore
from parley.store.schema import (
    Agent,
    Conversation,
    FileArtifact,
    KnowledgeEntry,
    MessageRecord,
    Project,
    Session,
    Soul,
)


async def _setup(store, messages: int = 0, **convo_fields) -> tuple[Session, Conversation]:
    await store.save_agent(Agent(id="a1", name="Helper", system_prompt="You are Helper."))
    session = await store.create_session(Session(agent_id="a1", external_user_id="u1"))
    convo = await store.create_conversation(Conversation(session_id=session.id, **convo_fields))
    for i in range(messages):
        await store.create_message(
            MessageRecord(
                session_id=session.id,
                role="user" if i % 2 == 0 else "assistant",
                content=f"message {i}",
                conversation_id=convo.id,
            )
        )
    return session, convo


class BrokenInsightsStore(InMemoryStore):
    async def list_insights(self, agent_id, limit=20):
        raise RuntimeError("insights table missing")


def test_escalation_params_clamped():
    """Levels outside 0..3 use the nearest defined level."""
    assert escalation_params(-1) == escalation_params(0)
    assert escalation_params(9) == escalation_params(3)
    assert escalation_params(0).message_limit == 10
    assert escalation_params(1).broad_knowledge is True
    assert escalation_params(2).search_past is True
    assert escalation_params(3).hint is True


def test_trim_messages_keeps_at_least_two():
    """Oldest messages go first, but two always remain."""
    messages = [Message(role="user", content="x" * 400) for _ in range(5)]

    kept, total = trim_messages("system", messages, budget=10)

    assert len(kept) == 2
    assert kept == messages[-2:]
    assert total == 2 + 200


def test_trim_messages_under_budget_untouched():
    messages = [Message(role="user", content="hello")]

    kept, total = trim_messages("system", messages, budget=1000)

    assert kept == messages
    assert total == 2 + 2


@pytest.mark.asyncio
async def test_assemble_unknown_agent(store):
    """A missing agent is an error, not an empty prompt."""
    with pytest.raises(NotFoundError):
        await ContextAssembler(store).assemble("s1", "missing", "hi")


@pytest.mark.asyncio
async def test_assemble_without_soul_uses_onboarding(store):
    """Without a persona the default prompt plus onboarding is used."""
    session, _ = await _setup(store)
    await store.set_setting("default", "owner_name", "Alex")

    context = await ContextAssembler(store).assemble(session.id, "a1", "hello")

    assert context.system_prompt.startswith(DEFAULT_SYSTEM_PROMPT)
    assert "FIRST CONVERSATION" in context.system_prompt
    assert "(their name is Alex)" in context.system_prompt
    assert "You are Helper." not in context.system_prompt


@pytest.mark.asyncio
async def test_assemble_with_soul_uses_agent_prompt(store):
    """With a persona the agent prompt and identity section are used."""
    session, _ = await _setup(store)
    await store.save_soul(Soul(gateway_id="default", name="Nova", personality="curious"))
    await store.set_setting("default", "workspace_identity", "Acme support")

    context = await ContextAssembler(store).assemble(session.id, "a1", "hello")

    assert context.system_prompt.startswith("You are Helper.")
    assert "Your name is Nova." in context.system_prompt
    assert "## Workspace\nAcme support" in context.system_prompt
    assert "FIRST CONVERSATION" not in context.system_prompt


@pytest.mark.asyncio
async def test_assemble_appends_current_message(store):
    """The current user message ends the window even if not yet stored."""
    session, convo = await _setup(store, messages=2)

    context = await ContextAssembler(store).assemble(session.id, "a1", "new question")

    assert context.conversation_id == convo.id
    assert [m.content for m in context.messages] == ["message 0", "message 1", "new question"]
    assert context.messages[-1].role == "user"


@pytest.mark.asyncio
async def test_assemble_does_not_duplicate_stored_message(store):
    """A stored current message is not appended twice."""
    session, convo = await _setup(store, messages=1)

    context = await ContextAssembler(store).assemble(session.id, "a1", "message 0")

    assert [m.content for m in context.messages] == ["message 0"]


@pytest.mark.asyncio
async def test_escalation_level_widens_window_and_adds_hint(store):
    """Level 3 shows twenty messages and ends with the clarification hint."""
    session, convo = await _setup(store, messages=29, escalation_level=3)

    context = await ContextAssembler(store, ContextConfig(token_budget=100_000)).assemble(
        session.id, "a1", "message 28"
    )

    assert context.escalation_level == 3
    assert len(context.messages) == 20
    assert context.system_prompt.endswith(ESCALATION_HINT)


@pytest.mark.asyncio
async def test_level_zero_window_is_ten(store):
    session, _ = await _setup(store, messages=29)

    context = await ContextAssembler(store, ContextConfig(token_budget=100_000)).assemble(
        session.id, "a1", "message 28"
    )

    assert len(context.messages) == 10
    assert ESCALATION_HINT not in context.system_prompt


@pytest.mark.asyncio
async def test_session_overrides_message_limit(store):
    """Per-session overrides win over escalation defaults."""
    session, _ = await _setup(store, messages=29)
    await store.patch_session(session.id, message_limit=4)

    context = await ContextAssembler(store, ContextConfig(token_budget=100_000)).assemble(
        session.id, "a1", "message 28"
    )

    assert len(context.messages) == 4


@pytest.mark.asyncio
async def test_assemble_includes_knowledge_chain_files_and_project(store):
    """Optional blocks appear in order when data exists."""
    session, previous = await _setup(store, status="closed", title="Trip planning", summary="Kyoto.")
    project = await store.save_project(Project(name="Launch", context="## Project: Launch"))
    current = await store.create_conversation(
        Conversation(
            session_id=session.id,
            previous_convo_id=previous.id,
            depth=2,
            project_id=project.id,
        )
    )
    await store.save_file(FileArtifact(conversation_id=previous.id, file_id="f1", filename="map.png"))
    await store.upsert_knowledge(
        KnowledgeEntry(agent_id="a1", category="identity", key="name", value="Sam")
    )

    context = await ContextAssembler(store).assemble(
        session.id, "a1", "hello", conversation_id=current.id
    )
    prompt = context.system_prompt

    knowledge = prompt.index("## Known facts about this user:")
    chain = prompt.index("## Previous related conversations:")
    files = prompt.index("## Files in this conversation:")
    project_block = prompt.index("## Project: Launch")
    assert knowledge < chain < files < project_block
    assert "### Trip planning" in prompt


@pytest.mark.asyncio
async def test_failed_optional_block_is_skipped():
    """A failing optional block does not fail assembly."""
    store = BrokenInsightsStore()
    session, _ = await _setup(store)

    context = await ContextAssembler(store).assemble(session.id, "a1", "hello")

    assert "Evolved Understanding" not in context.system_prompt
    assert context.messages[-1].content == "hello"


@pytest.mark.asyncio
async def test_budget_trims_history(store):
    """A small budget drops old messages but keeps the last two."""
    session, _ = await _setup(store, messages=6)

    context = await ContextAssembler(store, ContextConfig(token_budget=256)).assemble(
        session.id, "a1", "message 5"
    )

    assert len(context.messages) == 2
    assert context.estimated_tokens > 256
