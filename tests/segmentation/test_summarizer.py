"""Tests for conversation summarization."""

import json

import pytest

from parley.segmentation.summarizer import ConversationSummarizer, parse_summary
from parley.store.schema import Conversation, MessageRecord, Session


class FakeModel:
    def __init__(self, reply: str):
        self.reply = reply
        self.calls = 0

    async def generate(self, prompt, system_prompt="", max_tokens=500):
        self.calls += 1
        return self.reply


async def _closed_conversation(store, contents: list[str], **fields) -> Conversation:
    session = await store.create_session(Session(agent_id="a1"))
    convo = await store.create_conversation(Conversation(session_id=session.id, user_id="u1"))
    seqs = []
    for i, content in enumerate(contents):
        message = await store.create_message(
            MessageRecord(
                session_id=session.id,
                role="user" if i % 2 == 0 else "assistant",
                content=content,
                conversation_id=convo.id,
            )
        )
        seqs.append(message.seq)
    return await store.patch_conversation(
        convo.id,
        status="closed",
        start_seq=seqs[0] if seqs else None,
        end_seq=seqs[-1] if seqs else None,
        **fields,
    )


def test_parse_summary_with_prose():
    assert parse_summary('Here you go: {"title": "T"} thanks') == {"title": "T"}
    with pytest.raises(ValueError):
        parse_summary("nothing here")


@pytest.mark.asyncio
async def test_summarize_skips_active_and_summarized(store):
    model = FakeModel("{}")
    summarizer = ConversationSummarizer(store, model)
    active = await store.create_conversation(Conversation(session_id="s1"))
    done = await _closed_conversation(store, ["a", "b"], summary="Already done")

    assert await summarizer.summarize(active.id) is None
    assert await summarizer.summarize(done.id) is None
    assert await summarizer.summarize("missing") is None
    assert model.calls == 0


@pytest.mark.asyncio
async def test_summarize_brief_exchange_without_model(store):
    """A single message is summarized without calling the model."""
    model = FakeModel("{}")
    convo = await _closed_conversation(store, ["What's the weather like in Lisbon this weekend?"])

    updated = await ConversationSummarizer(store, model).summarize(convo.id)

    assert updated.title == "What's the weather like in Lisbon this weekend?"[:50]
    assert updated.summary == "Short conversation."
    assert model.calls == 0


@pytest.mark.asyncio
async def test_summarize_stores_fields_and_facts(store):
    """Title, summary, capped topics, decisions and user facts are stored."""
    reply = json.dumps(
        {
            "title": "Kitchen remodel",
            "summary": "User planned a kitchen remodel. We picked oak cabinets.",
            "topics": [f"topic{i}" for i in range(12)],
            "decisions": [{"what": "Oak cabinets", "reasoning": "durable"}, {"bad": True}],
            "userFacts": ["owns a house", "has two cats", " "],
        }
    )
    convo = await _closed_conversation(store, ["remodel?", "sure", "oak?", "yes"])

    updated = await ConversationSummarizer(store, FakeModel(reply)).summarize(convo.id)

    assert updated.title == "Kitchen remodel"
    assert len(updated.topics) == 10
    assert len(updated.tags) == 7
    assert [d.what for d in updated.decisions] == ["Oak cabinets"]

    facts = await store.list_knowledge("a1", "u1")
    assert sorted(f.value for f in facts) == ["has two cats", "owns a house"]
    assert all(f.category == "learned" and f.source == "conversation" for f in facts)
