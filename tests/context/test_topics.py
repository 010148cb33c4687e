"""Tests for related past conversation lookup."""

import pytest

from parley.context.topics import build_topic_context, find_related
from parley.store.schema import Conversation, Decision


async def _closed(store, **fields) -> Conversation:
    return await store.create_conversation(Conversation(session_id="s1", status="closed", **fields))


@pytest.mark.asyncio
async def test_find_related_scores_word_hits(store):
    """Conversations mentioning more query words rank higher."""
    trip = await _closed(store, title="Japan trip", summary="Planned a trip to Kyoto in April.")
    food = await _closed(store, title="Dinner", topics=["kyoto", "ramen"], summary="Ramen spots.")
    await _closed(store, title="Taxes", summary="Filed taxes.")
    await store.create_conversation(Conversation(session_id="s1", summary="kyoto trip draft"))

    related = await find_related(store, "default", "more ideas for the kyoto trip")

    assert [c.id for c in related] == [trip.id, food.id]


@pytest.mark.asyncio
async def test_find_related_ignores_short_words_and_excluded(store):
    """Words of three characters or less never match; excluded ids are skipped."""
    convo = await _closed(store, title="Car", summary="Bought a car")

    assert await find_related(store, "default", "car") == []
    assert await find_related(store, "default", "bought", exclude={convo.id}) == []


@pytest.mark.asyncio
async def test_build_topic_context_formats_entries(store):
    """The block lists titles, summaries, decisions and topics."""
    await _closed(
        store,
        title="Budget review",
        summary="Went through the quarterly budget.",
        topics=["budget"],
        decisions=[Decision(what="Cut travel spend")],
    )

    text = await build_topic_context(store, "default", "budget numbers again")

    assert text.startswith("\n\n## Related past conversations:\n")
    assert "**Budget review**" in text
    assert "Decisions: Cut travel spend" in text
    assert "Topics: budget" in text


@pytest.mark.asyncio
async def test_build_topic_context_respects_budget(store):
    """Nothing is emitted when no entry fits the budget."""
    await _closed(store, title="Budget review", summary="x" * 400)

    assert await build_topic_context(store, "default", "budget", token_budget=20) == ""
    assert await build_topic_context(store, "default", "   ") == ""
