"""Tests for conversation chains."""

import pytest

from parley.segmentation.chain import build_chain_context, format_chain, get_chain
from parley.store.schema import Conversation, Decision


async def _chain(store, length: int) -> list[Conversation]:
    convos: list[Conversation] = []
    previous = None
    for i in range(length):
        convo = await store.create_conversation(
            Conversation(
                session_id="s1",
                title=f"Part {i}",
                summary=f"Summary {i}",
                previous_convo_id=previous,
                depth=i + 1,
            )
        )
        convos.append(convo)
        previous = convo.id
    return convos


@pytest.mark.asyncio
async def test_get_chain_nearest_first(store):
    """The chain starts at the given conversation and walks back."""
    convos = await _chain(store, 3)

    chain = await get_chain(store, convos[-1].id)

    assert [c.id for c in chain] == [convos[2].id, convos[1].id, convos[0].id]


@pytest.mark.asyncio
async def test_get_chain_respects_max_depth(store):
    convos = await _chain(store, 8)

    chain = await get_chain(store, convos[-1].id, max_depth=5)

    assert len(chain) == 5


@pytest.mark.asyncio
async def test_get_chain_stops_on_cycle(store):
    """A corrupted back-link loop terminates."""
    a = await store.create_conversation(Conversation(session_id="s1"))
    b = await store.create_conversation(Conversation(session_id="s1", previous_convo_id=a.id))
    await store.patch_conversation(a.id, previous_convo_id=b.id)

    chain = await get_chain(store, b.id)

    assert [c.id for c in chain] == [b.id, a.id]


@pytest.mark.asyncio
async def test_get_chain_missing_conversation(store):
    assert await get_chain(store, "missing") == []


def test_format_chain_skips_current_and_untitled():
    """Only ancestors with a title or summary are rendered."""
    chain = [
        Conversation(session_id="s1", title="Current"),
        Conversation(session_id="s1"),
        Conversation(
            session_id="s1",
            title="Trip",
            summary="Planned Kyoto.",
            decisions=[Decision(what="Book ryokan", reasoning="closer to temples")],
            topics=["travel", "japan"],
        ),
    ]

    text = format_chain(chain)

    assert text.startswith("\n\n## Previous related conversations:\n")
    assert "Current" not in text
    assert "### Trip\nPlanned Kyoto.\n" in text
    assert "- Book ryokan (closer to temples)" in text
    assert "Topics: travel, japan" in text
    assert format_chain(chain[:1]) == ""


@pytest.mark.asyncio
async def test_build_chain_context(store):
    convos = await _chain(store, 2)

    text = await build_chain_context(store, convos[-1].id)

    assert "### Part 0" in text
    assert "Part 1" not in text
