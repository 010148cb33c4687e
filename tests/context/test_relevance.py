"""Tests for knowledge relevance scoring."""

import pytest

from parley.context.relevance import (
    BASELINE_SCORE,
    EmbeddingSearch,
    SearchCandidate,
    ScoredEntry,
    format_knowledge,
    keyword_score,
    select_knowledge,
)
from parley.store.schema import KnowledgeEntry


def _entry(category: str, key: str, value: str, entry_id: str | None = None) -> KnowledgeEntry:
    entry = KnowledgeEntry(agent_id="a1", category=category, key=key, value=value)
    if entry_id:
        entry.id = entry_id
    return entry


class FakeEmbeddings:
    """Embedding client with canned vectors."""

    def __init__(self, query_vector, batch):
        self.query_vector = query_vector
        self.batch = batch
        self.embedded: list[str] = []

    async def embed(self, texts):
        self.embedded.extend(texts)
        return self.batch[: len(texts)]

    async def embed_single(self, text):
        return self.query_vector


class FailingSearch:
    async def search(self, query, candidates):
        raise RuntimeError("embedding server down")


class PartialSearch:
    """Scores only the listed ids."""

    def __init__(self, scores):
        self.scores = scores

    async def search(self, query, candidates):
        return [(c.id, self.scores[c.id]) for c in candidates if c.id in self.scores]


def test_keyword_score_identity_is_max():
    """Identity entries always score 1.0."""
    assert keyword_score(_entry("identity", "name", "Sam"), "anything") == 1.0


def test_keyword_score_overlap():
    """Score is matches divided by at least three query words."""
    entry = _entry("preferences", "favorite food", "sushi rolls")

    score = keyword_score(entry, "where can I get good sushi tonight")

    # query words longer than two chars: where, can, get, good, sushi, tonight
    assert score == pytest.approx(1 / 6)


def test_keyword_score_short_query_uses_floor_of_three():
    """Short queries still divide by three."""
    entry = _entry("preferences", "sushi", "likes sushi")

    assert keyword_score(entry, "sushi") == pytest.approx(2 / 3)


def test_keyword_score_empty_query_is_baseline():
    """Messages without usable words get the baseline score."""
    assert keyword_score(_entry("prefs", "food", "sushi"), "ok") == BASELINE_SCORE


@pytest.mark.asyncio
async def test_select_knowledge_identity_first_and_threshold():
    """Identity entries lead; unrelated entries fall below the threshold."""
    entries = [
        _entry("work", "employer", "Acme corp"),
        _entry("identity", "name", "Sam"),
        _entry("preferences", "favorite food", "sushi"),
    ]

    selected = await select_knowledge(entries, "recommend sushi places please")

    assert [s.entry.key for s in selected] == ["name", "favorite food"]
    assert selected[0].score == 1.0


@pytest.mark.asyncio
async def test_select_knowledge_falls_back_when_search_fails():
    """A failing semantic search degrades to keyword scoring."""
    entries = [_entry("preferences", "favorite food", "sushi")]

    selected = await select_knowledge(entries, "sushi tonight?", search=FailingSearch())

    assert len(selected) == 1
    assert selected[0].score > 0


@pytest.mark.asyncio
async def test_select_knowledge_mixes_semantic_and_keyword_scores():
    """Entries the search did not score keep their keyword score."""
    entries = [
        _entry("hobbies", "sport", "climbing", entry_id="e1"),
        _entry("preferences", "favorite food", "sushi", entry_id="e2"),
    ]

    selected = await select_knowledge(
        entries, "any sushi spots", search=PartialSearch({"e1": 0.9}), threshold=0.05
    )

    assert [s.entry.id for s in selected] == ["e1", "e2"]
    assert selected[0].score == 0.9


@pytest.mark.asyncio
async def test_embedding_search_ranks_by_cosine_and_embeds_missing():
    """Stored embeddings are reused; missing ones are embedded in one batch."""
    client = FakeEmbeddings(query_vector=[1.0, 0.0], batch=[[0.6, 0.8]])
    search = EmbeddingSearch(client, top_k=2)
    candidates = [
        SearchCandidate(id="orthogonal", text="a", embedding=[0.0, 1.0]),
        SearchCandidate(id="same", text="b", embedding=[2.0, 0.0]),
        SearchCandidate(id="fresh", text="c"),
    ]

    results = await search.search("query", candidates)

    assert [r[0] for r in results] == ["same", "fresh"]
    assert results[0][1] == pytest.approx(1.0)
    assert results[1][1] == pytest.approx(0.6)
    assert client.embedded == ["c"]


@pytest.mark.asyncio
async def test_embedding_search_no_candidates():
    """No candidates means no embedding calls."""
    client = FakeEmbeddings(query_vector=[1.0], batch=[])

    assert await EmbeddingSearch(client).search("q", []) == []


def test_format_knowledge_groups_by_category():
    """Entries render under their category heading."""
    selected = [
        ScoredEntry(_entry("identity", "name", "Sam"), 1.0),
        ScoredEntry(_entry("preferences", "food", "sushi"), 0.5),
        ScoredEntry(_entry("preferences", "drink", "tea"), 0.4),
    ]

    text = format_knowledge(selected)

    assert text.startswith("\n\n## Known facts about this user:\n")
    assert "### identity\n- name: Sam\n" in text
    assert "### preferences\n- food: sushi\n- drink: tea\n" in text
    assert format_knowledge([]) == ""
