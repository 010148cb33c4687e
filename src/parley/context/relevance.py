"""Knowledge relevance scoring.

Entries are scored against the current user message by keyword overlap, or
by embedding similarity when a :class:`SemanticSearch` is supplied. Entries
in the ``identity`` category are always included.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from parley.embeddings.client import EmbeddingClient
from parley.store.schema import KnowledgeEntry

logger = logging.getLogger(__name__)

IDENTITY_CATEGORY = "identity"
BASELINE_SCORE = 0.1
DEFAULT_THRESHOLD = 0.05
DEFAULT_TOP_K = 15


@dataclass
class SearchCandidate:
    """A knowledge entry as seen by semantic search."""

    id: str
    text: str
    embedding: list[float] | None = None


@dataclass
class ScoredEntry:
    """A knowledge entry with its relevance score."""

    entry: KnowledgeEntry
    score: float


class SemanticSearch(Protocol):
    """Pluggable semantic similarity search over knowledge entries."""

    async def search(self, query: str, candidates: list[SearchCandidate]) -> list[tuple[str, float]]:
        """Return ``(candidate id, score)`` pairs for the best matches."""
        ...


def _words(text: str) -> list[str]:
    return [w for w in text.lower().split() if len(w) > 2]


def keyword_score(entry: KnowledgeEntry, query: str) -> float:
    """Score an entry by keyword overlap with the query.

    Args:
        entry: Knowledge entry
        query: Current user message

    Returns:
        Relevance in [0, 1]
    """
    if entry.category == IDENTITY_CATEGORY:
        return 1.0

    query_words = set(_words(query))
    if not query_words:
        return BASELINE_SCORE

    entry_words = _words(f"{entry.key} {entry.value}")
    if not entry_words:
        return BASELINE_SCORE

    matches = sum(1 for w in entry_words if w in query_words)
    return min(1.0, matches / max(3, len(query_words)))


def _cosine(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    norms[norms == 0] = 1.0
    return matrix @ query / norms


class EmbeddingSearch:
    """Cosine-similarity search using an embedding client.

    Candidates that carry a stored embedding are compared directly; the
    rest are embedded on the fly in one batch.
    """

    def __init__(self, client: EmbeddingClient, top_k: int = DEFAULT_TOP_K):
        self.client = client
        self.top_k = top_k

    async def search(self, query: str, candidates: list[SearchCandidate]) -> list[tuple[str, float]]:
        if not candidates:
            return []

        query_vector = np.asarray(await self.client.embed_single(query), dtype=float)

        missing = [c for c in candidates if not c.embedding]
        if missing:
            vectors = await self.client.embed([c.text for c in missing])
            for candidate, vector in zip(missing, vectors, strict=True):
                candidate.embedding = vector

        matrix = np.asarray([c.embedding for c in candidates], dtype=float)
        scores = _cosine(query_vector, matrix)
        order = np.argsort(-scores)[: self.top_k]
        return [(candidates[i].id, float(scores[i])) for i in order]


async def select_knowledge(
    entries: list[KnowledgeEntry],
    query: str,
    search: SemanticSearch | None = None,
    threshold: float = DEFAULT_THRESHOLD,
) -> list[ScoredEntry]:
    """Select the knowledge entries relevant to a message.

    Identity entries always pass with score 1.0. Other entries are scored by
    semantic search when available (falling back to keyword scoring for any
    entry it did not score, and entirely when it fails), sorted by score and
    filtered at ``threshold``.

    Args:
        entries: Candidate knowledge entries
        query: Current user message
        search: Optional semantic search
        threshold: Minimum score for non-identity entries

    Returns:
        Identity entries followed by the passing entries, best first
    """
    identity = [ScoredEntry(e, 1.0) for e in entries if e.category == IDENTITY_CATEGORY]
    others = [e for e in entries if e.category != IDENTITY_CATEGORY]

    semantic: dict[str, float] = {}
    if search is not None and others:
        try:
            results = await search.search(
                query,
                [SearchCandidate(id=e.id, text=f"{e.key} {e.value}", embedding=e.embedding) for e in others],
            )
            semantic = dict(results)
        except Exception as e:
            logger.warning("Semantic knowledge search failed, using keyword scoring: %s", e)

    scored = [
        ScoredEntry(e, semantic[e.id] if e.id in semantic else keyword_score(e, query)) for e in others
    ]
    scored.sort(key=lambda s: s.score, reverse=True)
    return identity + [s for s in scored if s.score >= threshold]


def format_knowledge(selected: list[ScoredEntry]) -> str:
    """Render selected knowledge grouped by category.

    Returns:
        The knowledge section, or ``""`` when nothing was selected
    """
    grouped: dict[str, list[str]] = {}
    for item in selected:
        grouped.setdefault(item.entry.category, []).append(f"- {item.entry.key}: {item.entry.value}")

    if not grouped:
        return ""

    section = "\n\n## Known facts about this user:\n"
    for category, lines in grouped.items():
        section += f"### {category}\n" + "\n".join(lines) + "\n"
    return section
