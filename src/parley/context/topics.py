"""Related past conversations for the topic context block."""

import logging

from parley.context.tokens import estimate_tokens
from parley.store.base import DocumentStore
from parley.store.schema import Conversation

logger = logging.getLogger(__name__)

DEFAULT_TOPIC_BUDGET = 800
SEARCH_WINDOW = 100


async def find_related(
    store: DocumentStore,
    gateway_id: str,
    query: str,
    limit: int = 5,
    exclude: set[str] | None = None,
) -> list[Conversation]:
    """Find closed conversations whose summary, title, topics or tags mention the query.

    Query words shorter than four characters are ignored. Each conversation
    scores one point per query word found as a substring of its text.

    Args:
        store: Document store
        gateway_id: Gateway to search
        query: Current user message
        limit: Maximum results
        exclude: Conversation ids to skip (e.g. the current chain)

    Returns:
        Matching conversations, best first
    """
    words = [w for w in query.lower().split() if len(w) > 3]
    if not words:
        return []

    closed = await store.list_conversations(gateway_id, status="closed", limit=SEARCH_WINDOW)
    scored: list[tuple[int, Conversation]] = []
    for convo in closed:
        if exclude and convo.id in exclude:
            continue
        text = " ".join(
            part for part in [convo.summary, convo.title, *convo.topics, *convo.tags] if part
        ).lower()
        score = sum(1 for w in words if w in text)
        if score > 0:
            scored.append((score, convo))

    scored.sort(key=lambda item: item[0], reverse=True)
    return [convo for _, convo in scored[:limit]]


def format_related(convo: Conversation) -> str:
    entry = ""
    if convo.title:
        entry += f"**{convo.title}**\n"
    if convo.summary:
        entry += f"{convo.summary}\n"
    if convo.decisions:
        entry += "Decisions: " + "; ".join(d.what for d in convo.decisions) + "\n"
    if convo.topics:
        entry += f"Topics: {', '.join(convo.topics)}\n"
    return entry + "\n"


async def build_topic_context(
    store: DocumentStore,
    gateway_id: str,
    query: str,
    token_budget: int = DEFAULT_TOPIC_BUDGET,
    exclude: set[str] | None = None,
) -> str:
    """Format related past conversations within a soft token budget.

    Entries are added best first until the next one would exceed the budget.

    Returns:
        The related conversations block, or ``""`` when nothing fits
    """
    if not query.strip():
        return ""

    related = await find_related(store, gateway_id, query, exclude=exclude)
    header = "\n\n## Related past conversations:\n"
    tokens = estimate_tokens(header)
    entries = []
    for convo in related:
        entry = format_related(convo)
        entry_tokens = estimate_tokens(entry)
        if tokens + entry_tokens > token_budget:
            break
        entries.append(entry)
        tokens += entry_tokens

    if not entries:
        return ""
    logger.debug("Topic context: %d conversations, ~%d tokens", len(entries), tokens)
    return header + "".join(entries)
