"""Conversation chains formed by ``previous_convo_id`` back-links."""

from parley.store.base import DocumentStore
from parley.store.schema import Conversation

DEFAULT_CHAIN_DEPTH = 5


async def get_chain(
    store: DocumentStore, conversation_id: str, max_depth: int = DEFAULT_CHAIN_DEPTH
) -> list[Conversation]:
    """Walk back-links from a conversation.

    Args:
        store: Document store
        conversation_id: Conversation to start from (first element)
        max_depth: Maximum number of conversations returned

    Returns:
        The conversation followed by its ancestors, nearest first
    """
    chain: list[Conversation] = []
    seen: set[str] = set()
    current_id: str | None = conversation_id

    while current_id and len(chain) < max_depth and current_id not in seen:
        convo = await store.get_conversation(current_id)
        if convo is None:
            break
        chain.append(convo)
        seen.add(convo.id)
        current_id = convo.previous_convo_id

    return chain


def format_chain(chain: list[Conversation]) -> str:
    """Render the ancestors of a chain (everything after the first element).

    Ancestors without a title or summary are skipped.
    """
    previous = [c for c in chain[1:] if c.summary or c.title]
    if not previous:
        return ""

    context = "\n\n## Previous related conversations:\n"
    for convo in previous:
        context += f"\n### {convo.title or 'Untitled conversation'}\n"
        if convo.summary:
            context += f"{convo.summary}\n"
        if convo.decisions:
            context += "Decisions made:\n"
            for decision in convo.decisions:
                reasoning = f" ({decision.reasoning})" if decision.reasoning else ""
                context += f"- {decision.what}{reasoning}\n"
        if convo.topics:
            context += f"Topics: {', '.join(convo.topics)}\n"
    return context


async def build_chain_context(
    store: DocumentStore, conversation_id: str, max_depth: int = DEFAULT_CHAIN_DEPTH
) -> str:
    """Summaries of the conversations that led to this one."""
    return format_chain(await get_chain(store, conversation_id, max_depth))
