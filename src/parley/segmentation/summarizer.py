"""Summarization of closed conversation segments."""

import json
import logging
import re
from typing import Any

from parley.llm.client import TextModel
from parley.store.base import DocumentStore
from parley.store.schema import Conversation, Decision, KnowledgeEntry, MessageRecord

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = """Analyze this conversation and provide a JSON response with:
- "title": A short, natural title (under 60 chars) - like how you'd describe this chat to a friend
- "summary": A 2-3 sentence summary focused on: what the user wanted, what was discussed, and what the outcome was. Write it as if you're reminding yourself what happened - e.g. "User asked about X. We worked through Y and decided Z." NOT a formal abstract.
- "topics": Array of topic keywords (3-7 items)
- "decisions": Array of decisions made, each with "what" (the decision) and optional "reasoning"
- "userFacts": Array of facts learned about the user during this conversation (e.g. "prefers dark mode", "works on a Python project", "lives in Austin"). Only include things explicitly stated or clearly implied. Empty array if nothing new learned.

Respond ONLY with valid JSON, no markdown."""

MAX_TOKENS = 500
MAX_TOPICS = 10
MAX_TAGS = 7
MAX_FACTS = 5
FALLBACK_MESSAGE_LIMIT = 200

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


def parse_summary(text: str) -> dict[str, Any]:
    """Parse the model's JSON summary, tolerating surrounding prose.

    Raises:
        ValueError: If no JSON object can be parsed
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise ValueError("No JSON object in summary response") from None
        return json.loads(match.group(0))


def _decisions(raw: Any) -> list[Decision]:
    if not isinstance(raw, list):
        return []
    decisions = []
    for item in raw:
        if isinstance(item, dict) and isinstance(item.get("what"), str):
            reasoning = item.get("reasoning")
            decisions.append(
                Decision(what=item["what"], reasoning=reasoning if isinstance(reasoning, str) else None)
            )
    return decisions


class ConversationSummarizer:
    """Fills in title, summary, topics and decisions of a closed conversation.

    Facts about the user found in the conversation are stored as ``learned``
    knowledge entries for the session's agent.
    """

    def __init__(self, store: DocumentStore, model: TextModel):
        self.store = store
        self.model = model

    async def _messages(self, convo: Conversation) -> list[MessageRecord]:
        # Seq range is stable even for messages that were never labeled
        if convo.start_seq is not None and convo.end_seq is not None and convo.end_seq >= convo.start_seq:
            records = await self.store.messages_by_seq_range(
                convo.session_id, convo.start_seq, convo.end_seq
            )
        else:
            records = await self.store.conversation_messages(
                convo.session_id, convo.id, FALLBACK_MESSAGE_LIMIT
            )
        return [m for m in records if m.role in ("user", "assistant")]

    async def summarize(self, conversation_id: str) -> Conversation | None:
        """Summarize a closed conversation.

        Conversations that are still active or already summarized are left
        untouched.

        Args:
            conversation_id: Conversation to summarize

        Returns:
            The updated conversation, or None if nothing was done
        """
        convo = await self.store.get_conversation(conversation_id)
        if convo is None or convo.status != "closed" or convo.summary:
            return None

        messages = await self._messages(convo)
        if len(messages) < 2:
            title = messages[0].content[:50] if messages and messages[0].content else "Brief exchange"
            return await self.store.patch_conversation(
                conversation_id, title=title, summary="Short conversation.", topics=[]
            )

        transcript = "\n\n".join(f"{m.role}: {m.content}" for m in messages)
        text = await self.model.generate(f"{SUMMARY_PROMPT}\n\n---\n\n{transcript}", max_tokens=MAX_TOKENS)
        parsed = parse_summary(text)

        fields: dict[str, Any] = {}
        if parsed.get("title"):
            fields["title"] = str(parsed["title"])
        if parsed.get("summary"):
            fields["summary"] = str(parsed["summary"])
        if isinstance(parsed.get("topics"), list):
            topics = [t.strip() for t in parsed["topics"] if isinstance(t, str) and t.strip()]
            fields["topics"] = topics[:MAX_TOPICS]
            fields["tags"] = topics[:MAX_TAGS]
        decisions = _decisions(parsed.get("decisions"))
        if decisions:
            fields["decisions"] = decisions

        updated = await self.store.patch_conversation(conversation_id, **fields)
        await self._store_facts(convo, parsed.get("userFacts"))
        logger.info("Summarized conversation %s: %s", conversation_id, fields.get("title"))
        return updated

    async def _store_facts(self, convo: Conversation, facts: Any) -> None:
        if not isinstance(facts, list) or not facts:
            return
        session = await self.store.get_session(convo.session_id)
        if session is None:
            return

        stored = 0
        for fact in facts[:MAX_FACTS]:
            if not isinstance(fact, str) or not fact.strip():
                continue
            fact = fact.strip()
            await self.store.upsert_knowledge(
                KnowledgeEntry(
                    agent_id=session.agent_id,
                    user_id=convo.user_id,
                    category="learned",
                    key=fact[:100],
                    value=fact,
                    source="conversation",
                    confidence=0.7,
                )
            )
            stored += 1
        logger.debug("Stored %d learned facts from conversation %s", stored, convo.id)
