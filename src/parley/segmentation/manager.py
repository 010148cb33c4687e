"""Segmentation of a session's message stream into chained conversations."""

import asyncio
import logging
import re
from datetime import datetime
from typing import Any

from parley.config.schema import SegmentationConfig
from parley.errors import SegmentationError
from parley.segmentation.classifier import Classification, TopicClassifier
from parley.segmentation.summarizer import ConversationSummarizer
from parley.store.base import DocumentStore
from parley.store.schema import Conversation, utcnow

logger = logging.getLogger(__name__)

CLASSIFY_CONTEXT_MESSAGES = 10

NEW_CONVERSATION_PATTERNS = [
    re.compile(r"new (conversation|convo|topic|subject|chat)"),
    re.compile(r"move on"),
    re.compile(r"change (the )?(subject|topic)"),
    re.compile(r"let'?s talk about something else"),
    re.compile(r"start (a )?(new|fresh)"),
    re.compile(r"different (topic|subject)"),
    re.compile(r"anyway[,.]?\s"),  # only when followed by more text
    re.compile(r"^(ok|okay|alright|so)\s*,?\s*(new topic|next|moving on)"),
]


def detect_new_conversation_intent(message: str) -> bool:
    """Check whether the user explicitly asks to change the subject."""
    lower = message.lower().strip()
    return any(p.search(lower) for p in NEW_CONVERSATION_PATTERNS)


def should_classify(next_count: int, after: int = 6, every: int = 3) -> bool:
    """Whether topic classification runs for the message that brings the count to ``next_count``."""
    return next_count >= after and (next_count - after) % every == 0


class SegmentationManager:
    """Assigns incoming messages to conversation segments.

    A session has at most one active conversation. A new one is started,
    chained to the previous one, when the user asks for it, after a long
    inactivity gap, or when the topic classifier reports a shift. Closed
    conversations are summarized in the background.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: SegmentationConfig | None = None,
        classifier: TopicClassifier | None = None,
        summarizer: ConversationSummarizer | None = None,
    ):
        """Initialize the manager.

        Args:
            store: Document store
            config: Segmentation configuration (defaults if None)
            classifier: Topic classifier (topic shifts are not detected if None)
            summarizer: Summarizer for closed conversations (skipped if None)
        """
        self.store = store
        self.config = config or SegmentationConfig()
        self.classifier = classifier
        self.summarizer = summarizer
        self._tasks: set[asyncio.Task[Any]] = set()

    async def resolve_conversation(
        self,
        session_id: str,
        gateway_id: str,
        user_id: str | None,
        text: str,
        now: datetime | None = None,
    ) -> str:
        """Pick the conversation a new user message belongs to.

        Args:
            session_id: Session receiving the message
            gateway_id: Gateway of the session
            user_id: External user id, if known
            text: The new user message
            now: Current time (defaults to now)

        Returns:
            Conversation id

        Raises:
            SegmentationError: If the store or classifier path fails
        """
        now = now or utcnow()
        try:
            active = await self.store.get_active_conversation(session_id)
            if active is None:
                convo = await self.store.create_conversation(
                    Conversation(
                        session_id=session_id,
                        gateway_id=gateway_id,
                        user_id=user_id,
                        depth=1,
                        first_message_at=now,
                        last_message_at=now,
                    )
                )
                logger.debug("Started first conversation %s for session %s", convo.id, session_id)
                return convo.id

            timed_out = (now - active.last_message_at).total_seconds() >= self.config.timeout_seconds
            wants_new = detect_new_conversation_intent(text)

            classification: Classification | None = None
            if not wants_new and not timed_out:
                classification = await self._maybe_classify(active, text)

            if not wants_new and not timed_out and (classification is None or classification.same_topic):
                return active.id

            reason = "intent" if wants_new else "timeout" if timed_out else "topic shift"
            successor = await self._roll_over(
                active,
                title=classification.suggested_title if classification else None,
                tags=classification.new_tags if classification else None,
                now=now,
            )
            logger.info(
                "Conversation %s closed (%s); continuing in %s (depth %d)",
                active.id,
                reason,
                successor.id,
                successor.depth,
            )
            return successor.id
        except SegmentationError:
            raise
        except Exception as e:
            raise SegmentationError(f"Failed to resolve conversation: {e}") from e

    async def _maybe_classify(self, active: Conversation, text: str) -> Classification | None:
        next_count = active.message_count + 1
        if (
            self.classifier is None
            or not self.config.classifier_enabled
            or not should_classify(next_count, self.config.classify_after, self.config.classify_every)
        ):
            return None

        recent = await self.store.conversation_messages(
            active.session_id, active.id, CLASSIFY_CONTEXT_MESSAGES
        )
        messages = [(m.role, m.content) for m in recent] + [("user", text)]
        classification = await self.classifier.classify(messages, active)

        if classification.same_topic and not active.title and classification.suggested_title:
            fields: dict[str, Any] = {"title": classification.suggested_title}
            if classification.new_tags:
                fields["tags"] = classification.new_tags
            await self.store.patch_conversation(active.id, **fields)
        return classification

    async def _roll_over(
        self,
        active: Conversation,
        title: str | None = None,
        tags: list[str] | None = None,
        now: datetime | None = None,
    ) -> Conversation:
        now = now or utcnow()
        await self.close_conversation(active.id, now=now)
        return await self.store.create_conversation(
            Conversation(
                session_id=active.session_id,
                gateway_id=active.gateway_id,
                user_id=active.user_id,
                previous_convo_id=active.id,
                depth=active.depth + 1,
                project_id=active.project_id,
                title=title,
                tags=tags or [],
                first_message_at=now,
                last_message_at=now,
            )
        )

    async def close_conversation(
        self, conversation_id: str, now: datetime | None = None, **summary: Any
    ) -> Conversation | None:
        """Close a conversation and schedule its summarization.

        Args:
            conversation_id: Conversation to close
            now: Close time (defaults to now)
            **summary: Summary fields already known (title, summary, topics, decisions)

        Returns:
            The closed conversation, or None if it does not exist
        """
        fields = {k: v for k, v in summary.items() if v}
        closed = await self.store.patch_conversation(
            conversation_id, status="closed", closed_at=now or utcnow(), **fields
        )
        if closed is not None and self.summarizer is not None and self.config.summarize_on_close:
            self._spawn(self.summarizer.summarize(conversation_id), f"summarize {conversation_id}")
        return closed

    async def attach_message(
        self, conversation_id: str, seq: int, at: datetime | None = None
    ) -> Conversation | None:
        """Extend a conversation to include a stored message.

        The end seq only moves forward; a seq at or below it is ignored.
        Closed conversations are not extended.

        Args:
            conversation_id: Conversation to extend
            seq: Seq of the stored message
            at: Message time (defaults to now)

        Returns:
            The updated conversation, or None if it does not exist
        """
        convo = await self.store.get_conversation(conversation_id)
        if convo is None:
            return None
        if convo.status == "closed":
            logger.debug("Not attaching seq %d to closed conversation %s", seq, conversation_id)
            return convo
        if convo.end_seq is not None and seq <= convo.end_seq:
            return convo
        return await self.store.patch_conversation(
            conversation_id,
            start_seq=convo.start_seq if convo.start_seq is not None else seq,
            end_seq=seq,
            message_count=convo.message_count + 1,
            last_message_at=at or utcnow(),
        )

    async def switch_conversation(
        self,
        session_id: str,
        gateway_id: str,
        user_id: str | None = None,
        message_id: str | None = None,
        new_conversation_id: str | None = None,
        **summary: Any,
    ) -> Conversation:
        """Switch a session to a new conversation on request (e.g. from a tool).

        Closes the active conversation with any summary fields provided,
        starts its chained successor unless ``new_conversation_id`` names one
        that already exists, and moves the triggering user message over.

        Args:
            session_id: Session to switch
            gateway_id: Gateway of the session
            user_id: External user id, if known
            message_id: The user message that triggered the switch
            new_conversation_id: Existing successor to switch to
            **summary: Summary fields for the closed conversation

        Returns:
            The conversation now active for the session

        Raises:
            SegmentationError: If the switch fails
        """
        try:
            successor = None
            if new_conversation_id:
                successor = await self.store.get_conversation(new_conversation_id)

            if successor is None:
                active = await self.store.get_active_conversation(session_id)
                if active is not None:
                    await self.close_conversation(active.id, **summary)
                    successor = await self.store.create_conversation(
                        Conversation(
                            session_id=session_id,
                            gateway_id=gateway_id,
                            user_id=user_id,
                            previous_convo_id=active.id,
                            depth=active.depth + 1,
                            project_id=active.project_id,
                        )
                    )
                else:
                    successor = await self.store.create_conversation(
                        Conversation(session_id=session_id, gateway_id=gateway_id, user_id=user_id)
                    )

            if message_id:
                message = await self.store.relabel_message(message_id, successor.id)
                if message is not None and message.seq is not None:
                    successor = await self.attach_message(successor.id, message.seq) or successor

            logger.info("Session %s switched to conversation %s", session_id, successor.id)
            return successor
        except Exception as e:
            raise SegmentationError(f"Failed to switch conversation: {e}") from e

    async def link_to(self, conversation_id: str, target_id: str) -> Conversation:
        """Relink a conversation to follow another one.

        Raises:
            SegmentationError: If either conversation does not exist
        """
        target = await self.store.get_conversation(target_id)
        if target is None or conversation_id == target_id:
            raise SegmentationError(f"Cannot link {conversation_id} to {target_id}")
        linked = await self.store.patch_conversation(
            conversation_id, previous_convo_id=target.id, depth=target.depth + 1
        )
        if linked is None:
            raise SegmentationError(f"Conversation not found: {conversation_id}")
        return linked

    async def set_escalation_level(self, conversation_id: str, level: int) -> Conversation:
        """Set a conversation's escalation level, clamped to 0..3.

        Raises:
            SegmentationError: If the conversation does not exist
        """
        updated = await self.store.patch_conversation(
            conversation_id, escalation_level=max(0, min(3, level))
        )
        if updated is None:
            raise SegmentationError(f"Conversation not found: {conversation_id}")
        return updated

    def _spawn(self, coro: Any, name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    async def drain(self) -> None:
        """Wait for pending background summarization tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
