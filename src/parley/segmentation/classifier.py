"""Model-based topic shift classification."""

import json
import logging
import re
from dataclasses import dataclass, field

from parley.llm.client import TextModel
from parley.store.schema import Conversation

logger = logging.getLogger(__name__)

CLASSIFIER_SYSTEM_PROMPT = (
    "You are a topic classifier. Given recent messages and the current conversation context, "
    "determine if the topic has shifted. Respond with JSON only, no markdown: "
    '{ "sameTopic": boolean, "newTags": string[], "suggestedTitle": string }'
)

MAX_MESSAGE_CHARS = 300
MAX_TOKENS = 256

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


@dataclass
class Classification:
    """Result of a topic classification."""

    same_topic: bool = True
    new_tags: list[str] = field(default_factory=list)
    suggested_title: str | None = None


def parse_classification(text: str) -> Classification:
    """Extract a classification from a model response.

    Raises:
        ValueError: If the response holds no JSON object
    """
    match = _JSON_OBJECT.search(text)
    if not match:
        raise ValueError("No JSON object in classifier response")
    data = json.loads(match.group(0))
    tags = data.get("newTags") or []
    title = data.get("suggestedTitle")
    return Classification(
        same_topic=bool(data.get("sameTopic", True)),
        new_tags=[t for t in tags if isinstance(t, str) and t.strip()],
        suggested_title=title.strip() if isinstance(title, str) and title.strip() else None,
    )


class TopicClassifier:
    """Asks a small model whether recent messages left the current topic.

    Any failure (model error, unparseable output) is reported as
    "same topic" so the conversation simply continues.
    """

    def __init__(self, model: TextModel):
        self.model = model

    async def classify(
        self, messages: list[tuple[str, str]], conversation: Conversation | None
    ) -> Classification:
        """Classify recent messages against the current conversation.

        Args:
            messages: (role, content) pairs, oldest first, including the new message
            conversation: The active conversation, if any

        Returns:
            Classification (same topic on failure)
        """
        if conversation is not None:
            context = (
                f'Current conversation: title="{conversation.title or "untitled"}", '
                f"tags=[{', '.join(conversation.tags)}], "
                f'summary="{conversation.summary or "none"}"'
            )
        else:
            context = "No current conversation context."

        transcript = "\n".join(
            f"{role}: {content[:MAX_MESSAGE_CHARS]}" for role, content in messages
        )
        prompt = (
            f"{context}\n\nRecent messages:\n{transcript}\n\n"
            "Has the topic shifted from the current conversation context? Respond with JSON only."
        )

        try:
            text = await self.model.generate(
                prompt, system_prompt=CLASSIFIER_SYSTEM_PROMPT, max_tokens=MAX_TOKENS
            )
            result = parse_classification(text)
        except Exception as e:
            logger.warning("Topic classification failed, assuming same topic: %s", e)
            return Classification()

        logger.debug(
            "Topic classification: same_topic=%s title=%r", result.same_topic, result.suggested_title
        )
        return result
