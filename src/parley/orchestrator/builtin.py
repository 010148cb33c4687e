"""Tools every agent gets."""

from parley.errors import ToolExecutionError
from parley.orchestrator.tools import RequestContext, ToolRegistry, build_tool


async def new_conversation(
    context: RequestContext,
    reason: str,
    previous_title: str | None = None,
    previous_summary: str | None = None,
    previous_topics: str | None = None,
) -> str:
    """Close the current conversation and start a new one.

    Args:
        reason: Brief reason for the topic shift
        previous_title: Short title for the conversation being closed
        previous_summary: 1-2 sentence summary of the conversation being closed
        previous_topics: Comma-separated key topics of the conversation being closed
    """
    if context.segmentation is None:
        raise ToolExecutionError("Conversation segmentation is disabled")

    topics = [t.strip() for t in (previous_topics or "").split(",") if t.strip()]
    successor = await context.segmentation.switch_conversation(
        context.session_id,
        context.gateway_id,
        user_id=context.user_id,
        message_id=context.message_id,
        title=previous_title,
        summary=previous_summary,
        topics=topics,
    )
    context.new_conversation_id = successor.id
    return (
        f"Previous conversation closed and saved. New conversation started ({successor.id}). "
        "Continue naturally with the user's new topic."
    )


NEW_CONVERSATION_DESCRIPTION = (
    "Explicitly start a new conversation when the user has clearly shifted to a completely "
    "different topic. This closes the current conversation (saving its summary, topics and "
    "decisions for future context) and starts fresh. Do NOT call for follow-up questions, minor "
    "tangents or related subtopics. Topic shifts are also auto-detected, so this is mainly for "
    "explicit user requests like 'let's change topics'."
)


def builtin_registry() -> ToolRegistry:
    """A registry holding the built-in tools."""
    registry = ToolRegistry()
    registry.register(build_tool(new_conversation, NEW_CONVERSATION_DESCRIPTION))
    return registry
