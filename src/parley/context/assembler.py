"""Context assembly: system prompt plus a trimmed message window."""

import logging
from collections.abc import Awaitable
from dataclasses import dataclass, field

from parley.config.schema import ContextConfig
from parley.context.prompts import (
    DEFAULT_SYSTEM_PROMPT,
    ESCALATION_HINT,
    files_section,
    insight_section,
    onboarding_section,
    project_section,
    soul_section,
    style_section,
    workspace_section,
)
from parley.context.relevance import SemanticSearch, format_knowledge, select_knowledge
from parley.context.tokens import estimate_tokens
from parley.context.topics import build_topic_context
from parley.errors import NotFoundError
from parley.llm.client import Message
from parley.segmentation.chain import format_chain, get_chain
from parley.store.base import DocumentStore
from parley.store.schema import Agent, Conversation, ResponseStyle

logger = logging.getLogger(__name__)

MIN_KEPT_MESSAGES = 2


@dataclass(frozen=True)
class EscalationParams:
    """Context breadth for an escalation level."""

    message_limit: int
    broad_knowledge: bool
    search_past: bool
    hint: bool


ESCALATION_LEVELS: dict[int, EscalationParams] = {
    0: EscalationParams(message_limit=10, broad_knowledge=False, search_past=False, hint=False),
    1: EscalationParams(message_limit=20, broad_knowledge=True, search_past=False, hint=False),
    2: EscalationParams(message_limit=20, broad_knowledge=True, search_past=True, hint=False),
    3: EscalationParams(message_limit=20, broad_knowledge=True, search_past=True, hint=True),
}


def escalation_params(level: int) -> EscalationParams:
    """Parameters for an escalation level (out-of-range levels are clamped)."""
    return ESCALATION_LEVELS[max(0, min(3, level))]


@dataclass
class AssembledContext:
    """What gets sent to the model for one request."""

    system_prompt: str
    messages: list[Message] = field(default_factory=list)
    estimated_tokens: int = 0
    conversation_id: str | None = None
    escalation_level: int = 0


def trim_messages(system_prompt: str, messages: list[Message], budget: int) -> tuple[list[Message], int]:
    """Drop the oldest messages while over budget and more than two remain.

    The system prompt is never truncated, so the result may still exceed
    the budget.

    Returns:
        Kept messages and the resulting token estimate
    """
    kept = list(messages)
    prompt_tokens = estimate_tokens(system_prompt)
    message_tokens = sum(estimate_tokens(m.content) for m in kept)
    total = prompt_tokens + message_tokens

    while total > budget and len(kept) > MIN_KEPT_MESSAGES:
        removed = kept.pop(0)
        message_tokens -= estimate_tokens(removed.content)
        total = prompt_tokens + message_tokens

    return kept, total


class ContextAssembler:
    """Builds the system prompt and message window for a session.

    The system prompt is assembled in a fixed order: identity (base persona,
    soul, workspace, evolved insights, response style, onboarding), relevant
    knowledge, the conversation chain, attached files, related past
    conversations, the linked project and finally the escalation hint.
    Optional blocks that fail to load are logged and skipped.
    """

    def __init__(
        self,
        store: DocumentStore,
        config: ContextConfig | None = None,
        search: SemanticSearch | None = None,
    ):
        """Initialize the assembler.

        Args:
            store: Document store
            config: Context configuration (defaults if None)
            search: Optional semantic search for knowledge relevance
        """
        self.store = store
        self.config = config or ContextConfig()
        self.search = search

    async def assemble(
        self,
        session_id: str,
        agent_id: str,
        user_message: str,
        token_budget: int | None = None,
        conversation_id: str | None = None,
    ) -> AssembledContext:
        """Assemble the context for a new user message.

        Args:
            session_id: Session the message belongs to
            agent_id: Agent whose persona and knowledge to use
            user_message: The current user message
            token_budget: Soft token budget (config default if None)
            conversation_id: Active conversation segment, if already resolved

        Returns:
            Assembled context

        Raises:
            NotFoundError: If the agent does not exist
        """
        agent = await self.store.get_agent(agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {agent_id}")

        session = await self.store.get_session(session_id)
        user_id = session.external_user_id if session else None

        convo = await self._load_conversation(session_id, conversation_id)
        level = convo.escalation_level if convo else 0
        params = escalation_params(level)

        message_limit = (session.message_limit if session else None) or params.message_limit
        budget = (
            (session.token_budget if session else None) or token_budget or self.config.token_budget
        )

        identity = await self._identity(agent)
        knowledge = await self._optional(
            "knowledge", self._knowledge(agent, user_id, user_message, params)
        )

        chain: list[Conversation] = []
        if convo is not None:
            try:
                chain = await get_chain(self.store, convo.id, self.config.chain_max_depth)
            except Exception as e:
                logger.error("Failed to load conversation chain: %s", e)
        chain_ids = [c.id for c in chain]

        chain_block = format_chain(chain)
        files_block = await self._optional("files", self._files(chain_ids))
        topic_budget = self.config.topic_token_budget * (2 if params.search_past else 1)
        topic_block = await self._optional(
            "topic context",
            build_topic_context(
                self.store, agent.gateway_id, user_message, topic_budget, exclude=set(chain_ids)
            ),
        )
        project_block = ""
        if convo is not None and convo.project_id:
            project_block = await self._optional("project", self._project(convo.project_id))
        hint = ESCALATION_HINT if params.hint else ""

        system_prompt = (
            identity + knowledge + chain_block + files_block + topic_block + project_block + hint
        )

        messages = await self._window(session_id, convo, message_limit, user_message)
        messages, total = trim_messages(system_prompt, messages, budget)

        logger.debug(
            "Assembled context for session %s: ~%d tokens, %d messages (budget %d, level %d)",
            session_id,
            total,
            len(messages),
            budget,
            level,
        )
        return AssembledContext(
            system_prompt=system_prompt,
            messages=messages,
            estimated_tokens=total,
            conversation_id=convo.id if convo else None,
            escalation_level=level,
        )

    async def _optional(self, name: str, block: Awaitable[str]) -> str:
        try:
            return await block
        except Exception as e:
            logger.error("Failed to build %s context: %s", name, e)
            return ""

    async def _load_conversation(
        self, session_id: str, conversation_id: str | None
    ) -> Conversation | None:
        try:
            if conversation_id:
                return await self.store.get_conversation(conversation_id)
            return await self.store.get_active_conversation(session_id)
        except Exception as e:
            logger.error("Failed to load active conversation: %s", e)
            return None

    async def _identity(self, agent: Agent) -> str:
        soul = None
        try:
            soul = await self.store.get_soul(agent.gateway_id)
        except Exception as e:
            logger.error("Failed to load soul: %s", e)

        if soul is None:
            base = DEFAULT_SYSTEM_PROMPT
            soul_block = ""
            onboarding = ""
            if self.config.onboarding:
                owner = None
                try:
                    owner = await self.store.get_setting(agent.gateway_id, "owner_name")
                except Exception as e:
                    logger.error("Failed to load owner name: %s", e)
                onboarding = onboarding_section(owner)
        else:
            base = agent.system_prompt
            soul_block = soul_section(soul)
            onboarding = ""

        workspace = await self._optional("workspace", self._workspace(agent.gateway_id))
        insights = await self._optional("insights", self._insights(agent.id))
        style = await self._optional("response style", self._style(agent.gateway_id))
        return base + soul_block + workspace + insights + style + onboarding

    async def _workspace(self, gateway_id: str) -> str:
        return workspace_section(await self.store.get_setting(gateway_id, "workspace_identity"))

    async def _insights(self, agent_id: str) -> str:
        return insight_section(await self.store.list_insights(agent_id, limit=20))

    async def _style(self, gateway_id: str) -> str:
        raw = await self.store.get_setting(gateway_id, "response_style")
        if not raw:
            return ""
        return style_section(ResponseStyle.model_validate_json(raw))

    async def _knowledge(
        self, agent: Agent, user_id: str | None, user_message: str, params: EscalationParams
    ) -> str:
        limit = 50 if params.broad_knowledge else 20
        entries = await self.store.list_knowledge(agent.id, user_id, limit=limit)
        selected = await select_knowledge(
            entries, user_message, self.search, self.config.relevance_threshold
        )
        section = format_knowledge(selected)
        if section:
            logger.debug("Knowledge: %d/%d entries selected", len(selected), len(entries))
        return section

    async def _files(self, conversation_ids: list[str]) -> str:
        if not conversation_ids:
            return ""
        return files_section(await self.store.list_files(conversation_ids))

    async def _project(self, project_id: str) -> str:
        project = await self.store.get_project(project_id)
        return project_section(project.context if project else None)

    async def _window(
        self,
        session_id: str,
        convo: Conversation | None,
        limit: int,
        user_message: str,
    ) -> list[Message]:
        if convo is not None:
            records = await self.store.conversation_messages(session_id, convo.id, limit)
        else:
            records = await self.store.recent_messages(session_id, limit)

        messages = [
            Message(role=r.role, content=r.content) for r in records if r.role in ("user", "assistant")
        ]
        if not messages or messages[-1].role != "user" or messages[-1].content != user_message:
            messages.append(Message(role="user", content=user_message))
        return messages
