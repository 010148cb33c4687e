"""Chat service: the request-time orchestration pipeline.

One request flows through session lookup, input defense, conversation segmentation,
persistence of the user message, the budget check, context assembly, model
routing, the tool-calling loop and persistence of the reply.
"""

import asyncio
import logging
import os
import time
import weakref
from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing, nullcontext
from dataclasses import dataclass, replace
from typing import Any

from parley.config.schema import ParleyConfig, RoutingConfig
from parley.context.assembler import ContextAssembler
from parley.context.relevance import EmbeddingSearch, SemanticSearch
from parley.embeddings.ollama import OllamaEmbedding
from parley.errors import (
    ConfigurationError,
    InputRejectedError,
    NotFoundError,
    ParleyError,
    ProviderStreamError,
    SegmentationError,
)
from parley.gateway.budget import BudgetChecker
from parley.gateway.defense import InputDefense, wrap_tool_result
from parley.llm.client import (
    Message,
    Model,
    ModelContext,
    ModelProvider,
    StreamOptions,
    collect_text,
)
from parley.llm.registry import ProviderRegistry
from parley.llm.thinking import is_valid_thinking_level, thinking_params
from parley.orchestrator.builtin import builtin_registry
from parley.orchestrator.cache import ResponseCache
from parley.orchestrator.events import (
    DoneEvent,
    ErrorEvent,
    OutputEvent,
    TokenEvent,
)
from parley.orchestrator.loop import LoopResult, ToolCallingLoop
from parley.orchestrator.pricing import compute_cost
from parley.orchestrator.runs import RunTracker
from parley.orchestrator.tools import LocalToolExecutor, RequestContext, ToolExecutor
from parley.routing.credentials import require_api_key
from parley.routing.resolver import Resolution, RoutingRequest, RoutingSnapshot, resolve
from parley.routing.types import RouteTarget
from parley.segmentation.classifier import TopicClassifier
from parley.segmentation.manager import SegmentationManager
from parley.segmentation.summarizer import ConversationSummarizer
from parley.store import create_store
from parley.store.base import DocumentStore
from parley.store.schema import (
    ActiveRun,
    Agent,
    MessageRecord,
    Session,
    TokenUsage,
    UsageRecord,
    utcnow,
)

logger = logging.getLogger(__name__)

BUDGET_EXCEEDED = "budget_exceeded"
PROVIDER_ERROR = "provider_error"
NOT_FOUND = "not_found"
INTERNAL_ERROR = "internal_error"
INPUT_BLOCKED = "input_blocked"
CLIENT_DISCONNECTED = "Client disconnected"


@dataclass
class ChatRequest:
    """One inbound user message."""

    message: str
    session_id: str | None = None
    agent_id: str | None = None
    gateway_id: str = "default"
    channel_id: str | None = None
    external_user_id: str | None = None
    capability: str = "chat"
    route_override: RouteTarget | None = None


@dataclass
class ChatResult:
    """Result of a synchronous chat request."""

    response: str
    session_id: str
    model: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    conversation_id: str | None = None
    blocked: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "response": self.response,
            "sessionId": self.session_id,
            "model": self.model,
            "tokens": {"input": self.input_tokens, "output": self.output_tokens},
            "latencyMs": self.latency_ms,
            "conversationId": self.conversation_id,
            "blocked": self.blocked,
        }


@dataclass
class SubmitResult:
    """Handle for a request accepted for background processing."""

    session_id: str
    task_id: str


class SessionLocks:
    """Per-session locks serializing requests on the same session.

    Locks are held weakly, so idle sessions cost nothing.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def lock(self, session_id: str) -> Any:
        if not self.enabled:
            return nullcontext()
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        return lock


class CapabilityModel:
    """Single-shot text generation through the model routed for a capability.

    Used by the topic classifier and the conversation summarizer.
    """

    def __init__(
        self,
        provider: ModelProvider,
        routing: RoutingConfig,
        capability: str,
        env: Mapping[str, str] | None = None,
    ):
        self.provider = provider
        self.routing = routing
        self.capability = capability
        self.env = env if env is not None else os.environ

    async def generate(self, prompt: str, system_prompt: str = "", max_tokens: int = 500) -> str:
        snapshot = RoutingSnapshot.from_config(self.routing, env=self.env)
        resolution = resolve(snapshot, RoutingRequest(capability=self.capability))
        model = resolve_model(self.provider, resolution)
        text, _ = await collect_text(
            self.provider.stream(
                model,
                ModelContext(system_prompt=system_prompt, messages=[Message(role="user", content=prompt)]),
                StreamOptions(
                    api_key=resolution.api_key, max_tokens=max_tokens, base_url=resolution.base_url
                ),
            )
        )
        return text


def resolve_model(provider: ModelProvider, resolution: Resolution) -> Model:
    """Turn a routing resolution into a concrete model.

    Raises:
        ConfigurationError: If no API key is configured or the model is unknown
    """
    require_api_key(resolution.provider, resolution.api_key)
    model = provider.resolve(resolution.provider, resolution.model)
    if model is None:
        raise ConfigurationError(
            f"Model not found: {resolution.provider}/{resolution.model}",
            code=ConfigurationError.MODEL_NOT_FOUND,
        )
    return model


def session_key(gateway_id: str, channel_id: str, external_user_id: str | None) -> str:
    """Stable session id for a channel user."""
    return f"{gateway_id}:{channel_id}:{external_user_id or 'anonymous'}"


class ChatService:
    """Runs chat requests end to end.

    ``stream`` yields output events as they happen, ``send`` waits for the
    complete reply, and ``submit`` processes in the background with progress
    visible only through the session's active run.
    """

    def __init__(
        self,
        config: ParleyConfig,
        store: DocumentStore,
        provider: ModelProvider,
        executor: ToolExecutor | None = None,
        search: SemanticSearch | None = None,
        env: Mapping[str, str] | None = None,
    ):
        """Initialize the service.

        Args:
            config: Parley configuration
            store: Document store
            provider: Model provider used for all model calls
            executor: Tool executor (built-in tools if None)
            search: Semantic search for knowledge relevance (keyword scoring if None)
            env: Environment for API key fallbacks (process environment if None)
        """
        self.config = config
        self.store = store
        self.provider = provider
        self.env = env if env is not None else os.environ
        wrap = None
        if config.defense.enabled and config.defense.wrap_tool_results:
            wrap = wrap_tool_result
        self.executor = executor or LocalToolExecutor(builtin_registry(), wrap_result=wrap)
        self.defense = InputDefense(config.defense)

        self.assembler = ContextAssembler(store, config.context, search)
        self.segmentation = SegmentationManager(
            store,
            config.segmentation,
            classifier=TopicClassifier(
                CapabilityModel(provider, config.routing, "classifier", self.env)
            ),
            summarizer=ConversationSummarizer(
                store, CapabilityModel(provider, config.routing, "summary", self.env)
            ),
        )
        self.runs = RunTracker(store, cleanup_delay=config.orchestrator.run_cleanup_delay)
        self.budget = BudgetChecker(store, config.budget)
        self.cache = ResponseCache(store, config.orchestrator.cache_ttl_seconds)
        self.loop = ToolCallingLoop(
            provider, self.executor, self.runs, max_rounds=config.orchestrator.max_tool_rounds
        )
        self.locks = SessionLocks(config.orchestrator.serialize_sessions)

    @classmethod
    def from_config(
        cls, config: ParleyConfig, store: DocumentStore | None = None
    ) -> "ChatService":
        """Build a service with the configured store, providers and embeddings."""
        search = None
        embeddings = config.context.embeddings
        if embeddings.enabled:
            search = EmbeddingSearch(
                OllamaEmbedding(model=embeddings.model, host=embeddings.host), top_k=embeddings.top_k
            )
        return cls(
            config,
            store or create_store(config.storage.backend, config.storage.path),
            ProviderRegistry(),
            search=search,
        )

    async def session_for(self, request: ChatRequest) -> Session:
        """Find or create the session a request belongs to."""
        if request.session_id:
            session_id = request.session_id
        elif request.channel_id:
            session_id = session_key(request.gateway_id, request.channel_id, request.external_user_id)
        else:
            session_id = None

        if session_id:
            session = await self.store.get_session(session_id)
            if session is not None:
                return session

        fields: dict[str, Any] = {
            "agent_id": request.agent_id or self.config.agent.id,
            "gateway_id": request.gateway_id,
            "channel_id": request.channel_id,
            "external_user_id": request.external_user_id,
        }
        if session_id:
            fields["id"] = session_id
        session = await self.store.create_session(Session(**fields))
        logger.info("Created session %s", session.id)
        return session

    async def agent_for(self, agent_id: str, gateway_id: str) -> Agent:
        """Load an agent, creating the configured default agent on first use.

        Raises:
            NotFoundError: If the agent does not exist and is not the default
        """
        agent = await self.store.get_agent(agent_id)
        if agent is not None:
            return agent
        defaults = self.config.agent
        if agent_id != defaults.id:
            raise NotFoundError(f"Agent not found: {agent_id}")
        return await self.store.save_agent(
            Agent(
                id=defaults.id,
                gateway_id=gateway_id or defaults.gateway_id,
                name=defaults.name,
                system_prompt=defaults.system_prompt,
                model=defaults.model,
            )
        )

    async def stream(self, request: ChatRequest) -> AsyncIterator[OutputEvent]:
        """Process a request, yielding token, tool_use, done and error events.

        Args:
            request: Chat request

        Yields:
            Output events; the last one is ``done`` or ``error``

        Raises:
            NotFoundError: If the requested agent does not exist
        """
        started = time.monotonic()
        session = await self.session_for(request)
        try:
            agent = await self.agent_for(request.agent_id or session.agent_id, session.gateway_id)
        except NotFoundError as e:
            run, _ = await self.runs.start(session.id)
            await self.runs.fail(run, str(e))
            raise

        async with self.locks.lock(session.id):
            async with aclosing(self._process(request, session, agent, started)) as events:
                async for event in events:
                    yield event

    def thinking_level(self, session: Session) -> str:
        """Thinking level for a session: its own override, else the configured default."""
        level = session.thinking_level or self.config.orchestrator.thinking_level
        return level if is_valid_thinking_level(level) else "off"

    async def _resolve_segment(self, session: Session, text: str) -> str | None:
        if not self.config.segmentation.enabled:
            return None
        try:
            return await self.segmentation.resolve_conversation(
                session.id, session.gateway_id, session.external_user_id, text
            )
        except SegmentationError as e:
            logger.warning("Segmentation failed for session %s: %s", session.id, e)
            active = await self.store.get_active_conversation(session.id)
            return active.id if active else None

    async def _attach(self, conversation_id: str | None, message: MessageRecord) -> None:
        if conversation_id is None or message.seq is None:
            return
        try:
            await self.segmentation.attach_message(conversation_id, message.seq, message.created_at)
        except Exception as e:
            logger.warning("Failed to attach message to conversation %s: %s", conversation_id, e)

    async def _process(
        self, request: ChatRequest, session: Session, agent: Agent, started: float
    ) -> AsyncIterator[OutputEvent]:
        check = self.defense.check(session.external_user_id or session.id, request.message)
        if not check.allowed:
            run, _ = await self.runs.start(session.id)
            await self.runs.fail(run, check.reason or "Input blocked")
            yield ErrorEvent(f"Message blocked by security policy: {check.reason}", INPUT_BLOCKED)
            return

        text = check.content
        conversation_id = await self._resolve_segment(session, text)

        user_message = await self.store.create_message(
            MessageRecord(
                session_id=session.id, role="user", content=text, conversation_id=conversation_id
            )
        )
        await self._attach(conversation_id, user_message)

        run, cancel = await self.runs.start(session.id)
        try:
            budget = await self.budget.check(session.gateway_id)
            if not budget.allowed:
                refusal = self._refuse(
                    session, run, conversation_id, budget.blocked_message(), started
                )
                async for event in refusal:
                    yield event
                return

            assembled = await self.assembler.assemble(
                session.id, agent.id, text, conversation_id=conversation_id
            )
            snapshot = RoutingSnapshot.from_config(self.config.routing, env=self.env)
            resolution = resolve(
                snapshot,
                RoutingRequest(
                    capability=request.capability,
                    message=text,
                    route_override=request.route_override,
                    agent_model=agent.model,
                    budget=budget.to_state(),
                ),
            )
            model = resolve_model(self.provider, resolution)
            await self.runs.set_model(run, model.id)

            if self.config.orchestrator.response_cache:
                cached = await self.cache.get(assembled.system_prompt, text)
                if cached is not None:
                    logger.debug("Response cache hit for session %s", session.id)
                    yield TokenEvent(cached.response)
                    result = LoopResult(text=cached.response)
                    yield await self._finish(
                        session, agent, run, model, result, conversation_id, started, cached=True
                    )
                    return

            context = ModelContext(
                system_prompt=assembled.system_prompt,
                messages=assembled.messages,
                tools=self.executor.schemas(),
            )
            options = StreamOptions(
                api_key=resolution.api_key,
                max_tokens=self.config.orchestrator.max_tokens,
                temperature=self.config.orchestrator.temperature,
                base_url=resolution.base_url,
                cancel=cancel,
                extra_params=thinking_params(self.thinking_level(session), model.provider),
            )
            request_context = RequestContext(
                session_id=session.id,
                gateway_id=session.gateway_id,
                agent_id=agent.id,
                user_id=session.external_user_id,
                message_id=user_message.id,
                segmentation=self.segmentation if self.config.segmentation.enabled else None,
            )

            result = LoopResult()
            loop_events = self.loop.run(model, context, options, request_context, run)
            async with aclosing(loop_events) as items:
                async for item in items:
                    if isinstance(item, LoopResult):
                        result = item
                    else:
                        yield item

            response_conversation = request_context.new_conversation_id or conversation_id
            done = await self._finish(
                session, agent, run, model, result, response_conversation, started
            )
            if (
                self.config.orchestrator.response_cache
                and not result.tool_names
                and not result.cancelled
                and result.text
            ):
                await self.cache.put(assembled.system_prompt, text, result.text, model.id)
            yield done

        except (asyncio.CancelledError, GeneratorExit):
            await self._abandon(session, run, conversation_id)
            raise
        except ConfigurationError as e:
            logger.error("Configuration error for session %s: %s", session.id, e)
            await self.runs.fail(run, str(e))
            yield ErrorEvent(str(e), e.code)
        except ProviderStreamError as e:
            logger.error("Provider stream failed for session %s: %s", session.id, e)
            await self.runs.fail(run, str(e))
            yield ErrorEvent(str(e), PROVIDER_ERROR)
        except NotFoundError as e:
            await self.runs.fail(run, str(e))
            yield ErrorEvent(str(e), NOT_FOUND)
        except Exception as e:
            logger.exception("Request failed for session %s", session.id)
            await self.runs.fail(run, str(e))
            yield ErrorEvent(f"Internal error: {e}", INTERNAL_ERROR)

    async def _abandon(
        self, session: Session, run: ActiveRun, conversation_id: str | None
    ) -> None:
        """End a run whose consumer went away, keeping any partial reply."""
        if run.status in ("complete", "error"):
            return
        logger.warning("Client disconnected during session %s", session.id)
        if run.partial_text:
            try:
                reply = await self.store.create_message(
                    MessageRecord(
                        session_id=session.id,
                        role="assistant",
                        content=run.partial_text,
                        conversation_id=conversation_id,
                        model=run.model,
                    )
                )
                await self._attach(conversation_id, reply)
            except Exception as e:
                logger.warning("Failed to save partial reply for session %s: %s", session.id, e)
        await self.runs.fail(run, CLIENT_DISCONNECTED)

    async def _refuse(
        self,
        session: Session,
        run: ActiveRun,
        conversation_id: str | None,
        message: str,
        started: float,
    ) -> AsyncIterator[OutputEvent]:
        logger.warning("Budget blocked request for session %s", session.id)
        reply = await self.store.create_message(
            MessageRecord(
                session_id=session.id,
                role="assistant",
                content=message,
                conversation_id=conversation_id,
                latency_ms=int((time.monotonic() - started) * 1000),
            )
        )
        await self._attach(conversation_id, reply)
        await self.runs.complete(run, message)
        yield ErrorEvent(message, BUDGET_EXCEEDED)
        yield DoneEvent(
            session_id=session.id,
            text=message,
            message_id=reply.id,
            conversation_id=conversation_id,
            latency_ms=reply.latency_ms or 0,
        )

    async def _finish(
        self,
        session: Session,
        agent: Agent,
        run: ActiveRun,
        model: Model,
        result: LoopResult,
        conversation_id: str | None,
        started: float,
        cached: bool = False,
    ) -> DoneEvent:
        latency_ms = int((time.monotonic() - started) * 1000)
        cost = 0.0 if cached else compute_cost(model.id, result.usage)

        reply = await self.store.create_message(
            MessageRecord(
                session_id=session.id,
                role="assistant",
                content=result.text,
                conversation_id=conversation_id,
                usage=TokenUsage(input=result.usage.input, output=result.usage.output),
                cost=cost,
                model=model.id,
                latency_ms=latency_ms,
            )
        )
        await self._attach(conversation_id, reply)

        if not cached:
            try:
                await self.store.record_usage(
                    UsageRecord(
                        gateway_id=session.gateway_id,
                        session_id=session.id,
                        agent_id=agent.id,
                        model=model.id,
                        input_tokens=result.usage.input,
                        output_tokens=result.usage.output,
                        cost=cost,
                        date=utcnow().date().isoformat(),
                    )
                )
            except Exception as e:
                logger.warning("Failed to record usage for session %s: %s", session.id, e)

        await self.runs.complete(run, result.text)
        logger.info(
            "Session %s answered by %s in %d ms (%d rounds, tools=%s)",
            session.id,
            model.id,
            latency_ms,
            result.rounds,
            result.tool_names,
        )
        return DoneEvent(
            session_id=session.id,
            text=result.text,
            message_id=reply.id,
            conversation_id=conversation_id,
            model=model.id,
            input_tokens=result.usage.input,
            output_tokens=result.usage.output,
            cost=cost,
            latency_ms=latency_ms,
            cached=cached,
            stopped=result.cancelled,
        )

    async def send(self, request: ChatRequest) -> ChatResult:
        """Process a request and return the complete reply.

        A budget refusal is returned as a normal result with ``blocked`` set.

        Raises:
            ConfigurationError: No API key configured or unknown model
            ProviderStreamError: The model stream failed
            NotFoundError: The agent does not exist
            InputRejectedError: The message was blocked by the input defense
            ParleyError: Any other pipeline failure
        """
        blocked: str | None = None
        async for event in self.stream(request):
            if isinstance(event, ErrorEvent):
                if event.code == BUDGET_EXCEEDED:
                    blocked = event.message
                    continue
                if event.code in (ConfigurationError.NO_API_KEY, ConfigurationError.MODEL_NOT_FOUND):
                    raise ConfigurationError(event.message, code=event.code)
                if event.code == PROVIDER_ERROR:
                    raise ProviderStreamError(event.message)
                if event.code == NOT_FOUND:
                    raise NotFoundError(event.message)
                if event.code == INPUT_BLOCKED:
                    raise InputRejectedError(event.message)
                raise ParleyError(event.message)
            elif isinstance(event, DoneEvent):
                return ChatResult(
                    response=event.text,
                    session_id=event.session_id,
                    model=event.model,
                    input_tokens=event.input_tokens,
                    output_tokens=event.output_tokens,
                    latency_ms=event.latency_ms,
                    conversation_id=event.conversation_id,
                    blocked=blocked is not None,
                )
        raise ParleyError("Stream ended without a result")

    async def submit(self, request: ChatRequest) -> SubmitResult:
        """Accept a request for background processing.

        Returns immediately; failures are recorded on the session's active run.
        """
        session = await self.session_for(request)
        request = replace(request, session_id=session.id)
        background = self.runs.spawn(session.id, self._consume(request))
        return SubmitResult(session_id=session.id, task_id=background.id)

    async def _consume(self, request: ChatRequest) -> None:
        async for event in self.stream(request):
            if isinstance(event, ErrorEvent):
                logger.warning(
                    "Background request for session %s failed: %s", request.session_id, event.message
                )

    def stop(self, session_id: str) -> bool:
        """Request cancellation of a session's in-flight response."""
        return self.runs.stop(session_id)

    async def get_run(self, session_id: str) -> ActiveRun | None:
        return await self.store.get_run(session_id)

    async def drain(self) -> None:
        """Wait for background requests, run cleanups and summaries."""
        await self.runs.drain()
        await self.segmentation.drain()

