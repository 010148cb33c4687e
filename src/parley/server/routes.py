"""API routes for the parley gateway."""

from typing import Any

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from parley import __version__
from parley.errors import (
    ConfigurationError,
    InputRejectedError,
    NotFoundError,
    ParleyError,
    ProviderStreamError,
)
from parley.gateway.limits import DedupWindow, RateLimiter
from parley.gateway.service import ChatRequest, ChatService
from parley.orchestrator.events import ErrorEvent, to_sse
from parley.routing.resolver import RoutingRequest, RoutingSnapshot, resolve
from parley.routing.types import RouteTarget


class ChatBody(BaseModel):
    """Request body for the chat endpoints."""

    message: str = Field(min_length=1)
    session_id: str | None = None
    agent_id: str | None = None
    gateway_id: str = "default"
    capability: str = "chat"
    provider: str | None = Field(default=None, description="Per-call provider override")
    model: str | None = Field(default=None, description="Per-call model override")
    provider_profile_id: str | None = None

    def to_request(self) -> ChatRequest:
        override = None
        if self.provider or self.model or self.provider_profile_id:
            override = RouteTarget(
                provider=self.provider, model=self.model, provider_profile_id=self.provider_profile_id
            )
        return ChatRequest(
            message=self.message,
            session_id=self.session_id,
            agent_id=self.agent_id,
            gateway_id=self.gateway_id,
            capability=self.capability,
            route_override=override,
        )


class ChannelMessageBody(BaseModel):
    """Inbound message from a channel integration."""

    message: str = Field(min_length=1)
    external_user_id: str | None = None
    agent_id: str | None = None
    gateway_id: str = "default"


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


def _http_error(error: Exception) -> HTTPException:
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InputRejectedError):
        return HTTPException(status_code=403, detail=str(error))
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=400, detail={"error": str(error), "code": error.code})
    if isinstance(error, ProviderStreamError):
        return HTTPException(status_code=502, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def create_router(
    service: ChatService,
    limiter: RateLimiter | None = None,
    dedup: DedupWindow | None = None,
) -> APIRouter:
    """Create the API router.

    Args:
        service: Chat service handling requests
        limiter: Per-channel rate limiter (configured defaults if None)
        dedup: Duplicate message window (configured defaults if None)

    Returns:
        Configured API router
    """
    router = APIRouter()
    limits = service.config.limits
    limiter = limiter or RateLimiter(
        limits.rate_limit_max, limits.rate_limit_window_ms, limits.max_tracked_channels
    )
    dedup = dedup or DedupWindow(limits.dedup_window_ms, limits.max_tracked_channels)

    @router.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy", version=__version__)

    @router.post("/chat")
    async def chat(body: ChatBody) -> dict[str, Any]:
        """Chat endpoint - waits for the complete reply."""
        try:
            result = await service.send(body.to_request())
        except ParleyError as e:
            raise _http_error(e) from e
        return result.to_dict()

    @router.post("/chat/stream")
    async def chat_stream(body: ChatBody) -> EventSourceResponse:
        """Chat endpoint - Server-Sent Events with token, tool_use, done and error events."""

        async def event_generator() -> Any:
            try:
                async for event in service.stream(body.to_request()):
                    yield to_sse(event)
            except ParleyError as e:
                code = getattr(e, "code", None)
                yield to_sse(ErrorEvent(str(e), code))

        return EventSourceResponse(event_generator())

    @router.post("/channels/{channel_id}/messages", status_code=202)
    async def channel_message(channel_id: str, body: ChannelMessageBody) -> Any:
        """Accept a channel message for background processing.

        Replies are delivered by the channel integration; progress is visible
        through the session's active run.
        """
        verdict = limiter.check(channel_id)
        if not verdict.allowed:
            return JSONResponse(
                status_code=429,
                content={"error": "Rate limit exceeded", "retryAfter": verdict.retry_after},
                headers={"Retry-After": str(verdict.retry_after)},
            )

        request = ChatRequest(
            message=body.message,
            agent_id=body.agent_id,
            gateway_id=body.gateway_id,
            channel_id=channel_id,
            external_user_id=body.external_user_id,
        )
        session = await service.session_for(request)
        if dedup.is_duplicate(session.id, body.message):
            return JSONResponse(
                status_code=200,
                content={"accepted": False, "duplicate": True, "sessionId": session.id},
            )

        submitted = await service.submit(request)
        return {"accepted": True, "sessionId": submitted.session_id, "taskId": submitted.task_id}

    @router.get("/sessions/{session_id}/run")
    async def get_run(session_id: str) -> dict[str, Any]:
        """Current active run of a session."""
        run = await service.get_run(session_id)
        if run is None:
            raise HTTPException(status_code=404, detail="No active run")
        return run.model_dump(mode="json")

    @router.post("/sessions/{session_id}/stop")
    async def stop(session_id: str) -> dict[str, Any]:
        """Stop a session's in-flight response (best effort)."""
        return {"stopped": service.stop(session_id)}

    @router.get("/routing/resolve")
    async def resolve_route(capability: str = "chat", message: str | None = None) -> dict[str, Any]:
        """Show how a capability would be routed (credentials are not returned)."""
        snapshot = RoutingSnapshot.from_config(service.config.routing, env=service.env)
        resolution = resolve(snapshot, RoutingRequest(capability=capability, message=message))
        return {
            "provider": resolution.provider,
            "model": resolution.model,
            "hasApiKey": bool(resolution.api_key),
            "authMethod": resolution.auth_method,
            "baseUrl": resolution.base_url,
            "providerProfileId": resolution.provider_profile_id,
            "modelSource": resolution.model_source,
            "matchedRoute": resolution.matched_route,
        }

    return router
