"""Gateway service: budget checks, channel limits and the chat pipeline."""

from parley.gateway.budget import BudgetCheck, BudgetChecker
from parley.gateway.limits import DedupWindow, RateLimiter, RateLimitResult
from parley.gateway.service import (
    CapabilityModel,
    ChatRequest,
    ChatResult,
    ChatService,
    SessionLocks,
    SubmitResult,
)

__all__ = [
    "BudgetCheck",
    "BudgetChecker",
    "CapabilityModel",
    "ChatRequest",
    "ChatResult",
    "ChatService",
    "DedupWindow",
    "RateLimitResult",
    "RateLimiter",
    "SessionLocks",
    "SubmitResult",
]
