"""Heuristic message classification and keyword route matching."""

import re

from parley.routing.types import KeywordRoute, RouteCondition

HAIKU_MODEL = "claude-haiku-3-20250514"
SONNET_MODEL = "claude-sonnet-4-20250514"

CODE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"```[\s\S]*?```"),
    re.compile(r"\b(function|const|let|var|class|import|export|return|if|else|for|while)\s"),
    re.compile(r"[{}\[\]();]=>"),
    re.compile(r"\b(def|print|lambda|yield)\b"),
    re.compile(r"\b(SELECT|INSERT|UPDATE|DELETE|CREATE|ALTER)\b", re.IGNORECASE),
]

ANALYSIS_KEYWORDS: list[str] = [
    "analyze",
    "analysis",
    "compare",
    "evaluate",
    "review",
    "assess",
    "explain why",
    "pros and cons",
    "trade-offs",
    "deep dive",
    "breakdown",
    "investigate",
    "research",
    "strategy",
    "architecture",
    "design",
]

SIMPLE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"^(hi|hello|hey|thanks|thank you|ok|okay|yes|no|sure|got it)", re.IGNORECASE),
    re.compile(r"^.{0,30}(\?)?$"),
]

SUMMARY_PATTERN = re.compile(r"\b(summarize|summary|tldr|tl;dr|recap)\b", re.IGNORECASE)


def has_code(message: str) -> bool:
    """Check whether a message looks like it contains code."""
    return any(p.search(message) for p in CODE_PATTERNS)


def classify_message(message: str) -> str:
    """Classify a message into a task type without calling a model.

    Args:
        message: Literal user message

    Returns:
        One of "chat", "code", "analysis", "summary"
    """
    trimmed = message.strip()

    if len(trimmed) < 40 and any(p.search(trimmed) for p in SIMPLE_PATTERNS):
        return "chat"

    if has_code(trimmed):
        return "code"

    lower = trimmed.lower()
    if any(kw in lower for kw in ANALYSIS_KEYWORDS):
        return "analysis"

    if len(trimmed) > 500:
        return "analysis"

    if SUMMARY_PATTERN.search(lower):
        return "summary"

    return "chat"


def evaluate_condition(condition: RouteCondition, message: str) -> bool:
    """Evaluate a route condition against a message."""
    if condition.type == "message_length":
        if condition.min_length is not None and len(message) < condition.min_length:
            return False
        if condition.max_length is not None and len(message) > condition.max_length:
            return False
        return True

    if condition.type == "has_code":
        return has_code(message) == condition.code_detection

    if condition.type == "keyword":
        if not condition.keywords:
            return False
        lower = message.lower()
        return any(kw.lower() in lower for kw in condition.keywords)

    if condition.type == "combined":
        if not condition.conditions:
            return False
        return all(evaluate_condition(c, message) for c in condition.conditions)

    return False


def find_matching_route(message: str, routes: list[KeywordRoute]) -> KeywordRoute | None:
    """Find the first enabled route, by descending priority, matching a message.

    Args:
        message: Literal user message
        routes: Candidate routes

    Returns:
        Matching route or None
    """
    if not message or not routes:
        return None

    enabled = sorted((r for r in routes if r.enabled), key=lambda r: r.priority, reverse=True)
    for route in enabled:
        if evaluate_condition(route.condition, message):
            return route
    return None


DEFAULT_ROUTES: list[KeywordRoute] = [
    KeywordRoute(
        name="Simple greetings",
        description="Use cheap model for hi/hello/thanks",
        condition=RouteCondition(
            type="keyword",
            keywords=["hi", "hello", "hey", "thanks", "thank you", "ok", "bye"],
        ),
        target_model=HAIKU_MODEL,
        priority=10,
    ),
    KeywordRoute(
        name="Short messages",
        description="Use cheap model for messages under 50 chars",
        condition=RouteCondition(type="message_length", max_length=50),
        target_model=HAIKU_MODEL,
        priority=5,
    ),
    KeywordRoute(
        name="Code tasks",
        description="Use powerful model for code",
        condition=RouteCondition(type="has_code", code_detection=True),
        target_model=SONNET_MODEL,
        priority=20,
    ),
]
