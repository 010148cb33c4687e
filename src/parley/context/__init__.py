"""Context assembly for model requests.

Builds the system prompt (persona, knowledge, conversation chain, related
past conversations, project context) and a token-budgeted message window.
"""

from parley.context.assembler import (
    AssembledContext,
    ContextAssembler,
    EscalationParams,
    escalation_params,
    trim_messages,
)
from parley.context.relevance import (
    EmbeddingSearch,
    ScoredEntry,
    SearchCandidate,
    SemanticSearch,
    format_knowledge,
    keyword_score,
    select_knowledge,
)
from parley.context.tokens import estimate_tokens
from parley.context.topics import build_topic_context, find_related

__all__ = [
    "AssembledContext",
    "ContextAssembler",
    "EmbeddingSearch",
    "EscalationParams",
    "ScoredEntry",
    "SearchCandidate",
    "SemanticSearch",
    "build_topic_context",
    "escalation_params",
    "estimate_tokens",
    "find_related",
    "format_knowledge",
    "keyword_score",
    "select_knowledge",
    "trim_messages",
]
