"""Parley - request-time orchestration for multi-channel conversational agents.

Parley turns a stored conversation plus a new user message into a bounded,
relevant prompt, picks a concrete model/provider to call, drives a multi-round
tool-use loop while streaming partial output, and decides which conversation
segment of a session the exchange belongs to.

Key modules:

- :mod:`parley.context` - Token estimation, knowledge relevance, context assembly
- :mod:`parley.routing` - Capability to (provider, model, credentials) resolution
- :mod:`parley.segmentation` - Conversation segments, chains and summaries
- :mod:`parley.orchestrator` - Streaming tool-calling loop and run tracking
- :mod:`parley.gateway` - Chat service, budgets, rate limiting and dedup
- :mod:`parley.llm` - Model provider abstraction (Anthropic, OpenAI-compatible)
- :mod:`parley.store` - Document store protocol with in-memory and SQLite adapters
- :mod:`parley.server` - FastAPI app exposing chat, streaming and run polling
"""

__version__ = "0.1.0"
