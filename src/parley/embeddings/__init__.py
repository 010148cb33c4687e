"""Embedding generation for semantic knowledge relevance."""

from parley.embeddings.client import EmbeddingClient
from parley.embeddings.ollama import OllamaEmbedding

__all__ = ["EmbeddingClient", "OllamaEmbedding"]
