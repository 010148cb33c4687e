"""Embedding client interface used for semantic knowledge relevance."""

from typing import Protocol


class EmbeddingClient(Protocol):
    """Protocol for embedding generation clients."""

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate one embedding vector per input text."""
        ...

    async def embed_single(self, text: str) -> list[float]:
        """Generate the embedding vector for one text."""
        ...
