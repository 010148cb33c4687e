"""Ollama embedding client."""

import logging

import httpx

logger = logging.getLogger(__name__)


class OllamaEmbedding:
    """Embeddings from a local Ollama server's batch embed endpoint."""

    def __init__(
        self,
        model: str = "nomic-embed-text",
        host: str = "http://localhost:11434",
        timeout: int = 30,
    ):
        """Initialize Ollama embedding client.

        Args:
            model: Ollama model name (e.g., "nomic-embed-text")
            host: Ollama server URL
            timeout: Request timeout in seconds
        """
        self.model = model
        self.host = host.rstrip("/")
        self.timeout = timeout

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors

        Raises:
            httpx.HTTPError: If the Ollama request fails
        """
        if not texts:
            return []

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.host}/api/embed",
                json={"model": self.model, "input": texts},
            )
            response.raise_for_status()
            embeddings = response.json()["embeddings"]

        logger.debug("Embedded %d texts with %s", len(texts), self.model)
        return embeddings

    async def embed_single(self, text: str) -> list[float]:
        embeddings = await self.embed([text])
        return embeddings[0]
