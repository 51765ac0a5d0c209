"""Embedding adapter over the Ollama embed endpoint."""
from __future__ import annotations

import logging

from app.errors import ProviderFailure
from app.llm.client import OllamaClient
from app.llm.provider import ProviderResult, call_provider

logger = logging.getLogger(__name__)


class EmbeddingClient:
    def __init__(self, ollama_client: OllamaClient, model: str, timeout: float = 60.0):
        self._ollama = ollama_client
        self._model = model
        self._timeout = timeout

    async def embed(self, text: str) -> ProviderResult[list[float]]:
        result = await self.embed_many([text])
        if not result.ok:
            return ProviderResult(error=result.error)
        return ProviderResult(value=result.value[0])

    async def embed_many(self, texts: list[str]) -> ProviderResult[list[list[float]]]:
        """Embed ``texts`` in one call; the output is 1:1 and in input order."""
        if not texts:
            return ProviderResult(value=[])
        result = await call_provider(
            "embedding",
            self._ollama.embed(texts, model=self._model),
            self._timeout,
        )
        if result.ok and len(result.value) != len(texts):
            logger.warning(
                "Embedding count mismatch: sent %d texts, got %d vectors",
                len(texts),
                len(result.value),
            )
            return ProviderResult(
                error=ProviderFailure(
                    "embedding", f"expected {len(texts)} vectors, got {len(result.value)}"
                )
            )
        return result
