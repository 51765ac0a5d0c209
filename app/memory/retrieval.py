"""Read path of the long-term memory."""
from __future__ import annotations

import logging

from app.database.repository import Repository
from app.embeddings.client import EmbeddingClient
from app.models import FactMatch

logger = logging.getLogger(__name__)

RELEVANCE_THRESHOLD = 0.75
TOP_K = 3


class Retriever:
    def __init__(
        self,
        repository: Repository,
        embeddings: EmbeddingClient,
        threshold: float = RELEVANCE_THRESHOLD,
        top_k: int = TOP_K,
    ):
        self._repo = repository
        self._embeddings = embeddings
        self._threshold = threshold
        self._top_k = top_k

    async def find_relevant(self, user_id: str, query: str) -> list[FactMatch]:
        """Return up to ``top_k`` stored chunks at or above the relevance threshold."""
        if not query or not query.strip():
            return []
        result = await self._embeddings.embed(query.strip())
        if not result.ok:
            return []
        return await self._repo.query_similar(
            user_id,
            result.value,
            threshold=self._threshold,
            limit=self._top_k,
        )
