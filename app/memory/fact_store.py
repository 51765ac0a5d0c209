"""Write path of the long-term memory: dedup-checked fact ingestion."""
from __future__ import annotations

import logging

from app.database.repository import Repository
from app.embeddings.client import EmbeddingClient
from app.memory.chunker import chunk_text, join_chunks
from app.memory.similarity import is_duplicate

logger = logging.getLogger(__name__)

DEDUP_THRESHOLD = 0.9


class FactStore:
    def __init__(
        self,
        repository: Repository,
        embeddings: EmbeddingClient,
        dedup_threshold: float = DEDUP_THRESHOLD,
    ):
        self._repo = repository
        self._embeddings = embeddings
        self._threshold = dedup_threshold

    async def ingest(self, user_id: str, fact: str) -> bool:
        """Store ``fact`` for ``user_id`` unless it is already known.

        The whole fact is embedded once and compared against every stored
        chunk of the user. Only when no stored chunk is more similar than the
        dedup threshold is the fact chunked and each chunk embedded and saved.

        Returns True when something was written.
        """
        fact = fact.strip()
        chunks = chunk_text(fact)
        if not chunks:
            return False

        whole = await self._embeddings.embed(fact)
        if not whole.ok:
            logger.warning("Skipping fact for %s: %s", user_id, whole.error)
            return False

        existing = await self._repo.get_user_embeddings(user_id)
        if is_duplicate(whole.value, (row.embedding for row in existing), self._threshold):
            logger.info("Duplicate fact discarded [%s]: %s", user_id, fact[:80])
            return False

        vectors = await self._embeddings.embed_many(chunks)
        if not vectors.ok:
            logger.warning("Skipping fact for %s: %s", user_id, vectors.error)
            return False

        await self._repo.save_fact_chunks(user_id, list(zip(chunks, vectors.value, strict=True)))
        logger.info("Stored fact [%s] (%d chunks): %s", user_id, len(chunks), fact[:80])
        return True

    async def list_facts(self, user_id: str) -> list[str]:
        grouped: dict[str, list[str]] = {}
        for fact_id, content in await self._repo.list_fact_chunks(user_id):
            grouped.setdefault(fact_id, []).append(content)
        return [join_chunks(chunks) for chunks in grouped.values()]

    async def delete_facts(self, user_id: str, keyword: str | None = None) -> int:
        deleted = await self._repo.delete_facts(user_id, keyword=keyword)
        logger.info("Deleted %d facts for %s (keyword=%r)", deleted, user_id, keyword)
        return deleted
