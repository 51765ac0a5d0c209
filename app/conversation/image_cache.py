from __future__ import annotations

import asyncio
import logging

logger = logging.getLogger(__name__)

FORGET_IMAGE_PHRASE = "lupakan gambar"


class ImageCache:
    """Last image sent by each user, kept in process memory only."""

    def __init__(self) -> None:
        self._images: dict[str, bytes] = {}
        self._lock = asyncio.Lock()

    async def remember(self, user_id: str, image: bytes) -> None:
        async with self._lock:
            self._images[user_id] = image

    async def get(self, user_id: str) -> bytes | None:
        async with self._lock:
            return self._images.get(user_id)

    async def forget(self, user_id: str) -> bool:
        async with self._lock:
            removed = self._images.pop(user_id, None) is not None
        if removed:
            logger.info("Active image for %s has been forgotten", user_id)
        return removed
