from __future__ import annotations

import logging
import re

import httpx

from app.models import ChatMessage

logger = logging.getLogger(__name__)


class OllamaClient:
    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        model: str,
        embed_model: str | None = None,
    ):
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._embed_model = embed_model or model

    def _build_message_dicts(self, messages: list[ChatMessage]) -> list[dict]:
        msg_dicts = []
        for m in messages:
            d: dict = {"role": m.role, "content": m.content}
            if m.images:
                d["images"] = m.images
            msg_dicts.append(d)
        return msg_dicts

    async def chat(
        self,
        messages: list[ChatMessage],
        system: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        think: bool = False,
    ) -> str:
        url = f"{self._base_url}/api/chat"
        use_model = model or self._model

        if system:
            messages = [ChatMessage(role="system", content=system), *messages]

        payload: dict = {
            "model": use_model,
            "messages": self._build_message_dicts(messages),
            "stream": False,
        }
        if think:
            payload["think"] = True
        if max_tokens:
            payload["options"] = {"num_predict": max_tokens}

        resp = await self._http.post(url, json=payload)
        if resp.status_code == 404:
            logger.error(
                "Ollama model '%s' not found — download it with: ollama pull %s",
                use_model,
                use_model,
            )
        resp.raise_for_status()
        data = resp.json()
        content = data["message"].get("content", "")

        if content:
            logger.debug("LLM raw response: %s", content[:500])
            # Strip reasoning blocks: <think>...</think>
            content = re.sub(r"<think>.*?</think>\n*", "", content, flags=re.DOTALL)
            content = content.split("</think>")[-1]
            content = content.split("<think>")[0].strip()

        return content

    async def embed(
        self,
        texts: list[str],
        model: str | None = None,
    ) -> list[list[float]]:
        """Generate embeddings for a batch of texts via POST /api/embed."""
        url = f"{self._base_url}/api/embed"
        use_model = model or self._embed_model
        payload = {"model": use_model, "input": texts}
        resp = await self._http.post(url, json=payload)
        if resp.status_code == 404:
            logger.error(
                "Ollama embedding model '%s' not found — download it with: ollama pull %s",
                use_model,
                use_model,
            )
        resp.raise_for_status()
        data = resp.json()
        return data["embeddings"]

    async def is_available(self) -> bool:
        try:
            resp = await self._http.get(
                f"{self._base_url}/api/tags",
                timeout=5.0,
            )
            return resp.status_code == 200
        except httpx.HTTPError:
            return False
