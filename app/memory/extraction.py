"""Extract durable facts about the user from a single chat message."""
from __future__ import annotations

import json
import logging

from app.llm.client import OllamaClient
from app.llm.provider import call_provider
from app.models import ChatMessage

logger = logging.getLogger(__name__)

EXTRACT_PROMPT = (
    "Read the user's message and extract ONLY stable, personal facts about the user "
    "worth remembering long-term (health conditions, allergies, preferences, goals, "
    "routines, people in their life). Write each fact as one short sentence in the "
    "same language as the message. Ignore questions, greetings and small talk.\n\n"
    "User message:\n{message}\n\n"
    'Respond in JSON only: {{"facts": ["fact 1", "fact 2"]}}\n'
    'If there is nothing to remember, respond: {{"facts": []}}'
)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = [line for line in text.split("\n") if not line.strip().startswith("```")]
        text = "\n".join(lines)
    return text.strip()


def parse_facts(response: str) -> list[str]:
    try:
        data = json.loads(strip_code_fences(response))
    except (json.JSONDecodeError, ValueError):
        logger.warning("Failed to parse fact extraction response: %s", response[:200])
        return []
    if not isinstance(data, dict):
        return []
    facts = data.get("facts", [])
    if not isinstance(facts, list):
        return []
    return [f.strip() for f in facts if isinstance(f, str) and f.strip()]


async def extract_facts(message: str, ollama_client: OllamaClient, timeout: float) -> list[str]:
    if not message.strip():
        return []
    prompt = EXTRACT_PROMPT.format(message=message)
    result = await call_provider(
        "fact extraction",
        ollama_client.chat([ChatMessage(role="user", content=prompt)], max_tokens=256),
        timeout,
    )
    if not result.ok:
        return []
    return parse_facts(result.value)
