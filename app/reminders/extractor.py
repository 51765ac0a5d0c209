"""Extract a reminder (due time + description) from a user message."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from app.errors import MalformedInput
from app.llm.client import OllamaClient
from app.llm.provider import call_provider
from app.memory.extraction import strip_code_fences
from app.models import ChatMessage

logger = logging.getLogger(__name__)

UNPARSEABLE_REPLY = (
    "Maaf, saya tidak bisa memahami kapan harus mengingatkan Anda. "
    "Coba sebutkan waktunya, misalnya: ingatkan saya minum obat besok jam 8 pagi."
)

_EXTRACT_PROMPT = (
    "The user wants to be reminded of something. The current local time is {now} "
    "({tz}).\n"
    "Extract when the reminder is due and what it is about.\n"
    'Respond in JSON only: {{"due_at": "YYYY-MM-DDTHH:MM:SS", "description": "..."}}\n'
    "due_at is local time in {tz}. If no time can be determined, respond "
    '{{"due_at": null, "description": null}}.\n\n'
    "User message: {message}"
)


@dataclass(frozen=True)
class ReminderRequest:
    due_at: datetime  # aware
    description: str


def parse_reminder(response: str, tz: ZoneInfo) -> ReminderRequest:
    try:
        data = json.loads(strip_code_fences(response))
    except (json.JSONDecodeError, ValueError):
        logger.warning("Unparseable reminder response: %s", response[:200])
        raise MalformedInput(UNPARSEABLE_REPLY) from None
    if not isinstance(data, dict):
        raise MalformedInput(UNPARSEABLE_REPLY)

    due_raw = data.get("due_at")
    description = data.get("description")
    if not isinstance(due_raw, str) or not isinstance(description, str) or not description.strip():
        raise MalformedInput(UNPARSEABLE_REPLY)
    try:
        due_at = datetime.fromisoformat(due_raw.strip())
    except ValueError:
        raise MalformedInput(UNPARSEABLE_REPLY) from None
    if due_at.tzinfo is None:
        due_at = due_at.replace(tzinfo=tz)
    return ReminderRequest(due_at=due_at, description=description.strip())


async def extract_reminder(
    message: str,
    now: datetime,
    tz: ZoneInfo,
    ollama_client: OllamaClient,
    timeout: float,
) -> ReminderRequest:
    """Ask the model for the reminder fields. Raises MalformedInput when it can't."""
    prompt = _EXTRACT_PROMPT.format(
        now=now.astimezone(tz).strftime("%Y-%m-%dT%H:%M:%S"),
        tz=tz.key,
        message=message,
    )
    result = await call_provider(
        "reminder extraction",
        ollama_client.chat([ChatMessage(role="user", content=prompt)], max_tokens=120),
        timeout,
    )
    if not result.ok:
        raise MalformedInput(UNPARSEABLE_REPLY)
    return parse_reminder(result.value, tz)
