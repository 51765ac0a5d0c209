"""Label classification over the chat model with safe defaults.

Each classification kind has a fixed label set and a default. Provider
failures, timeouts and outputs outside the label set all collapse to the
kind's default, so a classification can never abort a conversation turn.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import StrEnum

from app.llm.client import OllamaClient
from app.llm.provider import call_provider
from app.memory.extraction import strip_code_fences
from app.models import ChatMessage

logger = logging.getLogger(__name__)


class ClassificationKind(StrEnum):
    CONSENT = "consent"
    SENTIMENT = "sentiment"
    TRAINING_INTENT = "training_intent"
    QUALITY = "quality"
    STYLE = "style"


@dataclass(frozen=True)
class _KindSpec:
    labels: tuple[str, ...]
    default: str
    prompt: str
    max_tokens: int = 20


_KINDS: dict[ClassificationKind, _KindSpec] = {
    ClassificationKind.CONSENT: _KindSpec(
        labels=("AGREE", "DISAGREE", "NEUTRAL"),
        default="NEUTRAL",
        prompt=(
            "You analyze user responses to detect agreement or consent.\n"
            "Respond with ONLY one of these categories:\n"
            "- AGREE: the user agrees, consents, or gives a positive response\n"
            "- DISAGREE: the user disagrees, refuses, or gives a negative response\n"
            "- NEUTRAL: the response is unclear or neutral\n"
            "Context: {context}\n"
            "Respond with only the category, nothing else."
        ),
    ),
    ClassificationKind.SENTIMENT: _KindSpec(
        labels=("POSITIVE", "NEGATIVE", "NEUTRAL"),
        default="NEUTRAL",
        prompt=(
            "Analyze the sentiment of the user message and respond with ONLY:\n"
            "- POSITIVE: happy, satisfied, enthusiastic\n"
            "- NEGATIVE: angry, frustrated, dissatisfied\n"
            "- NEUTRAL: neutral, factual, unclear\n"
            "Respond with only the sentiment, nothing else."
        ),
    ),
    ClassificationKind.TRAINING_INTENT: _KindSpec(
        labels=("YES", "NO", "MAYBE"),
        default="MAYBE",
        prompt=(
            "Analyze if the user wants to proceed with AI training and respond with ONLY:\n"
            "- YES: the user wants to train, improve, or proceed with training\n"
            "- NO: the user doesn't want to train or is satisfied with the current state\n"
            "- MAYBE: unclear or conditional response\n"
            "Respond with only YES/NO/MAYBE, nothing else."
        ),
    ),
    ClassificationKind.QUALITY: _KindSpec(
        labels=("HIGH", "MEDIUM", "LOW"),
        default="MEDIUM",
        prompt=(
            "Analyze the quality of this conversation for AI training and respond with:\n"
            "- HIGH: good quality, diverse topics, clear responses\n"
            "- MEDIUM: decent quality, some useful data\n"
            "- LOW: poor quality, repetitive, unclear\n"
            "Consider topic diversity, response clarity, conversation depth and training value.\n"
            "Respond with only the quality level, nothing else."
        ),
    ),
    ClassificationKind.STYLE: _KindSpec(
        labels=("FORMAL", "CASUAL", "DIRECT", "DETAILED"),
        default="CASUAL",
        prompt=(
            "Analyze the user's communication style and respond with ONLY:\n"
            "- FORMAL: professional, polite, structured\n"
            "- CASUAL: friendly, relaxed, informal\n"
            "- DIRECT: brief, to-the-point, concise\n"
            "- DETAILED: thorough, explanatory, verbose\n"
            "Respond with only the style, nothing else."
        ),
    ),
}

INTENTS = ("reminder", "profile", "delete", "feedback", "other")
DEFAULT_INTENT = "other"

_INTENT_PROMPT = (
    "Classify the purpose of the user's WhatsApp message.\n"
    "Intents:\n"
    "- reminder: the user asks to be reminded of something at some time\n"
    "- profile: the user asks what you know or remember about them\n"
    "- delete: the user asks you to forget or delete stored information about them\n"
    "- feedback: the user gives feedback about you or your answers\n"
    "- other: anything else\n\n"
    "Respond with JSON only, no prose:\n"
    '{"intent": "<intent>", "keyword": "<topic to forget, only for delete, else null>", '
    '"feedback": "<the feedback text, only for feedback, else null>"}'
)


@dataclass(frozen=True)
class StructuredIntent:
    intent: str = DEFAULT_INTENT
    keyword: str | None = None
    feedback: str | None = None


def parse_label(text: str, kind: ClassificationKind) -> str:
    """Map raw model output to a label of ``kind`` or the kind's default."""
    kind_spec = _KINDS[kind]
    words = re.findall(r"[A-Za-z]+", text or "")
    if words and words[0].upper() in kind_spec.labels:
        return words[0].upper()
    return kind_spec.default


def parse_structured_intent(text: str) -> StructuredIntent:
    try:
        data = json.loads(strip_code_fences(text or ""))
    except (json.JSONDecodeError, ValueError):
        logger.warning("Unparseable intent response: %s", (text or "")[:200])
        return StructuredIntent()
    if not isinstance(data, dict):
        return StructuredIntent()

    intent = data.get("intent")
    if not isinstance(intent, str) or intent.strip().lower() not in INTENTS:
        return StructuredIntent()

    def _optional(key: str) -> str | None:
        value = data.get(key)
        if isinstance(value, str) and value.strip() and value.strip().lower() != "null":
            return value.strip()
        return None

    return StructuredIntent(
        intent=intent.strip().lower(),
        keyword=_optional("keyword"),
        feedback=_optional("feedback"),
    )


def _format_history(history: list) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in history)


class IntentClassifier:
    def __init__(self, ollama_client: OllamaClient, timeout: float = 60.0):
        self._ollama = ollama_client
        self._timeout = timeout

    async def _classify(
        self, kind: ClassificationKind, content: str, context: str = ""
    ) -> str:
        kind_spec = _KINDS[kind]
        system = kind_spec.prompt
        if "{context}" in system:
            system = system.format(context=context)
        result = await call_provider(
            f"{kind} classification",
            self._ollama.chat(
                [ChatMessage(role="user", content=content)],
                system=system,
                max_tokens=kind_spec.max_tokens,
            ),
            self._timeout,
        )
        if not result.ok:
            return kind_spec.default
        return parse_label(result.value, kind)

    async def consent(self, message: str, context: str = "") -> str:
        return await self._classify(ClassificationKind.CONSENT, message, context=context)

    async def sentiment(self, message: str) -> str:
        return await self._classify(ClassificationKind.SENTIMENT, message)

    async def training_intent(self, message: str) -> str:
        return await self._classify(ClassificationKind.TRAINING_INTENT, message)

    async def conversation_quality(self, history: list) -> str:
        return await self._classify(
            ClassificationKind.QUALITY,
            f"Analyze this conversation:\n{_format_history(history)}",
        )

    async def communication_style(self, history: list) -> str:
        return await self._classify(
            ClassificationKind.STYLE,
            f"Analyze communication style:\n{_format_history(history)}",
        )

    async def structured_intent(self, message: str) -> StructuredIntent:
        result = await call_provider(
            "intent classification",
            self._ollama.chat(
                [ChatMessage(role="user", content=message)],
                system=_INTENT_PROMPT,
                max_tokens=120,
            ),
            self._timeout,
        )
        if not result.ok:
            return StructuredIntent()
        return parse_structured_intent(result.value)
