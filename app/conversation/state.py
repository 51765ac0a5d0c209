"""Per-user conversation state, persisted as a tagged JSON structure."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError


class NormalState(BaseModel):
    type: Literal["normal"] = "normal"
    last_prompted_at: datetime | None = None


class AwaitingDailyArchiveConfirmation(BaseModel):
    type: Literal["awaiting_daily_archive_confirmation"] = "awaiting_daily_archive_confirmation"
    prompted_at: datetime


ConversationState = Annotated[
    NormalState | AwaitingDailyArchiveConfirmation,
    Field(discriminator="type"),
]

_adapter: TypeAdapter[ConversationState] = TypeAdapter(ConversationState)


def load_state(raw: str | None) -> NormalState | AwaitingDailyArchiveConfirmation:
    """Decode a stored state; missing or unreadable values start in Normal."""
    if not raw:
        return NormalState()
    try:
        return _adapter.validate_json(raw)
    except ValidationError:
        return NormalState()


def dump_state(state: NormalState | AwaitingDailyArchiveConfirmation) -> str:
    return state.model_dump_json()
