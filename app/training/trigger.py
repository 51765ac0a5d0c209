"""Decision rules for starting a personalization cycle."""
from __future__ import annotations

from datetime import datetime

MIN_MESSAGES = 10
MIN_DAYS_BETWEEN_TRAININGS = 7
MIN_NEW_MESSAGES = 5

_GOOD_QUALITY = {"HIGH", "MEDIUM"}


def days_since(last_training_at: datetime | None, now: datetime) -> float | None:
    if last_training_at is None:
        return None
    return (now - last_training_at).total_seconds() / 86400


def should_trigger_training(
    transcript_length: int,
    days_since_last_training: float | None,
    quality: str,
    style: str,
) -> bool:
    """True when the transcript is long enough, old enough and good enough to train on.

    ``days_since_last_training`` is None for a user that was never trained.
    """
    has_enough_data = transcript_length >= MIN_MESSAGES
    enough_time_passed = (
        days_since_last_training is None
        or days_since_last_training >= MIN_DAYS_BETWEEN_TRAININGS
    )
    good_quality = quality in _GOOD_QUALITY
    # Very brief exchanges make poor training data
    good_style = style != "DIRECT"
    return has_enough_data and enough_time_passed and good_quality and good_style


def passes_cheap_gates(
    transcript_length: int,
    days_since_last_training: float | None,
    training_data_size: int,
    require_new_data: bool = True,
) -> bool:
    """Checks that need no classification; run before paying for model calls."""
    if transcript_length < MIN_MESSAGES:
        return False
    if (
        days_since_last_training is not None
        and days_since_last_training < MIN_DAYS_BETWEEN_TRAININGS
    ):
        return False
    if require_new_data:
        return transcript_length - training_data_size >= MIN_NEW_MESSAGES
    return True
