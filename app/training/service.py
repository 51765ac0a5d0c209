from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.classification.classifier import IntentClassifier
from app.conversation.locks import UserLocks
from app.database.repository import Repository
from app.profiles.personas import PersonaService
from app.profiles.prompt_builder import build_training_prompt
from app.training.dataset import build_examples, export_to_jsonl
from app.training.trigger import days_since, passes_cheap_gates, should_trigger_training
from app.util.timestamps import from_db, to_db, utc_now

logger = logging.getLogger(__name__)

JOB_ID = "training_sweep"
CLASSIFY_WINDOW = 50


@dataclass(frozen=True)
class TrainingDecision:
    eligible: bool
    transcript_length: int
    days_since_last_training: float | None
    quality: str | None = None
    style: str | None = None


class TrainingService:
    def __init__(
        self,
        repository: Repository,
        classifier: IntentClassifier,
        personas: PersonaService,
        locks: UserLocks,
        training_dir: str = "data/training",
        sweep_interval_hours: int = 6,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repo = repository
        self._classifier = classifier
        self._personas = personas
        self._locks = locks
        self._dir = Path(training_dir)
        self._interval_hours = sweep_interval_hours
        self._clock = clock

    async def evaluate(self, user_id: str, require_new_data: bool = True) -> TrainingDecision:
        """Run the cheap gates, then classify quality and style only if they pass."""
        user = await self._repo.get_or_create_user(user_id)
        length = await self._repo.get_message_count(user_id)
        last = from_db(user.last_training_at) if user.last_training_at else None
        days = days_since(last, self._clock())

        if not passes_cheap_gates(length, days, user.training_data_size, require_new_data):
            return TrainingDecision(False, length, days)

        history = await self._repo.get_recent_messages(user_id, CLASSIFY_WINDOW)
        quality = await self._classifier.conversation_quality(history)
        style = await self._classifier.communication_style(history)
        await self._repo.update_communication_style(user_id, style.lower())

        eligible = should_trigger_training(length, days, quality, style)
        return TrainingDecision(eligible, length, days, quality, style)

    async def start_cycle(self, user_id: str) -> int:
        """Export the user's dataset and record the cycle. Returns the example count."""
        transcript = await self._repo.get_transcript(user_id)
        persona, _pref = await self._personas.active_persona(user_id)
        examples = build_examples(transcript, build_training_prompt(persona, len(transcript)))
        if not examples:
            logger.info("No training data available for user %s", user_id)
            return 0

        now = self._clock()
        safe_id = re.sub(r"[^A-Za-z0-9_-]", "_", user_id)
        path = self._dir / f"{safe_id}-{now.strftime('%Y%m%dT%H%M%S')}.jsonl"
        await asyncio.to_thread(export_to_jsonl, examples, path)
        await self._repo.update_training_bookkeeping(user_id, to_db(now), len(transcript))
        logger.info("Training cycle started for %s with %d examples", user_id, len(examples))
        return len(examples)

    async def after_turn(self, user_id: str) -> bool:
        """Per-message check. The caller already holds the user's lock."""
        decision = await self.evaluate(user_id, require_new_data=True)
        if not decision.eligible:
            return False
        return await self.start_cycle(user_id) > 0

    async def sweep(self) -> int:
        """Evaluate every user; one user's failure never stops the sweep.

        Classification runs without the user's lock so inbound messages are
        not held up. The lock is taken only to start the cycle, after checking
        that no other cycle ran for the user in the meantime.
        """
        started = 0
        for user in await self._repo.list_users():
            try:
                decision = await self.evaluate(user.id, require_new_data=True)
                if not decision.eligible:
                    continue
                async with self._locks.get(user.id):
                    current = await self._repo.get_or_create_user(user.id)
                    if (current.last_training_at, current.training_data_size) != (
                        user.last_training_at,
                        user.training_data_size,
                    ):
                        logger.info("Training already ran for %s, sweep skips it", user.id)
                        continue
                    if await self.start_cycle(user.id) > 0:
                        started += 1
            except Exception:
                logger.exception("Training sweep failed for user %s", user.id)
        if started:
            logger.info("Training sweep started %d cycles", started)
        return started

    def register(self, scheduler: AsyncIOScheduler) -> None:
        scheduler.add_job(
            self.sweep,
            IntervalTrigger(hours=self._interval_hours),
            id=JOB_ID,
            name="personalization training sweep",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
