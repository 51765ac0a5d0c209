"""Polling delivery of due reminders.

Delivery is at-least-once: a reminder is sent first and marked as sent
afterwards. If the send succeeds but the update fails, the next tick sends
it again. A failed send leaves the reminder pending for the next tick.
"""
from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.database.repository import Repository
from app.util.timestamps import to_db, utc_now

logger = logging.getLogger(__name__)

JOB_ID = "reminder_tick"

SendMessage = Callable[[str, str], Awaitable[None]]


def format_reminder(description: str) -> str:
    return f"⏰ *Pengingat*: {description}"


class ReminderScheduler:
    def __init__(
        self,
        repository: Repository,
        send_message: SendMessage,
        interval_seconds: int = 60,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._repo = repository
        self._send = send_message
        self._interval = interval_seconds
        self._clock = clock

    async def tick(self) -> int:
        """Deliver every pending reminder due at or before now. Returns sent count."""
        now = to_db(self._clock())
        due = await self._repo.get_due_reminders(now)
        delivered = 0
        for reminder in due:
            try:
                await self._send(reminder.user_id, format_reminder(reminder.description))
            except Exception:
                logger.warning(
                    "Failed to deliver reminder %d to %s", reminder.id, reminder.user_id,
                    exc_info=True,
                )
                continue
            try:
                await self._repo.mark_reminder_sent(reminder.id)
            except Exception:
                logger.error(
                    "Reminder %d delivered but not marked sent; it will be resent",
                    reminder.id,
                    exc_info=True,
                )
                continue
            delivered += 1
            logger.info("Sent reminder %d to %s", reminder.id, reminder.user_id)
        return delivered

    def register(self, scheduler: AsyncIOScheduler) -> None:
        scheduler.add_job(
            self.tick,
            IntervalTrigger(seconds=self._interval),
            id=JOB_ID,
            name="deliver due reminders",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
