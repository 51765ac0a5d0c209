from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.errors import MalformedInput
from app.reminders.extractor import UNPARSEABLE_REPLY, extract_reminder, parse_reminder
from app.reminders.scheduler import JOB_ID, ReminderScheduler, format_reminder

JAKARTA = ZoneInfo("Asia/Jakarta")
USER = "6281234567890"
NOW = datetime(2024, 5, 1, 1, 0, tzinfo=UTC)  # 08:00 in Jakarta


def test_parse_reminder_local_time_to_aware():
    request = parse_reminder(
        '{"due_at": "2024-05-01T20:00:00", "description": "minum obat"}', JAKARTA
    )
    assert request.description == "minum obat"
    assert request.due_at == datetime(2024, 5, 1, 13, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "raw",
    [
        "besok saja",
        '{"due_at": null, "description": null}',
        '{"due_at": "kapan-kapan", "description": "minum obat"}',
        '{"due_at": "2024-05-01T20:00:00", "description": "  "}',
    ],
)
def test_parse_reminder_unusable(raw):
    with pytest.raises(MalformedInput) as exc_info:
        parse_reminder(raw, JAKARTA)
    assert exc_info.value.reply == UNPARSEABLE_REPLY


async def test_extract_reminder_passes_local_now():
    ollama = MagicMock()
    ollama.chat = AsyncMock(
        return_value='```json\n{"due_at": "2024-05-01T09:00:00", "description": "rapat"}\n```'
    )
    request = await extract_reminder("ingatkan rapat jam 9", NOW, JAKARTA, ollama, timeout=1.0)
    assert request.description == "rapat"
    prompt = ollama.chat.call_args.args[0][0].content
    assert "2024-05-01T08:00:00" in prompt
    assert "Asia/Jakarta" in prompt


async def test_extract_reminder_provider_failure():
    ollama = MagicMock()
    ollama.chat = AsyncMock(side_effect=RuntimeError("down"))
    with pytest.raises(MalformedInput):
        await extract_reminder("ingatkan saya", NOW, JAKARTA, ollama, timeout=1.0)


# --- Delivery ---


def _scheduler(repository, send) -> ReminderScheduler:
    return ReminderScheduler(repository, send, interval_seconds=60, clock=lambda: NOW)


async def test_due_reminder_delivered_once(repository):
    await repository.add_reminder(USER, "2024-05-01 00:59:00", "minum obat")
    send = AsyncMock()
    scheduler = _scheduler(repository, send)

    assert await scheduler.tick() == 1
    send.assert_awaited_once_with(USER, format_reminder("minum obat"))

    assert await scheduler.tick() == 0
    assert send.await_count == 1


async def test_future_reminder_not_sent(repository):
    await repository.add_reminder(USER, "2024-05-01 01:01:00", "nanti")
    send = AsyncMock()
    assert await _scheduler(repository, send).tick() == 0
    send.assert_not_awaited()


async def test_send_failure_leaves_reminder_pending(repository):
    await repository.add_reminder(USER, "2024-05-01 00:00:00", "gagal")
    await repository.add_reminder(USER, "2024-05-01 00:30:00", "berhasil")
    send = AsyncMock(side_effect=[RuntimeError("whatsapp down"), None])

    assert await _scheduler(repository, send).tick() == 1
    pending = await repository.get_due_reminders("2024-05-01 01:00:00")
    assert [r.description for r in pending] == ["gagal"]


async def test_mark_failure_means_resend(repository):
    await repository.add_reminder(USER, "2024-05-01 00:00:00", "minum obat")
    send = AsyncMock()
    scheduler = _scheduler(repository, send)

    original_mark = repository.mark_reminder_sent
    repository.mark_reminder_sent = AsyncMock(side_effect=RuntimeError("db locked"))
    assert await scheduler.tick() == 0

    repository.mark_reminder_sent = original_mark
    assert await scheduler.tick() == 1
    assert send.await_count == 2


def test_register_adds_interval_job(repository):
    aps = AsyncIOScheduler()
    _scheduler(repository, AsyncMock()).register(aps)
    job = aps.get_job(JOB_ID)
    assert job is not None
    assert job.max_instances == 1
