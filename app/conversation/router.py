"""Per-user conversation routing.

Every inbound message goes through ``ConversationRouter.handle``, which
serializes work per user, consults the stored conversation state and
dispatches to exactly one handler. Handlers return the reply texts; the
transport layer sends them.
"""
from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from datetime import datetime
from zoneinfo import ZoneInfo

from app.classification.classifier import IntentClassifier
from app.commands.parser import (
    Chat,
    Command,
    ListPersonas,
    LogActivity,
    SelectPersona,
    ShowPersona,
    StartTraining,
    parse_command,
)
from app.config import Settings
from app.conversation.image_cache import FORGET_IMAGE_PHRASE, ImageCache
from app.conversation.locks import UserLocks
from app.conversation.state import (
    AwaitingDailyArchiveConfirmation,
    NormalState,
    dump_state,
    load_state,
)
from app.database.repository import Repository
from app.errors import MalformedInput
from app.llm.client import OllamaClient
from app.llm.provider import call_provider
from app.memory.extraction import extract_facts
from app.memory.fact_store import FactStore
from app.memory.retrieval import Retriever
from app.models import ChatMessage, InboundMessage, UserRecord
from app.profiles.personas import PERSONAS, PersonaService
from app.profiles.prompt_builder import build_system_prompt
from app.reminders.extractor import extract_reminder
from app.training.service import TrainingService
from app.training.trigger import MIN_DAYS_BETWEEN_TRAININGS, MIN_MESSAGES
from app.util.timestamps import to_db, utc_now

logger = logging.getLogger(__name__)

AFFIRMATIVE_TOKENS = frozenset({"ya", "yes", "ok", "y"})

GENERIC_ERROR_REPLY = "Maaf, terjadi kesalahan. Silakan coba lagi."
COMPLETION_FALLBACK_REPLY = "Maaf, saya mengalami kendala saat memproses permintaan Anda."
ARCHIVE_PROMPT = (
    "Selamat pagi. Saya melihat ada beberapa aktivitas dari hari sebelumnya yang belum "
    "diarsipkan. Apakah Anda ingin mengarsipkan rekam medis Anda sekarang?"
)
ARCHIVE_STARTED_REPLY = "Baik, memulai proses arsip... ⏳"
ARCHIVE_EMPTY_REPLY = "Tidak ada data baru untuk diarsipkan."
ARCHIVE_DONE_REPLY = "✅ Berhasil. Rekam medis Anda telah diarsipkan secara permanen."
ARCHIVE_DECLINED_REPLY = (
    "Baik, data tidak diarsipkan saat ini. Saya akan mengingatkan Anda lagi besok."
)


def _persona_catalog() -> str:
    return "\n".join(f"- {p.key}: {p.name} — {p.description}" for p in PERSONAS.values())


class ConversationRouter:
    def __init__(
        self,
        settings: Settings,
        repository: Repository,
        ollama_client: OllamaClient,
        classifier: IntentClassifier,
        fact_store: FactStore,
        retriever: Retriever,
        personas: PersonaService,
        training: TrainingService,
        locks: UserLocks,
        image_cache: ImageCache | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._settings = settings
        self._repo = repository
        self._ollama = ollama_client
        self._classifier = classifier
        self._facts = fact_store
        self._retriever = retriever
        self._personas = personas
        self._training = training
        self._locks = locks
        self._images = image_cache or ImageCache()
        self._clock = clock
        self._tz = ZoneInfo(settings.timezone)
        self._timeout = settings.provider_timeout_seconds

    async def handle(self, msg: InboundMessage) -> list[str]:
        """Process one inbound message and return the replies to send, in order."""
        async with self._locks.get(msg.sender_id):
            try:
                return await self._route(msg)
            except Exception:
                logger.exception("Failed to process message from %s", msg.sender_id)
                return [GENERIC_ERROR_REPLY]

    async def _route(self, msg: InboundMessage) -> list[str]:
        user = await self._repo.get_or_create_user(msg.sender_id)
        state = load_state(user.conversation_state)

        if isinstance(state, AwaitingDailyArchiveConfirmation):
            return await self._confirm_daily_archive(msg, state)

        # The daily prompt preempts everything else, including commands
        if await self._needs_daily_archive_prompt(user.id, state):
            return await self._prompt_daily_archive(user.id)

        try:
            command = parse_command(msg.text)
        except MalformedInput as e:
            return [e.reply]
        return await self._dispatch(command, msg, user)

    async def _dispatch(self, command: Command, msg: InboundMessage, user: UserRecord) -> list[str]:
        if isinstance(command, LogActivity):
            return await self._log_activity(user.id, command)
        if isinstance(command, SelectPersona):
            return await self._select_persona(user.id, command)
        if isinstance(command, ShowPersona):
            return await self._show_persona(user.id)
        if isinstance(command, ListPersonas):
            return [f"Tipe AI yang tersedia:\n{_persona_catalog()}"]
        if isinstance(command, StartTraining):
            return await self._start_training(user.id, command)
        if isinstance(command, Chat):
            return await self._chat(msg, user)
        raise TypeError(f"Unhandled command: {command!r}")

    # --- Daily archive ---

    def _local_date(self, dt: datetime):
        return dt.astimezone(self._tz).date()

    async def _needs_daily_archive_prompt(self, user_id: str, state: NormalState) -> bool:
        today = self._local_date(self._clock())
        if state.last_prompted_at and self._local_date(state.last_prompted_at) >= today:
            return False
        return await self._repo.count_unarchived_logs(user_id) > 0

    async def _prompt_daily_archive(self, user_id: str) -> list[str]:
        logger.info("User %s has unarchived logs. Prompting for daily archive.", user_id)
        new_state = AwaitingDailyArchiveConfirmation(prompted_at=self._clock())
        await self._repo.update_conversation_state(user_id, dump_state(new_state))
        return [ARCHIVE_PROMPT]

    async def _confirm_daily_archive(
        self, msg: InboundMessage, state: AwaitingDailyArchiveConfirmation
    ) -> list[str]:
        user_id = msg.sender_id
        if msg.text.strip().lower() in AFFIRMATIVE_TOKENS:
            replies = [ARCHIVE_STARTED_REPLY]
            logs = await self._repo.get_unarchived_logs(user_id)
            if not logs:
                replies.append(ARCHIVE_EMPTY_REPLY)
            else:
                payload = [log.model_dump(exclude={"user_id", "is_archived"}) for log in logs]
                logger.info(
                    "Archiving %d activity logs for %s: %s",
                    len(logs),
                    user_id,
                    json.dumps(payload, ensure_ascii=False),
                )
                await self._repo.archive_logs([log.id for log in logs])
                replies.append(ARCHIVE_DONE_REPLY)
        else:
            replies = [ARCHIVE_DECLINED_REPLY]

        # Keep the prompt time so the user isn't asked again today
        await self._repo.update_conversation_state(
            user_id, dump_state(NormalState(last_prompted_at=state.prompted_at))
        )
        return replies

    # --- Commands ---

    async def _log_activity(self, user_id: str, command: LogActivity) -> list[str]:
        await self._repo.add_activity_log(user_id, command.activity_type, command.details)
        logger.info("Logged activity '%s' for %s", command.activity_type, user_id)
        return [f"✅ Aktivitas '{command.activity_type}' berhasil dicatat."]

    async def _select_persona(self, user_id: str, command: SelectPersona) -> list[str]:
        persona = await self._personas.select(user_id, command.persona) if command.persona else None
        if persona is None:
            return [
                "Tipe AI tidak ditemukan. Gunakan: jek, pilih ai [tipe]\n"
                f"Pilihan:\n{_persona_catalog()}"
            ]
        return [f"✅ AI Anda sekarang: {persona.name}\n{persona.description}"]

    async def _show_persona(self, user_id: str) -> list[str]:
        persona, pref = await self._personas.active_persona(user_id)
        if pref is None:
            return [
                "Anda belum memilih tipe AI. Gunakan: jek, pilih ai [tipe]\n"
                f"Pilihan:\n{_persona_catalog()}"
            ]
        lines = [
            f"🤖 *{persona.name}*",
            persona.description,
            f"Fokus: {', '.join(persona.focus_areas)}",
            f"Gaya komunikasi: {pref.communication_style or 'formal'}",
            f"Bahasa: {pref.preferred_language}",
        ]
        if persona.examples:
            lines.append("Contoh:")
            lines.extend(f"- {example}" for example in persona.examples)
        return ["\n".join(lines)]

    async def _start_training(self, user_id: str, command: StartTraining) -> list[str]:
        if command.note and await self._classifier.training_intent(command.note) == "NO":
            return ["Baik, pelatihan tidak dijalankan."]

        decision = await self._training.evaluate(user_id, require_new_data=False)
        if decision.eligible:
            count = await self._training.start_cycle(user_id)
            if count:
                return [f"🔄 Pelatihan personal dimulai dengan {count} contoh percakapan."]
            return ["Belum ada pasangan percakapan yang bisa dipakai untuk pelatihan."]

        if decision.transcript_length < MIN_MESSAGES:
            reason = (
                f"butuh minimal {MIN_MESSAGES} pesan, saat ini baru {decision.transcript_length}"
            )
        elif (
            decision.days_since_last_training is not None
            and decision.days_since_last_training < MIN_DAYS_BETWEEN_TRAININGS
        ):
            reason = (
                f"pelatihan terakhir {decision.days_since_last_training:.0f} hari lalu, "
                f"tunggu minimal {MIN_DAYS_BETWEEN_TRAININGS} hari"
            )
        elif decision.quality == "LOW":
            reason = "kualitas percakapan belum cukup baik"
        else:
            reason = "gaya percakapan terlalu singkat untuk dijadikan data pelatihan"
        return [f"Pelatihan belum bisa dimulai: {reason}."]

    # --- Chat ---

    async def _chat(self, msg: InboundMessage, user: UserRecord) -> list[str]:
        if msg.has_attachment or not msg.text:
            return await self._converse(msg, user)

        intent = await self._classifier.structured_intent(msg.text)
        if intent.intent == "reminder":
            return await self._create_reminder(user.id, msg.text)
        if intent.intent == "profile":
            return await self._show_profile(user.id)
        if intent.intent == "delete":
            return await self._delete_facts(user.id, intent.keyword)
        if intent.intent == "feedback":
            return await self._save_feedback(user.id, intent.feedback or msg.text)
        return await self._converse(msg, user)

    async def _create_reminder(self, user_id: str, text: str) -> list[str]:
        now = self._clock()
        try:
            request = await extract_reminder(text, now, self._tz, self._ollama, self._timeout)
        except MalformedInput as e:
            return [e.reply]
        if request.due_at <= now:
            return ["Waktu pengingat itu sudah lewat. Sebutkan waktu di masa depan, ya."]
        reminder_id = await self._repo.add_reminder(
            user_id, to_db(request.due_at), request.description
        )
        local = request.due_at.astimezone(self._tz)
        logger.info("Reminder %d created for %s at %s", reminder_id, user_id, local.isoformat())
        return [
            f"✅ Pengingat '{request.description}' dijadwalkan pada "
            f"{local.strftime('%d-%m-%Y %H:%M')}."
        ]

    async def _show_profile(self, user_id: str) -> list[str]:
        facts = await self._facts.list_facts(user_id)
        if not facts:
            return ["Saya belum menyimpan informasi apa pun tentang Anda."]
        return ["Yang saya ingat tentang Anda:\n" + "\n".join(f"- {f}" for f in facts)]

    async def _delete_facts(self, user_id: str, keyword: str | None) -> list[str]:
        deleted = await self._facts.delete_facts(user_id, keyword=keyword)
        if not deleted:
            return ["Tidak ada informasi yang cocok untuk dihapus."]
        return [f"🗑️ {deleted} catatan tentang Anda telah dihapus."]

    async def _save_feedback(self, user_id: str, feedback: str) -> list[str]:
        sentiment = await self._classifier.sentiment(feedback)
        await self._repo.save_feedback(user_id, feedback, sentiment)
        if sentiment == "NEGATIVE":
            return ["Terima kasih atas masukannya. Saya akan berusaha lebih baik. 🙏"]
        return ["Terima kasih atas masukannya! 🙏"]

    async def _converse(self, msg: InboundMessage, user: UserRecord) -> list[str]:
        user_id = user.id
        text = msg.text.strip()
        history_text = text
        images: list[str] | None = None

        if msg.has_attachment and msg.attachment_bytes:
            await self._images.remember(user_id, msg.attachment_bytes)
            images = [base64.b64encode(msg.attachment_bytes).decode()]
            history_text = f"{text} [Image Sent]".strip()
        else:
            cached = await self._images.get(user_id)
            if cached:
                images = [base64.b64encode(cached).decode()]

        relevant = await self._retriever.find_relevant(user_id, text)
        persona, pref = await self._personas.active_persona(user_id)
        system_prompt = build_system_prompt(
            self._settings.system_prompt,
            persona,
            pref,
            [m.content for m in relevant],
            self._clock().astimezone(self._tz).strftime("%Y-%m-%d"),
        )
        history = await self._repo.get_recent_messages(
            user_id, self._settings.conversation_max_messages
        )
        messages = [*history, ChatMessage(role="user", content=text, images=images)]

        result = await call_provider(
            "completion",
            self._ollama.chat(
                messages,
                system=system_prompt,
                model=user.personalized_model_id,
                max_tokens=self._settings.completion_max_tokens,
            ),
            self._timeout,
        )
        reply = result.unwrap_or("")
        if not reply:
            return [COMPLETION_FALLBACK_REPLY]

        if not msg.has_attachment and FORGET_IMAGE_PHRASE in text.lower():
            await self._images.forget(user_id)

        await self._repo.append_exchange(user_id, history_text, reply)
        await self._after_reply(user_id, text)
        return [reply]

    async def _after_reply(self, user_id: str, text: str) -> None:
        """Memory and training upkeep once the exchange is committed. Best-effort."""
        try:
            for fact in await extract_facts(text, self._ollama, self._timeout):
                await self._facts.ingest(user_id, fact)
            await self._training.after_turn(user_id)
        except Exception:
            logger.warning("Post-reply upkeep failed for %s", user_id, exc_info=True)
