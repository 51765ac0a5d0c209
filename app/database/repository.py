from __future__ import annotations

import asyncio
import json
import struct
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from app.models import (
    ActivityLog,
    AIPreference,
    ChatMessage,
    FactMatch,
    Reminder,
    StoredEmbedding,
    TranscriptEntry,
    UserRecord,
)

_USER_COLUMNS = (
    "id, conversation_state, last_training_at, training_data_size, "
    "personalized_model_id, created_at"
)


def _user_from_row(row) -> UserRecord:
    return UserRecord(
        id=row[0],
        conversation_state=row[1],
        last_training_at=row[2],
        training_data_size=row[3],
        personalized_model_id=row[4],
        created_at=row[5],
    )


class Repository:
    def __init__(self, conn: aiosqlite.Connection):
        self._conn = conn
        self._write_lock = asyncio.Lock()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """One write transaction at a time on the shared connection.

        Commits on success and rolls back on error. Without the lock, another
        task's commit or rollback could land between our statements.
        """
        async with self._write_lock:
            try:
                yield self._conn
                await self._conn.commit()
            except Exception:
                await self._conn.rollback()
                raise

    # --- Users ---

    async def get_or_create_user(self, user_id: str) -> UserRecord:
        cursor = await self._conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if row:
            return _user_from_row(row)
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT OR IGNORE INTO users (id) VALUES (?)",
                (user_id,),
            )
        cursor = await self._conn.execute(
            f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?",
            (user_id,),
        )
        return _user_from_row(await cursor.fetchone())

    async def list_users(self) -> list[UserRecord]:
        cursor = await self._conn.execute(f"SELECT {_USER_COLUMNS} FROM users ORDER BY id")
        rows = await cursor.fetchall()
        return [_user_from_row(r) for r in rows]

    async def update_conversation_state(self, user_id: str, state_json: str) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE users SET conversation_state = ? WHERE id = ?",
                (state_json, user_id),
            )

    async def update_training_bookkeeping(
        self, user_id: str, last_training_at: str, training_data_size: int
    ) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "UPDATE users SET last_training_at = ?, training_data_size = ? WHERE id = ?",
                (last_training_at, training_data_size, user_id),
            )

    # --- Transcript ---

    async def append_exchange(self, user_id: str, user_content: str, assistant_content: str) -> None:
        """Append the user's message and the assistant's reply in one transaction."""
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT INTO messages (user_id, role, content) VALUES (?, 'user', ?)",
                (user_id, user_content),
            )
            await conn.execute(
                "INSERT INTO messages (user_id, role, content) VALUES (?, 'assistant', ?)",
                (user_id, assistant_content),
            )

    async def get_recent_messages(self, user_id: str, limit: int) -> list[ChatMessage]:
        cursor = await self._conn.execute(
            "SELECT role, content FROM messages WHERE user_id = ? ORDER BY id DESC LIMIT ?",
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [ChatMessage(role=r[0], content=r[1]) for r in reversed(rows)]

    async def get_transcript(self, user_id: str) -> list[TranscriptEntry]:
        cursor = await self._conn.execute(
            "SELECT role, content, created_at FROM messages WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [TranscriptEntry(role=r[0], content=r[1], created_at=r[2]) for r in rows]

    async def get_message_count(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM messages WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0]

    # --- Fact chunks & embeddings (sqlite-vec) ---

    @staticmethod
    def _serialize_vector(vec: list[float]) -> bytes:
        return struct.pack(f"{len(vec)}f", *vec)

    @staticmethod
    def _deserialize_vector(blob: bytes) -> list[float]:
        return list(struct.unpack(f"{len(blob) // 4}f", blob))

    async def save_fact_chunks(
        self, user_id: str, chunks: list[tuple[str, list[float]]]
    ) -> str:
        """Persist the (chunk, embedding) rows of one fact atomically. Returns the fact id."""
        fact_id = uuid.uuid4().hex
        async with self._transaction() as conn:
            for content, embedding in chunks:
                await conn.execute(
                    "INSERT INTO fact_chunks (id, user_id, fact_id, content, embedding) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (uuid.uuid4().hex, user_id, fact_id, content, self._serialize_vector(embedding)),
                )
        return fact_id

    async def get_user_embeddings(self, user_id: str) -> list[StoredEmbedding]:
        cursor = await self._conn.execute(
            "SELECT id, content, embedding FROM fact_chunks WHERE user_id = ?",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            StoredEmbedding(id=r[0], content=r[1], embedding=self._deserialize_vector(r[2]))
            for r in rows
        ]

    async def query_similar(
        self,
        owner_id: str,
        query_vector: list[float],
        threshold: float,
        limit: int,
    ) -> list[FactMatch]:
        """Rank the owner's chunks by cosine similarity, best first.

        Chunks whose dimension differs from the query are skipped.
        """
        blob = self._serialize_vector(query_vector)
        cursor = await self._conn.execute(
            "SELECT content, similarity FROM ("
            "  SELECT content, 1 - vec_distance_cosine(embedding, ?) AS similarity "
            "  FROM fact_chunks WHERE user_id = ? AND length(embedding) = ?"
            ") WHERE similarity >= ? "
            "ORDER BY similarity DESC LIMIT ?",
            (blob, owner_id, len(blob), threshold, limit),
        )
        rows = await cursor.fetchall()
        return [FactMatch(content=r[0], similarity=r[1]) for r in rows]

    async def list_fact_chunks(self, user_id: str) -> list[tuple[str, str]]:
        """Return (fact_id, chunk content) rows in insertion order."""
        cursor = await self._conn.execute(
            "SELECT fact_id, content FROM fact_chunks WHERE user_id = ? ORDER BY rowid",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [(r[0], r[1]) for r in rows]

    async def delete_facts(self, user_id: str, keyword: str | None = None) -> int:
        """Delete whole facts and return how many were removed.

        With a keyword, every fact having at least one matching chunk goes,
        all of its chunks included.
        """
        if keyword:
            where = (
                "user_id = ? AND fact_id IN "
                "(SELECT fact_id FROM fact_chunks WHERE user_id = ? AND content LIKE ?)"
            )
            params: tuple = (user_id, user_id, f"%{keyword}%")
        else:
            where = "user_id = ?"
            params = (user_id,)
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"SELECT COUNT(DISTINCT fact_id) FROM fact_chunks WHERE {where}", params
            )
            (count,) = await cursor.fetchone()
            await conn.execute(f"DELETE FROM fact_chunks WHERE {where}", params)
        return count

    # --- Activity logs ---

    async def add_activity_log(
        self, user_id: str, activity_type: str, details: dict[str, str]
    ) -> int:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO activity_logs (user_id, activity_type, details) VALUES (?, ?, ?)",
                (user_id, activity_type, json.dumps(details, ensure_ascii=False)),
            )
        return cursor.lastrowid

    async def count_unarchived_logs(self, user_id: str) -> int:
        cursor = await self._conn.execute(
            "SELECT COUNT(*) FROM activity_logs WHERE user_id = ? AND is_archived = 0",
            (user_id,),
        )
        row = await cursor.fetchone()
        return row[0]

    async def get_unarchived_logs(self, user_id: str) -> list[ActivityLog]:
        cursor = await self._conn.execute(
            "SELECT id, user_id, activity_type, details, activity_at, is_archived "
            "FROM activity_logs WHERE user_id = ? AND is_archived = 0 ORDER BY id",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [
            ActivityLog(
                id=r[0],
                user_id=r[1],
                activity_type=r[2],
                details=json.loads(r[3]),
                activity_at=r[4],
                is_archived=bool(r[5]),
            )
            for r in rows
        ]

    async def archive_logs(self, log_ids: list[int]) -> int:
        if not log_ids:
            return 0
        placeholders = ", ".join("?" for _ in log_ids)
        async with self._transaction() as conn:
            cursor = await conn.execute(
                f"UPDATE activity_logs SET is_archived = 1 WHERE id IN ({placeholders})",
                log_ids,
            )
        return cursor.rowcount

    # --- Reminders ---

    async def add_reminder(self, user_id: str, due_at: str, description: str) -> int:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO reminders (user_id, due_at, description) VALUES (?, ?, ?)",
                (user_id, due_at, description),
            )
        return cursor.lastrowid

    async def get_due_reminders(self, now: str) -> list[Reminder]:
        cursor = await self._conn.execute(
            "SELECT id, user_id, due_at, description, sent FROM reminders "
            "WHERE sent = 0 AND due_at <= ? ORDER BY due_at",
            (now,),
        )
        rows = await cursor.fetchall()
        return [
            Reminder(id=r[0], user_id=r[1], due_at=r[2], description=r[3], sent=bool(r[4]))
            for r in rows
        ]

    async def mark_reminder_sent(self, reminder_id: int) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE reminders SET sent = 1 WHERE id = ? AND sent = 0",
                (reminder_id,),
            )
        return cursor.rowcount > 0

    # --- AI preferences ---

    async def upsert_ai_preference(
        self,
        user_id: str,
        ai_type: str,
        ai_name: str,
        ai_description: str,
        focus_areas: list[str],
    ) -> None:
        async with self._transaction() as conn:
            await conn.execute(
                "INSERT INTO user_preferences "
                "(user_id, ai_type, ai_name, ai_description, focus_areas, updated_at) "
                "VALUES (?, ?, ?, ?, ?, datetime('now')) "
                "ON CONFLICT(user_id) DO UPDATE SET "
                "ai_type = excluded.ai_type, "
                "ai_name = excluded.ai_name, "
                "ai_description = excluded.ai_description, "
                "focus_areas = excluded.focus_areas, "
                "updated_at = excluded.updated_at",
                (user_id, ai_type, ai_name, ai_description, json.dumps(focus_areas)),
            )

    async def get_ai_preference(self, user_id: str) -> AIPreference | None:
        cursor = await self._conn.execute(
            "SELECT user_id, ai_type, ai_name, ai_description, focus_areas, "
            "communication_style, preferred_language, updated_at "
            "FROM user_preferences WHERE user_id = ?",
            (user_id,),
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return AIPreference(
            user_id=row[0],
            ai_type=row[1],
            ai_name=row[2],
            ai_description=row[3],
            focus_areas=json.loads(row[4]),
            communication_style=row[5],
            preferred_language=row[6],
            updated_at=row[7],
        )

    async def update_communication_style(self, user_id: str, style: str) -> bool:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "UPDATE user_preferences SET communication_style = ?, updated_at = datetime('now') "
                "WHERE user_id = ?",
                (style, user_id),
            )
        return cursor.rowcount > 0

    # --- Feedback ---

    async def save_feedback(self, user_id: str, content: str, sentiment: str) -> int:
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT INTO feedback (user_id, content, sentiment) VALUES (?, ?, ?)",
                (user_id, content, sentiment),
            )
        return cursor.lastrowid

    async def list_feedback(self, user_id: str) -> list[tuple[str, str]]:
        cursor = await self._conn.execute(
            "SELECT content, sentiment FROM feedback WHERE user_id = ? ORDER BY id",
            (user_id,),
        )
        rows = await cursor.fetchall()
        return [(r[0], r[1]) for r in rows]

    async def ping(self) -> bool:
        try:
            await self._conn.execute("SELECT 1")
        except Exception:
            return False
        return True

    # --- Deduplication ---

    async def try_claim_message(self, wa_message_id: str) -> bool:
        """Atomically claim a message ID. Returns True if already processed (duplicate)."""
        async with self._transaction() as conn:
            cursor = await conn.execute(
                "INSERT OR IGNORE INTO processed_messages (wa_message_id) VALUES (?)",
                (wa_message_id,),
            )
        return cursor.rowcount == 0
