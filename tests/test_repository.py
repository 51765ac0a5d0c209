import asyncio
import sqlite3

import pytest

USER = "6281234567890"


async def test_get_or_create_user_idempotent(repository):
    user = await repository.get_or_create_user(USER)
    assert user.id == USER
    assert user.conversation_state is None
    assert user.training_data_size == 0
    assert user.personalized_model_id is None

    again = await repository.get_or_create_user(USER)
    assert again.id == user.id
    assert [u.id for u in await repository.list_users()] == [USER]


async def test_update_conversation_state(repository):
    await repository.get_or_create_user(USER)
    await repository.update_conversation_state(USER, '{"type": "normal"}')
    user = await repository.get_or_create_user(USER)
    assert user.conversation_state == '{"type": "normal"}'


async def test_update_training_bookkeeping(repository):
    await repository.get_or_create_user(USER)
    await repository.update_training_bookkeeping(USER, "2024-05-01 10:00:00", 42)
    user = await repository.get_or_create_user(USER)
    assert user.last_training_at == "2024-05-01 10:00:00"
    assert user.training_data_size == 42


async def test_append_exchange_and_recent_messages(repository):
    await repository.get_or_create_user(USER)
    await repository.append_exchange(USER, "halo", "halo juga")
    await repository.append_exchange(USER, "apa kabar?", "baik")

    messages = await repository.get_recent_messages(USER, 3)
    assert [(m.role, m.content) for m in messages] == [
        ("assistant", "halo juga"),
        ("user", "apa kabar?"),
        ("assistant", "baik"),
    ]
    assert await repository.get_message_count(USER) == 4

    transcript = await repository.get_transcript(USER)
    assert [e.role for e in transcript] == ["user", "assistant", "user", "assistant"]
    assert transcript[0].created_at


async def test_append_exchange_is_atomic(repository):
    await repository.get_or_create_user(USER)
    # The second insert violates the NOT NULL constraint on content
    with pytest.raises(sqlite3.IntegrityError):
        await repository.append_exchange(USER, "halo", None)
    assert await repository.get_message_count(USER) == 0


async def test_failed_exchange_not_committed_by_concurrent_write(repository):
    await repository.get_or_create_user(USER)
    await repository.get_or_create_user("other")

    results = await asyncio.gather(
        repository.append_exchange(USER, "pesan user", None),
        repository.update_conversation_state("other", '{"kind": "normal"}'),
        return_exceptions=True,
    )

    assert isinstance(results[0], sqlite3.IntegrityError)
    assert results[1] is None
    # Neither half of the failed exchange survives the other user's commit
    assert await repository.get_transcript(USER) == []
    other = await repository.get_or_create_user("other")
    assert other.conversation_state == '{"kind": "normal"}'


async def test_concurrent_exchanges_all_land_in_pairs(repository):
    users = [f"user-{i}" for i in range(5)]
    for user_id in users:
        await repository.get_or_create_user(user_id)

    await asyncio.gather(
        *(repository.append_exchange(u, f"tanya {u}", f"jawab {u}") for u in users)
    )

    for user_id in users:
        transcript = await repository.get_transcript(user_id)
        assert [(e.role, e.content) for e in transcript] == [
            ("user", f"tanya {user_id}"),
            ("assistant", f"jawab {user_id}"),
        ]


async def test_transcripts_are_per_user(repository):
    await repository.get_or_create_user("alice")
    await repository.get_or_create_user("bob")
    await repository.append_exchange("alice", "a", "b")
    assert await repository.get_message_count("bob") == 0
    assert await repository.get_recent_messages("bob", 10) == []


async def test_fact_chunks_saved_together(repository):
    fact_id = await repository.save_fact_chunks(
        USER, [("Alergi kacang", [1.0, 0.0]), ("Suka kopi", [0.0, 1.0])]
    )
    chunks = await repository.list_fact_chunks(USER)
    assert chunks == [(fact_id, "Alergi kacang"), (fact_id, "Suka kopi")]

    stored = await repository.get_user_embeddings(USER)
    assert sorted(s.content for s in stored) == ["Alergi kacang", "Suka kopi"]
    assert stored[0].embedding in ([1.0, 0.0], [0.0, 1.0])


async def test_query_similar_filters_by_owner_and_threshold(repository):
    await repository.save_fact_chunks(USER, [("dekat", [1.0, 0.1])])
    await repository.save_fact_chunks(USER, [("jauh", [0.0, 1.0])])
    await repository.save_fact_chunks("other", [("milik orang lain", [1.0, 0.0])])

    matches = await repository.query_similar(USER, [1.0, 0.0], threshold=0.75, limit=3)
    assert [m.content for m in matches] == ["dekat"]
    assert matches[0].similarity >= 0.75


async def test_query_similar_sorted_and_limited(repository):
    for i, vec in enumerate(([1.0, 0.3], [1.0, 0.0], [1.0, 0.2], [1.0, 0.1])):
        await repository.save_fact_chunks(USER, [(f"fakta {i}", vec)])

    matches = await repository.query_similar(USER, [1.0, 0.0], threshold=0.0, limit=3)
    assert [m.content for m in matches] == ["fakta 1", "fakta 3", "fakta 2"]
    scores = [m.similarity for m in matches]
    assert scores == sorted(scores, reverse=True)


async def test_delete_facts_by_keyword(repository):
    await repository.save_fact_chunks(USER, [("Alergi kacang", [1.0, 0.0])])
    await repository.save_fact_chunks(USER, [("Suka kopi", [0.0, 1.0])])

    assert await repository.delete_facts(USER, keyword="kacang") == 1
    assert [c for _, c in await repository.list_fact_chunks(USER)] == ["Suka kopi"]
    assert await repository.delete_facts(USER) == 1
    assert await repository.list_fact_chunks(USER) == []


async def test_keyword_deletes_every_chunk_of_matching_fact(repository):
    await repository.save_fact_chunks(
        USER, [("Saya alergi kacang", [1.0, 0.0]), ("Saya minum obat setiap pagi", [0.0, 1.0])]
    )
    kept = await repository.save_fact_chunks(USER, [("Saya suka kopi", [0.5, 0.5])])

    assert await repository.delete_facts(USER, keyword="kacang") == 1
    assert await repository.list_fact_chunks(USER) == [(kept, "Saya suka kopi")]


async def test_query_similar_skips_other_dimensions(repository):
    await repository.save_fact_chunks(USER, [("model lama", [1.0, 0.0, 0.0])])
    await repository.save_fact_chunks(USER, [("model baru", [1.0, 0.0])])

    matches = await repository.query_similar(USER, [1.0, 0.0], threshold=0.5, limit=3)
    assert [m.content for m in matches] == ["model baru"]
    assert matches[0].similarity == pytest.approx(1.0, abs=1e-6)



async def test_activity_logs_archive(repository):
    first = await repository.add_activity_log(USER, "olahraga", {"lari": "5km"})
    second = await repository.add_activity_log(USER, "makan", {"sarapan": "roti"})
    assert await repository.count_unarchived_logs(USER) == 2

    logs = await repository.get_unarchived_logs(USER)
    assert [log.id for log in logs] == [first, second]
    assert logs[0].details == {"lari": "5km"}

    assert await repository.archive_logs([first]) == 1
    assert await repository.count_unarchived_logs(USER) == 1
    assert await repository.archive_logs([]) == 0


async def test_reminders_due_and_marked_once(repository):
    due = await repository.add_reminder(USER, "2024-05-01 08:00:00", "minum obat")
    await repository.add_reminder(USER, "2024-05-02 08:00:00", "kontrol dokter")

    pending = await repository.get_due_reminders("2024-05-01 08:00:00")
    assert [r.id for r in pending] == [due]

    assert await repository.mark_reminder_sent(due) is True
    assert await repository.mark_reminder_sent(due) is False
    assert await repository.get_due_reminders("2024-05-01 09:00:00") == []


async def test_ai_preference_upsert(repository):
    assert await repository.get_ai_preference(USER) is None
    assert await repository.update_communication_style(USER, "casual") is False

    await repository.upsert_ai_preference(USER, "health-coach", "Pelatih", "desc", ["diet"])
    await repository.upsert_ai_preference(USER, "tech-mentor", "Mentor", "desc", ["python"])
    assert await repository.update_communication_style(USER, "formal") is True

    pref = await repository.get_ai_preference(USER)
    assert pref.ai_type == "tech-mentor"
    assert pref.focus_areas == ["python"]
    assert pref.communication_style == "formal"
    assert pref.preferred_language == "id"


async def test_feedback(repository):
    await repository.save_feedback(USER, "jawabannya bagus", "POSITIVE")
    assert await repository.list_feedback(USER) == [("jawabannya bagus", "POSITIVE")]


async def test_try_claim_message(repository):
    assert await repository.try_claim_message("wamid.1") is False
    assert await repository.try_claim_message("wamid.1") is True
    assert await repository.try_claim_message("wamid.2") is False
