import pytest

from app.memory.chunker import chunk_text, join_chunks


def test_chunk_text_splits_on_periods():
    assert chunk_text("Saya alergi kacang. Saya suka kopi.") == [
        "Saya alergi kacang",
        "Saya suka kopi",
    ]


def test_chunk_text_drops_empty_pieces():
    assert chunk_text("  Satu.. . Dua  ") == ["Satu", "Dua"]


def test_chunk_text_without_period():
    assert chunk_text("Tinggal di Bandung") == ["Tinggal di Bandung"]


def test_chunk_text_blank():
    assert chunk_text("") == []
    assert chunk_text(" . . ") == []


def test_join_chunks():
    assert join_chunks(["Saya alergi kacang", "Saya suka kopi"]) == (
        "Saya alergi kacang. Saya suka kopi."
    )
    assert join_chunks([]) == ""


@pytest.mark.parametrize(
    "text",
    [
        "Saya alergi kacang. Saya suka kopi.",
        "Tinggal di Bandung",
        "  Kerja di Jakarta .Punya dua kucing.  Lari tiap pagi ",
        "Satu.. . Dua. ",
        "",
    ],
)
def test_rechunking_joined_chunks_is_stable(text):
    chunks = chunk_text(text)
    assert chunk_text(join_chunks(chunks)) == chunks
