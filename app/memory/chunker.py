"""Sentence-level chunking of facts before embedding."""
from __future__ import annotations


def chunk_text(text: str) -> list[str]:
    """Split on periods, trim each piece and drop empty ones."""
    return [part.strip() for part in text.strip().split(".") if part.strip()]


def join_chunks(chunks: list[str]) -> str:
    if not chunks:
        return ""
    return ". ".join(chunks) + "."
