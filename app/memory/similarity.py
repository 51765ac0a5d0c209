from __future__ import annotations

import math
from collections.abc import Iterable


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity of two vectors; 0.0 for zero-norm or mismatched vectors."""
    if not a or len(a) != len(b):
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


def is_duplicate(
    candidate: list[float],
    existing: Iterable[list[float]],
    threshold: float,
) -> bool:
    """True when any existing vector is strictly more similar than ``threshold``."""
    return any(cosine_similarity(candidate, vec) > threshold for vec in existing)
