import math

import pytest

from app.memory.similarity import cosine_similarity, is_duplicate


def test_identical_vectors():
    assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)


def test_orthogonal_vectors():
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)


def test_opposite_vectors():
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_scale_invariant():
    assert cosine_similarity([1.0, 1.0], [5.0, 5.0]) == pytest.approx(1.0)


def test_zero_vector_is_zero_not_nan():
    score = cosine_similarity([0.0, 0.0], [1.0, 0.0])
    assert score == 0.0
    assert not math.isnan(score)


def test_mismatched_or_empty_vectors():
    assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
    assert cosine_similarity([], []) == 0.0


def test_is_duplicate_strictly_above_threshold():
    assert is_duplicate([1.0, 0.0], [[1.0, 0.0]], threshold=0.9) is True
    # Exactly at the threshold is not a duplicate
    assert is_duplicate([1.0, 0.0], [[1.0, 0.0]], threshold=1.0) is False


def test_is_duplicate_order_independent():
    existing = [[0.0, 1.0], [1.0, 0.05], [0.5, 0.5]]
    candidate = [1.0, 0.0]
    assert is_duplicate(candidate, existing, 0.9) == is_duplicate(
        candidate, list(reversed(existing)), 0.9
    )


def test_is_duplicate_monotonic_in_stored_set():
    candidate = [1.0, 0.0]
    existing = [[1.0, 0.1]]
    assert is_duplicate(candidate, existing, 0.9) is True
    # Adding vectors can never turn a duplicate into a non-duplicate
    assert is_duplicate(candidate, [*existing, [0.0, 1.0], [-1.0, 0.0]], 0.9) is True


def test_is_duplicate_empty_store():
    assert is_duplicate([1.0, 0.0], [], 0.9) is False


def test_raising_threshold_never_adds_duplicates():
    candidate = [1.0, 0.0]
    existing = [[1.0, 0.3], [0.2, 1.0]]
    verdicts = [is_duplicate(candidate, existing, t) for t in (0.5, 0.8, 0.9, 0.95, 0.99)]
    # Once False, stays False as the threshold grows
    assert verdicts == sorted(verdicts, reverse=True)
