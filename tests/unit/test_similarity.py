from __future__ import annotations

import math

import pytest

from kestrel.core.similarity import cosine_similarity, similarity_to_score
from kestrel.errors import DimensionMismatchError


def test_cosine_is_symmetric() -> None:
    a = [0.3, -1.2, 4.0, 0.5]
    b = [1.1, 0.0, -2.5, 3.3]

    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_vector_is_maximally_similar_to_itself() -> None:
    a = [0.25, 0.5, -0.75, 2.0]

    assert cosine_similarity(a, a) == pytest.approx(1.0)


def test_opposite_and_orthogonal_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)
    assert cosine_similarity([1.0, 0.0], [0.0, 3.0]) == pytest.approx(0.0)


def test_zero_vector_scores_zero() -> None:
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([1.0, 2.0, 3.0], [0.0, 0.0, 0.0]) == 0.0


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError):
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


def test_dimension_mismatch_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        cosine_similarity([1.0], [1.0, 2.0])


def test_score_is_rounded_and_clamped() -> None:
    assert similarity_to_score(0.456) == 46
    assert similarity_to_score(1.0) == 100
    assert similarity_to_score(-0.3) == 0
    assert similarity_to_score(math.nextafter(1.0, 2.0)) == 100
