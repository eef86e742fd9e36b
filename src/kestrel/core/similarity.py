from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from kestrel.errors import DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``.

    Returns ``0.0`` when either vector has zero magnitude, so a degenerate
    embedding scores as unrelated instead of producing NaN.
    """
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)
    if vec_a.shape != vec_b.shape:
        raise DimensionMismatchError(f"cannot compare vectors of length {vec_a.size} and {vec_b.size}")

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def similarity_to_score(similarity: float) -> int:
    return max(0, min(100, round(similarity * 100)))
