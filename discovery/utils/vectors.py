"""
Vector utilities: cosine similarity, weighted centroid, interpolation, normalization.

Pure numpy routines with no I/O. cosine_similarity never raises because it runs
in hot scoring paths; the other helpers raise InvalidInput on malformed input.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..errors import InvalidInput

logger = logging.getLogger(__name__)

Vector = List[float]


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors (0.0 on mismatch or zero norm)."""
    if len(v1) != len(v2):
        logger.warning(
            "[vectors] DIMENSION_MISMATCH len_a=%s len_b=%s, returning 0",
            len(v1), len(v2),
        )
        return 0.0
    if len(v1) == 0:
        return 0.0
    a = np.asarray(v1, dtype=np.float64)
    b = np.asarray(v2, dtype=np.float64)
    norm_product = float(np.linalg.norm(a) * np.linalg.norm(b))
    if norm_product == 0.0:
        return 0.0
    return float(np.dot(a, b) / norm_product)


def weighted_centroid(
    vectors: Sequence[Sequence[float]],
    weights: Optional[Sequence[float]] = None,
) -> Vector:
    """
    Per-dimension weighted average of vectors.

    Uniform weights when weights is None. Raises InvalidInput on empty input,
    ragged dimensions, a weight count mismatch, negative weights or a zero
    weight sum.
    """
    if len(vectors) == 0:
        raise InvalidInput("weighted_centroid requires at least one vector")
    dims = {len(v) for v in vectors}
    if len(dims) != 1:
        raise InvalidInput(f"weighted_centroid got vectors of mixed dimensions: {sorted(dims)}")
    matrix = np.asarray(vectors, dtype=np.float64)
    if weights is None:
        return [float(x) for x in matrix.mean(axis=0)]
    if len(weights) != len(vectors):
        raise InvalidInput(
            f"weighted_centroid got {len(weights)} weights for {len(vectors)} vectors"
        )
    w = np.asarray(weights, dtype=np.float64)
    if np.any(w < 0):
        raise InvalidInput("weighted_centroid weights must be non-negative")
    total = float(w.sum())
    if total <= 0.0:
        raise InvalidInput("weighted_centroid weights must not sum to zero")
    return [float(x) for x in (w[:, None] * matrix).sum(axis=0) / total]


def interpolate(current: Sequence[float], target: Sequence[float], rate: float) -> Vector:
    """current * (1 - rate) + target * rate, with rate clamped to [0, 1]."""
    if len(current) != len(target):
        raise InvalidInput(
            f"interpolate got vectors of different dimensions: {len(current)} vs {len(target)}"
        )
    rate = max(0.0, min(1.0, float(rate)))
    a = np.asarray(current, dtype=np.float64)
    b = np.asarray(target, dtype=np.float64)
    return [float(x) for x in a * (1.0 - rate) + b * rate]


def normalize(vector: Sequence[float]) -> Vector:
    """L2-normalize; a zero vector is returned unchanged."""
    arr = np.asarray(vector, dtype=np.float64)
    norm = float(np.linalg.norm(arr))
    if norm <= 1e-12:
        return [float(x) for x in arr]
    return [float(x) for x in arr / norm]
