"""
Fixed-dimension vector arithmetic for style vectors.

Pure functions over numpy arrays; no persistence, no business rules.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import numpy as np

# Magnitudes at or below this are treated as the zero vector.
ZERO_EPSILON = 1e-12


def zeros(dim: int) -> np.ndarray:
    return np.zeros(dim, dtype=np.float64)


def as_vector(values: Optional[Sequence[float]], dim: int) -> np.ndarray:
    """Coerce a stored vector to `dim` floats; missing or mis-sized input becomes zeros."""
    if values is None or len(values) != dim:
        return zeros(dim)
    return np.asarray(values, dtype=np.float64)


def valid_embeddings(embeddings: Iterable[Sequence[float]], dim: int) -> List[np.ndarray]:
    """Keep only finite embeddings of exactly `dim` entries."""
    kept = []
    for embedding in embeddings:
        if embedding is None or len(embedding) != dim:
            continue
        arr = np.asarray(embedding, dtype=np.float64)
        if not np.all(np.isfinite(arr)):
            continue
        kept.append(arr)
    return kept


def average(vectors: Sequence[np.ndarray]) -> np.ndarray:
    """Element-wise mean. Caller guarantees a non-empty list of equal-sized vectors."""
    if not vectors:
        raise ValueError("average() needs at least one vector")
    return np.mean(np.stack(vectors), axis=0)


def magnitude(vector: np.ndarray) -> float:
    return float(np.linalg.norm(vector))


def normalize(vector: np.ndarray) -> np.ndarray:
    """L2-normalize; a (near) zero vector is returned as exact zeros."""
    norm = magnitude(vector)
    if norm <= ZERO_EPSILON:
        return np.zeros_like(vector)
    return vector / norm


def blend(old: np.ndarray, evidence: np.ndarray, weight: float, alpha: float) -> np.ndarray:
    """
    Exponential moving average with a signed, magnitude-scaled injection.

        new = alpha * old + (1 - alpha) * |weight| * sign(weight) * evidence

    sign(0) is taken as +1, so a zero weight only decays the old vector.
    """
    effective_weight = abs(weight) * (1 - alpha)
    sign = 1.0 if weight >= 0 else -1.0
    return alpha * old + effective_weight * sign * evidence
