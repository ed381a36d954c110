"""Vector helpers: normalization, cosine similarity and the float32 blob codec."""

from __future__ import annotations

from typing import Sequence

import numpy as np


def normalize(vector: Sequence[float] | np.ndarray) -> np.ndarray:
    """Scale a vector to unit length.

    The norm is floored at 1 when it is zero, so an all-zero vector comes back
    unchanged instead of producing NaNs.
    """
    arr = np.asarray(vector, dtype="float64")
    norm = float(np.linalg.norm(arr)) or 1.0
    return (arr / norm).astype("float32")


def cosine(a: Sequence[float] | np.ndarray, b: Sequence[float] | np.ndarray) -> float:
    """Dot product of two vectors; equals cosine similarity for unit vectors."""
    left = np.asarray(a, dtype="float64")
    right = np.asarray(b, dtype="float64")
    n = min(left.shape[0], right.shape[0])
    return float(np.dot(left[:n], right[:n]))


def to_float32_blob(vector: Sequence[float] | np.ndarray) -> bytes:
    return np.asarray(vector, dtype="float32").tobytes()


def from_float32_blob(blob: bytes, dimension: int | None = None) -> np.ndarray:
    arr = np.frombuffer(blob, dtype="float32")
    if dimension is not None:
        arr = arr[:dimension]
    return arr
