"""
Embedding math.

Face embeddings are compared in unit-normalized form, where Euclidean
distance and cosine similarity are interchangeable:

    cos(a, b) = 1 - |a - b|^2 / 2
"""

import numpy as np

ZERO_NORM_EPS = 1e-12


def normalize(vector) -> np.ndarray:
    """
    Scale a vector to unit Euclidean norm.

    Args:
        vector: Embedding (any sequence of floats)

    Returns:
        float32 unit vector, or the input unchanged (as float32) when its
        norm is numerically zero
    """
    v = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(v))
    if norm < ZERO_NORM_EPS:
        return v
    return v / norm


def similarity_from_distance(l2_distance: float) -> float:
    """
    Convert the Euclidean distance of two unit vectors to cosine similarity.

    Args:
        l2_distance: Distance in [0, 2]

    Returns:
        Cosine similarity in [-1, 1]
    """
    d = float(l2_distance)
    return 1.0 - (d * d) / 2.0


def l2_distance(a, b) -> float:
    """Euclidean distance between two vectors."""
    return float(np.linalg.norm(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64)))


def is_unit(vector, tol: float = 1e-5) -> bool:
    """Check that a vector has unit norm within `tol`."""
    return abs(float(np.linalg.norm(np.asarray(vector, dtype=np.float64))) - 1.0) <= tol
