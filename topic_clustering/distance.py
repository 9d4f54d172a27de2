"""
Distance metrics between embedding vectors.

Cosine distance is the default for every embedding comparison. Euclidean
distance is kept for within-cluster sum of squares bookkeeping.
"""

import math
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_distances, euclidean_distances

MAX_COSINE_DISTANCE = 1.0


def cosine_similarity(a, b) -> float:
    """
    Cosine similarity of two vectors, clamped to [-1, 1].

    Returns 0.0 when the vectors differ in length, are empty, or either has
    zero magnitude.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape or a.size == 0:
        return 0.0

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = float(np.dot(a, b) / (norm_a * norm_b))
    return max(-1.0, min(1.0, similarity))


def cosine_distance(a, b) -> float:
    """
    Cosine distance (1 - cosine similarity), in [0, 2].

    Mismatched lengths, empty vectors and zero-magnitude vectors all score
    exactly 1.0.
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape or a.size == 0:
        return MAX_COSINE_DISTANCE
    if not np.any(a) or not np.any(b):
        return MAX_COSINE_DISTANCE
    if np.array_equal(a, b):
        return 0.0
    return 1.0 - cosine_similarity(a, b)


def euclidean_distance(a, b) -> float:
    """L2 distance; +inf when the vectors differ in length."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        return math.inf
    return float(np.linalg.norm(a - b))


def distance_matrix(vectors: Sequence, metric: str = 'cosine') -> np.ndarray:
    """
    Builds the symmetric pairwise distance matrix with a zero diagonal.

    Args:
        vectors: Sequence of embedding vectors
        metric: 'cosine' or 'euclidean'

    Returns:
        numpy.ndarray: N x N distance matrix
    """
    n = len(vectors)
    if n == 0:
        return np.zeros((0, 0))

    lengths = {len(v) for v in vectors}
    if len(lengths) == 1:
        X = np.asarray(vectors, dtype=np.float64)
        if metric == 'cosine':
            matrix = cosine_distances(X)
        elif metric == 'euclidean':
            matrix = euclidean_distances(X)
        else:
            raise ValueError(f"Unknown distance metric: {metric}")
        matrix = (matrix + matrix.T) / 2.0
    else:
        # Mixed dimensionality: score pair by pair so mismatches get their sentinel
        pair_distance = cosine_distance if metric == 'cosine' else euclidean_distance
        matrix = np.zeros((n, n))
        for i in range(n):
            for j in range(i + 1, n):
                matrix[i, j] = matrix[j, i] = pair_distance(vectors[i], vectors[j])

    np.fill_diagonal(matrix, 0.0)
    return matrix
