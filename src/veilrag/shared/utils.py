"""
Shared utility functions.
"""
import numpy as np
from typing import List, Optional, Sequence, Tuple
import time


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Euclidean distance between two vectors.

    Args:
        a: First vector
        b: Second vector of the same dimension

    Returns:
        L2 norm of a - b
    """
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Dimension mismatch: {a.shape} vs {b.shape}")
    return float(np.linalg.norm(a - b))


def vector_norm(vector: Sequence[float]) -> float:
    """Euclidean norm. A zero vector denotes an exact match."""
    return float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))


def bottom_k_indices(distances: np.ndarray, k: int) -> np.ndarray:
    """
    Get indices of the k smallest distances.

    Args:
        distances: Array of distances
        k: Number of results to return

    Returns:
        Indices sorted by ascending distance (stable for ties)
    """
    order = np.argsort(distances, kind="stable")
    return order[:k]


def find_closest_chunks(
    query_embedding: Sequence[float],
    chunks: List[str],
    embeddings: Sequence[Sequence[float]],
    top_k: int = 2,
) -> List[Tuple[str, float]]:
    """
    Plaintext nearest-neighbour search for corpora that are not secret-shared.

    Args:
        query_embedding: Query vector
        chunks: Candidate texts
        embeddings: One embedding per candidate text
        top_k: Number of results to return

    Returns:
        (chunk, distance) pairs sorted by ascending distance
    """
    if len(chunks) != len(embeddings):
        raise ValueError(
            f"Got {len(chunks)} chunks but {len(embeddings)} embeddings"
        )
    if not chunks:
        return []

    distances = np.array(
        [euclidean_distance(query_embedding, emb) for emb in embeddings]
    )
    return [(chunks[i], float(distances[i])) for i in bottom_k_indices(distances, top_k)]


class Timer:
    """Context manager for timing operations."""

    def __init__(self, name: str = "Operation"):
        self.name = name
        self.start_time: Optional[float] = None
        self.elapsed: Optional[float] = None

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self.elapsed = time.perf_counter() - self.start_time

    @property
    def elapsed_ms(self) -> float:
        """Get elapsed time in milliseconds."""
        if self.elapsed is None:
            if self.start_time is not None:
                return (time.perf_counter() - self.start_time) * 1000
            return 0.0
        return self.elapsed * 1000
