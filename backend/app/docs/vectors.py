"""Vector math used by stores without a native vector index."""

import math
from collections.abc import Iterable, Sequence
from typing import Protocol, TypeVar

from backend.app.errors import DimensionMismatchError


class HasEmbedding(Protocol):
    """Anything carrying an embedding vector."""

    @property
    def embedding(self) -> Sequence[float]: ...


T = TypeVar("T", bound=HasEmbedding)


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Returns 0.0 for empty vectors or when either vector has zero magnitude.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    if not vec_a:
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for a, b in zip(vec_a, vec_b):
        dot += a * b
        norm_a += a * a
        norm_b += b * b

    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    # Clamp float drift so identical vectors never exceed 1
    return max(-1.0, min(1.0, similarity))


def euclidean_distance(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Euclidean distance between two vectors.

    Raises:
        DimensionMismatchError: If the vectors differ in length
    """
    if len(vec_a) != len(vec_b):
        raise DimensionMismatchError(len(vec_a), len(vec_b))

    return math.sqrt(sum((a - b) ** 2 for a, b in zip(vec_a, vec_b)))


def normalize_vector(vec: Sequence[float]) -> list[float]:
    """Scale a vector to unit length; zero vectors are returned unchanged."""
    norm = math.sqrt(sum(v * v for v in vec))
    if norm == 0:
        return list(vec)
    return [v / norm for v in vec]


def top_k_similar(
    query_vector: Sequence[float],
    items: Iterable[T],
    k: int = 5,
) -> list[tuple[T, float]]:
    """Rank items by cosine similarity to the query, highest first.

    Items without an embedding are skipped. The sort is stable, so equal
    scores keep their input order.

    Returns:
        At most ``k`` (item, similarity) pairs
    """
    if k <= 0:
        return []

    scored = [
        (item, cosine_similarity(query_vector, item.embedding))
        for item in items
        if item.embedding
    ]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:k]
