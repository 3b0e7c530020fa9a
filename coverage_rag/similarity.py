"""Dense-vector similarity: cosine scoring and exhaustive top-K scan.

Provides:
- cosine: cosine similarity of two vectors (0.0 when either has zero magnitude).
- euclidean_distance / unit_vector: companion vector helpers.
- SemanticSimilarityEngine: scores every stored vector of a (topic, model) against a
  query vector and keeps the best k.

The scan is O(n) over a topic's embedded chunks; no ANN structure is used.
"""
import logging
from typing import Dict, Optional, Sequence

import numpy as np

from coverage_rag.catalog import EmbeddingStore, SqlEmbeddingStore
from coverage_rag.exceptions import ValidationError

logger = logging.getLogger(__name__)


def _as_pair(a: Sequence[float], b: Sequence[float]):
    va = np.asarray(a, dtype=np.float64).ravel()
    vb = np.asarray(b, dtype=np.float64).ravel()
    if va.shape != vb.shape:
        raise ValidationError(f"Vectors must have same dimension: {va.size} vs {vb.size}")
    return va, vb


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1].

    Raises:
        ValidationError: If a and b differ in length.
    """
    va, vb = _as_pair(a, b)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    va, vb = _as_pair(a, b)
    return float(np.linalg.norm(va - vb))


def unit_vector(v: Sequence[float]) -> np.ndarray:
    """Return v scaled to unit length; a zero vector is returned unchanged (as a copy)."""
    arr = np.array(v, dtype=np.float64).ravel()
    norm = np.linalg.norm(arr)
    return arr if norm == 0.0 else arr / norm


class SemanticSimilarityEngine:
    """Brute-force cosine ranking over the vectors held by an EmbeddingStore."""

    def __init__(self, store: Optional[EmbeddingStore] = None):
        self.store = store or SqlEmbeddingStore()

    def top_k(self, topic_id: int, model_id: str, query_vector: Sequence[float], k: int) -> Dict[int, float]:
        """Best k chunks of a topic by cosine similarity to query_vector.

        Args:
            topic_id: Topic whose embedded chunks are scanned.
            model_id: Embedding model the stored vectors must come from.
            query_vector: Query embedding produced by the same model.
            k: Number of chunks to keep.

        Returns:
            Dict[int, float]: chunk_id -> similarity, in descending similarity order with
                ties broken by ascending chunk id. Empty when nothing is embedded.

        Raises:
            ValidationError: If stored vectors and query_vector differ in dimensionality.
        """
        chunk_ids, matrix = self.store.load_matrix(topic_id, model_id)
        if not chunk_ids.size:
            logger.warning("No embeddings found for topic %d with model %s", topic_id, model_id)
            return {}
        if k <= 0:
            return {}

        query = np.asarray(query_vector, dtype=np.float64).ravel()
        if matrix.shape[1] != query.size:
            raise ValidationError(
                f"Vectors must have same dimension: query has {query.size}, stored {matrix.shape[1]}"
            )

        # A single matrix-vector product over the contiguous (n, d) buffer scores every chunk
        dots = matrix @ query
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.zeros_like(dots)
        np.divide(dots, norms, out=scores, where=norms != 0.0)

        order = np.lexsort((chunk_ids, -scores))[:k]
        logger.debug("Scored %d embeddings for topic %d, keeping %d", chunk_ids.size, topic_id, len(order))
        return {int(chunk_ids[i]): float(scores[i]) for i in order}
