"""Hybrid retrieval: semantic + lexical candidates merged into one ranked context list.

This module implements:
- normalize_scores: independent min-max rescaling of one candidate set to [0, 1]
- hybrid_score: alpha-weighted blend of normalized semantic and lexical scores
- HybridRetriever: embeds the query, runs the cosine scan and the BM25 search,
  normalizes both, unions the candidates, resolves chunk metadata and keeps the best
  k_context results

Ordering is by hybrid score descending, ties broken by ascending chunk id.
"""
import logging
from typing import Dict, List, Mapping, Optional

from coverage_rag.catalog import ChunkCatalog, SqlChunkCatalog
from coverage_rag.embedding import Embedder, OpenAIEmbedder
from coverage_rag.lexical import LexicalIndexManager
from coverage_rag.parameters import HybridConfig, HybridParameters
from coverage_rag.records import RetrievalResult
from coverage_rag.similarity import SemanticSimilarityEngine

logger = logging.getLogger(__name__)


def normalize_scores(scores: Mapping[int, float]) -> Dict[int, float]:
    """Min-max normalize a candidate set to [0, 1].

    Args:
        scores: chunk_id -> raw score.

    Returns:
        Dict[int, float]: Rescaled scores; empty for empty input, and all 1.0 when every
            score is equal (including a single candidate).
    """
    if not scores:
        return {}
    mn, mx = min(scores.values()), max(scores.values())
    if mx == mn:
        return {k: 1.0 for k in scores}
    return {k: (v - mn) / (mx - mn) for k, v in scores.items()}


def hybrid_score(alpha: float, semantic: float, lexical: float) -> float:
    return alpha * semantic + (1.0 - alpha) * lexical


class HybridRetriever:
    """Stateless request/response pipeline over a mutable, lock-guarded HybridConfig.

    Args:
        catalog: Resolves chunk text and metadata.
        semantic: Cosine top-K engine over stored embeddings.
        lexical: Per-topic BM25 index manager.
        embedder: Embeds query text; its model_id selects which stored vectors are used.
        config: Tunables; defaults are seeded from settings.
    """

    def __init__(
        self,
        catalog: Optional[ChunkCatalog] = None,
        semantic: Optional[SemanticSimilarityEngine] = None,
        lexical: Optional[LexicalIndexManager] = None,
        embedder: Optional[Embedder] = None,
        config: Optional[HybridConfig] = None,
    ):
        self.catalog = catalog or SqlChunkCatalog()
        self.semantic = semantic or SemanticSimilarityEngine()
        self.lexical = lexical or LexicalIndexManager()
        self.embedder = embedder or OpenAIEmbedder()
        self.config = config or HybridConfig()

    def retrieve(
        self, topic_id: int, query_text: str, params: Optional[HybridParameters] = None
    ) -> List[RetrievalResult]:
        """Retrieve the passages of a topic most relevant to query_text.

        Args:
            topic_id: Topic to search within.
            query_text: Free text, e.g. a new abstract whose coverage is assessed.
            params: Parameters for this call; defaults to one snapshot of self.config.

        Returns:
            List[RetrievalResult]: At most k_context results, unique by chunk id, best first.

        Notes:
            Embedding-service failures propagate unchanged. Candidates whose chunk can no
            longer be found in the catalog are skipped with a warning.
        """
        params = params or self.config.snapshot()
        logger.info("Starting hybrid retrieval for topic %d with query length %d", topic_id, len(query_text))

        query_vector = self.embedder.embed(query_text)
        semantic_scores = normalize_scores(
            self.semantic.top_k(topic_id, self.embedder.model_id, query_vector, params.k_semantic)
        )
        hits = self.lexical.search(topic_id, query_text, params.k_lexical)
        lexical_scores = normalize_scores({h.chunk_id: h.score for h in hits})

        candidates = sorted(set(semantic_scores) | set(lexical_scores))
        logger.debug(
            "Merging %d unique chunks from %d semantic + %d lexical",
            len(candidates), len(semantic_scores), len(lexical_scores),
        )

        results: List[RetrievalResult] = []
        for chunk_id in candidates:
            sem = semantic_scores.get(chunk_id, 0.0)
            lex = lexical_scores.get(chunk_id, 0.0)
            chunk = self.catalog.find_by_id(chunk_id)
            if chunk is None:
                logger.warning("Chunk %d not found in catalog, skipping", chunk_id)
                continue
            results.append(
                RetrievalResult(
                    chunk_id=chunk_id,
                    document_id=chunk.document_id,
                    topic_id=topic_id,
                    chunk_index=chunk.chunk_index,
                    text=chunk.text,
                    hybrid_score=hybrid_score(params.alpha, sem, lex),
                    semantic_score=sem,
                    lexical_score=lex,
                )
            )

        results.sort(key=lambda r: (-r.hybrid_score, r.chunk_id))
        selected = results[: params.k_context]
        logger.info(
            "Hybrid retrieval completed: %d total candidates, returning top %d", len(results), len(selected)
        )
        return selected
