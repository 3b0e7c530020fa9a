"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- RetrieveRequest / RetrieveResponse: hybrid retrieval for a topic.
- RetrievedPassage: one ranked context passage with its three scores.
- HybridParametersModel / HybridParametersUpdate: reading and changing the tunables.
- IndexStatusResponse / IndexingStatsResponse: lexical and embedding index maintenance.

Tunable ranges are validated by coverage_rag.parameters, not here, so the HTTP surface
reports exactly the same errors as the library.
"""
from typing import List, Optional

from pydantic import BaseModel, Field


class RetrieveRequest(BaseModel):
    """Request body for hybrid retrieval.

    Attributes:
        query: Text whose coverage by the topic corpus is assessed.
        alpha, k_semantic, k_lexical, k_context: Optional per-call overrides; they never
            change the shared configuration.
    """
    query: str = Field(..., min_length=1, description="Query text, e.g. a new abstract")
    alpha: Optional[float] = None
    k_semantic: Optional[int] = None
    k_lexical: Optional[int] = None
    k_context: Optional[int] = None


class RetrievedPassage(BaseModel):
    chunk_id: int
    document_id: int
    topic_id: int
    chunk_index: int
    text: str
    hybrid_score: float
    semantic_score: float
    lexical_score: float


class HybridParametersModel(BaseModel):
    alpha: float
    k_semantic: int
    k_lexical: int
    k_context: int


class HybridParametersUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""
    alpha: Optional[float] = None
    k_semantic: Optional[int] = None
    k_lexical: Optional[int] = None
    k_context: Optional[int] = None


class RetrieveResponse(BaseModel):
    """Response body of a retrieval.

    Attributes:
        topic_id: Topic searched.
        results: Passages ordered by hybrid score, best first.
        parameters: The exact parameters the retrieval ran with.
        latency_ms: End-to-end latency for the request in milliseconds.
    """
    topic_id: int
    results: List[RetrievedPassage]
    parameters: HybridParametersModel
    latency_ms: int


class IndexStatusResponse(BaseModel):
    topic_id: int
    total_chunks: int
    embedded_chunks: int
    lexical_index_exists: bool
    lexical_doc_count: int
    fully_indexed: bool
    status: str


class IndexingStatsResponse(BaseModel):
    topic_id: int
    total_chunks: int
    new_embeddings: int
