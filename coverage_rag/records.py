"""Immutable data contracts shared between the catalog, the indexes and the ranker."""
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Chunk:
    """A bounded slice of a source document's text; the atomic retrieval unit.

    Attributes:
        id: Catalog identifier of the chunk.
        document_id: Owning document.
        topic_id: Owning topic (isolation boundary for every index).
        chunk_index: Position of the chunk within its document.
        text: Chunk text.
        token_count: Number of whitespace tokens in text.
    """
    id: int
    document_id: int
    topic_id: int
    chunk_index: int
    text: str
    token_count: int = 0


@dataclass(frozen=True)
class EmbeddingVector:
    """Dense vector stored for one (chunk, model) pair."""
    chunk_id: int
    model_id: str
    vector: Tuple[float, ...]

    @property
    def dimensions(self) -> int:
        return len(self.vector)


@dataclass(frozen=True)
class LexicalHit:
    """One ranked match from a topic's lexical index."""
    chunk_id: int
    document_id: int
    chunk_index: int
    score: float


@dataclass(frozen=True)
class RetrievalResult:
    """A ranked context passage returned by hybrid retrieval.

    semantic_score and lexical_score are the min-max normalized scores that went into
    hybrid_score; a chunk absent from one candidate set carries 0.0 for that signal.
    """
    chunk_id: int
    document_id: int
    topic_id: int
    chunk_index: int
    text: str
    hybrid_score: float
    semantic_score: float
    lexical_score: float


@dataclass(frozen=True)
class IndexingStats:
    """Outcome of indexing a document or a whole topic (document_id is 0 for topics)."""
    document_id: int
    topic_id: int
    total_chunks: int
    new_embeddings: int


@dataclass(frozen=True)
class TopicIndexStatus:
    """Embedding and lexical index coverage of a topic."""
    topic_id: int
    total_chunks: int
    embedded_chunks: int
    lexical_index_exists: bool
    lexical_doc_count: int

    @property
    def is_fully_indexed(self) -> bool:
        return (
            self.total_chunks > 0
            and self.embedded_chunks == self.total_chunks
            and self.lexical_index_exists
            and self.lexical_doc_count == self.total_chunks
        )

    @property
    def status(self) -> str:
        if self.total_chunks == 0:
            return "No chunks"
        if self.is_fully_indexed:
            return "Fully indexed"
        if self.embedded_chunks == 0 and not self.lexical_index_exists:
            return "Not indexed"
        return "Partially indexed"
