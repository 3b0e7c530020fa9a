"""Chunk catalog and embedding store.

The retrieval core depends only on the ChunkCatalog and EmbeddingStore protocols.
SqlChunkCatalog and SqlEmbeddingStore implement them over the SQLAlchemy models in
coverage_rag.models and also carry the writes used by ingestion.
"""
import logging
from typing import List, Optional, Protocol, Sequence, Tuple

import numpy as np
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from coverage_rag import models
from coverage_rag.db import get_session_factory, session_scope
from coverage_rag.exceptions import ValidationError
from coverage_rag.records import Chunk, EmbeddingVector

logger = logging.getLogger(__name__)

_VECTOR_DTYPE = np.dtype("<f4")


class ChunkCatalog(Protocol):
    def find_by_id(self, chunk_id: int) -> Optional[Chunk]: ...

    def find_by_topic(self, topic_id: int) -> List[Chunk]: ...


class EmbeddingStore(Protocol):
    def find(self, chunk_id: int, model_id: str) -> Optional[EmbeddingVector]: ...

    def find_all_for_topic(self, topic_id: int, model_id: str) -> List[EmbeddingVector]: ...

    def load_matrix(self, topic_id: int, model_id: str) -> Tuple[np.ndarray, np.ndarray]: ...

    def create(self, chunk_id: int, model_id: str, vector: Sequence[float]) -> EmbeddingVector: ...


def encode_vector(vector: Sequence[float]) -> bytes:
    return np.asarray(vector, dtype=_VECTOR_DTYPE).tobytes()


def decode_vector(blob: bytes, dimensions: int) -> Tuple[float, ...]:
    arr = np.frombuffer(blob, dtype=_VECTOR_DTYPE)
    if arr.size != dimensions:
        raise ValueError(f"Stored vector has {arr.size} values, expected {dimensions}")
    return tuple(float(x) for x in arr)


def _to_chunk(row: models.Chunk) -> Chunk:
    return Chunk(
        id=row.id,
        document_id=row.document_id,
        topic_id=row.topic_id,
        chunk_index=row.chunk_index,
        text=row.text,
        token_count=row.tokens or 0,
    )


def _to_embedding(row: models.Embedding) -> EmbeddingVector:
    return EmbeddingVector(
        chunk_id=row.chunk_id,
        model_id=row.model,
        vector=decode_vector(row.vector, row.dimensions),
    )


class SqlChunkCatalog:
    """Topics, documents and chunks stored through SQLAlchemy."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def find_by_id(self, chunk_id: int) -> Optional[Chunk]:
        with session_scope(self._session_factory) as db:
            row = db.get(models.Chunk, chunk_id)
            return _to_chunk(row) if row is not None else None

    def find_by_topic(self, topic_id: int) -> List[Chunk]:
        stmt = (
            select(models.Chunk)
            .where(models.Chunk.topic_id == topic_id)
            .order_by(models.Chunk.document_id, models.Chunk.chunk_index)
        )
        with session_scope(self._session_factory) as db:
            return [_to_chunk(r) for r in db.scalars(stmt)]

    def find_by_document(self, document_id: int) -> List[Chunk]:
        stmt = (
            select(models.Chunk)
            .where(models.Chunk.document_id == document_id)
            .order_by(models.Chunk.chunk_index)
        )
        with session_scope(self._session_factory) as db:
            return [_to_chunk(r) for r in db.scalars(stmt)]

    def count_by_topic(self, topic_id: int) -> int:
        stmt = select(func.count()).select_from(models.Chunk).where(models.Chunk.topic_id == topic_id)
        with session_scope(self._session_factory) as db:
            return int(db.scalar(stmt) or 0)

    def create_topic(self, name: str, query_string: Optional[str] = None, notes: Optional[str] = None) -> int:
        with session_scope(self._session_factory) as db:
            topic = models.Topic(name=name, query_string=query_string, notes=notes)
            db.add(topic)
            db.flush()
            logger.info("Created topic %d (%s)", topic.id, name)
            return topic.id

    def find_topic(self, name: str) -> Optional[int]:
        """Return the id of the topic called name, if any."""
        with session_scope(self._session_factory) as db:
            return db.scalar(select(models.Topic.id).where(models.Topic.name == name))

    def topic_exists(self, topic_id: int) -> bool:
        with session_scope(self._session_factory) as db:
            return db.get(models.Topic, topic_id) is not None

    def find_document_topic(self, document_id: int) -> Optional[int]:
        with session_scope(self._session_factory) as db:
            return db.scalar(select(models.Document.topic_id).where(models.Document.id == document_id))

    def find_document_by_hash(self, hash_sha256: str) -> Optional[int]:
        with session_scope(self._session_factory) as db:
            return db.scalar(
                select(models.Document.id).where(models.Document.hash_sha256 == hash_sha256).limit(1)
            )

    def create_document(
        self,
        topic_id: int,
        chunks: Sequence[Tuple[str, int]],
        title: Optional[str] = None,
        source_path: Optional[str] = None,
        hash_sha256: Optional[str] = None,
    ) -> Tuple[int, List[Chunk]]:
        """Insert a document and its chunks in one transaction.

        Args:
            topic_id: Owning topic.
            chunks: (text, token_count) pairs in document order.
            title: Optional display title.
            source_path: Where the text came from.
            hash_sha256: Content hash used for duplicate detection.

        Returns:
            Tuple[int, List[Chunk]]: The new document id and its stored chunks.
        """
        with session_scope(self._session_factory) as db:
            doc = models.Document(
                topic_id=topic_id, title=title, source_path=source_path, hash_sha256=hash_sha256
            )
            db.add(doc)
            db.flush()
            rows = [
                models.Chunk(document_id=doc.id, topic_id=topic_id, chunk_index=i, text=text, tokens=tokens)
                for i, (text, tokens) in enumerate(chunks)
            ]
            db.add_all(rows)
            db.flush()
            logger.info("Stored document %d with %d chunks in topic %d", doc.id, len(rows), topic_id)
            return doc.id, [_to_chunk(r) for r in rows]


class SqlEmbeddingStore:
    """Embedding vectors keyed by (chunk_id, model)."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def find(self, chunk_id: int, model_id: str) -> Optional[EmbeddingVector]:
        stmt = select(models.Embedding).where(
            models.Embedding.chunk_id == chunk_id, models.Embedding.model == model_id
        )
        with session_scope(self._session_factory) as db:
            row = db.scalars(stmt).first()
            return _to_embedding(row) if row is not None else None

    def find_all_for_topic(self, topic_id: int, model_id: str) -> List[EmbeddingVector]:
        stmt = (
            select(models.Embedding)
            .join(models.Chunk, models.Embedding.chunk_id == models.Chunk.id)
            .where(models.Chunk.topic_id == topic_id, models.Embedding.model == model_id)
            .order_by(models.Chunk.document_id, models.Chunk.chunk_index)
        )
        with session_scope(self._session_factory) as db:
            return [_to_embedding(r) for r in db.scalars(stmt)]

    def load_matrix(self, topic_id: int, model_id: str) -> Tuple[np.ndarray, np.ndarray]:
        """Stack every vector of a (topic, model) into one contiguous float32 matrix.

        Blobs are concatenated and viewed in place, without per-value conversion.

        Returns:
            Tuple[np.ndarray, np.ndarray]: chunk ids of shape (n,) and vectors of shape (n, d),
                rows ordered by document and chunk index. Shapes (0,) and (0, 0) when nothing
                is stored.

        Raises:
            ValidationError: If the stored vectors differ in dimensionality.
            ValueError: If a blob does not match its recorded dimensions.
        """
        stmt = (
            select(models.Embedding.chunk_id, models.Embedding.dimensions, models.Embedding.vector)
            .join(models.Chunk, models.Embedding.chunk_id == models.Chunk.id)
            .where(models.Chunk.topic_id == topic_id, models.Embedding.model == model_id)
            .order_by(models.Chunk.document_id, models.Chunk.chunk_index)
        )
        with session_scope(self._session_factory) as db:
            rows = db.execute(stmt).all()
        if not rows:
            return np.empty(0, dtype=np.int64), np.empty((0, 0), dtype=_VECTOR_DTYPE)

        dims = sorted({row.dimensions for row in rows})
        if len(dims) != 1:
            raise ValidationError(f"Stored vectors for topic {topic_id} have mixed dimensions {dims}")
        matrix = np.frombuffer(b"".join(row.vector for row in rows), dtype=_VECTOR_DTYPE)
        if matrix.size != len(rows) * dims[0]:
            raise ValueError(f"Stored vectors for topic {topic_id} do not match their recorded dimensions")
        chunk_ids = np.fromiter((row.chunk_id for row in rows), dtype=np.int64, count=len(rows))
        return chunk_ids, matrix.reshape(len(rows), dims[0])

    def count_for_topic(self, topic_id: int, model_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(models.Embedding)
            .join(models.Chunk, models.Embedding.chunk_id == models.Chunk.id)
            .where(models.Chunk.topic_id == topic_id, models.Embedding.model == model_id)
        )
        with session_scope(self._session_factory) as db:
            return int(db.scalar(stmt) or 0)

    def create(self, chunk_id: int, model_id: str, vector: Sequence[float]) -> EmbeddingVector:
        """Store a vector for (chunk_id, model_id).

        Creating a pair that already exists is a no-op returning the stored record; the
        existing vector is never overwritten.
        """
        existing = self.find(chunk_id, model_id)
        if existing is not None:
            logger.debug("Embedding already exists for chunk %d with model %s", chunk_id, model_id)
            return existing
        row = models.Embedding(
            chunk_id=chunk_id, model=model_id, dimensions=len(vector), vector=encode_vector(vector)
        )
        try:
            with session_scope(self._session_factory) as db:
                db.add(row)
        except IntegrityError:
            # Lost an insert race on the unique (chunk_id, model) key
            existing = self.find(chunk_id, model_id)
            if existing is None:
                raise
            return existing
        logger.debug("Created embedding for chunk %d with model %s", chunk_id, model_id)
        return EmbeddingVector(chunk_id=chunk_id, model_id=model_id, vector=decode_vector(row.vector, row.dimensions))

