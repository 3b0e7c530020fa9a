"""Database ORM models.

Defines the persistent catalog the retrieval core reads from:
- Topic: isolation boundary grouping documents, chunks and indexes.
- Document: an ingested source, deduplicated by the SHA-256 of its content.
- Chunk: a slice of a document's text; the unit of indexing and retrieval.
- Embedding: one dense vector per (chunk, model), stored as a float32 blob.
"""
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
)

from coverage_rag.db import Base


class Topic(Base):
    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(256), nullable=False, unique=True)
    query_string = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Document(Base):
    """Source document belonging to exactly one topic.

    Indexes:
        - idx_documents_topic: listing a topic's documents
        - idx_documents_hash: duplicate detection on ingestion
    """
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    title = Column(String(512), nullable=True)
    source_path = Column(String(1024), nullable=True)
    hash_sha256 = Column(String(64), nullable=True)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_documents_topic", "topic_id"),
        Index("idx_documents_hash", "hash_sha256"),
    )


class Chunk(Base):
    """Chunk row; immutable once created.

    topic_id is denormalized from the owning document so topic-scoped scans do not
    need a join.
    """
    __tablename__ = "chunks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(Integer, ForeignKey("documents.id"), nullable=False)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False)
    chunk_index = Column(Integer, nullable=False, default=0)  # order within a doc
    text = Column(Text, nullable=False)
    tokens = Column(Integer, nullable=True)
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("idx_chunks_topic", "topic_id"),
        Index("idx_chunks_document", "document_id"),
    )


class Embedding(Base):
    """Embedding vector of a chunk under a given model.

    The vector is serialized as little-endian float32 bytes; dimensions is kept
    alongside so corrupt or truncated blobs are detectable.
    """
    __tablename__ = "embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chunk_id = Column(Integer, ForeignKey("chunks.id"), nullable=False)
    model = Column(String(128), nullable=False)
    dimensions = Column(Integer, nullable=False)
    vector = Column(LargeBinary, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("chunk_id", "model", name="uq_embeddings_chunk_model"),
    )
