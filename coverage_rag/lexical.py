"""Per-topic inverted lexical index with BM25 ranking.

Each topic owns an isolated on-disk index, INDEX_DIR/<topic_id>/lexical.sqlite, holding
one IndexedDocument per chunk (an exact-match identifier column, chunk_id, and the
analyzed text field, terms) plus its postings: one (term, document, frequency) row per
distinct term. A search reads only the postings of the query terms and the collection
totals, then scores the matching documents with rank_bm25 using the non-negative idf
of Lucene's BM25Similarity, so every document sharing a term with the query scores > 0
and only those are hits.

Query text comes from users and documents, not from a query language: it is passed
through the same analyzer as indexed text, which keeps only word tokens, so quotes,
brackets, boolean operators and wildcards are inert and parsing cannot fail.

Writers against the same topic must be serialized by the caller; SQLite allows a
single writer per file.
"""
import logging
import math
import re
import shutil
import threading
from collections import Counter, defaultdict
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

from rank_bm25 import BM25Okapi
from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text, create_engine, delete, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import NullPool

from coverage_rag.config import settings
from coverage_rag.db import session_scope
from coverage_rag.records import Chunk, LexicalHit

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "lexical.sqlite"

IndexBase = declarative_base()

_TOKEN = re.compile(r"[^\W_]+")


class IndexedDocument(IndexBase):
    """Lexical projection of a chunk; at most one row per chunk_id."""
    __tablename__ = "indexed_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    chunk_id = Column(String(32), nullable=False, unique=True)  # not analyzed
    document_id = Column(Integer, nullable=False)
    chunk_index = Column(Integer, nullable=False)
    terms = Column(Text, nullable=False)  # analyzed content, space separated
    term_count = Column(Integer, nullable=False)


class Posting(IndexBase):
    """Inverted-index entry: how often a term occurs in one indexed document."""
    __tablename__ = "postings"

    term = Column(String(256), primary_key=True)
    indexed_id = Column(Integer, ForeignKey("indexed_documents.id"), primary_key=True)
    frequency = Column(Integer, nullable=False)

    __table_args__ = (Index("idx_postings_document", "indexed_id"),)


def analyze(text: str) -> List[str]:
    """Lower-cased Unicode word tokens; used for both indexed text and queries."""
    return _TOKEN.findall(text.lower()) if text else []


class _LuceneBM25(BM25Okapi):
    """BM25Okapi scoring with idf = ln(1 + (N - n + 0.5) / (n + 0.5)), never negative."""

    def _calc_idf(self, nd):
        for word, freq in nd.items():
            self.idf[word] = math.log(1.0 + (self.corpus_size - freq + 0.5) / (freq + 0.5))

    @classmethod
    def from_postings(
        cls,
        corpus_size: int,
        total_length: int,
        document_frequencies: Mapping[str, int],
        doc_freqs: List[Dict[str, int]],
        doc_len: List[int],
        k1: float,
        b: float,
    ) -> "_LuceneBM25":
        """Scorer for a subset of documents, using collection statistics read from the index.

        Only the candidate documents' term frequencies are held; N, avgdl and the document
        frequencies describe the whole topic, so scores equal those of a full-corpus model.
        """
        bm25 = cls.__new__(cls)
        bm25.k1, bm25.b, bm25.epsilon = k1, b, 0.25
        bm25.tokenizer = None
        bm25.corpus_size = corpus_size
        bm25.avgdl = total_length / corpus_size
        bm25.doc_freqs = doc_freqs
        bm25.doc_len = doc_len
        bm25.idf = {}
        bm25._calc_idf(document_frequencies)
        return bm25


class LexicalIndexManager:
    """Owns the lexical index of every topic under one base directory."""

    def __init__(self, index_dir: Optional[Path] = None, k1: Optional[float] = None, b: Optional[float] = None):
        self.index_dir = Path(index_dir or settings.index_dir)
        self.k1 = settings.BM25_K1 if k1 is None else k1
        self.b = settings.BM25_B if b is None else b
        self._engines: Dict[int, Engine] = {}
        self._lock = threading.Lock()
        self.index_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Lexical index base directory: %s", self.index_dir)

    def topic_path(self, topic_id: int) -> Path:
        return self.index_dir / str(topic_id)

    def _sessions(self, topic_id: int, create: bool) -> Optional[sessionmaker]:
        """Session factory for a topic index, or None if it is absent and create is False."""
        path = self.topic_path(topic_id) / INDEX_FILE_NAME
        fresh = not path.exists()
        if fresh and not create:
            return None
        with self._lock:
            if fresh:
                path.parent.mkdir(parents=True, exist_ok=True)
            engine = self._engines.get(topic_id)
            if engine is None:
                engine = create_engine(f"sqlite:///{path.as_posix()}", poolclass=NullPool, future=True)
                self._engines[topic_id] = engine
                fresh = True
            if fresh:
                IndexBase.metadata.create_all(engine)
        return sessionmaker(bind=engine, future=True)

    @staticmethod
    def _put(db, chunk: Chunk) -> None:
        terms = analyze(chunk.text)
        row = db.scalars(select(IndexedDocument).where(IndexedDocument.chunk_id == str(chunk.id))).first()
        if row is None:
            row = IndexedDocument(chunk_id=str(chunk.id))
            db.add(row)
        else:
            db.execute(delete(Posting).where(Posting.indexed_id == row.id))
        row.document_id = chunk.document_id
        row.chunk_index = chunk.chunk_index
        row.terms = " ".join(terms)
        row.term_count = len(terms)
        db.flush()
        db.add_all(
            Posting(term=term, indexed_id=row.id, frequency=freq) for term, freq in Counter(terms).items()
        )

    @staticmethod
    def _belongs(chunk: Chunk, topic_id: int) -> bool:
        if chunk.topic_id != topic_id:
            logger.warning(
                "Chunk %d belongs to topic %d, expected topic %d; skipping", chunk.id, chunk.topic_id, topic_id
            )
            return False
        return True

    def upsert(self, chunk: Chunk) -> None:
        """Index a chunk, replacing any document already indexed under its id.

        The change is committed, and visible to searches, when this returns.
        """
        with session_scope(self._sessions(chunk.topic_id, create=True)) as db:
            self._put(db, chunk)
        logger.debug("Indexed chunk %d for topic %d", chunk.id, chunk.topic_id)

    def batch_upsert(self, chunks: Sequence[Chunk], topic_id: int) -> int:
        """Upsert many chunks of one topic in a single commit.

        Chunks of another topic are skipped with a warning; the rest are still committed.

        Returns:
            int: Number of chunks indexed.
        """
        if not chunks:
            logger.debug("No chunks to index for topic %d", topic_id)
            return 0
        indexed = 0
        with session_scope(self._sessions(topic_id, create=True)) as db:
            for chunk in chunks:
                if self._belongs(chunk, topic_id):
                    self._put(db, chunk)
                    indexed += 1
        logger.info("Batch indexed %d of %d chunks for topic %d", indexed, len(chunks), topic_id)
        return indexed

    def rebuild(self, chunks: Sequence[Chunk], topic_id: int) -> int:
        """Drop the topic index and recreate it from chunks only.

        Returns:
            int: Number of documents in the rebuilt index.
        """
        self.delete_index(topic_id)
        latest: Dict[int, Chunk] = {}
        for chunk in chunks:
            if self._belongs(chunk, topic_id):
                latest[chunk.id] = chunk
        with session_scope(self._sessions(topic_id, create=True)) as db:
            for chunk in latest.values():
                self._put(db, chunk)
        logger.info("Rebuilt index with %d chunks for topic %d", len(latest), topic_id)
        return len(latest)

    def delete(self, chunk_id: int, topic_id: int) -> None:
        """Remove one chunk from a topic index; no-op if the index or chunk is absent."""
        sessions = self._sessions(topic_id, create=False)
        if sessions is None:
            logger.debug("Index does not exist for topic %d", topic_id)
            return
        with session_scope(sessions) as db:
            row_id = db.scalar(select(IndexedDocument.id).where(IndexedDocument.chunk_id == str(chunk_id)))
            if row_id is not None:
                db.execute(delete(Posting).where(Posting.indexed_id == row_id))
                db.execute(delete(IndexedDocument).where(IndexedDocument.id == row_id))
        logger.debug("Deleted chunk %d from index for topic %d", chunk_id, topic_id)

    def delete_index(self, topic_id: int) -> None:
        """Remove every on-disk structure of a topic index."""
        with self._lock:
            engine = self._engines.pop(topic_id, None)
        if engine is not None:
            engine.dispose()
        path = self.topic_path(topic_id)
        if path.exists():
            shutil.rmtree(path)
            logger.info("Deleted index for topic %d", topic_id)

    def size(self, topic_id: int) -> int:
        """Number of indexed documents, 0 when the topic has no index."""
        sessions = self._sessions(topic_id, create=False)
        if sessions is None:
            return 0
        with session_scope(sessions) as db:
            return int(db.scalar(select(func.count()).select_from(IndexedDocument)) or 0)

    def exists(self, topic_id: int) -> bool:
        """True when the topic index is present, readable and non-empty."""
        try:
            return self.size(topic_id) > 0
        except SQLAlchemyError:
            logger.debug("Index exists but is not readable for topic %d", topic_id, exc_info=True)
            return False

    def search(self, topic_id: int, query_text: str, max_results: int) -> List[LexicalHit]:
        """Rank a topic's indexed documents against free text.

        Args:
            topic_id: Topic whose index is searched.
            query_text: Unstructured text (a question, an abstract, ...).
            max_results: Maximum number of hits.

        Returns:
            List[LexicalHit]: Up to max_results hits, best first; ties by chunk id.
                Empty when the topic has no index or nothing matches.
        """
        sessions = self._sessions(topic_id, create=False)
        if sessions is None:
            logger.warning("Index does not exist for topic %d", topic_id)
            return []
        query_terms = analyze(query_text)
        if not query_terms or max_results <= 0:
            return []

        unique_terms = sorted(set(query_terms))
        with session_scope(sessions) as db:
            corpus_size, total_length = db.execute(
                select(func.count(IndexedDocument.id), func.coalesce(func.sum(IndexedDocument.term_count), 0))
            ).one()
            # avgdl is 0 when nothing was analyzable; BM25 is undefined there
            if not total_length:
                return []
            postings = db.execute(
                select(Posting.term, Posting.indexed_id, Posting.frequency).where(Posting.term.in_(unique_terms))
            ).all()
            candidates = db.execute(
                select(
                    IndexedDocument.id,
                    IndexedDocument.chunk_id,
                    IndexedDocument.document_id,
                    IndexedDocument.chunk_index,
                    IndexedDocument.term_count,
                )
                .where(IndexedDocument.id.in_(select(Posting.indexed_id).where(Posting.term.in_(unique_terms))))
                .order_by(IndexedDocument.id)
            ).all()
        if not candidates:
            logger.info("Found 0 hits for query of %d terms in topic %d", len(query_terms), topic_id)
            return []

        tf: Dict[int, Dict[str, int]] = defaultdict(dict)
        df: Counter = Counter()
        for posting in postings:
            tf[posting.indexed_id][posting.term] = posting.frequency
            df[posting.term] += 1
        bm25 = _LuceneBM25.from_postings(
            corpus_size=corpus_size,
            total_length=total_length,
            document_frequencies=df,
            doc_freqs=[tf[row.id] for row in candidates],
            doc_len=[row.term_count for row in candidates],
            k1=self.k1,
            b=self.b,
        )
        scores = bm25.get_batch_scores(query_terms, list(range(len(candidates))))
        hits = [
            LexicalHit(
                chunk_id=int(row.chunk_id),
                document_id=row.document_id,
                chunk_index=row.chunk_index,
                score=float(score),
            )
            for row, score in zip(candidates, scores)
            if score > 0
        ]
        hits.sort(key=lambda h: (-h.score, h.chunk_id))
        hits = hits[:max_results]
        logger.info(
            "Found %d hits among %d of %d documents for query of %d terms in topic %d",
            len(hits), len(candidates), corpus_size, len(query_terms), topic_id,
        )
        return hits
