"""Plain-text ingestor.

Reads UTF-8 text files into a topic: cleans and chunks the text, stores the document
and its chunks in the catalog, embeds the chunks and upserts them into the topic's
lexical index.

Capabilities:
- Creates the topic on first use (looked up by name)
- Skips files whose SHA-256 is already ingested, re-indexing the stored document so an
  interrupted run is completed by the next one
- Chunking uses coverage_rag.utils.chunk_text with settings.CHUNK_SIZE / CHUNK_STRIDE

Usage:
  python -m coverage_rag.ingestion.ingest_text --topic "liver fibrosis" notes/*.txt

Configuration:
- Database: coverage_rag.config.settings.DATABASE_URL / DATA_DIR
- Lexical indexes: coverage_rag.config.settings.INDEX_DIR
- Embeddings: coverage_rag.config.settings.OPENAI_EMBEDDING_MODEL
"""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from coverage_rag.catalog import SqlChunkCatalog
from coverage_rag.config import settings
from coverage_rag.db import init_db
from coverage_rag.indexing import IndexingService
from coverage_rag.utils import chunk_text, clean_text, sha256_hex

logger = logging.getLogger(__name__)


def ensure_topic(catalog: SqlChunkCatalog, name: str) -> int:
    topic_id = catalog.find_topic(name)
    if topic_id is None:
        topic_id = catalog.create_topic(name)
    return topic_id


def ingest_file(
    path: Path,
    topic_id: int,
    catalog: SqlChunkCatalog,
    indexer: IndexingService,
    chunk_size: Optional[int] = None,
    stride: Optional[int] = None,
) -> Optional[int]:
    """Ingest one text file into a topic.

    Args:
        path: File to read (UTF-8; undecodable bytes are replaced).
        topic_id: Target topic.
        catalog: Catalog receiving the document and chunks.
        indexer: Embeds and lexically indexes the new chunks.
        chunk_size: Tokens per chunk; defaults to settings.CHUNK_SIZE.
        stride: Tokens between chunk starts; defaults to settings.CHUNK_STRIDE.

    Returns:
        Optional[int]: The new document id, or None when the file was a duplicate or empty.
    """
    raw = path.read_bytes()
    digest = sha256_hex(raw)
    existing = catalog.find_document_by_hash(digest)
    if existing is not None:
        # A previous run may have stored the document but failed while indexing it
        stats = indexer.index_document(existing)
        logger.info(
            "Skipping %s: already ingested as document %d (sha256=%s), new embeddings=%d",
            path, existing, digest[:12], stats.new_embeddings,
        )
        return None

    text = clean_text(raw.decode("utf-8", errors="replace"))
    chunks = chunk_text(text, chunk_size or settings.CHUNK_SIZE, stride or settings.CHUNK_STRIDE)
    if not chunks:
        logger.warning("Skipping %s: no text", path)
        return None

    document_id, _ = catalog.create_document(
        topic_id, chunks, title=path.stem, source_path=str(path), hash_sha256=digest
    )
    stats = indexer.index_document(document_id)
    logger.info("Ingested %s as document %d: chunks=%d", path, document_id, stats.total_chunks)
    return document_id


def ingest_paths(paths: Iterable[Path], topic_name: str, catalog: SqlChunkCatalog, indexer: IndexingService) -> List[int]:
    """Ingest several files into the topic called topic_name; returns new document ids."""
    topic_id = ensure_topic(catalog, topic_name)
    created: List[int] = []
    for path in paths:
        document_id = ingest_file(path, topic_id, catalog, indexer)
        if document_id is not None:
            created.append(document_id)
    return created


def main(argv: Optional[List[str]] = None):
    parser = argparse.ArgumentParser(description="Ingest plain-text files into a topic.")
    parser.add_argument("--topic", required=True, help="Topic name (created if missing)")
    parser.add_argument("paths", nargs="+", type=Path, help="Text files to ingest")
    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: INFO)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    logger.info("Starting text ingestion of %d files into topic %r", len(args.paths), args.topic)

    init_db()
    catalog = SqlChunkCatalog()
    try:
        created = ingest_paths(args.paths, args.topic, catalog, IndexingService(catalog=catalog))
        logger.info("Completed ingestion: documents=%d, topic=%r", len(created), args.topic)
        print(f"[INGEST-TEXT] {args.topic} -> {len(created)} documents")
    except Exception:
        logger.exception("Ingestion failed for topic %r", args.topic)
        raise


if __name__ == "__main__":
    main()
