"""Indexing orchestration: keeps a topic's embeddings and lexical index in step with its chunks.

Provides IndexingService with:
- embed_chunks: create missing embeddings for the embedder's model, in batches
- index_document: embed a document's chunks and upsert them into its topic index
- index_topic: embed a topic's chunks and rebuild its lexical index from scratch
- topic_status: embedding / lexical coverage summary for a topic
"""
import logging
from typing import List, Optional, Sequence

from coverage_rag.catalog import SqlChunkCatalog, SqlEmbeddingStore
from coverage_rag.config import settings
from coverage_rag.embedding import Embedder, OpenAIEmbedder
from coverage_rag.exceptions import NotFoundError
from coverage_rag.lexical import LexicalIndexManager
from coverage_rag.records import Chunk, IndexingStats, TopicIndexStatus

logger = logging.getLogger(__name__)


class IndexingService:
    def __init__(
        self,
        catalog: Optional[SqlChunkCatalog] = None,
        embeddings: Optional[SqlEmbeddingStore] = None,
        embedder: Optional[Embedder] = None,
        lexical: Optional[LexicalIndexManager] = None,
        batch_size: Optional[int] = None,
    ):
        self.catalog = catalog or SqlChunkCatalog()
        self.embeddings = embeddings or SqlEmbeddingStore()
        self.embedder = embedder or OpenAIEmbedder()
        self.lexical = lexical or LexicalIndexManager()
        self.batch_size = batch_size or settings.EMBEDDING_BATCH_SIZE

    def embed_chunks(self, chunks: Sequence[Chunk]) -> int:
        """Generate and store embeddings for chunks that have none under the current model.

        Returns:
            int: Number of embeddings created.
        """
        model = self.embedder.model_id
        missing: List[Chunk] = [c for c in chunks if self.embeddings.find(c.id, model) is None]
        if len(missing) < len(chunks):
            logger.debug("Skipping %d chunks that already have %s embeddings", len(chunks) - len(missing), model)
        for start in range(0, len(missing), self.batch_size):
            batch = missing[start:start + self.batch_size]
            vectors = self.embedder.embed_many([c.text for c in batch])
            for chunk, vector in zip(batch, vectors):
                self.embeddings.create(chunk.id, model, vector)
            logger.info("Embedded %d/%d chunks with %s", min(start + len(batch), len(missing)), len(missing), model)
        return len(missing)

    def index_document(self, document_id: int) -> IndexingStats:
        """Embed a document's chunks and upsert them into its topic's lexical index.

        Raises:
            NotFoundError: If the document does not exist.
        """
        topic_id = self.catalog.find_document_topic(document_id)
        if topic_id is None:
            raise NotFoundError(f"Document not found: {document_id}")
        chunks = self.catalog.find_by_document(document_id)
        logger.info("Indexing %d chunks of document %d", len(chunks), document_id)

        created = self.embed_chunks(chunks)
        self.lexical.batch_upsert(chunks, topic_id)
        logger.info(
            "Completed indexing for document %d: %d chunks, %d new embeddings", document_id, len(chunks), created
        )
        return IndexingStats(document_id=document_id, topic_id=topic_id, total_chunks=len(chunks), new_embeddings=created)

    def index_topic(self, topic_id: int) -> IndexingStats:
        """Embed every chunk of a topic and rebuild the topic's lexical index.

        Raises:
            NotFoundError: If the topic does not exist.
        """
        if not self.catalog.topic_exists(topic_id):
            raise NotFoundError(f"Topic not found: {topic_id}")
        chunks = self.catalog.find_by_topic(topic_id)
        if not chunks:
            logger.warning("No chunks found for topic %d", topic_id)
            return IndexingStats(document_id=0, topic_id=topic_id, total_chunks=0, new_embeddings=0)

        created = self.embed_chunks(chunks)
        self.lexical.rebuild(chunks, topic_id)
        logger.info("Completed indexing for topic %d: %d chunks, %d new embeddings", topic_id, len(chunks), created)
        return IndexingStats(document_id=0, topic_id=topic_id, total_chunks=len(chunks), new_embeddings=created)

    def topic_status(self, topic_id: int) -> TopicIndexStatus:
        exists = self.lexical.exists(topic_id)
        return TopicIndexStatus(
            topic_id=topic_id,
            total_chunks=self.catalog.count_by_topic(topic_id),
            embedded_chunks=self.embeddings.count_for_topic(topic_id, self.embedder.model_id),
            lexical_index_exists=exists,
            lexical_doc_count=self.lexical.size(topic_id) if exists else 0,
        )
