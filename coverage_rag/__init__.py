"""Coverage RAG: hybrid semantic + lexical retrieval of topic passages for coverage assessment.

Submodules overview:
- main: FastAPI application bootstrap and routes.
- config: Application settings and environment variable loading.
- exceptions: Error types raised by the retrieval core.
- db: Database engine/session management helpers.
- models: ORM models for topics, documents, chunks and embeddings.
- records: Immutable records passed between the catalog, indexes and ranker.
- catalog: Chunk catalog and embedding store over SQLAlchemy.
- parameters: Hybrid tunables (alpha, K cut-offs) with validation.
- similarity: Cosine similarity and exhaustive top-K semantic scan.
- lexical: Per-topic on-disk BM25 index manager.
- retrieval: Score normalization and the hybrid ranker.
- embedding: OpenAI embedding helpers.
- indexing: Keeps embeddings and lexical indexes in step with the catalog.
- schemas: Pydantic request/response models for API contracts.
- ingestion: Offline ingestion jobs (plain-text files).
- utils: Text cleanup, hashing and chunking helpers.
"""
