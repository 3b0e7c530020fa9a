"""FastAPI application entrypoint and routes.

Exposes health, hybrid retrieval, tunable configuration and lexical index maintenance
endpoints, and initializes the catalog schema at startup. Services are resolved through
get_services so tests and embedding hosts can substitute their own collaborators.
"""
import time
from dataclasses import asdict, dataclass
from typing import Optional

import openai
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coverage_rag.catalog import SqlChunkCatalog, SqlEmbeddingStore
from coverage_rag.db import init_db
from coverage_rag.embedding import OpenAIEmbedder
from coverage_rag.exceptions import ConfigurationError, NotFoundError, ValidationError
from coverage_rag.indexing import IndexingService
from coverage_rag.lexical import LexicalIndexManager
from coverage_rag.parameters import HybridConfig
from coverage_rag.retrieval import HybridRetriever
from coverage_rag.schemas import (
    HybridParametersModel,
    HybridParametersUpdate,
    IndexingStatsResponse,
    IndexStatusResponse,
    RetrievedPassage,
    RetrieveRequest,
    RetrieveResponse,
)
from coverage_rag.similarity import SemanticSimilarityEngine

app = FastAPI(title="Coverage RAG API", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)


@dataclass
class Services:
    retriever: HybridRetriever
    indexer: IndexingService


_services: Optional[Services] = None


def build_services() -> Services:
    """Wire the SQL catalog, embedding store, lexical indexes and OpenAI embedder together."""
    catalog = SqlChunkCatalog()
    store = SqlEmbeddingStore()
    lexical = LexicalIndexManager()
    embedder = OpenAIEmbedder()
    retriever = HybridRetriever(
        catalog=catalog,
        semantic=SemanticSimilarityEngine(store),
        lexical=lexical,
        embedder=embedder,
        config=HybridConfig(),
    )
    indexer = IndexingService(catalog=catalog, embeddings=store, embedder=embedder, lexical=lexical)
    return Services(retriever=retriever, indexer=indexer)


def get_services() -> Services:
    """Return the process-wide services, building them on first use."""
    global _services
    if _services is None:
        _services = build_services()
    return _services


@app.exception_handler(ConfigurationError)
@app.exception_handler(ValidationError)
def _unprocessable(request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(NotFoundError)
def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(openai.OpenAIError)
def _embedding_failed(request: Request, exc: openai.OpenAIError) -> JSONResponse:
    return JSONResponse(status_code=502, content={"detail": f"embedding service error: {exc}"})


@app.on_event("startup")
def on_startup() -> None:
    """Initialize the catalog schema at application startup."""
    init_db()


@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.post("/topics/{topic_id}/retrieve", response_model=RetrieveResponse)
def retrieve(topic_id: int, req: RetrieveRequest, services: Services = Depends(get_services)) -> RetrieveResponse:
    """Rank the topic's passages against the query using hybrid retrieval.

    Per-call overrides are validated into a one-off parameters value; the shared
    configuration is left untouched.
    """
    t0 = time.time()
    params = services.retriever.config.snapshot().with_overrides(
        alpha=req.alpha, k_semantic=req.k_semantic, k_lexical=req.k_lexical, k_context=req.k_context
    )
    results = services.retriever.retrieve(topic_id, req.query, params=params)
    return RetrieveResponse(
        topic_id=topic_id,
        results=[RetrievedPassage(**asdict(r)) for r in results],
        parameters=HybridParametersModel(**asdict(params)),
        latency_ms=int((time.time() - t0) * 1000),
    )


@app.get("/config/hybrid", response_model=HybridParametersModel)
def get_hybrid_config(services: Services = Depends(get_services)) -> HybridParametersModel:
    return HybridParametersModel(**asdict(services.retriever.config.snapshot()))


@app.put("/config/hybrid", response_model=HybridParametersModel)
def update_hybrid_config(
    update: HybridParametersUpdate, services: Services = Depends(get_services)
) -> HybridParametersModel:
    """Apply a partial update atomically; an invalid field rejects the whole update."""
    params = services.retriever.config.update(**update.model_dump())
    return HybridParametersModel(**asdict(params))


@app.get("/topics/{topic_id}/index", response_model=IndexStatusResponse)
def index_status(topic_id: int, services: Services = Depends(get_services)) -> IndexStatusResponse:
    status = services.indexer.topic_status(topic_id)
    return IndexStatusResponse(
        **asdict(status), fully_indexed=status.is_fully_indexed, status=status.status
    )


@app.post("/topics/{topic_id}/index/rebuild", response_model=IndexingStatsResponse)
def rebuild_index(topic_id: int, services: Services = Depends(get_services)) -> IndexingStatsResponse:
    stats = services.indexer.index_topic(topic_id)
    return IndexingStatsResponse(
        topic_id=stats.topic_id, total_chunks=stats.total_chunks, new_embeddings=stats.new_embeddings
    )


@app.delete("/topics/{topic_id}/index", status_code=204)
def delete_index(topic_id: int, services: Services = Depends(get_services)) -> None:
    services.indexer.lexical.delete_index(topic_id)


@app.delete("/topics/{topic_id}/index/chunks/{chunk_id}", status_code=204)
def delete_indexed_chunk(topic_id: int, chunk_id: int, services: Services = Depends(get_services)) -> None:
    services.indexer.lexical.delete(chunk_id, topic_id)


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("coverage_rag.main:app", host="0.0.0.0", port=8000)
