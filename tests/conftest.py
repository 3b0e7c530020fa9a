"""Shared fixtures: a throwaway SQLite catalog, a temporary index directory and a fake embedder."""
from typing import Dict, List, Optional, Sequence

import pytest

from coverage_rag.catalog import SqlChunkCatalog, SqlEmbeddingStore
from coverage_rag.db import init_db, make_engine, make_session_factory
from coverage_rag.indexing import IndexingService
from coverage_rag.lexical import LexicalIndexManager
from coverage_rag.parameters import HybridConfig, HybridParameters
from coverage_rag.retrieval import HybridRetriever
from coverage_rag.similarity import SemanticSimilarityEngine


class FakeEmbedder:
    """Deterministic embedder: known texts map to fixed vectors, others to a length-derived one."""

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, model_id: str = "fake-embed"):
        self.vectors = dict(vectors or {})
        self._model_id = model_id
        self.calls: List[List[str]] = []

    @property
    def model_id(self) -> str:
        return self._model_id

    def _vector(self, text: str) -> List[float]:
        if text in self.vectors:
            return list(self.vectors[text])
        return [float(len(text) % 7 + 1), 1.0, 0.0, 0.5]

    def embed(self, text: str) -> List[float]:
        self.calls.append([text])
        return self._vector(text)

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        return [self._vector(t) for t in texts]


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{(tmp_path / 'catalog.db').as_posix()}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def catalog(session_factory):
    return SqlChunkCatalog(session_factory)


@pytest.fixture
def store(session_factory):
    return SqlEmbeddingStore(session_factory)


@pytest.fixture
def index_dir(tmp_path):
    return tmp_path / "indexes"


@pytest.fixture
def lexical(index_dir):
    return LexicalIndexManager(index_dir, k1=1.2, b=0.75)


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def config():
    return HybridConfig(HybridParameters())


@pytest.fixture
def retriever(catalog, store, lexical, embedder, config):
    return HybridRetriever(
        catalog=catalog,
        semantic=SemanticSimilarityEngine(store),
        lexical=lexical,
        embedder=embedder,
        config=config,
    )


@pytest.fixture
def indexer(catalog, store, lexical, embedder):
    return IndexingService(catalog=catalog, embeddings=store, embedder=embedder, lexical=lexical, batch_size=2)


@pytest.fixture
def make_topic(catalog):
    """Factory creating a topic holding one document whose chunks are the given texts."""

    def _make(name: str, texts: Sequence[str]):
        topic_id = catalog.create_topic(name)
        _, chunks = catalog.create_document(topic_id, [(t, len(t.split())) for t in texts], title=name)
        return topic_id, chunks

    return _make


FIBROSIS_QUERY = "liver fibrosis mechanisms"
FIBROSIS_VECTORS = {
    FIBROSIS_QUERY: [0.0, 0.0, 1.0, 0.5],
    "mitochondrial biogenesis in skeletal muscle": [1.0, 0.0, 0.0, 0.0],
    "macrophage polarization in fibrosis": [0.0, 1.0, 0.0, 0.5],
    "hepatic fibrosis and collagen deposition": [0.0, 0.0, 1.0, 0.5],
}


@pytest.fixture
def fibrosis_query():
    return FIBROSIS_QUERY


@pytest.fixture
def fibrosis_topic(make_topic, indexer, embedder):
    """Three-chunk topic: muscle biogenesis, macrophage fibrosis, hepatic fibrosis; fully indexed."""
    embedder.vectors.update(FIBROSIS_VECTORS)
    topic_id, chunks = make_topic("fibrosis", [t for t in FIBROSIS_VECTORS if t != FIBROSIS_QUERY])
    indexer.index_topic(topic_id)
    return topic_id, chunks
