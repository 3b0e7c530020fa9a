"""Embedding utilities wrapping OpenAI's embeddings API.

Provides:
- get_client: Cached OpenAI client using the configured API key.
- embed_texts: Batch embedding for a list of strings.
- embed_query: Convenience helper to embed a single query string.
- OpenAIEmbedder: The embedding-generation collaborator used by retrieval and indexing.

Provider errors (openai.OpenAIError and subclasses) are not caught, retried or cached.
"""
from typing import List, Optional, Protocol, Sequence

from openai import OpenAI

from coverage_rag.config import settings


class Embedder(Protocol):
    @property
    def model_id(self) -> str: ...

    def embed(self, text: str) -> List[float]: ...

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]: ...


_client: OpenAI | None = None


def get_client() -> OpenAI:
    """Return a cached OpenAI client initialized with the configured API key.

    Returns:
        OpenAI: A singleton-like client instance reused across calls. Retries are
            disabled so failures surface to the caller unchanged.
    """
    global _client
    if _client is None:
        _client = OpenAI(
            api_key=settings.OPENAI_API_KEY or None,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
    return _client


def embed_texts(texts: Sequence[str], model: Optional[str] = None) -> List[List[float]]:
    """Embed a batch of texts using the configured OpenAI embedding model.

    Args:
        texts: Input strings to embed.
        model: Model override; defaults to settings.OPENAI_EMBEDDING_MODEL.

    Returns:
        List[List[float]]: One embedding vector per input text, in input order.
    """
    if not texts:
        return []
    client = get_client()
    resp = client.embeddings.create(model=model or settings.OPENAI_EMBEDDING_MODEL, input=list(texts))
    return [d.embedding for d in sorted(resp.data, key=lambda d: d.index)]


def embed_query(text: str, model: Optional[str] = None) -> List[float]:
    """Embed a single query string and return its embedding vector."""
    client = get_client()
    resp = client.embeddings.create(model=model or settings.OPENAI_EMBEDDING_MODEL, input=[text])
    return resp.data[0].embedding


class OpenAIEmbedder:
    """Embedding generation bound to one model id."""

    def __init__(self, model: Optional[str] = None):
        self._model = model or settings.OPENAI_EMBEDDING_MODEL

    @property
    def model_id(self) -> str:
        return self._model

    def embed(self, text: str) -> List[float]:
        return embed_query(text, model=self._model)

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        return embed_texts(texts, model=self._model)
