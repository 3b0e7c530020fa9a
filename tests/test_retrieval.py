import logging

import pytest

from coverage_rag.parameters import HybridParameters
from coverage_rag.records import Chunk


def test_end_to_end_ranks_hepatic_fibrosis_first(retriever, fibrosis_topic, fibrosis_query):
    topic_id, (c1, c2, c3) = fibrosis_topic
    params = HybridParameters(alpha=0.6, k_semantic=3, k_lexical=3, k_context=2)
    results = retriever.retrieve(topic_id, fibrosis_query, params=params)

    assert [r.chunk_id for r in results] == [c3.id, c2.id]
    top = results[0]
    assert top.text == c3.text == "hepatic fibrosis and collagen deposition"
    assert top.semantic_score == pytest.approx(1.0)
    assert top.lexical_score == pytest.approx(0.0)
    assert top.hybrid_score == pytest.approx(0.6)
    assert results[1].hybrid_score == pytest.approx(0.6 * 0.2 + 0.4 * 1.0)
    assert results[0].hybrid_score >= results[1].hybrid_score


def test_results_bounded_and_unique(retriever, fibrosis_topic, fibrosis_query):
    topic_id, _ = fibrosis_topic
    for k in (1, 2, 3, 10):
        results = retriever.retrieve(topic_id, fibrosis_query, params=HybridParameters(k_context=k))
        ids = [r.chunk_id for r in results]
        assert len(ids) <= k
        assert len(ids) == len(set(ids))
        assert all(r.topic_id == topic_id for r in results)


def test_alpha_extremes(retriever, fibrosis_topic, fibrosis_query):
    topic_id, (c1, c2, c3) = fibrosis_topic
    lexical_only = retriever.retrieve(topic_id, fibrosis_query, params=HybridParameters(alpha=0.0))
    assert lexical_only[0].chunk_id == c2.id
    semantic_only = retriever.retrieve(topic_id, fibrosis_query, params=HybridParameters(alpha=1.0))
    assert semantic_only[0].chunk_id == c3.id


def test_defaults_come_from_config_snapshot(retriever, fibrosis_topic, fibrosis_query):
    topic_id, _ = fibrosis_topic
    retriever.config.update(k_context=1)
    assert len(retriever.retrieve(topic_id, fibrosis_query)) == 1


def test_empty_topic_returns_nothing(retriever, catalog, fibrosis_query):
    topic_id = catalog.create_topic("empty")
    assert retriever.retrieve(topic_id, fibrosis_query) == []


def test_chunk_missing_from_catalog_is_skipped(retriever, fibrosis_topic, fibrosis_query, caplog):
    topic_id, (c1, c2, c3) = fibrosis_topic
    # a stale lexical entry with no catalog row
    retriever.lexical.upsert(Chunk(id=999, document_id=1, topic_id=topic_id, chunk_index=0, text="liver fibrosis"))
    with caplog.at_level(logging.WARNING, logger="coverage_rag.retrieval"):
        results = retriever.retrieve(topic_id, fibrosis_query, params=HybridParameters(k_context=10))
    assert 999 not in {r.chunk_id for r in results}
    assert "Chunk 999 not found in catalog" in caplog.text


def test_embedding_failure_propagates(retriever, fibrosis_topic, fibrosis_query):
    topic_id, _ = fibrosis_topic

    def boom(text):
        raise RuntimeError("embedding service down")

    retriever.embedder.embed = boom
    with pytest.raises(RuntimeError, match="embedding service down"):
        retriever.retrieve(topic_id, fibrosis_query)
