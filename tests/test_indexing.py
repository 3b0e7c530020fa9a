import pytest

from coverage_rag.exceptions import NotFoundError


def test_status_transitions(make_topic, indexer, catalog):
    empty = catalog.create_topic("empty")
    assert indexer.topic_status(empty).status == "No chunks"

    topic_id, chunks = make_topic("t", ["one two", "three four", "five six"])
    status = indexer.topic_status(topic_id)
    assert status.status == "Not indexed"
    assert (status.total_chunks, status.embedded_chunks, status.lexical_index_exists) == (3, 0, False)

    indexer.embed_chunks(chunks[:1])
    assert indexer.topic_status(topic_id).status == "Partially indexed"

    stats = indexer.index_topic(topic_id)
    assert (stats.total_chunks, stats.new_embeddings) == (3, 2)
    status = indexer.topic_status(topic_id)
    assert status.is_fully_indexed
    assert status.status == "Fully indexed"
    assert status.lexical_doc_count == 3

    indexer.lexical.delete_index(topic_id)
    status = indexer.topic_status(topic_id)
    assert status.status == "Partially indexed"
    assert status.lexical_doc_count == 0


def test_embed_chunks_only_embeds_missing_in_batches(make_topic, indexer, embedder):
    _, chunks = make_topic("t", ["a", "b", "c", "d", "e"])
    assert indexer.embed_chunks(chunks[:2]) == 2
    embedder.calls.clear()
    assert indexer.embed_chunks(chunks) == 3
    # batch_size is 2
    assert [len(batch) for batch in embedder.calls] == [2, 1]
    assert indexer.embed_chunks(chunks) == 0


def test_index_document_upserts_into_topic_index(catalog, indexer):
    topic_id = catalog.create_topic("t")
    doc_id, _ = catalog.create_document(topic_id, [("collagen deposition", 2)])
    stats = indexer.index_document(doc_id)
    assert (stats.document_id, stats.topic_id, stats.total_chunks, stats.new_embeddings) == (doc_id, topic_id, 1, 1)
    assert indexer.lexical.size(topic_id) == 1

    other_doc, _ = catalog.create_document(topic_id, [("portal hypertension", 2)])
    indexer.index_document(other_doc)
    assert indexer.lexical.size(topic_id) == 2


def test_index_topic_without_chunks(catalog, indexer):
    topic_id = catalog.create_topic("empty")
    stats = indexer.index_topic(topic_id)
    assert (stats.total_chunks, stats.new_embeddings) == (0, 0)
    assert not indexer.lexical.exists(topic_id)


def test_unknown_ids_raise_not_found(indexer):
    with pytest.raises(NotFoundError):
        indexer.index_topic(404)
    with pytest.raises(NotFoundError):
        indexer.index_document(404)
