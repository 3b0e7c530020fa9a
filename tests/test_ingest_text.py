import pytest

from coverage_rag.ingestion import ingest_text


def test_ingest_file_stores_and_indexes(tmp_path, catalog, indexer):
    path = tmp_path / "abstract.txt"
    path.write_text("Hepatic fibro-\nsis and collagen deposition in NAFLD.", encoding="utf-8")
    topic_id = ingest_text.ensure_topic(catalog, "nafld")

    doc_id = ingest_text.ingest_file(path, topic_id, catalog, indexer, chunk_size=4, stride=4)

    chunks = catalog.find_by_document(doc_id)
    assert [c.text for c in chunks] == ["Hepatic fibrosis and collagen", "deposition in NAFLD."]
    assert indexer.topic_status(topic_id).is_fully_indexed
    assert [h.chunk_id for h in indexer.lexical.search(topic_id, "nafld", 5)] == [chunks[1].id]


def test_duplicate_and_empty_files_are_skipped(tmp_path, catalog, indexer):
    first = tmp_path / "a.txt"
    first.write_text("collagen deposition", encoding="utf-8")
    copy = tmp_path / "b.txt"
    copy.write_text("collagen deposition", encoding="utf-8")
    blank = tmp_path / "c.txt"
    blank.write_text("   \n", encoding="utf-8")

    created = ingest_text.ingest_paths([first, copy, blank], "topic", catalog, indexer)

    assert len(created) == 1
    topic_id = catalog.find_topic("topic")
    assert catalog.count_by_topic(topic_id) == 1


def test_ensure_topic_reuses_existing(catalog):
    topic_id = ingest_text.ensure_topic(catalog, "same")
    assert ingest_text.ensure_topic(catalog, "same") == topic_id


def test_main_ingests_files(tmp_path, monkeypatch, capsys, catalog, indexer):
    path = tmp_path / "notes.txt"
    path.write_text("macrophage polarization in fibrosis", encoding="utf-8")
    monkeypatch.setattr(ingest_text, "init_db", lambda: None)
    monkeypatch.setattr(ingest_text, "SqlChunkCatalog", lambda: catalog)
    monkeypatch.setattr(ingest_text, "IndexingService", lambda catalog: indexer)

    ingest_text.main(["--topic", "fibrosis", str(path), "--log-level", "WARNING"])

    assert "[INGEST-TEXT] fibrosis -> 1 documents" in capsys.readouterr().out
    assert catalog.count_by_topic(catalog.find_topic("fibrosis")) == 1


def test_rerun_completes_indexing_after_embedding_failure(tmp_path, catalog, indexer, embedder):
    path = tmp_path / "abstract.txt"
    path.write_text("stellate cell activation in liver fibrosis", encoding="utf-8")
    topic_id = ingest_text.ensure_topic(catalog, "nafld")
    working = embedder.embed_many

    def outage(texts):
        raise RuntimeError("embedding service down")

    embedder.embed_many = outage
    with pytest.raises(RuntimeError):
        ingest_text.ingest_file(path, topic_id, catalog, indexer)
    assert indexer.topic_status(topic_id).embedded_chunks == 0

    embedder.embed_many = working
    assert ingest_text.ingest_file(path, topic_id, catalog, indexer) is None

    status = indexer.topic_status(topic_id)
    assert status.total_chunks == 1
    assert status.is_fully_indexed
    assert catalog.count_by_topic(topic_id) == 1
