"""Offline ingestion jobs.

ingest_text loads local text files into a topic, then hands the new document to
IndexingService for embedding and lexical indexing.
"""
