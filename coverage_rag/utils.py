"""Utility helpers for text cleanup, hashing and chunking.

This module provides:
- sha256_hex: stable content hash used to deduplicate ingested documents
- clean_text: joins words hyphenated across line breaks and collapses whitespace
- chunk_text: fixed-size whitespace-token windows with a configurable stride
"""
import hashlib
import re
from typing import List, Tuple

_HYPHEN_NEWLINE = re.compile(r"-\s*\n\s*")
_WHITESPACE = re.compile(r"\s+")


def sha256_hex(data: bytes) -> str:
    """Compute the SHA-256 hex digest of raw bytes.

    Args:
        data: Content to hash (e.g., a file's bytes).

    Returns:
        str: 64-char lowercase hex digest.
    """
    return hashlib.sha256(data).hexdigest()


def clean_text(text: str) -> str:
    """Normalize extracted text before chunking.

    De-hyphenates words split across lines ("con-\\nnection" -> "connection"), then
    collapses every run of whitespace into a single space.

    Args:
        text: Raw text (None is treated as empty).

    Returns:
        str: Cleaned, trimmed text.
    """
    if not text:
        return ""
    text = _HYPHEN_NEWLINE.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def chunk_text(text: str, chunk_size: int, stride: int) -> List[Tuple[str, int]]:
    """Split text into windows of whitespace tokens.

    A window starts every `stride` tokens and holds up to `chunk_size` tokens, so
    stride < chunk_size gives overlapping chunks. Stops after the window that reaches
    the last token.

    Args:
        text: Input string to split.
        chunk_size: Tokens per chunk (>= 1).
        stride: Tokens between consecutive chunk starts, in [1, chunk_size].

    Returns:
        List[Tuple[str, int]]: (chunk text, token count) pairs.

    Raises:
        ValueError: If chunk_size or stride is out of range.
    """
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    if stride < 1 or stride > chunk_size:
        raise ValueError("stride must be in [1, chunk_size]")
    tokens = text.split() if text else []
    chunks: List[Tuple[str, int]] = []
    for start in range(0, len(tokens), stride):
        end = min(start + chunk_size, len(tokens))
        chunks.append((" ".join(tokens[start:end]), end - start))
        if end == len(tokens):
            break
    return chunks
