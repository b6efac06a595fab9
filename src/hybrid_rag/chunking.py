from __future__ import annotations

from .errors import ConfigurationError
from .schema import Chunk, Document


def split_text(text: str, chunk_size: int = 220, chunk_overlap: int = 60) -> list[str]:
    """Split text into fixed-width character windows that overlap.

    Windows advance by `chunk_size - chunk_overlap` characters. Segments
    that are only whitespace are dropped; the final window is never a strict
    suffix of the previous one.
    """
    if chunk_size < 1:
        raise ConfigurationError(f"chunk_size must be >= 1, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise ConfigurationError(
            f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size {chunk_size}"
        )

    text = text.strip()
    step = chunk_size - chunk_overlap
    segments: list[str] = []
    start = 0
    while start < len(text):
        segment = text[start : start + chunk_size].strip()
        if segment:
            segments.append(segment)
        if start + chunk_size >= len(text):
            break
        start += step
    return segments


def split_documents(
    documents: list[Document],
    chunk_size: int = 220,
    chunk_overlap: int = 60,
) -> list[Chunk]:
    """Split each document into overlapping chunks.

    Args:
        documents: Knowledge-base documents to chunk.
        chunk_size: Maximum number of characters per chunk.
        chunk_overlap: Characters shared between consecutive chunks.

    Returns:
        Chunks carrying the document's `source_id` and a per-document
        `chunk_index` starting at 0.

    Raises:
        ConfigurationError: If `chunk_overlap` is negative or not smaller
            than `chunk_size`.
    """
    chunks: list[Chunk] = []
    for document in documents:
        for chunk_index, segment in enumerate(split_text(document.text, chunk_size, chunk_overlap)):
            chunks.append(Chunk(content=segment, source_id=document.source_id, chunk_index=chunk_index))
    return chunks
