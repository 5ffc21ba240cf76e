from __future__ import annotations

import re
from dataclasses import dataclass, replace

_SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")


@dataclass(frozen=True, slots=True)
class ChunkOptions:
    chunk_size: int = 2000
    min_length: int = 100
    overlap: int = 200
    max_chunks: int = 50
    preserve_sentences: bool = True

    def __post_init__(self) -> None:
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {self.chunk_size}")
        if self.overlap < 0 or self.overlap >= self.chunk_size:
            raise ValueError(
                f"overlap must be in [0, chunk_size), got {self.overlap} for chunk_size {self.chunk_size}"
            )
        if self.min_length < 0:
            raise ValueError(f"min_length must be >= 0, got {self.min_length}")
        if self.max_chunks < 0:
            raise ValueError(f"max_chunks must be >= 0, got {self.max_chunks}")


# Scraped pages: fixed 400-char windows, capped at 100 per page.
PAGE_CHUNK_OPTIONS = ChunkOptions(
    chunk_size=400,
    min_length=1,
    overlap=0,
    max_chunks=100,
    preserve_sentences=False,
)

# Long-form documents: sentence-packed 2000-char chunks with 200 chars of carry-over.
DOCUMENT_CHUNK_OPTIONS = ChunkOptions()


def clean_text(text: str) -> str:
    """Collapse every whitespace run to a single space and trim."""
    return " ".join(text.split())


def _tail(text: str, size: int) -> str:
    """Last ``size`` characters of ``text``, starting on a word boundary."""
    if size <= 0 or not text:
        return ""
    if len(text) <= size:
        return text
    tail = text[-size:]
    if text[-size - 1] != " ":
        space = tail.find(" ")
        tail = tail[space + 1 :] if space != -1 else ""
    return tail.strip()


def _windows(text: str, size: int, overlap: int) -> list[str]:
    step = size - overlap
    windows: list[str] = []
    start = 0
    while start < len(text):
        piece = text[start : start + size].strip()
        if piece:
            windows.append(piece)
        if start + size >= len(text):
            break
        start += step
    return windows


def _pack_sentences(text: str, size: int, overlap: int) -> list[str]:
    sentences: list[str] = []
    for sentence in _SENTENCE_BOUNDARY.split(text):
        sentence = sentence.strip()
        if not sentence:
            continue
        if len(sentence) > size:
            sentences.extend(_windows(sentence, size, 0))
        else:
            sentences.append(sentence)

    chunks: list[str] = []
    current = ""
    for sentence in sentences:
        candidate = f"{current} {sentence}" if current else sentence
        if current and len(candidate) > size:
            chunks.append(current)
            carry = _tail(current, overlap)
            current = f"{carry} {sentence}" if carry else sentence
            if len(current) > size:
                current = sentence
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


def chunk_text(text: str, options: ChunkOptions = DOCUMENT_CHUNK_OPTIONS) -> list[str]:
    """Split ``text`` into bounded, optionally overlapping segments.

    Pure function: the same text and options always give the same list.
    Segments shorter than ``options.min_length`` are dropped and at most
    ``options.max_chunks`` segments are returned, earliest first.
    """
    normalized = clean_text(text)
    if not normalized or options.max_chunks == 0:
        return []

    if options.preserve_sentences:
        chunks = _pack_sentences(normalized, options.chunk_size, options.overlap)
    else:
        chunks = _windows(normalized, options.chunk_size, options.overlap)

    kept = [c for c in chunks if c and len(c) >= options.min_length]
    return kept[: options.max_chunks]


def chunk(text: str, max_chunk_count: int, **overrides) -> list[str]:
    """``chunk_text`` with an explicit chunk cap, on top of the document preset."""
    options = replace(DOCUMENT_CHUNK_OPTIONS, max_chunks=max_chunk_count, **overrides)
    return chunk_text(text, options)
