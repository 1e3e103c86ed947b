"""Sentence-aware text chunking with overlap for RAG pipeline.

Text is split into sentences, sentences are packed greedily into chunks of at
most ``chunk_size`` characters, and every chunk after the first is prefixed
with the tail of its predecessor so that context survives chunk boundaries.
"""
import re
import uuid
from dataclasses import dataclass
from typing import List, Optional

import structlog

from docqa import config

logger = structlog.get_logger()

SENTENCE_BOUNDARY = re.compile(r"[.!?]+")
MIN_SENTENCE_LENGTH = 10
OVERLAP_BOUNDARY_WINDOW = 0.3


@dataclass
class TextChunk:
    """A chunk candidate produced by the chunker."""

    id: str
    text: str
    document_id: str
    chunk_index: int
    word_count: int
    is_partial_sentence: bool = False
    overlap_size: int = 0


def count_words(text: str) -> int:
    """Number of whitespace-delimited tokens."""
    return len(text.split())


class TextChunker:
    """Greedy sentence packer with word-level fallback and trailing overlap."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum chunk size in characters before overlap (default from config)
            chunk_overlap: Characters carried over from the previous chunk (default from config)
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap

        # Validate parameters
        if self.chunk_size <= 0:
            raise ValueError(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise ValueError(f"Overlap must not be negative, got {self.chunk_overlap}")
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def split_into_sentences(self, text: str) -> List[str]:
        """Split text on sentence punctuation, dropping short noise fragments."""
        fragments = (s.strip() for s in SENTENCE_BOUNDARY.split(text))
        return [s for s in fragments if len(s) > MIN_SENTENCE_LENGTH]

    def chunk_text(self, text: str, document_id: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Raw document text
            document_id: Identifier of the source document

        Returns:
            List of TextChunk objects with contiguous chunk_index values
        """
        if not text or not text.strip():
            return []

        sentences = self.split_into_sentences(text)
        pieces: List[tuple] = []

        if sentences:
            self._pack_sentences(sentences, pieces)
        else:
            # Nothing survives the noise filter; pack the raw words instead
            # of dropping the whole document.
            logger.debug(
                "no_sentences_found_using_words",
                document_id=document_id,
                text_length=len(text),
            )
            self._pack_words(text.split(), pieces)

        chunks = [
            TextChunk(
                id=str(uuid.uuid4()),
                text=piece,
                document_id=document_id,
                chunk_index=index,
                word_count=count_words(piece),
                is_partial_sentence=partial,
            )
            for index, (piece, partial) in enumerate(pieces)
        ]

        logger.info(
            "text_chunked",
            document_id=document_id,
            text_length=len(text),
            chunk_count=len(chunks),
        )

        return self.add_overlap(chunks)

    def _pack_sentences(self, sentences: List[str], pieces: List[tuple]) -> None:
        current = ""

        for sentence in sentences:
            candidate = f"{current} {sentence}" if current else sentence

            if len(candidate) <= self.chunk_size:
                current = candidate
                continue

            if current.strip():
                pieces.append((current.strip(), False))

            current = sentence

            # A single sentence that cannot fit is broken up by words
            if len(sentence) > self.chunk_size:
                self._pack_words(sentence.split(), pieces)
                current = ""

        if current.strip():
            pieces.append((current.strip(), False))

    def _pack_words(self, words: List[str], pieces: List[tuple]) -> None:
        current = ""

        for word in words:
            candidate = f"{current} {word}" if current else word

            if len(candidate) <= self.chunk_size:
                current = candidate
            else:
                if current.strip():
                    pieces.append((current.strip(), True))
                current = word

        if current.strip():
            pieces.append((current.strip(), True))

    def overlap_text(self, previous_text: str) -> str:
        """Trailing overlap taken from the previous chunk's text.

        The window is moved forward to the first space only when that space
        falls inside the first 30% of the window.
        """
        if self.chunk_overlap <= 0:
            return ""

        if len(previous_text) <= self.chunk_overlap:
            return previous_text

        overlap = previous_text[-self.chunk_overlap:]
        space_index = overlap.find(" ")
        if 0 < space_index < self.chunk_overlap * OVERLAP_BOUNDARY_WINDOW:
            overlap = overlap[space_index + 1:]
        return overlap

    def add_overlap(self, chunks: List[TextChunk]) -> List[TextChunk]:
        """Prefix every chunk after the first with its predecessor's tail."""
        if len(chunks) <= 1 or self.chunk_overlap <= 0:
            return chunks

        # Overlap always comes from the pre-overlap text of the previous chunk
        original_texts = [chunk.text for chunk in chunks]

        for i in range(1, len(chunks)):
            overlap = self.overlap_text(original_texts[i - 1])
            if not overlap:
                continue

            chunk = chunks[i]
            chunk.text = f"{overlap} {chunk.text}"
            chunk.word_count = count_words(chunk.text)
            chunk.overlap_size = len(overlap)

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Size profile of a chunked document, logged during ingestion."""
        sizes = [len(c.text) for c in chunks]
        words = sum(c.word_count for c in chunks)
        return {
            "chunks": len(sizes),
            "characters": sum(sizes),
            "words": words,
            "smallest": min(sizes, default=0),
            "largest": max(sizes, default=0),
            "mean_size": round(sum(sizes) / len(sizes), 1) if sizes else 0.0,
            "overlapped": sum(1 for c in chunks if c.overlap_size),
            "partial_sentences": sum(1 for c in chunks if c.is_partial_sentence),
        }
