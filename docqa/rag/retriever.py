"""Retriever for semantic search over the knowledge base.

Handles:
- Cosine similarity between query and chunk embeddings
- Threshold filtering and top-K ranking
- Literal substring search as a non-vector fallback

Every query scans all stored chunks (O(n)). This is fine for small corpora;
an approximate nearest-neighbour index would be the upgrade path.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import structlog

from docqa import config
from docqa.rag.knowledge_store import KnowledgeStore

logger = structlog.get_logger()

SOURCE_PREVIEW_CHARS = 200
SEARCH_PREVIEW_CHARS = 300


def cosine_similarity(
    vec_a: Optional[Sequence[float]], vec_b: Optional[Sequence[float]]
) -> float:
    """Cosine similarity of two vectors.

    Returns 0.0 when either vector is missing or empty, when their lengths
    differ, or when either has zero norm.
    """
    if vec_a is None or vec_b is None:
        return 0.0
    if len(vec_a) == 0 or len(vec_a) != len(vec_b):
        return 0.0

    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)

    denominator = np.linalg.norm(a) * np.linalg.norm(b)
    if denominator == 0:
        return 0.0

    return float(np.clip(np.dot(a, b) / denominator, -1.0, 1.0))


def preview(text: str, length: int) -> str:
    return text[:length] + "..."


@dataclass
class RetrievalResult:
    """A single retrieved chunk with its similarity score."""

    id: str
    similarity: float
    text: str
    document_name: str
    chunk_index: int
    word_count: int

    @property
    def preview(self) -> str:
        return preview(self.text, SOURCE_PREVIEW_CHARS)

    def to_source(self) -> Dict[str, Any]:
        """Citation entry returned alongside an answer."""
        return {
            "documentName": self.document_name,
            "chunkIndex": self.chunk_index,
            "similarity": self.similarity,
            "preview": self.preview,
        }


@dataclass
class TextMatch:
    """A literal-text match from ``search_documents``."""

    document_name: str
    chunk_index: int
    preview: str
    similarity: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "documentName": self.document_name,
            "similarity": self.similarity,
            "preview": self.preview,
            "chunkIndex": self.chunk_index,
        }


class Retriever:
    """Linear-scan cosine retriever over a KnowledgeStore."""

    def __init__(
        self,
        store: KnowledgeStore,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ):
        """Initialize the retriever.

        Args:
            store: Knowledge store to search
            top_k: Default number of results (default from config)
            threshold: Default minimum similarity (default from config)
        """
        self.store = store
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.threshold = config.RETRIEVAL_THRESHOLD if threshold is None else threshold

    async def search(
        self,
        query_vector: Sequence[float],
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[RetrievalResult]:
        """Rank stored chunks by similarity to a query vector.

        Args:
            query_vector: Embedding of the query
            top_k: Maximum number of results (overrides default)
            threshold: Minimum similarity to keep a chunk (overrides default)

        Returns:
            At most top_k results, best first. Equal scores are ordered by
            chunk_index, then by their position in the store.
        """
        top_k = self.top_k if top_k is None else top_k
        threshold = self.threshold if threshold is None else threshold

        if top_k <= 0 or not await self.store.load():
            return []

        results = []
        for chunk in self.store.chunks:
            similarity = cosine_similarity(query_vector, chunk.embedding)
            if similarity >= threshold:
                results.append(
                    RetrievalResult(
                        id=chunk.id,
                        similarity=similarity,
                        text=chunk.text,
                        document_name=chunk.document_name,
                        chunk_index=chunk.chunk_index,
                        word_count=chunk.word_count,
                    )
                )

        results.sort(key=lambda r: (-r.similarity, r.chunk_index))
        results = results[:top_k]

        logger.info(
            "retrieval_completed",
            candidates=len(self.store.chunks),
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
            top_k=top_k,
            threshold=threshold,
        )
        return results

    async def search_documents(self, query: str, limit: int = 10) -> List[TextMatch]:
        """Case-insensitive substring search over chunk text.

        Args:
            query: Literal text to look for
            limit: Maximum number of matches

        Returns:
            Matches in store order, each with a fixed similarity of 1.0
        """
        if not query or limit <= 0 or not await self.store.load():
            return []

        needle = query.lower()
        matches: List[TextMatch] = []

        for chunk in self.store.chunks:
            if needle in chunk.text.lower():
                matches.append(
                    TextMatch(
                        document_name=chunk.document_name,
                        chunk_index=chunk.chunk_index,
                        preview=preview(chunk.text, SEARCH_PREVIEW_CHARS),
                    )
                )
                if len(matches) >= limit:
                    break

        logger.info("text_search_completed", query_length=len(query), matches=len(matches))
        return matches
