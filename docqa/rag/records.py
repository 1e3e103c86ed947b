"""Record types persisted in the knowledge base.

The knowledge base is a line-delimited log; each line is a JSON object tagged
with ``type`` = ``"document"`` or ``"chunk"``. Field names on disk are
snake_case.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DOCUMENT_TYPE = "document"
CHUNK_TYPE = "chunk"


def utc_now_iso() -> str:
    """Current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def _require(value: Any, kind: type, name: str) -> Any:
    """Raise TypeError unless a persisted field has the expected JSON shape."""
    if not isinstance(value, kind):
        raise TypeError(f"{name} must be a {kind.__name__}, got {type(value).__name__}")
    return value


@dataclass
class Metadata:
    """Document-level metadata derived from raw text."""

    filename: str
    word_count: int
    character_count: int
    estimated_reading_time: int
    keywords: List[str]
    document_type: str
    processed_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "wordCount": self.word_count,
            "characterCount": self.character_count,
            "estimatedReadingTime": self.estimated_reading_time,
            "keywords": list(self.keywords),
            "documentType": self.document_type,
            "processedAt": self.processed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Metadata":
        return cls(
            filename=data.get("filename", ""),
            word_count=int(data.get("wordCount", 0)),
            character_count=int(data.get("characterCount", 0)),
            estimated_reading_time=int(data.get("estimatedReadingTime", 0)),
            keywords=list(_require(data.get("keywords", []), list, "keywords")),
            document_type=data.get("documentType", "general"),
            processed_at=data.get("processedAt", ""),
        )


@dataclass
class ChunkRecord:
    """A chunk of document text stored with its embedding."""

    id: str
    text: str
    document_name: str
    chunk_index: int
    word_count: int
    embedding: List[float]
    processed_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": CHUNK_TYPE,
            "id": self.id,
            "text": self.text,
            "document_name": self.document_name,
            "chunk_index": self.chunk_index,
            "word_count": self.word_count,
            "embedding": list(self.embedding),
            "processed_at": self.processed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkRecord":
        """Build a chunk from its persisted form.

        Raises:
            KeyError: If a required field is missing
            TypeError / ValueError: If a field has the wrong shape
        """
        return cls(
            id=str(data["id"]),
            text=str(data["text"]),
            document_name=str(data["document_name"]),
            chunk_index=int(data["chunk_index"]),
            word_count=int(data.get("word_count", len(str(data["text"]).split()))),
            embedding=[float(x) for x in _require(data.get("embedding") or [], list, "embedding")],
            processed_at=data.get("processed_at", ""),
        )


@dataclass
class DocumentRecord:
    """One ingested document and its metadata."""

    name: str
    path: str
    total_chunks: int
    metadata: Optional[Metadata] = None
    processed_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": DOCUMENT_TYPE,
            "document_name": self.name,
            "document_path": self.path,
            "processed_at": self.processed_at,
            "total_chunks": self.total_chunks,
            "metadata": self.metadata.to_dict() if self.metadata else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DocumentRecord":
        metadata = data.get("metadata")
        return cls(
            name=str(data["document_name"]),
            path=str(data.get("document_path", "")),
            total_chunks=int(data.get("total_chunks", 0)),
            metadata=Metadata.from_dict(_require(metadata, dict, "metadata")) if metadata else None,
            processed_at=data.get("processed_at", ""),
        )


@dataclass
class ProcessedDocument:
    """A document record together with the chunks that survived embedding."""

    document: DocumentRecord
    chunks: List[ChunkRecord]
    chunks_created: int = 0

    @property
    def chunks_failed(self) -> int:
        return self.chunks_created - len(self.chunks)


@dataclass
class IngestionSummary:
    """Aggregate statistics for one ingestion run."""

    total_documents: int = 0
    failed_documents: int = 0
    total_chunks: int = 0
    failed_chunks: int = 0
    total_words: int = 0
    documents: List[Dict[str, Any]] = field(default_factory=list)
    ingestion_completed_at: Optional[str] = None

    @classmethod
    def from_processed(
        cls, processed: List[ProcessedDocument], failed_documents: int
    ) -> "IngestionSummary":
        documents = []
        for item in processed:
            meta = item.document.metadata
            documents.append({
                "name": item.document.name,
                "chunks": item.document.total_chunks,
                "words": meta.word_count if meta else 0,
                "type": meta.document_type if meta else "general",
            })

        return cls(
            total_documents=len(processed),
            failed_documents=failed_documents,
            total_chunks=sum(item.document.total_chunks for item in processed),
            failed_chunks=sum(item.chunks_failed for item in processed),
            total_words=sum(d["words"] for d in documents),
            documents=documents,
            ingestion_completed_at=utc_now_iso(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ingestion_completed_at": self.ingestion_completed_at,
            "total_documents": self.total_documents,
            "failed_documents": self.failed_documents,
            "total_chunks": self.total_chunks,
            "failed_chunks": self.failed_chunks,
            "total_words": self.total_words,
            "documents": list(self.documents),
        }
