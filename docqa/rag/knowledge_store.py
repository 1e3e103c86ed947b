"""Knowledge base store backed by a line-delimited JSON record log.

Handles:
- Lazy, load-once reading of document and chunk records
- Skipping malformed lines without failing the load
- Aggregate statistics from the ingestion summary file
- Wholesale replacement of the log on re-ingestion

The in-memory copy is read-only once loaded. A new log written by another
process is only observed after ``reload()``.
"""
import asyncio
import json
import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog

from docqa import config
from docqa.errors import MalformedRecord
from docqa.rag.records import (
    CHUNK_TYPE,
    DOCUMENT_TYPE,
    ChunkRecord,
    DocumentRecord,
    IngestionSummary,
    ProcessedDocument,
)

logger = structlog.get_logger()

NO_KNOWLEDGE_BASE_MESSAGE = (
    "No knowledge base found. Run the ingestion script to process your documents."
)

Record = Union[ChunkRecord, DocumentRecord]


class LoadState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class KnowledgeStore:
    """In-memory view of the persisted knowledge base."""

    def __init__(
        self,
        knowledge_file: Optional[Path] = None,
        summary_file: Optional[Path] = None,
    ):
        """Initialize the store. Nothing is read until ``load()``.

        Args:
            knowledge_file: Record log path (default from config)
            summary_file: Ingestion summary path (default from config)
        """
        self.knowledge_file = Path(knowledge_file or config.KNOWLEDGE_FILE)
        self.summary_file = Path(summary_file or config.SUMMARY_FILE)

        self._state = LoadState.UNLOADED
        self._load_task: Optional[asyncio.Future] = None
        self._chunks: List[ChunkRecord] = []
        self._documents: List[DocumentRecord] = []

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def chunks(self) -> List[ChunkRecord]:
        return self._chunks

    @property
    def documents(self) -> List[DocumentRecord]:
        return self._documents

    def is_available(self) -> bool:
        """Whether a knowledge base has been written to disk."""
        return self.knowledge_file.exists()

    async def load(self) -> bool:
        """Load the knowledge base once per process.

        Concurrent callers share a single in-flight load.

        Returns:
            True if records are available in memory, False if there is no
            knowledge base yet or it could not be read
        """
        if self._state is LoadState.LOADED:
            return True

        if self._load_task is None or self._load_task.done():
            self._load_task = asyncio.ensure_future(self._load_from_disk())

        return await asyncio.shield(self._load_task)

    async def reload(self) -> bool:
        """Drop the in-memory copy and read the log again."""
        self.invalidate()
        return await self.load()

    def invalidate(self) -> None:
        """Forget loaded records; the next ``load()`` rereads the log."""
        self._state = LoadState.UNLOADED
        self._load_task = None
        self._chunks = []
        self._documents = []

    async def _load_from_disk(self) -> bool:
        if not self.knowledge_file.exists():
            logger.warning("knowledge_base_not_found", path=str(self.knowledge_file))
            self._state = LoadState.UNLOADED
            return False

        self._state = LoadState.LOADING
        logger.info("knowledge_base_loading", path=str(self.knowledge_file))

        try:
            chunks, documents, skipped = await asyncio.to_thread(self._read_records)
        except OSError as e:
            logger.error(
                "knowledge_base_load_failed",
                path=str(self.knowledge_file),
                error=str(e),
                error_type=type(e).__name__,
            )
            self._state = LoadState.FAILED
            return False
        except Exception:
            self._state = LoadState.FAILED
            raise

        self._chunks = chunks
        self._documents = documents
        self._state = LoadState.LOADED

        logger.info(
            "knowledge_base_loaded",
            documents=len(documents),
            chunks=len(chunks),
            skipped_lines=skipped,
        )
        return True

    def _read_records(self) -> Tuple[List[ChunkRecord], List[DocumentRecord], int]:
        """Parse the log line by line; runs in a worker thread."""
        chunks: List[ChunkRecord] = []
        documents: List[DocumentRecord] = []
        skipped = 0

        # Binary mode so an undecodable line only costs that line
        with open(self.knowledge_file, "rb") as f:
            for line_number, line in enumerate(f, 1):
                if not line.strip():
                    continue

                try:
                    record = self.parse_line(line, line_number)
                except MalformedRecord as e:
                    logger.warning(
                        "malformed_record_skipped",
                        line_number=line_number,
                        error=str(e),
                    )
                    skipped += 1
                    continue

                if isinstance(record, ChunkRecord):
                    chunks.append(record)
                elif isinstance(record, DocumentRecord):
                    documents.append(record)

        return chunks, documents, skipped

    @staticmethod
    def parse_line(line: Union[str, bytes], line_number: int = 0) -> Optional[Record]:
        """Parse one log line into a record.

        Returns:
            The record, or None for an unknown ``type`` tag

        Raises:
            MalformedRecord: If the line is not a valid record
        """
        if isinstance(line, bytes):
            try:
                line = line.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedRecord(line_number, f"invalid UTF-8: {e}") from e

        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise MalformedRecord(line_number, f"invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedRecord(line_number, "record is not a JSON object")

        record_type = data.get("type")
        try:
            if record_type == CHUNK_TYPE:
                return ChunkRecord.from_dict(data)
            if record_type == DOCUMENT_TYPE:
                return DocumentRecord.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedRecord(line_number, f"bad {record_type} record: {e!r}") from e

        logger.debug("unknown_record_type_ignored", line_number=line_number, type=record_type)
        return None

    def read_summary(self) -> Dict[str, Any]:
        """Read the ingestion summary, or an empty dict if there is none."""
        if not self.summary_file.exists():
            return {}

        try:
            with open(self.summary_file, "r", encoding="utf-8") as f:
                summary = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("ingestion_summary_unreadable", path=str(self.summary_file), error=str(e))
            return {}

        return summary if isinstance(summary, dict) else {}

    async def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the knowledge base.

        Returns:
            Dictionary with document/chunk counts and ingestion summary fields
        """
        loaded = await self.load()

        if not loaded:
            return {
                "documents": 0,
                "chunks": 0,
                "totalWords": 0,
                "lastIngestion": None,
                "documentDetails": [],
                "knowledgeBaseAvailable": False,
                "message": NO_KNOWLEDGE_BASE_MESSAGE,
            }

        summary = self.read_summary()

        return {
            "documents": len(self._documents),
            "chunks": len(self._chunks),
            "totalWords": summary.get("total_words", 0),
            "lastIngestion": summary.get("ingestion_completed_at"),
            "documentDetails": summary.get("documents", []),
            "knowledgeBaseAvailable": True,
        }

    def get_documents_list(self) -> List[Dict[str, Any]]:
        """Summaries of the loaded document records."""
        return [
            {
                "name": doc.name,
                "processedAt": doc.processed_at,
                "totalChunks": doc.total_chunks,
                "metadata": doc.metadata.to_dict() if doc.metadata else None,
            }
            for doc in self._documents
        ]

    def write_knowledge_base(self, processed: List[ProcessedDocument]) -> int:
        """Replace the persisted log with the given documents and chunks.

        Each document line is followed by the lines of its chunks. The file
        is written next to the target and renamed into place.

        Returns:
            Number of chunk records written
        """
        self.knowledge_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.knowledge_file.with_name(self.knowledge_file.name + ".tmp")

        chunk_count = 0
        with open(tmp_path, "w", encoding="utf-8") as f:
            for item in processed:
                f.write(json.dumps(item.document.to_dict()) + "\n")
                for chunk in item.chunks:
                    f.write(json.dumps(chunk.to_dict()) + "\n")
                    chunk_count += 1

        os.replace(tmp_path, self.knowledge_file)
        self.invalidate()

        logger.info(
            "knowledge_base_written",
            path=str(self.knowledge_file),
            documents=len(processed),
            chunks=chunk_count,
        )
        return chunk_count

    def write_summary(self, summary: IngestionSummary) -> None:
        """Replace the ingestion summary file."""
        self.summary_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.summary_file, "w", encoding="utf-8") as f:
            json.dump(summary.to_dict(), f, indent=2)

        logger.info("ingestion_summary_written", path=str(self.summary_file))
