"""Ingest pipeline for building the knowledge base.

Orchestrates:
- Backend preflight checks
- Document discovery
- Text extraction
- Chunking and metadata extraction
- Sequential per-chunk embedding
- Writing the record log and ingestion summary

A chunk that fails to embed is dropped and its siblings continue; a document
that fails to extract is counted and the batch continues. Backend
unavailability aborts the run.
"""
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from docqa import config
from docqa.errors import (
    EmbeddingFailed,
    ExtractionFailed,
    RequestFailed,
    ServiceUnavailable,
)
from docqa.llm_client import OllamaClient
from docqa.rag.chunker import TextChunker
from docqa.rag.extractor import SUPPORTED_EXTENSIONS, DocumentTextExtractor
from docqa.rag.knowledge_store import KnowledgeStore
from docqa.rag.metadata import MetadataExtractor
from docqa.rag.records import (
    ChunkRecord,
    DocumentRecord,
    IngestionSummary,
    ProcessedDocument,
    utc_now_iso,
)

logger = structlog.get_logger()

ProgressCallback = Callable[[int, int, Path], None]


class IngestPipeline:
    """Pipeline for ingesting documents into the knowledge base."""

    def __init__(
        self,
        store: KnowledgeStore,
        llm: OllamaClient,
        documents_dir: Path = None,
        chunker: Optional[TextChunker] = None,
        metadata_extractor: Optional[MetadataExtractor] = None,
        extractor: Optional[DocumentTextExtractor] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            store: Knowledge store the results are written to
            llm: Embedding backend
            documents_dir: Directory containing source documents (default from config)
            chunker: Text chunker (default from config)
            metadata_extractor: Metadata extractor (default vocabulary)
            extractor: Document text extractor
        """
        self.store = store
        self.llm = llm
        self.documents_dir = Path(documents_dir or config.DOCUMENTS_DIR)
        self.chunker = chunker or TextChunker()
        self.metadata_extractor = metadata_extractor or MetadataExtractor()
        self.extractor = extractor or DocumentTextExtractor()

        logger.info(
            "ingest_pipeline_initialized",
            documents_dir=str(self.documents_dir),
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
        )

    async def check_backend(self) -> None:
        """Fail fast if Ollama or the required models are missing.

        Raises:
            ServiceUnavailable: With a remediation hint
        """
        if not await self.llm.is_available():
            raise ServiceUnavailable(self.llm.base_url)

        models = await self.llm.check_models_available()
        if not models.get("available"):
            missing = []
            if not models.get("embeddingModel"):
                missing.append(self.llm.embedding_model)
            if not models.get("llmModel"):
                missing.append(self.llm.chat_model)
            logger.error("required_models_missing", missing=missing, error=models.get("error"))
            pulls = " && ".join(f"ollama pull {name}" for name in missing)
            raise ServiceUnavailable(
                self.llm.base_url,
                f"required models not available, run: {pulls}" if pulls else models.get("error", ""),
            )

        logger.info("backend_ready", base_url=self.llm.base_url)

    def discover_documents(self) -> List[Path]:
        """Find supported documents in the documents directory.

        Raises:
            FileNotFoundError: If the directory doesn't exist
        """
        if not self.documents_dir.exists():
            raise FileNotFoundError(f"Documents directory not found: {self.documents_dir}")

        documents = sorted(
            path
            for path in self.documents_dir.iterdir()
            if path.is_file() and path.suffix.lower() in SUPPORTED_EXTENSIONS
        )

        logger.info("documents_discovered", count=len(documents), documents_dir=str(self.documents_dir))
        return documents

    async def embed_chunk(self, text: str, chunk_index: int) -> List[float]:
        """Embed one chunk.

        Raises:
            EmbeddingFailed: If the backend rejected the request
            ServiceUnavailable: If the backend cannot be reached
        """
        try:
            return await self.llm.embed(text)
        except RequestFailed as e:
            raise EmbeddingFailed(chunk_index, str(e)) from e

    async def ingest_document(self, path: Path) -> ProcessedDocument:
        """Extract, chunk, embed and describe a single document.

        Raises:
            ExtractionFailed: If no text could be obtained
            ServiceUnavailable: If the embedding backend cannot be reached
        """
        filename = path.name
        logger.info("ingesting_document", path=str(path))

        text = self.extractor.extract_text(path, filename)
        if not text.strip():
            raise ExtractionFailed(filename, "No text content extracted")

        chunks = self.chunker.chunk_text(text, filename)
        logger.info("document_chunked", document=filename, **self.chunker.get_chunk_stats(chunks))
        records: List[ChunkRecord] = []

        # One embedding call at a time, in chunk order
        for chunk in chunks:
            try:
                embedding = await self.embed_chunk(chunk.text, chunk.chunk_index)
            except EmbeddingFailed as e:
                logger.error(
                    "chunk_embedding_failed",
                    document=filename,
                    chunk_index=chunk.chunk_index,
                    error=str(e),
                )
                continue

            records.append(
                ChunkRecord(
                    id=chunk.id,
                    text=chunk.text,
                    document_name=filename,
                    chunk_index=chunk.chunk_index,
                    word_count=chunk.word_count,
                    embedding=embedding,
                )
            )

        metadata = self.metadata_extractor.extract(text, filename)

        document = DocumentRecord(
            name=filename,
            path=str(path),
            total_chunks=len(records),
            metadata=metadata,
            processed_at=utc_now_iso(),
        )

        logger.info(
            "document_ingested",
            document=filename,
            chunks_created=len(chunks),
            chunks_embedded=len(records),
        )
        return ProcessedDocument(document=document, chunks=records, chunks_created=len(chunks))

    async def ingest_all(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        check_backend: bool = True,
    ) -> IngestionSummary:
        """Ingest every document and replace the knowledge base.

        Args:
            progress_callback: Optional callback(current, total, path)
            check_backend: Run the Ollama preflight before starting

        Returns:
            Summary of the run

        Raises:
            ServiceUnavailable: If the backend is unreachable
            FileNotFoundError: If the documents directory doesn't exist
        """
        if check_backend:
            await self.check_backend()

        paths = self.discover_documents()
        if not paths:
            logger.warning("no_documents_found", documents_dir=str(self.documents_dir))
            return IngestionSummary()

        processed: List[ProcessedDocument] = []
        failed = 0

        for index, path in enumerate(paths, 1):
            if progress_callback:
                progress_callback(index, len(paths), path)

            try:
                processed.append(await self.ingest_document(path))
            except ExtractionFailed as e:
                logger.error("document_ingestion_failed", path=str(path), error=str(e))
                failed += 1

        self.store.write_knowledge_base(processed)

        summary = IngestionSummary.from_processed(processed, failed_documents=failed)
        self.store.write_summary(summary)

        logger.info(
            "ingest_all_completed",
            documents=summary.total_documents,
            failed_documents=summary.failed_documents,
            chunks=summary.total_chunks,
            failed_chunks=summary.failed_chunks,
            words=summary.total_words,
        )
        return summary
