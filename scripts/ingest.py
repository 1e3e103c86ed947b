#!/usr/bin/env python
"""Build the knowledge base from documents on disk.

Usage:
    python scripts/ingest.py                      # Ingest data/documents/
    python scripts/ingest.py --documents-dir DIR  # Ingest another directory
    python scripts/ingest.py --skip-check         # Skip the Ollama preflight
"""
import argparse
import asyncio
import sys
import time
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from docqa import config
from docqa.context import build_context
from docqa.errors import ServiceUnavailable
from docqa.logging_setup import configure_logging
from docqa.rag.records import IngestionSummary
import structlog

logger = structlog.get_logger()


RULE = "-" * 60
BAR_WIDTH = 32


class IngestReport:
    """Console output for an ingestion run: banner, per-file bar and totals."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.started = 0.0

    def banner(self, title: str):
        self.started = time.monotonic()
        print(f"\n{RULE}\n  {title}\n{RULE}\n")

    def on_document(self, index: int, total: int, path: Path):
        done = index / total if total else 0.0
        bar = ("#" * int(BAR_WIDTH * done)).ljust(BAR_WIDTH, ".")
        line = f"  {bar} {index:>3}/{total:<3} {path.name[:32]}"
        # One line per document in verbose mode
        print(line if self.verbose else f"\r{line:<80}", end="\n" if self.verbose else "", flush=True)

    def totals(self, summary: IngestionSummary, knowledge_file: Path):
        rows = [
            ("Documents stored", summary.total_documents),
            ("Documents failed", summary.failed_documents),
            ("Chunks stored", summary.total_chunks),
            ("Chunks dropped", summary.failed_chunks),
            ("Words indexed", f"{summary.total_words:,}"),
            ("Elapsed", f"{time.monotonic() - self.started:.1f}s"),
        ]
        print(f"\n\n{RULE}")
        for label, value in rows:
            print(f"  {label + ':':<20}{value}")
        print(f"{RULE}\n")

        if summary.failed_documents:
            print(f"{summary.failed_documents} document(s) could not be ingested; see the log above.\n")
        if summary.total_documents:
            print(f"Knowledge base written to {knowledge_file}\n")


async def main():
    """Run one ingestion and return the process exit code."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF, DOCX and TXT documents into the knowledge base",
    )
    parser.add_argument(
        "--documents-dir",
        type=Path,
        default=None,
        help=f"Documents directory (default: {config.DOCUMENTS_DIR})",
    )
    parser.add_argument(
        "--skip-check",
        action="store_true",
        help="Skip the Ollama availability and model check",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show verbose progress output")
    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "WARNING", json_output=False)

    ctx = build_context()
    pipeline = ctx.ingest_pipeline(documents_dir=args.documents_dir)
    report = IngestReport(verbose=args.verbose)

    settings = {
        "Documents": pipeline.documents_dir,
        "Knowledge base": ctx.store.knowledge_file,
        "Embedding model": ctx.llm.embedding_model,
        "Chunking": f"{config.CHUNK_SIZE} chars, {config.CHUNK_OVERLAP} overlap",
    }
    for label, value in settings.items():
        print(f"  {label + ':':<20}{value}")

    report.banner("Ingesting documents")
    try:
        summary = await pipeline.ingest_all(
            progress_callback=report.on_document,
            check_backend=not args.skip_check,
        )
    except (FileNotFoundError, ServiceUnavailable) as e:
        print(f"\nCannot ingest: {e}\n")
        return 1
    except Exception as e:
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        print(f"\nIngestion aborted: {e}\n")
        return 1

    report.totals(summary, ctx.store.knowledge_file)

    if not summary.total_documents and not summary.failed_documents:
        print(f"Nothing to ingest. Put PDF, DOCX or TXT files in {pipeline.documents_dir}\n")

    return 1 if summary.failed_documents else 0


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nIngestion cancelled.\n")
        sys.exit(130)
