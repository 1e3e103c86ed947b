"""Tests for the ingest pipeline."""
import json

import pytest
from structlog.testing import capture_logs

from docqa.errors import ExtractionFailed, ServiceUnavailable
from docqa.rag.chunker import TextChunker
from docqa.rag.ingest import IngestPipeline
from docqa.rag.knowledge_store import KnowledgeStore
from tests.conftest import FakeLLM

ROUTER_TEXT = (
    "The core router forwards traffic between the office VLANs. "
    "Each router interface carries a dedicated subnet for its floor. "
    "The router configuration is backed up to the network share nightly. "
    "Routing changes require approval from the network team."
)

FIREWALL_TEXT = (
    "The perimeter firewall blocks all inbound traffic by default. "
    "Remote staff connect through the VPN concentrator in the data center."
)


@pytest.fixture
def documents_dir(tmp_path):
    path = tmp_path / "documents"
    path.mkdir()
    (path / "router.txt").write_text(ROUTER_TEXT, encoding="utf-8")
    (path / "firewall.txt").write_text(FIREWALL_TEXT, encoding="utf-8")
    return path


def _pipeline(store, llm, documents_dir, chunk_size=120, chunk_overlap=20) -> IngestPipeline:
    return IngestPipeline(
        store=store,
        llm=llm,
        documents_dir=documents_dir,
        chunker=TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap),
    )


def test_discovery_is_sorted_and_filtered(store, fake_llm, documents_dir):
    (documents_dir / "notes.md").write_text("# Notes", encoding="utf-8")
    (documents_dir / "legacy.doc").write_bytes(b"\xd0\xcf\x11\xe0")
    (documents_dir / "nested").mkdir()

    paths = _pipeline(store, fake_llm, documents_dir).discover_documents()

    assert [p.name for p in paths] == ["firewall.txt", "router.txt"]


def test_missing_documents_dir_raises(store, fake_llm, tmp_path):
    with pytest.raises(FileNotFoundError):
        _pipeline(store, fake_llm, tmp_path / "absent").discover_documents()


async def test_ingest_all_writes_log_and_summary(store, fake_llm, documents_dir):
    progress = []
    pipeline = _pipeline(store, fake_llm, documents_dir)

    summary = await pipeline.ingest_all(progress_callback=lambda i, n, p: progress.append((i, n, p.name)))

    assert progress == [(1, 2, "firewall.txt"), (2, 2, "router.txt")]
    assert summary.total_documents == 2
    assert summary.failed_documents == 0
    assert summary.failed_chunks == 0
    assert summary.total_chunks == len(fake_llm.embed_calls)

    reloaded = KnowledgeStore(store.knowledge_file, store.summary_file)
    assert await reloaded.load() is True
    assert [d.name for d in reloaded.documents] == ["firewall.txt", "router.txt"]
    assert len(reloaded.chunks) == summary.total_chunks
    for document in reloaded.documents:
        chunks = [c for c in reloaded.chunks if c.document_name == document.name]
        assert document.total_chunks == len(chunks)
        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert all(c.embedding == [1.0, 0.0] for c in chunks)

    written = json.loads(store.summary_file.read_text(encoding="utf-8"))
    assert written["total_documents"] == 2
    assert written["total_chunks"] == summary.total_chunks
    assert written["ingestion_completed_at"]


async def test_failed_embedding_drops_only_that_chunk(store, documents_dir):
    llm = FakeLLM(fail_embed_when=lambda text: "backed up" in text)
    pipeline = _pipeline(store, llm, documents_dir, chunk_size=80, chunk_overlap=0)

    summary = await pipeline.ingest_all()

    assert summary.failed_chunks == 1
    assert summary.failed_documents == 0

    await store.load()
    router_chunks = [c for c in store.chunks if c.document_name == "router.txt"]
    assert all("backed up" not in c.text for c in router_chunks)
    router = next(d for d in store.documents if d.name == "router.txt")
    assert router.total_chunks == len(router_chunks)
    indices = [c.chunk_index for c in router_chunks]
    assert indices == sorted(indices)


async def test_empty_document_is_counted_as_failed(store, fake_llm, documents_dir):
    (documents_dir / "blank.txt").write_text("   \n\n  ", encoding="utf-8")

    summary = await _pipeline(store, fake_llm, documents_dir).ingest_all()

    assert summary.failed_documents == 1
    assert summary.total_documents == 2
    assert "blank.txt" not in [d["name"] for d in summary.to_dict()["documents"]]


async def test_ingest_document_rejects_empty_text(store, fake_llm, documents_dir):
    blank = documents_dir / "blank.txt"
    blank.write_text("", encoding="utf-8")

    with pytest.raises(ExtractionFailed):
        await _pipeline(store, fake_llm, documents_dir).ingest_document(blank)


async def test_no_documents_leaves_store_untouched(store, fake_llm, tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()

    summary = await _pipeline(store, fake_llm, empty).ingest_all()

    assert summary.total_documents == 0
    assert not store.knowledge_file.exists()
    assert not store.summary_file.exists()


async def test_unreachable_backend_aborts_run(store, documents_dir):
    llm = FakeLLM(embed_error=ServiceUnavailable("http://ollama.test", "connection refused"))

    with pytest.raises(ServiceUnavailable):
        await _pipeline(store, llm, documents_dir).ingest_all(check_backend=False)
    assert not store.knowledge_file.exists()


async def test_preflight_reports_unreachable_backend(store, documents_dir):
    llm = FakeLLM(available=False)

    with pytest.raises(ServiceUnavailable):
        await _pipeline(store, llm, documents_dir).ingest_all()
    assert llm.embed_calls == []


async def test_preflight_names_missing_models(store, documents_dir):
    llm = FakeLLM(models={"available": False, "embeddingModel": False, "llmModel": True})

    with pytest.raises(ServiceUnavailable) as excinfo:
        await _pipeline(store, llm, documents_dir).check_backend()
    assert "ollama pull nomic-embed-text" in str(excinfo.value)
    assert "llama3.1:8b" not in str(excinfo.value)


async def test_ingest_document_logs_chunk_profile(store, fake_llm, documents_dir):
    pipeline = _pipeline(store, fake_llm, documents_dir)

    with capture_logs() as logs:
        processed = await pipeline.ingest_document(documents_dir / "router.txt")

    chunked = [entry for entry in logs if entry["event"] == "document_chunked"]
    assert len(chunked) == 1
    assert chunked[0]["document"] == "router.txt"
    assert chunked[0]["chunks"] == processed.chunks_created
    assert chunked[0]["characters"] == sum(len(c.text) for c in processed.chunks)
