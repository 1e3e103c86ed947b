"""Shared fixtures: a fake Ollama gateway and knowledge base builders."""
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from docqa.errors import RequestFailed, ServiceUnavailable
from docqa.rag.knowledge_store import KnowledgeStore
from docqa.rag.records import ChunkRecord, DocumentRecord, Metadata, ProcessedDocument


class FakeLLM:
    """In-memory stand-in for OllamaClient that records every call."""

    base_url = "http://ollama.test"
    embedding_model = "nomic-embed-text"
    chat_model = "llama3.1:8b"

    def __init__(
        self,
        embedding: Sequence[float] = (1.0, 0.0),
        answer: str = "Generated answer",
        fragments: Sequence[str] = ("Gen", "erated ", "answer"),
        fail_embed_when: Optional[Callable[[str], bool]] = None,
        embed_error: Optional[Exception] = None,
        generate_error: Optional[Exception] = None,
        stream_error_after: Optional[int] = None,
        available: bool = True,
        models: Optional[Dict] = None,
    ):
        self.embedding = list(embedding)
        self.answer = answer
        self.fragments = list(fragments)
        self.fail_embed_when = fail_embed_when
        self.embed_error = embed_error
        self.generate_error = generate_error
        self.stream_error_after = stream_error_after
        self.available = available
        self.models = models or {"available": True, "embeddingModel": True, "llmModel": True}

        self.embed_calls: List[str] = []
        self.generate_calls: List[tuple] = []
        self.stream_calls: List[tuple] = []

    async def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        if self.embed_error is not None:
            raise self.embed_error
        if self.fail_embed_when and self.fail_embed_when(text):
            raise RequestFailed("embedding", "model rejected input", status_code=500)
        return list(self.embedding)

    async def generate(self, prompt: str, context: str = "", max_tokens: int = None) -> str:
        self.generate_calls.append((prompt, context, max_tokens))
        if self.generate_error is not None:
            raise self.generate_error
        return self.answer

    async def generate_stream(self, prompt: str, context: str = ""):
        self.stream_calls.append((prompt, context))
        for index, fragment in enumerate(self.fragments):
            if self.stream_error_after is not None and index == self.stream_error_after:
                raise ServiceUnavailable(self.base_url, "stream dropped")
            yield fragment

    async def is_available(self) -> bool:
        return self.available

    async def check_models_available(self) -> Dict:
        return dict(self.models)

    @property
    def total_calls(self) -> int:
        return len(self.embed_calls) + len(self.generate_calls) + len(self.stream_calls)


def make_chunk(
    document_name: str,
    chunk_index: int,
    text: str,
    embedding: Sequence[float],
) -> ChunkRecord:
    return ChunkRecord(
        id=f"{document_name}-{chunk_index}",
        text=text,
        document_name=document_name,
        chunk_index=chunk_index,
        word_count=len(text.split()),
        embedding=list(embedding),
        processed_at="2026-01-01T00:00:00+00:00",
    )


def make_document(name: str, chunks: List[ChunkRecord]) -> ProcessedDocument:
    metadata = Metadata(
        filename=name,
        word_count=sum(c.word_count for c in chunks),
        character_count=sum(len(c.text) for c in chunks),
        estimated_reading_time=1,
        keywords=["network"],
        document_type="manual",
        processed_at="2026-01-01T00:00:00+00:00",
    )
    document = DocumentRecord(
        name=name,
        path=f"/docs/{name}",
        total_chunks=len(chunks),
        metadata=metadata,
        processed_at="2026-01-01T00:00:00+00:00",
    )
    return ProcessedDocument(document=document, chunks=chunks, chunks_created=len(chunks))


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def store(tmp_path: Path) -> KnowledgeStore:
    """A store pointing at an empty temporary directory."""
    return KnowledgeStore(
        knowledge_file=tmp_path / "knowledge_base.jsonl",
        summary_file=tmp_path / "ingestion_summary.json",
    )


@pytest.fixture
def sample_documents() -> List[ProcessedDocument]:
    firewall = [
        make_chunk("firewall.txt", 0, "Firewall rules block inbound traffic on port 23.", [1.0, 0.0]),
        make_chunk("firewall.txt", 1, "The VPN gateway terminates remote access tunnels.", [0.6, 0.8]),
    ]
    dns = [
        make_chunk("dns.txt", 0, "Internal DNS zones are served by two resolvers.", [0.0, 1.0]),
    ]
    return [make_document("firewall.txt", firewall), make_document("dns.txt", dns)]


@pytest.fixture
def populated_store(store: KnowledgeStore, sample_documents) -> KnowledgeStore:
    store.write_knowledge_base(sample_documents)
    return store
