"""Tests for the query orchestrator."""
import pytest

from docqa.chat_service import (
    CONTEXT_DELIMITER,
    NO_DOCUMENTS_MESSAGE,
    ChatService,
    preprocess_it_query,
)
from docqa.errors import ServiceUnavailable
from docqa.memory.history import ChatHistory
from docqa.rag.retriever import Retriever
from tests.conftest import FakeLLM, make_chunk, make_document


def _service(store, llm) -> ChatService:
    return ChatService(store=store, retriever=Retriever(store), llm=llm, history=ChatHistory())


async def _collect(events):
    return [event async for event in events]


async def test_missing_knowledge_base_short_circuits(store, fake_llm):
    service = _service(store, fake_llm)

    result = await service.process_query("How do I reset the router?", "s1")

    assert result.needs_ingestion is True
    assert result.response == NO_DOCUMENTS_MESSAGE
    assert result.to_dict()["needsIngestion"] is True
    assert result.to_dict()["hasContext"] is False
    assert fake_llm.total_calls == 0
    assert service.get_chat_history("s1") == []


async def test_missing_knowledge_base_short_circuits_stream(store, fake_llm):
    service = _service(store, fake_llm)

    events = await _collect(service.stream_query("How do I reset the router?", "s1"))

    assert [e.type for e in events] == ["chunk", "done"]
    assert events[0].content == NO_DOCUMENTS_MESSAGE
    assert events[1].result.needs_ingestion is True
    assert fake_llm.total_calls == 0


async def test_query_builds_context_and_records_history(populated_store, fake_llm):
    service = _service(populated_store, fake_llm)

    result = await service.process_query("firewall rules", "s1", max_tokens=512)

    assert result.response == "Generated answer"
    assert result.needs_ingestion is False
    assert [s["documentName"] for s in result.context_sources] == ["firewall.txt", "firewall.txt"]
    assert fake_llm.embed_calls == ["firewall rules"]

    prompt, context, max_tokens = fake_llm.generate_calls[0]
    assert prompt == "firewall rules"
    assert max_tokens == 512
    assert context == CONTEXT_DELIMITER.join([
        "[Source: firewall.txt]\nFirewall rules block inbound traffic on port 23.",
        "[Source: firewall.txt]\nThe VPN gateway terminates remote access tunnels.",
    ])

    history = service.get_chat_history("s1")
    assert len(history) == 1
    assert history[0]["response"] == "Generated answer"
    assert history[0]["hasContext"] is True


async def test_query_without_matches_still_generates(populated_store):
    llm = FakeLLM(embedding=[-1.0, -1.0])
    service = _service(populated_store, llm)

    result = await service.process_query("unrelated", "s1")

    assert result.context_sources == []
    assert llm.generate_calls[0][1] == ""
    assert service.get_chat_history("s1")[0]["hasContext"] is False


async def test_context_disabled_skips_retrieval(store, fake_llm):
    service = _service(store, fake_llm)

    result = await service.process_query("hello", "s1", include_context=False)

    assert result.needs_ingestion is False
    assert fake_llm.embed_calls == []
    assert fake_llm.generate_calls == [("hello", "", None)]


async def test_stream_forwards_fragments_in_order(populated_store):
    llm = FakeLLM(fragments=["First ", "second ", "third"])
    service = _service(populated_store, llm)

    events = await _collect(service.stream_query("firewall rules", "s1"))

    assert [e.content for e in events if e.type == "chunk"] == ["First ", "second ", "third"]
    assert events[-1].type == "done"
    assert events[-1].result.response == "First second third"
    assert events[-1].result.has_context is True
    assert service.get_chat_history("s1")[0]["response"] == "First second third"


async def test_stream_error_propagates_without_history(populated_store):
    llm = FakeLLM(fragments=["one", "two", "three"], stream_error_after=1)
    service = _service(populated_store, llm)
    received = []

    with pytest.raises(ServiceUnavailable):
        async for event in service.stream_query("firewall rules", "s1"):
            received.append(event)

    assert [e.content for e in received] == ["one"]
    assert service.get_chat_history("s1") == []


async def test_backend_unavailable_propagates(populated_store):
    llm = FakeLLM(embed_error=ServiceUnavailable("http://ollama.test"))
    service = _service(populated_store, llm)

    with pytest.raises(ServiceUnavailable):
        await service.process_query("firewall rules", "s1")
    assert llm.generate_calls == []


def test_preprocess_it_query_expands_abbreviations():
    assert preprocess_it_query("Configure DNS and VPN") == (
        "configure domain name system dns and virtual private network vpn"
    )
    assert preprocess_it_query("VLAN trunking") == "virtual local area network vlan trunking"
    assert preprocess_it_query("dnssec rollout") == "dnssec rollout"


async def test_it_query_widens_retrieval(store):
    chunks = [make_chunk("net.txt", i, f"Network segment {i}", [1.0, 0.02 * i]) for i in range(9)]
    store.write_knowledge_base([make_document("net.txt", chunks)])
    llm = FakeLLM(embedding=[1.0, 0.0])
    service = _service(store, llm)

    generic = await service.process_query("What is the DNS server?", "s1")
    technical = await service.process_it_query("What is the DNS server?", "s1")

    assert len(generic.context_sources) == 5
    assert len(technical.context_sources) == 7
    assert llm.embed_calls[1] == "what is the domain name system dns server?"


async def test_history_eviction_through_service(populated_store, fake_llm):
    service = _service(populated_store, fake_llm)
    for i in range(21):
        await service.process_query(f"question {i}", "s1", include_context=False)

    history = service.get_chat_history("s1")

    assert len(history) == 20
    assert history[0]["query"] == "question 1"
    assert len(service.get_chat_history("s1", limit=10)) == 10

    service.clear_chat_history("s1")
    assert service.get_chat_history("s1") == []


async def test_documents_search_and_status(populated_store, fake_llm):
    service = _service(populated_store, fake_llm)

    documents = await service.get_available_documents()
    assert documents["totalDocuments"] == 2
    assert documents["totalChunks"] == 3
    assert documents["knowledgeBaseAvailable"] is True

    matches = await service.search_documents("resolvers")
    assert matches[0]["documentName"] == "dns.txt"

    status = await service.get_system_status()
    assert status["knowledgeBaseAvailable"] is True
    assert status["ollamaConnected"] is True
    assert status["chatSessions"] == 0


def test_session_ids_are_unique():
    ids = {ChatService.generate_session_id() for _ in range(50)}
    assert len(ids) == 50
    assert all(i.startswith("session_") for i in ids)


async def test_stream_it_query_expands_and_widens_retrieval(store):
    chunks = [make_chunk("net.txt", i, f"Network segment {i}", [1.0, 0.02 * i]) for i in range(9)]
    chunks.append(make_chunk("net.txt", 9, "Barely related", [0.06, 1.0]))
    store.write_knowledge_base([make_document("net.txt", chunks)])
    llm = FakeLLM(embedding=[1.0, 0.0], fragments=["Use ", "VLAN ", "20."])
    service = _service(store, llm)

    events = await _collect(service.stream_it_query("Which VPN gateway?", "s1"))

    assert llm.embed_calls == ["which virtual private network vpn gateway?"]
    assert [e.content for e in events if e.type == "chunk"] == ["Use ", "VLAN ", "20."]
    assert [e.type for e in events].count("done") == 1
    assert events[-1].type == "done"
    assert len(events[-1].result.context_sources) == 7
    assert llm.stream_calls[0][0] == "which virtual private network vpn gateway?"


async def test_stream_it_query_threshold_is_wider(store):
    # similarity of [0.07, 1.0] against [1.0, 0.0] is about 0.07
    chunks = [make_chunk("edge.txt", 0, "Edge case chunk", [0.07, 1.0])]
    store.write_knowledge_base([make_document("edge.txt", chunks)])
    llm = FakeLLM(embedding=[1.0, 0.0])
    service = _service(store, llm)

    generic = await _collect(service.stream_query("edge", "s1"))
    technical = await _collect(service.stream_it_query("edge", "s2"))

    assert generic[-1].result.context_sources == []
    assert len(technical[-1].result.context_sources) == 1
