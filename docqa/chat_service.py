"""Query orchestration: retrieve context, generate an answer, record history.

Per query:
    context disabled -> generate
    context enabled  -> knowledge base missing -> fixed guidance response
                     -> embed query -> retrieve -> build context -> generate
    then record the interaction in the session history.
"""
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import structlog

from docqa import config
from docqa.llm_client import OllamaClient
from docqa.memory.history import ChatHistory
from docqa.rag.knowledge_store import KnowledgeStore
from docqa.rag.retriever import RetrievalResult, Retriever

logger = structlog.get_logger()

CONTEXT_DELIMITER = "\n\n---\n\n"

NO_DOCUMENTS_MESSAGE = """## No Documents Available

I don't have any processed documents to search through yet. To get started with your **IT Infrastructure Assistant**:

### Getting Started Steps:
1. Place your **PDF, DOCX, or TXT files** in the `data/documents/` folder
2. Run `python scripts/ingest.py` to process them
3. **Ask me questions** about your documentation!

### What I Can Help With:
- Network configuration and troubleshooting
- Server infrastructure guidance
- Security policies and procedures
- IT best practices and standards
- Technical documentation queries

*I'll be able to provide detailed, organized answers based on your IT infrastructure and networking documents once they're processed.*"""

# Applied in order, whole-word and case-insensitive.
IT_ABBREVIATIONS: Tuple[Tuple[str, str], ...] = (
    ("dns", "domain name system dns"),
    ("dhcp", "dynamic host configuration protocol dhcp"),
    ("vpn", "virtual private network vpn"),
    ("ssl", "secure socket layer ssl tls"),
    ("api", "application programming interface api"),
    ("tcp", "transmission control protocol tcp"),
    ("udp", "user datagram protocol udp"),
    ("ip", "internet protocol ip address"),
    ("vlan", "virtual local area network vlan"),
    ("wan", "wide area network wan"),
    ("lan", "local area network lan"),
)

_ABBREVIATION_PATTERNS = [
    (re.compile(rf"\b{abbr}\b", re.IGNORECASE), expansion)
    for abbr, expansion in IT_ABBREVIATIONS
]


@dataclass
class QueryResult:
    """Outcome of one query."""

    session_id: str
    response: str = ""
    context_sources: List[Dict[str, Any]] = field(default_factory=list)
    needs_ingestion: bool = False

    @property
    def has_context(self) -> bool:
        return len(self.context_sources) > 0

    def to_dict(self, include_response: bool = True) -> Dict[str, Any]:
        data = {
            "contextSources": list(self.context_sources),
            "hasContext": self.has_context,
            "contextChunks": len(self.context_sources),
            "sessionId": self.session_id,
            "needsIngestion": self.needs_ingestion,
        }
        if include_response:
            data["response"] = self.response
        return data


@dataclass
class StreamEvent:
    """An item of a streamed answer: a text ``chunk`` or the final ``done``."""

    type: str
    content: str = ""
    result: Optional[QueryResult] = None

    @classmethod
    def chunk(cls, content: str) -> "StreamEvent":
        return cls(type="chunk", content=content)

    @classmethod
    def done(cls, result: QueryResult) -> "StreamEvent":
        return cls(type="done", result=result)


def build_context(results: List[RetrievalResult]) -> str:
    """Join retrieved chunks into one context block, each tagged with its source."""
    return CONTEXT_DELIMITER.join(
        f"[Source: {r.document_name}]\n{r.text}" for r in results
    )


def preprocess_it_query(query: str) -> str:
    """Lowercase a query and expand known networking abbreviations."""
    expanded = query.lower()
    for pattern, expansion in _ABBREVIATION_PATTERNS:
        expanded = pattern.sub(expansion, expanded)
    return expanded


class ChatService:
    """Combines retrieval with generation and keeps per-session history."""

    def __init__(
        self,
        store: KnowledgeStore,
        retriever: Retriever,
        llm: OllamaClient,
        history: Optional[ChatHistory] = None,
    ):
        self.store = store
        self.retriever = retriever
        self.llm = llm
        self.history = history or ChatHistory()

    async def _retrieve_context(
        self, query: str, top_k: int, threshold: float
    ) -> Tuple[str, List[Dict[str, Any]]]:
        query_embedding = await self.llm.embed(query)
        results = await self.retriever.search(query_embedding, top_k=top_k, threshold=threshold)

        if not results:
            logger.info("no_relevant_context_found", query_preview=query[:100])
            return "", []

        logger.info("relevant_chunks_found", count=len(results))
        return build_context(results), [r.to_source() for r in results]

    async def _knowledge_base_missing(self, include_context: bool, session_id: str) -> bool:
        if not include_context:
            return False
        if await self.store.load():
            return False
        logger.warning("query_without_knowledge_base", session_id=session_id)
        return True

    async def process_query(
        self,
        query: str,
        session_id: str = "default",
        include_context: bool = True,
        max_context_chunks: int = None,
        context_threshold: float = None,
        max_tokens: int = None,
    ) -> QueryResult:
        """Answer a query and return the full response with its sources.

        Args:
            query: User question
            session_id: History session to record the interaction in
            include_context: Retrieve knowledge base context before generating
            max_context_chunks: Retrieval top-K (default from config)
            context_threshold: Minimum similarity (default from config)
            max_tokens: Generation limit (default from config)

        Raises:
            ServiceUnavailable / RequestFailed: If the backend fails
        """
        top_k = config.RETRIEVAL_TOP_K if max_context_chunks is None else max_context_chunks
        threshold = config.RETRIEVAL_THRESHOLD if context_threshold is None else context_threshold

        logger.info("query_received", session_id=session_id, query_length=len(query), include_context=include_context)

        if await self._knowledge_base_missing(include_context, session_id):
            return QueryResult(
                session_id=session_id,
                response=NO_DOCUMENTS_MESSAGE,
                needs_ingestion=True,
            )

        context, sources = "", []
        if include_context:
            context, sources = await self._retrieve_context(query, top_k, threshold)

        response = await self.llm.generate(query, context, max_tokens=max_tokens)
        self.history.add(session_id, query, response, sources)

        logger.info("query_answered", session_id=session_id, response_length=len(response), context_chunks=len(sources))
        return QueryResult(session_id=session_id, response=response, context_sources=sources)

    async def stream_query(
        self,
        query: str,
        session_id: str = "default",
        include_context: bool = True,
        max_context_chunks: int = None,
        context_threshold: float = None,
    ) -> AsyncIterator[StreamEvent]:
        """Answer a query as a stream of events.

        Yields ``chunk`` events as fragments arrive from the backend, in
        order, followed by exactly one ``done`` event with the result.
        Backend failures are raised to the consumer.
        """
        top_k = config.RETRIEVAL_TOP_K if max_context_chunks is None else max_context_chunks
        threshold = config.RETRIEVAL_THRESHOLD if context_threshold is None else context_threshold

        logger.info("stream_query_received", session_id=session_id, query_length=len(query), include_context=include_context)

        if await self._knowledge_base_missing(include_context, session_id):
            yield StreamEvent.chunk(NO_DOCUMENTS_MESSAGE)
            yield StreamEvent.done(
                QueryResult(session_id=session_id, response=NO_DOCUMENTS_MESSAGE, needs_ingestion=True)
            )
            return

        context, sources = "", []
        if include_context:
            context, sources = await self._retrieve_context(query, top_k, threshold)

        fragments: List[str] = []
        async for fragment in self.llm.generate_stream(query, context):
            fragments.append(fragment)
            yield StreamEvent.chunk(fragment)

        response = "".join(fragments)
        self.history.add(session_id, query, response, sources)

        logger.info("stream_query_answered", session_id=session_id, fragments=len(fragments), context_chunks=len(sources))
        yield StreamEvent.done(QueryResult(session_id=session_id, response=response, context_sources=sources))

    async def process_it_query(self, query: str, session_id: str = "default", **options) -> QueryResult:
        """Like ``process_query`` with abbreviation expansion and wider retrieval."""
        options.update(
            max_context_chunks=config.IT_RETRIEVAL_TOP_K,
            context_threshold=config.IT_RETRIEVAL_THRESHOLD,
        )
        return await self.process_query(preprocess_it_query(query), session_id, **options)

    def stream_it_query(self, query: str, session_id: str = "default", **options) -> AsyncIterator[StreamEvent]:
        """Streaming counterpart of ``process_it_query``."""
        options.update(
            max_context_chunks=config.IT_RETRIEVAL_TOP_K,
            context_threshold=config.IT_RETRIEVAL_THRESHOLD,
        )
        return self.stream_query(preprocess_it_query(query), session_id, **options)

    def get_chat_history(self, session_id: str = "default", limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return [item.to_dict() for item in self.history.get(session_id, limit)]

    def clear_chat_history(self, session_id: str = "default") -> None:
        self.history.clear(session_id)

    async def get_available_documents(self) -> Dict[str, Any]:
        """Knowledge base statistics in the shape the HTTP layer returns."""
        stats = await self.store.get_stats()
        return {
            "totalDocuments": stats["documents"],
            "processedDocuments": stats["documents"],
            "totalChunks": stats["chunks"],
            "totalWords": stats["totalWords"],
            "lastIngestion": stats["lastIngestion"],
            "documentDetails": stats["documentDetails"],
            "knowledgeBaseAvailable": stats["knowledgeBaseAvailable"],
            "message": stats.get("message"),
        }

    async def search_documents(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        matches = await self.retriever.search_documents(query, limit)
        return [m.to_dict() for m in matches]

    async def get_system_status(self) -> Dict[str, Any]:
        return {
            "chatSessions": self.history.session_count,
            "totalInteractions": self.history.total_interactions,
            "knowledgeBaseAvailable": self.store.is_available(),
            "ollamaConnected": await self.llm.is_available(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @staticmethod
    def generate_session_id() -> str:
        return f"session_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
