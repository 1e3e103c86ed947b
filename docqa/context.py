"""Explicitly constructed application context.

Build one ``AppContext`` per process and pass it to the components that need
it. The knowledge store inside is loaded lazily on first use and treated as
read-only afterwards.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from docqa import config
from docqa.chat_service import ChatService
from docqa.llm_client import OllamaClient
from docqa.memory.history import ChatHistory
from docqa.rag.ingest import IngestPipeline
from docqa.rag.knowledge_store import KnowledgeStore
from docqa.rag.retriever import Retriever


@dataclass
class AppContext:
    llm: OllamaClient
    store: KnowledgeStore
    retriever: Retriever
    history: ChatHistory
    chat: ChatService

    def ingest_pipeline(self, documents_dir: Optional[Path] = None) -> IngestPipeline:
        """An ingestion pipeline writing into this context's store."""
        return IngestPipeline(store=self.store, llm=self.llm, documents_dir=documents_dir)


def build_context(
    llm: Optional[OllamaClient] = None,
    store: Optional[KnowledgeStore] = None,
    history: Optional[ChatHistory] = None,
    processed_dir: Optional[Path] = None,
) -> AppContext:
    """Construct the application's collaborators.

    Args:
        llm: Backend client (default: configured Ollama)
        store: Knowledge store (default: files in processed_dir)
        history: Session history (default: empty, config-sized)
        processed_dir: Directory holding the knowledge base files
    """
    llm = llm or OllamaClient()
    if store is None:
        if processed_dir is not None:
            processed_dir = Path(processed_dir)
            store = KnowledgeStore(
                knowledge_file=processed_dir / config.KNOWLEDGE_FILE.name,
                summary_file=processed_dir / config.SUMMARY_FILE.name,
            )
        else:
            store = KnowledgeStore()

    history = history or ChatHistory()
    retriever = Retriever(store)
    chat = ChatService(store=store, retriever=retriever, llm=llm, history=history)

    return AppContext(llm=llm, store=store, retriever=retriever, history=history, chat=chat)
