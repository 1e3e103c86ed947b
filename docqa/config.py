"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
DOCUMENTS_DIR = Path(os.getenv("DOCUMENTS_DIR", str(DATA_DIR / "documents")))
PROCESSED_DIR = Path(os.getenv("PROCESSED_DIR", str(DATA_DIR / "processed")))

# Knowledge base files
KNOWLEDGE_FILE = PROCESSED_DIR / "knowledge_base.jsonl"
SUMMARY_FILE = PROCESSED_DIR / "ingestion_summary.json"

# Ollama configuration
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
CHAT_MODEL = os.getenv("CHAT_MODEL", "llama3.1:8b")
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "nomic-embed-text")
EMBEDDING_TIMEOUT = float(os.getenv("EMBEDDING_TIMEOUT", "30.0"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "60.0"))
PROBE_TIMEOUT = float(os.getenv("PROBE_TIMEOUT", "5.0"))
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "2048"))

# RAG parameters (character-based to avoid tokenizer inconsistencies)
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1000"))
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
RETRIEVAL_THRESHOLD = float(os.getenv("RETRIEVAL_THRESHOLD", "0.1"))

# Wider retrieval for technical queries
IT_RETRIEVAL_TOP_K = int(os.getenv("IT_RETRIEVAL_TOP_K", "7"))
IT_RETRIEVAL_THRESHOLD = float(os.getenv("IT_RETRIEVAL_THRESHOLD", "0.05"))

# Session history
MAX_HISTORY = int(os.getenv("MAX_HISTORY", "20"))
HISTORY_DEFAULT_LIMIT = int(os.getenv("HISTORY_DEFAULT_LIMIT", "10"))

# HTTP
MAX_QUERY_LENGTH = int(os.getenv("MAX_QUERY_LENGTH", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
