"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Text extraction from PDF, DOCX and TXT files
- Sentence-aware chunking with overlap
- Metadata and keyword extraction
- The line-delimited knowledge base store
- Cosine-similarity retrieval
- The ingestion pipeline
"""
