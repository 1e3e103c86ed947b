"""Error taxonomy for the ingestion and query pipeline.

Per-chunk and per-document failures (ExtractionFailed, EmbeddingFailed,
MalformedRecord) are contained by the pipeline stage that raises them.
Gateway failures (ServiceUnavailable, RequestFailed) propagate to the
caller of the stage.
"""
from typing import Optional


class DocQAError(Exception):
    """Base class for all docqa errors."""


class ExtractionFailed(DocQAError):
    """Text could not be obtained from a source file."""

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(f"Failed to extract text from {filename}: {reason}")


class UnsupportedFormat(ExtractionFailed):
    """The file extension is not one the extractor understands."""

    def __init__(self, filename: str, extension: str, hint: Optional[str] = None):
        self.extension = extension
        reason = hint or f"Unsupported file format: {extension or '<none>'}"
        super().__init__(filename, reason)


class EmbeddingFailed(DocQAError):
    """A single chunk's vector could not be computed."""

    def __init__(self, chunk_index: int, reason: str):
        self.chunk_index = chunk_index
        self.reason = reason
        super().__init__(f"Failed to embed chunk {chunk_index}: {reason}")


class GatewayError(DocQAError):
    """Base for failures talking to the embedding/generation backend."""


class ServiceUnavailable(GatewayError):
    """The backend could not be reached at all."""

    def __init__(self, base_url: str, reason: str = ""):
        self.base_url = base_url
        message = (
            f"Ollama is not reachable at {base_url}. "
            "Make sure it is running (`ollama serve`) and the URL is correct."
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class RequestFailed(GatewayError):
    """The backend answered, but not with a usable result."""

    def __init__(self, operation: str, reason: str, status_code: Optional[int] = None):
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation} request failed: {reason}")


class MalformedRecord(DocQAError):
    """A knowledge base line could not be turned into a record."""

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        super().__init__(f"Malformed record on line {line_number}: {reason}")
