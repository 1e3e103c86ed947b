"""Request bodies accepted by the HTTP API."""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from docqa import config


class QueryOptions(BaseModel):
    """Per-request overrides for retrieval and generation."""

    model_config = ConfigDict(populate_by_name=True)

    include_context: bool = Field(True, alias="includeContext")
    max_context_chunks: Optional[int] = Field(None, alias="maxContextChunks", ge=0)
    context_threshold: Optional[float] = Field(None, alias="contextThreshold", ge=-1.0, le=1.0)
    max_tokens: Optional[int] = Field(None, alias="maxTokens", gt=0)

    def as_kwargs(self, streaming: bool = False) -> Dict[str, Any]:
        """Keyword arguments for the ChatService query methods."""
        exclude = {"max_tokens"} if streaming else set()
        return self.model_dump(exclude_none=True, exclude=exclude)


class QueryRequest(BaseModel):
    """Body of /api/chat/query and /api/chat/stream."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    query: str = Field(..., min_length=1, max_length=config.MAX_QUERY_LENGTH)
    session_id: Optional[str] = Field(None, alias="sessionId")
    options: Optional[QueryOptions] = None

    @property
    def query_options(self) -> QueryOptions:
        return self.options or QueryOptions()


class SearchRequest(BaseModel):
    """Body of /api/chat/search."""

    model_config = ConfigDict(str_strip_whitespace=True)

    query: str = Field(..., min_length=1)
    limit: int = Field(10, ge=1)


def error_code(error: ValidationError, field_codes: Dict[str, str], default: str) -> str:
    """Pick the API error code for the first failing field.

    ``field_codes`` maps a field name, or ``field:error_type``, to a code.
    """
    for detail in error.errors():
        name = str(detail["loc"][0]) if detail["loc"] else ""
        specific = field_codes.get(f"{name}:{detail['type']}")
        if specific:
            return specific
        if name in field_codes:
            return field_codes[name]
    return default
