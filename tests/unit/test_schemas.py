"""Tests for API request validation."""
import pytest
from pydantic import ValidationError

from docqa import config
from docqa.schemas import QueryOptions, QueryRequest, SearchRequest, error_code


def test_query_request_uses_wire_names():
    body = QueryRequest.model_validate({
        "query": "  Where is the DHCP scope defined?  ",
        "sessionId": "s1",
        "options": {"includeContext": False, "maxContextChunks": 3, "contextThreshold": 0.4},
    })

    assert body.query == "Where is the DHCP scope defined?"
    assert body.session_id == "s1"
    assert body.query_options.as_kwargs() == {
        "include_context": False,
        "max_context_chunks": 3,
        "context_threshold": 0.4,
    }


def test_default_options():
    body = QueryRequest.model_validate({"query": "dns"})

    assert body.session_id is None
    assert body.query_options.as_kwargs() == {"include_context": True}


def test_streaming_kwargs_drop_token_limit():
    options = QueryOptions.model_validate({"maxTokens": 100, "maxContextChunks": 2})

    assert options.as_kwargs() == {"include_context": True, "max_context_chunks": 2, "max_tokens": 100}
    assert options.as_kwargs(streaming=True) == {"include_context": True, "max_context_chunks": 2}


@pytest.mark.parametrize(
    "payload,expected",
    [
        ({}, "MISSING_QUERY"),
        ({"query": "   "}, "MISSING_QUERY"),
        ({"query": None}, "MISSING_QUERY"),
        ({"query": "x" * (config.MAX_QUERY_LENGTH + 1)}, "QUERY_TOO_LONG"),
        ({"query": "dns", "options": {"contextThreshold": 3}}, "INVALID_OPTIONS"),
    ],
)
def test_query_error_codes(payload, expected):
    codes = {
        "query:string_too_long": "QUERY_TOO_LONG",
        "query": "MISSING_QUERY",
        "options": "INVALID_OPTIONS",
    }
    with pytest.raises(ValidationError) as excinfo:
        QueryRequest.model_validate(payload)

    assert error_code(excinfo.value, codes, "INVALID_REQUEST") == expected


def test_query_at_length_limit_is_accepted():
    body = QueryRequest.model_validate({"query": "x" * config.MAX_QUERY_LENGTH})
    assert len(body.query) == config.MAX_QUERY_LENGTH


def test_search_request_limits():
    assert SearchRequest.model_validate({"query": "vpn"}).limit == 10
    assert SearchRequest.model_validate({"query": "vpn", "limit": "3"}).limit == 3

    with pytest.raises(ValidationError):
        SearchRequest.model_validate({"query": "vpn", "limit": 0})
