"""Quart application exposing the question-answering API."""
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import structlog
from pydantic import ValidationError
from quart import Quart, jsonify, make_response, request

from docqa import config
from docqa.chat_service import ChatService
from docqa.context import AppContext, build_context
from docqa.errors import DocQAError, ServiceUnavailable
from docqa.logging_setup import configure_logging
from docqa.schemas import QueryRequest, SearchRequest, error_code

logger = structlog.get_logger()

QUERY_ERROR_CODES = {
    "query:string_too_long": "QUERY_TOO_LONG",
    "query": "MISSING_QUERY",
    "options": "INVALID_OPTIONS",
}

SEARCH_ERROR_CODES = {
    "query": "MISSING_SEARCH_QUERY",
    "limit": "INVALID_LIMIT",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error(message: str, code: str, status: int):
    return jsonify({"error": message, "code": code, "timestamp": _now()}), status


def _validation_error(error: ValidationError, codes: Dict[str, str]):
    code = error_code(error, codes, "INVALID_REQUEST")
    if code == "QUERY_TOO_LONG":
        message = f"Query too long (max {config.MAX_QUERY_LENGTH} characters)"
    elif code in ("MISSING_QUERY", "MISSING_SEARCH_QUERY"):
        message = "Query is required"
    else:
        message = error.errors()[0]["msg"]
    return _error(message, code, 400)


def _status_for(error: Exception) -> int:
    return 503 if isinstance(error, ServiceUnavailable) else 500


def _sse(event: str, data: Dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


async def _json_body() -> Dict[str, Any]:
    data = await request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(ctx: Optional[AppContext] = None) -> Quart:
    """Create the Quart app around an application context.

    Args:
        ctx: Application context (built from config when omitted)
    """
    ctx = ctx or build_context()
    chat: ChatService = ctx.chat

    app = Quart(__name__)
    app.config["APP_CONTEXT"] = ctx

    @app.before_serving
    async def report_knowledge_base():
        stats = await ctx.store.get_stats()
        if stats["knowledgeBaseAvailable"]:
            logger.info(
                "knowledge_base_ready",
                documents=stats["documents"],
                chunks=stats["chunks"],
                total_words=stats["totalWords"],
            )
        else:
            logger.warning("knowledge_base_missing", knowledge_file=str(ctx.store.knowledge_file))

    async def _read_query() -> Tuple[Optional[QueryRequest], Any]:
        try:
            body = QueryRequest.model_validate(await _json_body())
        except ValidationError as e:
            logger.warning("invalid_query_request", errors=e.error_count())
            return None, _validation_error(e, QUERY_ERROR_CODES)
        return body, None

    @app.route("/api/chat/query", methods=["POST"])
    async def chat_query():
        """Answer a query with knowledge base context.

        Expects JSON body:
        {
            "query": "question text",
            "sessionId": "optional-session-id",
            "options": {"includeContext": true, "maxTokens": 2048}
        }
        """
        body, failure = await _read_query()
        if failure:
            return failure

        session_id = body.session_id or chat.generate_session_id()
        try:
            result = await chat.process_it_query(body.query, session_id, **body.query_options.as_kwargs())
        except DocQAError as e:
            logger.error("chat_query_failed", error=str(e), error_type=type(e).__name__)
            return _error(str(e), "CHAT_QUERY_ERROR", _status_for(e))

        return jsonify({"success": True, "data": result.to_dict(), "timestamp": _now()})

    @app.route("/api/chat/stream", methods=["POST"])
    async def chat_stream():
        """Stream an answer as Server-Sent Events.

        Events: start, chunk (repeated), context, end; or error.
        """
        body, failure = await _read_query()
        if failure:
            return failure

        session_id = body.session_id or chat.generate_session_id()
        options = body.query_options.as_kwargs(streaming=True)

        async def events():
            yield _sse("start", {"message": "Processing query..."})
            try:
                async for event in chat.stream_query(body.query, session_id, **options):
                    if event.type == "chunk":
                        yield _sse("chunk", {"content": event.content})
                    else:
                        yield _sse("context", event.result.to_dict(include_response=False))
                yield _sse("end", {"message": "Query completed"})
            except DocQAError as e:
                logger.error("chat_stream_failed", error=str(e), error_type=type(e).__name__)
                yield _sse("error", {"error": str(e), "code": "STREAM_CHAT_ERROR"})

        response = await make_response(
            events(),
            200,
            {
                "Content-Type": "text/event-stream",
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
            },
        )
        response.timeout = None
        return response

    @app.route("/api/chat/history/<session_id>", methods=["GET"])
    async def get_history(session_id: str):
        limit = request.args.get("limit", default=config.HISTORY_DEFAULT_LIMIT, type=int)
        history = chat.get_chat_history(session_id, limit)
        return jsonify({
            "success": True,
            "data": {"sessionId": session_id, "history": history, "count": len(history)},
        })

    @app.route("/api/chat/history/<session_id>", methods=["DELETE"])
    async def clear_history(session_id: str):
        chat.clear_chat_history(session_id)
        return jsonify({"success": True, "message": f"Chat history cleared for session: {session_id}"})

    @app.route("/api/chat/documents", methods=["GET"])
    async def documents():
        return jsonify({"success": True, "data": await chat.get_available_documents()})

    @app.route("/api/chat/search", methods=["POST"])
    async def search():
        try:
            body = SearchRequest.model_validate(await _json_body())
        except ValidationError as e:
            return _validation_error(e, SEARCH_ERROR_CODES)

        results = await chat.search_documents(body.query, body.limit)
        return jsonify({
            "success": True,
            "data": {"query": body.query, "results": results, "count": len(results)},
        })

    @app.route("/api/chat/status", methods=["GET"])
    async def status():
        system_status = await chat.get_system_status()
        system_status["documents"] = await chat.get_available_documents()
        return jsonify({"success": True, "data": system_status})

    @app.route("/api/chat/session", methods=["POST"])
    async def create_session():
        return jsonify({
            "success": True,
            "data": {"sessionId": chat.generate_session_id(), "createdAt": _now()},
        })

    @app.route("/health")
    async def health_live():
        """Liveness probe - check if app is running."""
        return jsonify({"status": "OK", "timestamp": _now()}), 200

    @app.route("/health/ready")
    async def health_ready():
        """Readiness probe - Ollama reachable and models installed."""
        checks = {"status": "healthy", "ollama": False, "models": False}

        checks["ollama"] = await ctx.llm.is_available()
        if checks["ollama"]:
            models = await ctx.llm.check_models_available()
            checks["models"] = bool(models.get("available"))

        if not (checks["ollama"] and checks["models"]):
            checks["status"] = "unhealthy"

        return jsonify(checks), 200 if checks["status"] == "healthy" else 503

    @app.errorhandler(404)
    async def not_found(error):
        return jsonify({"error": "Not found", "code": "NOT_FOUND"}), 404

    @app.errorhandler(500)
    async def internal_error(error):
        logger.error("internal_server_error", error=str(error))
        return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

    return app


if __name__ == "__main__":
    configure_logging()
    create_app().run(host="0.0.0.0", port=3000, debug=True)
