"""Ollama client wrapper for embeddings and answer generation."""
import json
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import structlog

from docqa import config
from docqa.errors import RequestFailed, ServiceUnavailable

logger = structlog.get_logger()

SYSTEM_PROMPT = """You are an expert IT infrastructure and networking assistant. Your knowledge is based solely on the provided context from internal documentation.

IMPORTANT GUIDELINES:
- Only answer questions related to IT infrastructure, networking, and technical documentation
- Base your responses ONLY on the provided context
- If the context doesn't contain enough information, clearly state this
- Be specific and technical when appropriate
- Provide actionable insights when possible
- If asked about something outside the context, politely redirect to the available documentation

FORMATTING REQUIREMENTS:
- Use clear headings (## Main Topic, ### Subtopic) to organize your response
- Use **bold text** for important concepts, key terms, and critical information
- Use bullet points (-) or numbered lists (1.) for steps, procedures, or multiple items
- Break up long responses into well-structured paragraphs
- Highlight important warnings or notes
- Use `code formatting` for commands, file names, or technical syntax

Context from internal documentation:
{context}

User question: {prompt}

Please provide a well-formatted, organized response:"""


def build_prompt(prompt: str, context: str = "") -> str:
    """Wrap a user question and retrieved context in the assistant prompt."""
    return SYSTEM_PROMPT.format(context=context, prompt=prompt)


class OllamaClient:
    """Async client for the Ollama embedding and generation API."""

    def __init__(
        self,
        base_url: str = None,
        embedding_model: str = None,
        chat_model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            embedding_model: Embedding model (defaults to config.EMBEDDING_MODEL)
            chat_model: Generation model (defaults to config.CHAT_MODEL)
            timeout: Generation timeout in seconds (defaults to config.GENERATION_TIMEOUT)
            transport: Optional httpx transport, used to stub the backend in tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL
        self.chat_model = chat_model or config.CHAT_MODEL
        self.timeout = timeout or config.GENERATION_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=self.transport,
        )

    def _raise_for_error(self, operation: str, error: httpx.HTTPError) -> None:
        """Translate an httpx error into the gateway error taxonomy."""
        if isinstance(error, (httpx.ConnectError, httpx.TimeoutException)):
            logger.error("ollama_connection_error", operation=operation, error=str(error), base_url=self.base_url)
            raise ServiceUnavailable(self.base_url, str(error)) from error

        status_code = None
        if isinstance(error, httpx.HTTPStatusError):
            status_code = error.response.status_code

        logger.error("ollama_http_error", operation=operation, error=str(error), status_code=status_code)
        raise RequestFailed(operation, str(error), status_code=status_code) from error

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            ServiceUnavailable: If Ollama cannot be reached
            RequestFailed: On error responses or an empty embedding
        """
        payload = {"model": self.embedding_model, "prompt": text}

        try:
            async with self._client(config.EMBEDDING_TIMEOUT) as client:
                logger.debug("ollama_embedding_request", model=self.embedding_model, prompt_length=len(text))
                response = await client.post("/api/embeddings", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            self._raise_for_error("embedding", e)
        except ValueError as e:
            raise RequestFailed("embedding", f"invalid JSON response: {e}") from e

        embedding = data.get("embedding") if isinstance(data, dict) else None
        if not embedding:
            raise RequestFailed("embedding", "empty embedding returned")

        logger.debug("ollama_embedding_response", model=self.embedding_model, dimension=len(embedding))
        return embedding

    def _generate_payload(self, prompt: str, context: str, stream: bool, max_tokens: Optional[int]) -> Dict[str, Any]:
        options: Dict[str, Any] = {"temperature": 0.1, "top_p": 0.9}
        if max_tokens is not None:
            options["num_predict"] = max_tokens

        return {
            "model": self.chat_model,
            "prompt": build_prompt(prompt, context),
            "stream": stream,
            "options": options,
        }

    async def generate(self, prompt: str, context: str = "", max_tokens: int = None) -> str:
        """Generate a complete answer.

        Args:
            prompt: User question
            context: Retrieved context block
            max_tokens: Generation limit (defaults to config.MAX_TOKENS)

        Returns:
            Generated answer text

        Raises:
            ServiceUnavailable: If Ollama cannot be reached
            RequestFailed: On error responses
        """
        max_tokens = max_tokens or config.MAX_TOKENS
        payload = self._generate_payload(prompt, context, stream=False, max_tokens=max_tokens)

        try:
            async with self._client(self.timeout) as client:
                logger.info("ollama_generate_request", model=self.chat_model, context_length=len(context))
                response = await client.post("/api/generate", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            self._raise_for_error("generate", e)
        except ValueError as e:
            raise RequestFailed("generate", f"invalid JSON response: {e}") from e

        answer = (data.get("response") or "").strip() if isinstance(data, dict) else ""
        logger.info("ollama_generate_response", model=self.chat_model, response_length=len(answer))
        return answer

    async def generate_stream(self, prompt: str, context: str = "") -> AsyncIterator[str]:
        """Stream an answer as it is generated.

        Yields text fragments in the order Ollama sends them. Exhaustion of
        the iterator marks the end of the stream; a failure is raised as a
        gateway error.

        Raises:
            ServiceUnavailable: If Ollama cannot be reached
            RequestFailed: On error responses
        """
        payload = self._generate_payload(prompt, context, stream=True, max_tokens=None)
        fragments = 0

        try:
            async with self._client(self.timeout) as client:
                logger.info("ollama_stream_request", model=self.chat_model, context_length=len(context))
                async with client.stream("POST", "/api/generate", json=payload) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            data = json.loads(line)
                        except json.JSONDecodeError:
                            logger.debug("ollama_stream_line_skipped", line_preview=line[:100])
                            continue

                        if not isinstance(data, dict):
                            continue
                        if data.get("error"):
                            raise RequestFailed("generate_stream", str(data["error"]))

                        fragment = data.get("response")
                        if fragment:
                            fragments += 1
                            yield fragment
                        if data.get("done"):
                            break
        except httpx.HTTPError as e:
            self._raise_for_error("generate_stream", e)

        logger.info("ollama_stream_completed", model=self.chat_model, fragments=fragments)

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Raises:
            ServiceUnavailable: If Ollama cannot be reached
            RequestFailed: On error responses
        """
        try:
            async with self._client(config.PROBE_TIMEOUT) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as e:
            self._raise_for_error("list_models", e)
        except ValueError as e:
            raise RequestFailed("list_models", f"invalid JSON response: {e}") from e

        return [m["name"] for m in data.get("models", []) if "name" in m]

    async def is_available(self) -> bool:
        """Whether the Ollama API answers at all."""
        try:
            async with self._client(config.PROBE_TIMEOUT) as client:
                response = await client.get("/api/tags")
                return response.status_code == 200
        except httpx.HTTPError as e:
            logger.warning("ollama_unavailable", base_url=self.base_url, error=str(e))
            return False

    async def check_models_available(self) -> Dict[str, Any]:
        """Check that both configured models are installed."""
        try:
            models = await self.list_models()
        except (ServiceUnavailable, RequestFailed) as e:
            return {"available": False, "error": str(e)}

        has_embedding = any(self.embedding_model in name for name in models)
        has_llm = any(self.chat_model in name for name in models)

        return {
            "available": has_embedding and has_llm,
            "embeddingModel": has_embedding,
            "llmModel": has_llm,
            "models": models,
        }
