"""LLM client for llama.cpp server integration."""
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import httpx
import logging

from config import DEFAULT_MAX_TOKENS, DEFAULT_TEMPERATURE

logger = logging.getLogger(__name__)

STOP_SEQUENCES = ["\nStudent:", "\nUser:", "\n\n\n"]


@dataclass
class LLMResponse:
    """Response from LLM generation."""
    text: str
    model_used: str
    latency_ms: int
    tokens_output: int = 0


@dataclass
class LLMError:
    """Structured error response from LLM operations."""
    code: str
    message: str
    details: Dict[str, Any]


class LLMClientError(Exception):
    """Custom exception for LLM client errors with structured error information."""

    def __init__(self, error: LLMError):
        self.error = error
        super().__init__(error.message)


def timeout_for_tokens(max_tokens: int) -> float:
    """Request timeout in seconds, scaled with the generation length."""
    if max_tokens > 4000:
        return 900.0
    if max_tokens > 2000:
        return 720.0
    if max_tokens > 1000:
        return 480.0
    return 300.0


class LlamaCppClient:
    """Client for one llama.cpp server endpoint (completion and embedding)."""

    def __init__(
        self,
        server_url: str,
        model_name: str,
        context_length: int = 4096,
        temperature: float = DEFAULT_TEMPERATURE,
        connect_timeout: float = 10.0,
        embedding_timeout: float = 120.0
    ):
        """
        Initialize the client.

        Args:
            server_url: Base URL of the llama-server instance
            model_name: Registered model name served at that URL
            context_length: Context window of the served model
            temperature: Default sampling temperature
            connect_timeout: TCP connect timeout in seconds
            embedding_timeout: Timeout for embedding requests in seconds
        """
        if not server_url:
            raise ValueError("server_url is required")

        self.server_url = server_url.rstrip("/")
        self.model_name = model_name
        self.context_length = context_length
        self.temperature = temperature
        self.connect_timeout = connect_timeout
        self.embedding_timeout = embedding_timeout

        logger.info(f"LlamaCppClient for model '{model_name}' at {self.server_url}")

    def generate(
        self,
        prompt: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None
    ) -> LLMResponse:
        """
        Generate a completion for a prompt.

        Args:
            prompt: Complete prompt with context and query
            max_tokens: Maximum tokens to generate (non-positive uses the default)
            temperature: Sampling temperature (non-positive uses the client default)

        Returns:
            LLMResponse with text and latency

        Raises:
            LLMClientError: Structured error with code, message, and details
        """
        token_limit = max_tokens if max_tokens and max_tokens > 0 else DEFAULT_MAX_TOKENS
        actual_temperature = temperature if temperature and temperature > 0 else self.temperature

        payload = {
            "prompt": prompt,
            "n_predict": token_limit,
            "temperature": actual_temperature,
            "cache_prompt": True,
            "stop": STOP_SEQUENCES,
        }

        logger.debug(
            f"Generating response: model={self.model_name}, prompt_chars={len(prompt)}, "
            f"max_tokens={token_limit}, temperature={actual_temperature}"
        )

        start_time = time.time()
        data = self._post("/completion", payload, timeout_for_tokens(token_limit), start_time)
        latency_ms = int((time.time() - start_time) * 1000)

        if not isinstance(data, dict) or "content" not in data:
            raise self._error(
                "INVALID_RESPONSE",
                "Completion response missing 'content'",
                latency_ms,
            )

        text = str(data.get("content") or "")
        tokens_output = int(data.get("tokens_predicted", 0) or 0)

        logger.info(
            f"Generated response: model={self.model_name}, "
            f"output_tokens={tokens_output}, chars={len(text)}, latency={latency_ms}ms"
        )

        return LLMResponse(
            text=text,
            model_used=self.model_name,
            latency_ms=latency_ms,
            tokens_output=tokens_output
        )

    def embed(self, text: str) -> List[float]:
        """
        Request an embedding vector for text.

        Accepts ``{"embedding": [...]}``, ``{"data": [{"embedding": [...]}]}`` and
        the list-wrapped ``[{"embedding": [...]}]`` response shapes.

        Raises:
            ValueError: If text is empty
            LLMClientError: If the request fails or the response has no embedding
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        start_time = time.time()
        data = self._post("/embedding", {"content": text}, self.embedding_timeout, start_time)

        embedding = self._extract_embedding(data)
        if embedding is None:
            raise self._error(
                "INVALID_RESPONSE",
                "Embedding response missing 'embedding' array",
                int((time.time() - start_time) * 1000),
            )
        return embedding

    @staticmethod
    def _extract_embedding(data: Any) -> Optional[List[float]]:
        if isinstance(data, list) and data:
            data = data[0]
        if not isinstance(data, dict):
            return None

        node = data.get("embedding")
        if node is None and isinstance(data.get("data"), list) and data["data"]:
            first = data["data"][0]
            if isinstance(first, dict):
                node = first.get("embedding")

        if not isinstance(node, list):
            return None
        # llama-server nests per-token vectors when pooling is disabled
        if node and isinstance(node[0], list):
            node = node[0]
        return node

    def _post(self, path: str, payload: Dict[str, Any], timeout: float, start_time: float) -> Any:
        url = f"{self.server_url}{path}"
        try:
            with httpx.Client(timeout=httpx.Timeout(timeout, connect=self.connect_timeout)) as client:
                response = client.post(url, json=payload)
        except httpx.TimeoutException as e:
            raise self._error(
                "TIMEOUT_ERROR",
                "Request timed out. Please try again.",
                int((time.time() - start_time) * 1000),
                original_error=str(e),
                timeout=timeout,
            )
        except httpx.RequestError as e:
            raise self._error(
                "CONNECTION_ERROR",
                f"Could not reach llama-server at {self.server_url}",
                int((time.time() - start_time) * 1000),
                original_error=str(e),
            )

        if response.status_code != 200:
            raise self._error(
                "API_ERROR",
                f"llama-server returned status {response.status_code}",
                int((time.time() - start_time) * 1000),
                status_code=response.status_code,
                body=response.text[:500],
            )

        try:
            return response.json()
        except ValueError as e:
            raise self._error(
                "INVALID_RESPONSE",
                "llama-server returned a non-JSON body",
                int((time.time() - start_time) * 1000),
                original_error=str(e),
            )

    def _error(self, code: str, message: str, latency_ms: int, **details: Any) -> LLMClientError:
        error = LLMError(
            code=code,
            message=message,
            details={"model": self.model_name, "latency_ms": latency_ms, **details}
        )
        logger.error(
            f"{code}: model={self.model_name}, latency={latency_ms}ms, {message}",
            extra={"error_code": error.code, "error_details": error.details}
        )
        return LLMClientError(error)
