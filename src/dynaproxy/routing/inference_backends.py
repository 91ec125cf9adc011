"""
Inference Backends - adapters that turn a routing prompt into model text.

Each backend performs exactly one call per ``generate`` and translates its
transport failures into InferenceTimeout / InferenceTransportError. Parsing
the returned text is the InferenceClient's job.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

import aiohttp
import anthropic

from dynaproxy.core.exceptions import InferenceTimeout, InferenceTransportError
from dynaproxy.core.structured_logger import get_logger

logger = get_logger("InferenceBackend")

DEFAULT_ANTHROPIC_MODEL = "claude-3-haiku-20240307"
DEFAULT_OLLAMA_MODEL = "qwen2.5:7b"


class InferenceBackend(ABC):
    """Abstract base class for inference backends"""

    name = "base"

    def __init__(self, model: str, max_tokens: int = 1024, timeout: float = 30.0) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self.timeout = timeout

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return the raw text produced for ``prompt``."""

    async def close(self) -> None:
        return None

    def describe(self) -> str:
        return f"{self.name}:{self.model}"


class AnthropicBackend(InferenceBackend):
    """Anthropic Messages API backend"""

    name = "anthropic"

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_ANTHROPIC_MODEL,
        max_tokens: int = 1024,
        timeout: float = 30.0,
        base_url: str | None = None,
        client: Any = None,
    ) -> None:
        super().__init__(model, max_tokens, timeout)
        self.api_key = api_key
        self.base_url = base_url
        # Lazy-initialized so a missing key only fails the inference stage
        self._client = client

    def _get_client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            try:
                self._client = anthropic.AsyncAnthropic(
                    api_key=self.api_key,
                    base_url=self.base_url,
                    timeout=self.timeout,
                    max_retries=0,
                )
            except anthropic.AnthropicError as e:
                raise InferenceTransportError(
                    f"Anthropic client unavailable: {e}", details={"backend": self.name}
                ) from e
        return self._client

    async def generate(self, prompt: str) -> str:
        client = self._get_client()
        start_time = time.monotonic()
        try:
            message = await client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise InferenceTimeout(
                f"Anthropic request timed out after {self.timeout}s",
                details={"backend": self.name, "model": self.model},
            ) from e
        except anthropic.APIStatusError as e:
            raise InferenceTransportError(
                f"Anthropic API error: HTTP {e.status_code}",
                details={"backend": self.name, "status_code": e.status_code},
            ) from e
        except anthropic.APIError as e:
            raise InferenceTransportError(
                f"Anthropic request failed: {e}", details={"backend": self.name}
            ) from e

        logger.debug(
            "Anthropic response received",
            model=self.model,
            duration_ms=round((time.monotonic() - start_time) * 1000, 1),
        )
        # Claude returns a list of content blocks
        return "".join(block.text for block in message.content if hasattr(block, "text"))

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()


class BaseHTTPBackend(InferenceBackend):
    """Shared HTTP session management for HTTP-based inference backends."""

    def __init__(self, base_url: str, model: str, max_tokens: int = 1024, timeout: float = 30.0) -> None:
        super().__init__(model, max_tokens, timeout)
        self.base_url = base_url.rstrip("/")
        self._session: aiohttp.ClientSession | None = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def _post_json(self, endpoint: str, payload: dict) -> tuple[int, Any]:
        """POST JSON payload to an endpoint; return (http_status, parsed_body_or_text).

        On HTTP error returns (status, error_text_string).
        Timeouts and connection failures raise the matching inference error.
        """
        session = await self._get_session()
        try:
            async with session.post(f"{self.base_url}{endpoint}", json=payload) as response:
                if response.status == 200:
                    return response.status, await response.json()
                return response.status, await response.text()
        except asyncio.TimeoutError as e:
            raise InferenceTimeout(
                f"{self.name} request timed out after {self.timeout}s",
                details={"backend": self.name, "base_url": self.base_url},
            ) from e
        except aiohttp.ClientError as e:
            raise InferenceTransportError(
                f"{self.name} request failed: {e}",
                details={"backend": self.name, "base_url": self.base_url},
            ) from e


class OllamaBackend(BaseHTTPBackend):
    """Ollama /api/generate backend"""

    name = "ollama"

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = DEFAULT_OLLAMA_MODEL,
        max_tokens: int = 1024,
        timeout: float = 30.0,
    ) -> None:
        super().__init__(base_url, model, max_tokens, timeout)

    async def generate(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"num_predict": self.max_tokens, "temperature": 0},
        }
        status, data = await self._post_json("/api/generate", payload)
        if status != 200:
            raise InferenceTransportError(
                f"Ollama HTTP {status}: {data}", details={"backend": self.name, "status_code": status}
            )
        if not isinstance(data, dict):
            return ""
        return str(data.get("response", ""))


class StaticBackend(InferenceBackend):
    """Returns a fixed answer; used for dry runs and tests."""

    name = "static"

    def __init__(self, response: str = "", model: str = "static") -> None:
        super().__init__(model)
        self.response = response

    async def generate(self, prompt: str) -> str:
        return self.response
