"""
Inference Client - asks an inference backend to pick the routing target.

The prompt enumerates every configured rule, describes the request, and
demands a single line containing one fully-qualified URL. The reply is
parsed strictly; anything else is an InferenceInvalidResponse. The client
never retries.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

from dynaproxy.core.exceptions import (
    InferenceError,
    InferenceInvalidResponse,
    InferenceTimeout,
    InferenceTransportError,
)
from dynaproxy.core.structured_logger import get_logger, redact_headers
from dynaproxy.core.types import IncomingRequest
from dynaproxy.routing.config_loader import RouteTable
from dynaproxy.routing.inference_backends import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_OLLAMA_MODEL,
    AnthropicBackend,
    InferenceBackend,
    OllamaBackend,
    StaticBackend,
)
from dynaproxy.routing.url_utils import is_absolute_url

if TYPE_CHECKING:
    from dynaproxy.config.settings import InferenceConfig

logger = get_logger("InferenceClient")

_PROMPT_TEMPLATE = """
You are a reverse proxy server similar to nginx. Your job is to analyze this incoming request and determine where it should be routed.
Based on the routing rules from the proxy configuration file, you must decide which backend service should handle this request.

Request:
- Method: {method}
- URL: {url}
- Headers: {headers}
- Body: {body}

Routing Rules from the proxy configuration:
{rules}
Your response must be ONLY a single line containing the full target URL including the protocol, host, port, and path. For example:
http://localhost:8001/api/users

DO NOT include any explanation or additional text.
"""


def format_routing_rules(table: RouteTable) -> str:
    if not table:
        return "- No routing rules are configured.\n"
    return "".join(
        f'- If the URL starts with "{rule.prefix}", route to {rule.target} and maintain the same path\n'
        for rule in table
    )


def build_prompt(request: IncomingRequest, table: RouteTable) -> str:
    """Render the routing prompt for one request."""
    return _PROMPT_TEMPLATE.format(
        method=request.method,
        url=request.path_with_query,
        headers=json.dumps(redact_headers(request.headers.to_dict())),
        body=json.dumps(request.parsed_body()),
        rules=format_routing_rules(table),
    )


def parse_target_url(text: str) -> str:
    """
    Validate model output as one absolute http(s) URL.

    Raises:
        InferenceInvalidResponse: If the trimmed text is empty, spans several
            lines, or is not an absolute URL with scheme and host
    """
    candidate = (text or "").strip()
    if not candidate:
        raise InferenceInvalidResponse("Inference returned empty text", raw_text=text or "")
    if not is_absolute_url(candidate):
        raise InferenceInvalidResponse(
            "Inference returned an invalid target URL",
            raw_text=text,
            details={"raw_text": candidate[:200]},
        )
    return candidate


class InferenceClient:
    """Formats the routing prompt, calls the backend, parses the target."""

    def __init__(self, backend: InferenceBackend, timeout: float = 30.0) -> None:
        self.backend = backend
        self.timeout = timeout

    def describe(self) -> str:
        return self.backend.describe()

    async def choose_target(self, request: IncomingRequest, table: RouteTable) -> tuple[str, str]:
        """
        Ask the backend for a routing target.

        Returns:
            (target_url, raw_model_text)

        Raises:
            InferenceTimeout: If the call exceeds ``timeout`` seconds
            InferenceTransportError: If the backend cannot be reached
            InferenceInvalidResponse: If the text is not a single absolute URL
        """
        prompt = build_prompt(request, table)
        logger.debug("Sending routing prompt", backend=self.describe(), prompt_chars=len(prompt))

        try:
            async with asyncio.timeout(self.timeout):
                raw_text = await self.backend.generate(prompt)
        except TimeoutError as e:
            raise InferenceTimeout(
                f"Inference call exceeded {self.timeout}s", details={"backend": self.describe()}
            ) from e
        except InferenceError:
            raise
        except OSError as e:
            raise InferenceTransportError(
                f"Inference transport failure: {e}", details={"backend": self.describe()}
            ) from e

        logger.info("Inference response received", raw_text=raw_text.strip()[:200])
        return parse_target_url(raw_text), raw_text

    async def aclose(self) -> None:
        await self.backend.close()


def create_inference_client(config: InferenceConfig) -> InferenceClient | None:
    """Build the configured client; ``None`` when inference is disabled."""
    provider = config.provider
    if provider == "disabled":
        return None

    if provider == "anthropic":
        backend: InferenceBackend = AnthropicBackend(
            api_key=config.api_key,
            model=config.model or DEFAULT_ANTHROPIC_MODEL,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
            base_url=config.base_url,
        )
    elif provider == "ollama":
        backend = OllamaBackend(
            base_url=config.base_url or "http://localhost:11434",
            model=config.model or DEFAULT_OLLAMA_MODEL,
            max_tokens=config.max_tokens,
            timeout=config.timeout_seconds,
        )
    elif provider == "static":
        backend = StaticBackend(response=config.static_response)
    else:
        raise ValueError(f"Unknown inference provider: {provider}")

    return InferenceClient(backend, timeout=config.timeout_seconds)
