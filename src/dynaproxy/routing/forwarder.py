"""
Proxy Forwarder - sends the original request to a resolved target and
streams the upstream response back without buffering it whole.
"""

from urllib.parse import urlsplit

import httpx

from dynaproxy.core.exceptions import ForwardingSetupError, UpstreamConnectionError
from dynaproxy.core.structured_logger import get_logger
from dynaproxy.core.types import IncomingRequest, ProxyOutcome
from dynaproxy.routing.url_utils import is_absolute_url

logger = get_logger("Forwarder")

HOP_BY_HOP_HEADERS = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "transfer-encoding",
    "upgrade",
})

_REQUEST_DROP = HOP_BY_HOP_HEADERS | {"host", "content-length"}
_RESPONSE_DROP = HOP_BY_HOP_HEADERS


def _latin1(value: str) -> bytes:
    # ASGI servers decode header bytes as latin-1, so this restores them exactly
    return value.encode("latin-1")


def build_upstream_headers(target: str, request: IncomingRequest) -> list[tuple[bytes, bytes]]:
    """
    Copy end-to-end headers, point Host at the target and record the client address.

    Headers are returned as raw byte pairs so values outside ASCII pass through
    unchanged.

    Raises:
        UnicodeEncodeError: If a header holds characters outside latin-1
    """
    drop = set(_REQUEST_DROP)
    extra: list[tuple[str, str]] = [("Host", urlsplit(target).netloc)]

    if request.client_host:
        prior = request.headers.get("x-forwarded-for")
        forwarded_for = f"{prior}, {request.client_host}" if prior else request.client_host
        drop.update(("x-forwarded-for", "x-real-ip"))
        extra.append(("X-Forwarded-For", forwarded_for))
        extra.append(("X-Real-IP", request.client_host))

    kept = [(k, v) for k, v in request.headers.items() if k.lower() not in drop]
    return [(_latin1(k), _latin1(v)) for k, v in kept + extra]


class ProxyForwarder:
    """Single forwarding operation over a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = 300.0,
        connect_timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            follow_redirects=False,
        )

    async def forward(self, target: str, request: IncomingRequest) -> ProxyOutcome:
        """
        Forward ``request`` to the fully-qualified ``target`` URL.

        Raises:
            ForwardingSetupError: If no request can be built for ``target``
            UpstreamConnectionError: If the upstream is unreachable or times out
        """
        if not is_absolute_url(target):
            raise ForwardingSetupError(target, f"Invalid target URL: {target!r}")

        try:
            upstream_request = self._client.build_request(
                request.method,
                target,
                headers=build_upstream_headers(target, request),
                content=request.body,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError, TypeError) as e:
            raise ForwardingSetupError(target, f"Cannot build upstream request: {e}") from e

        logger.info("Proxying request", method=request.method, target=target)
        try:
            response = await self._client.send(upstream_request, stream=True)
        except httpx.TimeoutException as e:
            raise UpstreamConnectionError(
                target, f"Upstream timed out: {target}", details={"error": type(e).__name__}
            ) from e
        except httpx.TransportError as e:
            raise UpstreamConnectionError(
                target, f"Upstream unreachable: {target}", details={"error": str(e)}
            ) from e

        logger.info("Received upstream response", status_code=response.status_code, target=target)
        # raw pairs; the decoded view is UTF-8 and does not round-trip obs-text
        headers = [
            (name.lower(), value)
            for name, value in response.headers.raw
            if name.decode("latin-1").lower() not in _RESPONSE_DROP
        ]
        return ProxyOutcome(
            status_code=response.status_code,
            headers=headers,
            body=self._stream(response),
            aclose=response.aclose,
        )

    @staticmethod
    async def _stream(response: httpx.Response):
        try:
            async for chunk in response.aiter_raw():
                yield chunk
        finally:
            await response.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
