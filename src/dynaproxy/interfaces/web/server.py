"""dynaproxy WebInterface — catch-all reverse-proxy endpoint."""

from __future__ import annotations

import asyncio
import json
import time
from contextlib import asynccontextmanager, suppress
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.background import BackgroundTask
from starlette.responses import Response, StreamingResponse

from dynaproxy.config.settings import Settings
from dynaproxy.core.exceptions import NoMatchingRoute, ProxyError, UpstreamConnectionError
from dynaproxy.core.structured_logger import TraceContext, get_logger
from dynaproxy.core.types import Headers, IncomingRequest, ProxyOutcome
from dynaproxy.observability.health import probe_backends
from dynaproxy.observability.status import StatusReporter
from dynaproxy.routing.config_loader import load_route_table
from dynaproxy.routing.decision_engine import RoutingDecisionEngine
from dynaproxy.routing.forwarder import ProxyForwarder
from dynaproxy.routing.inference_client import create_inference_client

logger = get_logger("WebInterface")

PROXY_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]
CLIENT_CLOSED_REQUEST = 499
_DISCONNECT_POLL_SECONDS = 0.1


class DryRunRequest(BaseModel):
    method: str = "GET"
    path: str = Field(..., min_length=1)
    query: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None


class RequestLoggingMiddleware:
    """ASGI middleware binding a trace id and logging one line per request."""

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return
        start_time = time.time()
        status_code = None
        request_id = None
        for key, value in scope.get("headers", []):
            if key == b"x-request-id":
                request_id = value.decode("latin-1")
                break

        async def send_wrapper(message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        with TraceContext(request_id):
            try:
                await self.app(scope, receive, send_wrapper)
            finally:
                logger.info(
                    f"{scope['method']} {scope['path']}",
                    status_code=status_code,
                    duration_ms=round((time.time() - start_time) * 1000, 2),
                )


def _error_body(exc: ProxyError, error_type: str, code: str) -> dict[str, Any]:
    return {"error": {"message": exc.user_message(), "type": error_type, "code": code}}


def _request_path(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if raw_path:
        return raw_path.split(b"?", 1)[0].decode("latin-1")
    return request.url.path


class WebInterface:
    """Owns the engine, forwarder and status snapshot for one FastAPI app."""

    def __init__(
        self,
        settings: Settings,
        engine: RoutingDecisionEngine,
        forwarder: ProxyForwarder,
        status: StatusReporter,
    ) -> None:
        self.settings = settings
        self.engine = engine
        self.forwarder = forwarder
        self.status = status
        self.status_path = settings.server.status_path
        self.app = self._build_app()

    def _build_app(self) -> FastAPI:
        @asynccontextmanager
        async def lifespan(app: FastAPI):
            """Probe backends in the background so startup is non-blocking."""
            probe_task = None
            if self.settings.routes.probe_backends_on_start and self.engine.table:
                probe_task = asyncio.create_task(
                    probe_backends(self.engine.table, self.settings.routes.probe_timeout_seconds),
                    name="backend-probe",
                )
            try:
                yield
            finally:
                if probe_task is not None:
                    await _stop_task(probe_task)
                await self.forwarder.aclose()
                if self.engine.inference_client is not None:
                    await self.engine.inference_client.aclose()

        app = FastAPI(
            title="dynaproxy",
            version=self.settings.version,
            lifespan=lifespan,
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
        )
        self._register_exception_handlers(app)
        app.add_middleware(RequestLoggingMiddleware)
        self._register_routes(app)
        return app

    def _register_exception_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(NoMatchingRoute)
        async def no_route_handler(request: Request, exc: NoMatchingRoute):
            logger.warning("No matching route", path=exc.path)
            return JSONResponse(
                status_code=404,
                content=_error_body(exc, "invalid_request_error", "no_matching_route"),
            )

        @app.exception_handler(UpstreamConnectionError)
        async def upstream_handler(request: Request, exc: UpstreamConnectionError):
            logger.error("Upstream connection failed", target=exc.target, error=exc.message)
            return JSONResponse(
                status_code=502,
                content=_error_body(exc, "upstream_error", "upstream_unavailable"),
            )

        @app.exception_handler(ProxyError)
        async def proxy_error_handler(request: Request, exc: ProxyError):
            logger.error("Proxy error", error=exc.to_dict())
            return JSONResponse(
                status_code=exc.http_status,
                content=_error_body(exc, "server_error", "internal_error"),
            )

    def _register_routes(self, app: FastAPI) -> None:
        self._register_status_routes(app)
        self._register_proxy_route(app)

    def _register_status_routes(self, app: FastAPI) -> None:
        @app.get(self.status_path)
        async def proxy_status() -> dict[str, Any]:
            return self.status.snapshot()

        @app.get(f"{self.status_path}/health")
        async def proxy_health() -> dict[str, Any]:
            return await probe_backends(self.engine.table, self.settings.routes.probe_timeout_seconds)

        @app.post(f"{self.status_path}/dry-run")
        async def proxy_dry_run(payload: DryRunRequest) -> dict[str, Any]:
            """Return the routing decision for a described request without forwarding it."""
            body = b"" if payload.body is None else _encode_body(payload.body)
            incoming = IncomingRequest(
                method=payload.method,
                path=payload.path,
                query=payload.query,
                headers=Headers(payload.headers),
                body=body,
            )
            decision = await self.engine.decide(incoming)
            return decision.to_dict()

    def _register_proxy_route(self, app: FastAPI) -> None:
        @app.api_route("/{path:path}", methods=PROXY_METHODS)
        async def proxy(request: Request, path: str) -> Response:
            """Route every non-reserved request through the decision engine."""
            if request.url.path == self.status_path:
                return JSONResponse(status_code=405, content={"error": {"message": "Method not allowed"}})

            incoming = IncomingRequest(
                method=request.method,
                path=_request_path(request),
                query=request.url.query,
                headers=Headers(request.headers.items()),
                body=await request.body(),
                client_host=request.client.host if request.client else None,
            )
            outcome = await self._route_unless_disconnected(request, incoming)
            if outcome is None:
                return Response(status_code=CLIENT_CLOSED_REQUEST)
            return await self._stream_outcome(outcome)

    async def _route_unless_disconnected(
        self, request: Request, incoming: IncomingRequest
    ) -> ProxyOutcome | None:
        """Run the engine; cancel it if the client goes away first."""
        route_task = asyncio.create_task(self.engine.route(incoming, self.forwarder))
        watcher = asyncio.create_task(_wait_for_disconnect(request))
        try:
            await asyncio.wait({route_task, watcher}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            watcher.cancel()
            if not route_task.done():
                route_task.cancel()

        if route_task.done() and not route_task.cancelled():
            return route_task.result()

        logger.info("Client disconnected before routing completed", path=incoming.path)
        return None

    @staticmethod
    async def _stream_outcome(outcome: ProxyOutcome) -> StreamingResponse:
        try:
            response = StreamingResponse(
                outcome.body,
                status_code=outcome.status_code,
                background=BackgroundTask(outcome.aclose),
            )
            response.raw_headers = list(outcome.headers)
        except Exception:
            await outcome.aclose()
            raise
        return response


async def _stop_task(task: asyncio.Task) -> None:
    """Cancel a background task and retrieve its result."""
    task.cancel()
    try:
        with suppress(asyncio.CancelledError):
            await task
    except Exception as e:
        logger.warning("Background task failed", task=task.get_name(), error=str(e))


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(_DISCONNECT_POLL_SECONDS)


def _encode_body(body: Any) -> bytes:
    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body).encode("utf-8")


def create_app(
    settings: Settings | None = None,
    engine: RoutingDecisionEngine | None = None,
    forwarder: ProxyForwarder | None = None,
    status: StatusReporter | None = None,
) -> FastAPI:
    """Assemble the proxy app; unspecified collaborators are built from settings."""
    settings = settings or Settings()

    if engine is None:
        table = load_route_table(settings.routes.config_path)
        engine = RoutingDecisionEngine(table, create_inference_client(settings.inference))

    if forwarder is None:
        forwarder = ProxyForwarder(
            timeout=settings.upstream.timeout_seconds,
            connect_timeout=settings.upstream.connect_timeout_seconds,
        )

    if status is None:
        inference = engine.inference_client.describe() if engine.inference_client else "disabled"
        status = StatusReporter(
            engine.table,
            name=settings.server.name,
            inference=inference,
            config_path=settings.routes.config_path,
            version=settings.version,
        )

    return WebInterface(settings, engine, forwarder, status).app
