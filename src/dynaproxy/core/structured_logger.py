"""
JSON Request Logging
====================

Every log line is a single JSON object carrying the component name and, while
a request is being handled, the request's trace id. Following one proxied
request through routing, inference and forwarding is a grep for that id.
"""

import json
import logging
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

# trace id of the request being handled by the current task
_request_trace_id: ContextVar[str | None] = ContextVar('request_trace_id', default=None)

_CREDENTIALS = re.compile(
    r"(sk-ant-[A-Za-z0-9_-]+|sk-[A-Za-z0-9]+|Bearer\s+[A-Za-z0-9._~+/=-]+)",
    flags=re.IGNORECASE,
)
_MASK = "[REDACTED]"

_SENSITIVE_HEADERS = frozenset({"authorization", "proxy-authorization", "cookie", "x-api-key"})


def _scrub(text: str) -> str:
    return _CREDENTIALS.sub(_MASK, text)


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Return a copy of headers with credential-bearing values masked."""
    return {
        name: (_MASK if name.lower() in _SENSITIVE_HEADERS else value)
        for name, value in headers.items()
    }


class StructuredLogger:
    """
    Component logger whose records are JSON documents.

    Keyword arguments become top-level fields:

        get_logger("Forwarder").info("Proxying request", method="GET", target=url)

    produces

        {"timestamp": "...", "level": "INFO", "component": "Forwarder",
         "message": "Proxying request", "trace_id": "1f2e3d4c",
         "method": "GET", "target": "http://localhost:8001/api/users"}

    API keys and bearer tokens are masked wherever they appear.
    """

    def __init__(self, component: str, logger: logging.Logger | None = None) -> None:
        self.component = component
        self.logger = logger or logging.getLogger(f"dynaproxy.{component}")

    def _emit(self, levelno: int, message: str, fields: dict[str, Any]) -> None:
        if not self.logger.isEnabledFor(levelno):
            return

        record: dict[str, Any] = {
            'timestamp': datetime.now(tz=UTC).isoformat(),
            'level': logging.getLevelName(levelno),
            'component': self.component,
            'message': _scrub(message),
        }
        trace_id = _request_trace_id.get()
        if trace_id:
            record['trace_id'] = trace_id
        for name, value in fields.items():
            record[name] = _scrub(value) if isinstance(value, str) else value

        self.logger.log(levelno, _scrub(json.dumps(record, default=str)))

    def debug(self, message: str, **fields: Any) -> None:
        self._emit(logging.DEBUG, message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._emit(logging.INFO, message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._emit(logging.WARNING, message, fields)

    def error(self, message: str, **fields: Any) -> None:
        self._emit(logging.ERROR, message, fields)

    def critical(self, message: str, **fields: Any) -> None:
        self._emit(logging.CRITICAL, message, fields)


def new_trace_id() -> str:
    """Eight hex characters; unique enough to tell concurrent requests apart."""
    return uuid.uuid4().hex[:8]


class TraceContext:
    """
    Bind a trace id to every log line emitted inside the block.

        with TraceContext(request_id) as trace_id:
            engine.route(...)

    Without an explicit id a fresh one is generated.
    """

    def __init__(self, trace_id: str | None = None) -> None:
        self.trace_id = trace_id or new_trace_id()
        self._token = None

    def __enter__(self) -> str:
        self._token = _request_trace_id.set(self.trace_id)
        return self.trace_id

    def __exit__(self, *exc_info) -> None:
        _request_trace_id.reset(self._token)


def current_trace_id() -> str | None:
    return _request_trace_id.get()


def get_logger(component: str) -> StructuredLogger:
    return StructuredLogger(component)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Install a single stderr handler on the ``dynaproxy`` logger tree.

    With ``fmt="json"`` records are written as-is, since StructuredLogger
    already produced JSON; ``fmt="text"`` prefixes a timestamp and level.
    """
    handler = logging.StreamHandler(sys.stderr)
    if fmt == "text":
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(message)s"))

    package_logger = logging.getLogger("dynaproxy")
    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())
    package_logger.propagate = False
