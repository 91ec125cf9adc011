"""
Core Type Definitions
=====================

Per-request values shared by the routing engine, the inference client and the
forwarder. None of these are persisted; each is created for one request and
discarded once the response has been streamed.
"""

import json
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DecisionSource(str, Enum):
    """Which routing strategy produced a decision."""

    INFERENCE = "inference"
    FALLBACK = "fallback"

    def __str__(self) -> str:
        return self.value


class Headers(Mapping[str, str]):
    """Read-only header mapping with case-insensitive lookup.

    Keys keep the casing they arrived with for forwarding; lookups, equality
    and containment ignore case.
    """

    def __init__(self, items: Mapping[str, str] | list[tuple[str, str]] | None = None) -> None:
        self._items: dict[str, tuple[str, str]] = {}
        pairs = items.items() if isinstance(items, Mapping) else (items or [])
        for key, value in pairs:
            lowered = key.lower()
            if lowered in self._items:
                # Cookie pairs are joined with "; " (RFC 6265), other list-valued fields with ", "
                original, existing = self._items[lowered]
                separator = "; " if lowered == "cookie" else ", "
                self._items[lowered] = (original, f"{existing}{separator}{value}")
            else:
                self._items[lowered] = (key, str(value))

    def __getitem__(self, key: str) -> str:
        return self._items[key.lower()][1]

    def __iter__(self):
        return (original for original, _ in self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and key.lower() in self._items

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        return {k.lower(): v for k, v in self.items()} == {
            str(k).lower(): v for k, v in other.items()
        }

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self.items())


@dataclass
class IncomingRequest:
    """Standardized inbound request as seen by the routing engine."""

    method: str
    path: str
    query: str = ""
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    client_host: str | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.headers, Headers):
            self.headers = Headers(self.headers)
        self.method = self.method.upper()

    @property
    def path_with_query(self) -> str:
        return f"{self.path}?{self.query}" if self.query else self.path

    def parsed_body(self) -> Any:
        """Body decoded for prompt construction only; never used for forwarding."""
        if not self.body:
            return None
        try:
            return json.loads(self.body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return self.body.decode("utf-8", errors="replace")


@dataclass
class RoutingDecision:
    """Result of routing one request."""

    target: str
    source: DecisionSource
    raw_model_text: str | None = None
    fallback_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "source": self.source.value,
            "raw_model_text": self.raw_model_text,
            "fallback_reason": self.fallback_reason,
        }


@dataclass
class ProxyOutcome:
    """Upstream response ready to be streamed back to the client."""

    status_code: int
    headers: list[tuple[bytes, bytes]]
    body: AsyncIterator[bytes]
    aclose: Callable[[], Awaitable[None]]
    decision: RoutingDecision | None = None
