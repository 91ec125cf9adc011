"""Core dynaproxy module — errors, shared types and structured logging."""

from dynaproxy.core.exceptions import (
    ConfigParseError,
    ErrorCode,
    ForwardingSetupError,
    InferenceError,
    InferenceInvalidResponse,
    InferenceTimeout,
    InferenceTransportError,
    NoMatchingRoute,
    ProxyError,
    UpstreamConnectionError,
)
from dynaproxy.core.types import (
    DecisionSource,
    Headers,
    IncomingRequest,
    ProxyOutcome,
    RoutingDecision,
)

__all__ = [
    "ConfigParseError",
    "DecisionSource",
    "ErrorCode",
    "ForwardingSetupError",
    "Headers",
    "IncomingRequest",
    "InferenceError",
    "InferenceInvalidResponse",
    "InferenceTimeout",
    "InferenceTransportError",
    "NoMatchingRoute",
    "ProxyError",
    "ProxyOutcome",
    "RoutingDecision",
    "UpstreamConnectionError",
]
