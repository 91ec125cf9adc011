"""dynaproxy — reverse proxy that asks an inference service where to route,
falling back to nginx-style prefix rules."""

from dynaproxy.interfaces.web.server import create_app
from dynaproxy.routing import (
    DeterministicMatcher,
    InferenceClient,
    ProxyForwarder,
    RouteRule,
    RouteTable,
    RoutingDecisionEngine,
    load_route_table,
)

__all__ = [
    "DeterministicMatcher",
    "InferenceClient",
    "ProxyForwarder",
    "RouteRule",
    "RouteTable",
    "RoutingDecisionEngine",
    "create_app",
    "load_route_table",
]
