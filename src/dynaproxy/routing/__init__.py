"""
dynaproxy Routing System

Two routing strategies feed one decision per request:
1. Inference (inference_client.py) — an external model picks the target URL
   from a natural-language description of the configured rules.
2. Deterministic (matcher.py) — longest-prefix match against the rules
   parsed from the nginx-style config (config_loader.py).

decision_engine.py tries inference first and falls back to the matcher
exactly once; forwarder.py sends the request to the resolved target.
"""

from dynaproxy.routing.config_loader import (
    RouteRule,
    RouteTable,
    load_route_table,
    load_route_table_strict,
    parse_config,
    sort_rules,
)
from dynaproxy.routing.decision_engine import RoutingDecisionEngine
from dynaproxy.routing.forwarder import ProxyForwarder
from dynaproxy.routing.inference_backends import (
    AnthropicBackend,
    InferenceBackend,
    OllamaBackend,
    StaticBackend,
)
from dynaproxy.routing.inference_client import (
    InferenceClient,
    build_prompt,
    create_inference_client,
    parse_target_url,
)
from dynaproxy.routing.matcher import DeterministicMatcher

__all__ = [
    "AnthropicBackend",
    "DeterministicMatcher",
    "InferenceBackend",
    "InferenceClient",
    "OllamaBackend",
    "ProxyForwarder",
    "RouteRule",
    "RouteTable",
    "RoutingDecisionEngine",
    "StaticBackend",
    "build_prompt",
    "create_inference_client",
    "load_route_table",
    "load_route_table_strict",
    "parse_config",
    "parse_target_url",
    "sort_rules",
]
