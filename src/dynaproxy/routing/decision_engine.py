"""
Routing Decision Engine - one routing decision per request.

    Start -> TryInference -> InferenceAccepted
                          -> InferenceFailed -> TryDeterministic -> Matched
                                                                 -> Unmatched (NoMatchingRoute)

There is a single fallback layer. Every inference failure, including any
unexpected exception raised while building the prompt or while setting up the
forward to an inference-chosen target, is absorbed here and re-enters the
deterministic stage. Only NoMatchingRoute and UpstreamConnectionError leave
the engine.
"""

from __future__ import annotations

from typing import Protocol

from dynaproxy.core.exceptions import ForwardingSetupError, InferenceError, UpstreamConnectionError
from dynaproxy.core.structured_logger import get_logger
from dynaproxy.core.types import DecisionSource, IncomingRequest, ProxyOutcome, RoutingDecision
from dynaproxy.routing.config_loader import RouteTable
from dynaproxy.routing.inference_client import InferenceClient
from dynaproxy.routing.matcher import DeterministicMatcher
from dynaproxy.routing.url_utils import origin_of

logger = get_logger("DecisionEngine")


class Forwarder(Protocol):
    async def forward(self, target: str, request: IncomingRequest) -> ProxyOutcome: ...


class RoutingDecisionEngine:
    """Orchestrates inference-first routing with deterministic fallback."""

    def __init__(
        self,
        table: RouteTable,
        inference_client: InferenceClient | None = None,
        matcher: DeterministicMatcher | None = None,
    ) -> None:
        self.table = table
        self.inference_client = inference_client
        self.matcher = matcher or DeterministicMatcher(table)
        self._known_origins = frozenset(origin_of(t).lower() for t in table.targets())

    async def decide(self, request: IncomingRequest) -> RoutingDecision:
        """
        Resolve ``request`` to a target.

        Raises:
            NoMatchingRoute: If inference failed and no rule matches the path
        """
        if self.inference_client is None:
            return self._decide_deterministic(request, reason="inference disabled")

        try:
            target, raw_text = await self.inference_client.choose_target(request, self.table)
        except InferenceError as e:
            logger.warning("Inference failed, falling back to rules", error=e.to_dict())
            return self._decide_deterministic(
                request, reason=type(e).__name__, raw_text=getattr(e, "raw_text", None)
            )
        except Exception as e:
            logger.error(
                "Unexpected error during inference, falling back to rules",
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._decide_deterministic(request, reason=type(e).__name__)

        # Off-table targets are honored; the inference strategy may route beyond the config
        outside_table = origin_of(target).lower() not in self._known_origins
        logger.info(
            "Inference target accepted",
            target=target,
            outside_table=outside_table,
        )
        return RoutingDecision(target=target, source=DecisionSource.INFERENCE, raw_model_text=raw_text)

    def _decide_deterministic(
        self,
        request: IncomingRequest,
        reason: str,
        raw_text: str | None = None,
    ) -> RoutingDecision:
        target = self.matcher.match(request.path, request.query)
        logger.info("Fallback routing", target=target, reason=reason)
        return RoutingDecision(
            target=target,
            source=DecisionSource.FALLBACK,
            raw_model_text=raw_text,
            fallback_reason=reason,
        )

    async def route(self, request: IncomingRequest, forwarder: Forwarder) -> ProxyOutcome:
        """
        Decide and forward.

        A forwarding-setup failure on an inference decision counts as an
        inference failure and takes the same deterministic path; the
        deterministic result is forwarded once, without retries.

        Raises:
            NoMatchingRoute: No target could be resolved
            UpstreamConnectionError: The resolved upstream is unreachable
        """
        decision = await self.decide(request)

        if decision.source is DecisionSource.INFERENCE:
            try:
                outcome = await forwarder.forward(decision.target, request)
            except UpstreamConnectionError:
                raise
            except ForwardingSetupError as e:
                logger.warning("Cannot forward to inference target, falling back to rules", error=e.to_dict())
                decision = self._decide_deterministic(
                    request, reason=type(e).__name__, raw_text=decision.raw_model_text
                )
            except Exception as e:
                logger.error(
                    "Unexpected error forwarding to inference target, falling back to rules",
                    error_type=type(e).__name__,
                    error=str(e),
                )
                decision = self._decide_deterministic(
                    request, reason=type(e).__name__, raw_text=decision.raw_model_text
                )
            else:
                outcome.decision = decision
                return outcome

        outcome = await forwarder.forward(decision.target, request)
        outcome.decision = decision
        return outcome
