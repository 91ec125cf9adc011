"""
Backend reachability probes.

A backend counts as reachable when it answers with any HTTP status; only
connection failures and timeouts count against it. Probes are advisory:
the proxy starts and serves whatever the probe result.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import httpx

from dynaproxy.core.structured_logger import get_logger
from dynaproxy.routing.config_loader import RouteTable

logger = get_logger("BackendProbe")


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ProbeResult:
    status: HealthStatus
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    checked_at: str = field(default_factory=_now)

    @property
    def ok(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        return {
            'status': str(self.status),
            'message': self.message,
            'timestamp': self.checked_at,
            'details': dict(self.details),
        }


Probe = Callable[[], Awaitable[ProbeResult]]


class BackendProbe:
    """One GET against a backend origin."""

    def __init__(self, url: str, client: httpx.AsyncClient) -> None:
        self.url = url
        self.client = client

    async def __call__(self) -> ProbeResult:
        try:
            response = await self.client.get(self.url)
        except httpx.TimeoutException:
            return ProbeResult(HealthStatus.UNHEALTHY, f"{self.url} timed out",
                               {'reachable': False, 'error': 'timeout'})
        except httpx.HTTPError as e:
            return ProbeResult(HealthStatus.UNHEALTHY, f"{self.url} is not reachable: {e}",
                               {'reachable': False, 'error': str(e)})
        return ProbeResult(HealthStatus.HEALTHY, f"{self.url} is reachable ({response.status_code})",
                           {'reachable': True, 'status_code': response.status_code})


class HealthReport:
    """Runs named probes concurrently and folds them into one overall status."""

    def __init__(self) -> None:
        self._probes: dict[str, Probe] = {}

    def register(self, name: str, probe: Probe) -> None:
        self._probes[name] = probe

    async def _run(self, name: str, probe: Probe) -> ProbeResult:
        try:
            return await probe()
        except Exception as e:
            logger.error("Probe raised", probe=name, error_type=type(e).__name__, error=str(e))
            return ProbeResult(HealthStatus.UNHEALTHY, f"Check failed: {e}", {'reachable': False})

    async def collect(self) -> dict[str, Any]:
        names = list(self._probes)
        results = await asyncio.gather(*(self._run(n, self._probes[n]) for n in names))

        failed = sum(1 for r in results if not r.ok)
        if failed == 0:
            overall = HealthStatus.HEALTHY
        elif failed < len(results):
            overall = HealthStatus.DEGRADED
        else:
            overall = HealthStatus.UNHEALTHY

        return {
            'status': str(overall),
            'checks': {name: result.to_dict() for name, result in zip(names, results)},
            'timestamp': _now(),
        }


async def probe_backends(
    table: RouteTable,
    timeout: float = 1.0,
    client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Probe every unique route target once and log one line per backend."""
    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=timeout)
    try:
        report = HealthReport()
        for target in table.targets():
            report.register(target, BackendProbe(target, client))
        result = await report.collect()
    finally:
        if owns_client:
            await client.aclose()

    for name, check in result['checks'].items():
        if check['details'].get('reachable'):
            logger.info(f"Backend {check['message']}", backend=name)
        else:
            logger.warning(f"Backend {check['message']}", backend=name)
    return result
