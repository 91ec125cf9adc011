"""
Tests for backend reachability probes and the status snapshot.
"""

import json
import logging

import httpx
import pytest

from dynaproxy.observability.health import (
    BackendProbe,
    HealthReport,
    HealthStatus,
    ProbeResult,
    probe_backends,
)
from dynaproxy.observability.status import StatusReporter
from dynaproxy.routing.config_loader import RouteRule, RouteTable


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBackendProbe:
    """Single backend probe"""

    @pytest.mark.asyncio
    async def test_any_response_is_reachable(self):
        async with _mock_client(lambda r: httpx.Response(404)) as client:
            result = await BackendProbe("http://localhost:8001", client)()

        assert result.status == HealthStatus.HEALTHY
        assert result.details == {"reachable": True, "status_code": 404}
        assert result.message == "http://localhost:8001 is reachable (404)"

    @pytest.mark.asyncio
    async def test_connection_refused_is_unhealthy(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _mock_client(handler) as client:
            result = await BackendProbe("http://localhost:8001", client)()

        assert result.status == HealthStatus.UNHEALTHY
        assert result.details["reachable"] is False
        assert "is not reachable" in result.message

    @pytest.mark.asyncio
    async def test_timeout_is_unhealthy(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        async with _mock_client(handler) as client:
            result = await BackendProbe("http://localhost:8001", client)()

        assert result.details["error"] == "timeout"
        assert result.message == "http://localhost:8001 timed out"


class TestHealthReport:
    """Aggregation"""

    @staticmethod
    def _result(status):
        return ProbeResult(status, str(status))

    @pytest.mark.asyncio
    async def test_all_healthy(self):
        report = HealthReport()

        async def ok():
            return self._result(HealthStatus.HEALTHY)

        report.register("a", ok)
        report.register("b", ok)

        assert (await report.collect())["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_partial_failure_is_degraded(self):
        report = HealthReport()

        async def ok():
            return self._result(HealthStatus.HEALTHY)

        async def broken():
            raise RuntimeError("boom")

        report.register("a", ok)
        report.register("b", broken)
        result = await report.collect()

        assert result["status"] == "degraded"
        assert result["checks"]["b"]["status"] == "unhealthy"
        assert "boom" in result["checks"]["b"]["message"]


class TestProbeBackends:
    @pytest.mark.asyncio
    async def test_each_unique_target_probed_once(self):
        seen = []

        def handler(request):
            seen.append(request.url.host)
            return httpx.Response(200)

        table = RouteTable([
            RouteRule("/a", "http://one:1"),
            RouteRule("/b", "http://one:1"),
            RouteRule("/", "http://two:2"),
        ])
        async with _mock_client(handler) as client:
            result = await probe_backends(table, client=client)

        assert sorted(seen) == ["one", "two"]
        assert set(result["checks"]) == {"http://one:1", "http://two:2"}
        assert result["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_all_down_is_unhealthy(self, sample_table):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with _mock_client(handler) as client:
            result = await probe_backends(sample_table, client=client)

        assert result["status"] == "unhealthy"
        assert len(result["checks"]) == 4

    @pytest.mark.asyncio
    async def test_backend_lines_are_structured_json(self, caplog):
        table = RouteTable([RouteRule("/api", "http://one:1")])

        with caplog.at_level(logging.INFO, logger="dynaproxy"):
            async with _mock_client(lambda r: httpx.Response(200)) as client:
                await probe_backends(table, client=client)

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["component"] == "BackendProbe"
        assert entry["backend"] == "http://one:1"
        assert entry["message"].startswith("Backend http://one:1 is reachable")


class TestStatusReporter:
    """Start-up snapshot"""

    def test_snapshot_contents(self, sample_table):
        reporter = StatusReporter(
            sample_table, name="edge", inference="ollama:qwen", config_path="proxy.conf", version="1.2.3"
        )

        assert reporter.snapshot() == {
            "status": "running",
            "name": "edge",
            "inference": "ollama:qwen",
            "config": "proxy.conf",
            "routes": sample_table.as_pairs(),
            "version": "1.2.3",
        }

    def test_snapshot_cannot_be_mutated_by_callers(self, sample_table):
        reporter = StatusReporter(sample_table)

        snap = reporter.snapshot()
        snap["status"] = "stopped"
        snap["routes"][0]["target"] = "http://evil:1"

        assert reporter.snapshot()["status"] == "running"
        assert reporter.snapshot()["routes"][0]["target"] == "http://localhost:8004"

    def test_empty_table(self):
        snap = StatusReporter(RouteTable()).snapshot()

        assert snap["routes"] == []
        assert "version" not in snap
