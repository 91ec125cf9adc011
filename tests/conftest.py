"""
Pytest configuration for dynaproxy tests — shared route tables, fake
inference backends and request builders.
"""

import shutil
import sys
import tempfile
from pathlib import Path

import pytest

from dynaproxy.core.exceptions import InferenceTransportError
from dynaproxy.core.types import IncomingRequest
from dynaproxy.routing.config_loader import RouteRule, RouteTable
from dynaproxy.routing.inference_backends import InferenceBackend

# =============================================================================
# SAMPLE CONFIGURATION
# =============================================================================

API = "http://localhost:8001"
ADMIN = "http://localhost:8003"
STATIC = "http://localhost:8004"
WEB = "http://localhost:8002"

SAMPLE_CONFIG = """
http {
    server {
        listen 3000;

        location = /proxy-status {
            default_type application/json;
            return 200 '{"status":"running"}';
        }

        location /api {
            proxy_pass http://localhost:8001;
            proxy_set_header Host $host;
        }

        location /admin {
            proxy_pass http://localhost:8003;
        }

        location /static {
            proxy_pass http://localhost:8004;
        }

        location / {
            proxy_pass http://localhost:8002;
        }
    }
}
"""


# =============================================================================
# FAKE INFERENCE BACKENDS
# =============================================================================


class ScriptedBackend(InferenceBackend):
    """Returns a fixed reply (or raises) and records every prompt it sees."""

    name = "scripted"

    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        super().__init__("scripted-model")
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []
        self.closed = False

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply

    async def close(self) -> None:
        self.closed = True


# =============================================================================
# SHARED FIXTURES
# =============================================================================


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    tmp_dir = tempfile.mkdtemp()
    yield Path(tmp_dir)
    shutil.rmtree(tmp_dir, ignore_errors=True)


@pytest.fixture
def sample_config_file(temp_dir):
    """nginx-style config with /api, /admin, /static and / rules."""
    path = temp_dir / "proxy.conf"
    path.write_text(SAMPLE_CONFIG)
    return path


@pytest.fixture
def sample_table():
    """Route table /api→A, /admin→B, /static→C, /→D (given in config order)."""
    return RouteTable([
        RouteRule("/api", API),
        RouteRule("/admin", ADMIN),
        RouteRule("/static", STATIC),
        RouteRule("/", WEB),
    ])


@pytest.fixture
def table_without_root():
    return RouteTable([
        RouteRule("/api", API),
        RouteRule("/admin", ADMIN),
        RouteRule("/static", STATIC),
    ])


@pytest.fixture
def scripted_backend():
    """Factory for ScriptedBackend instances."""
    return ScriptedBackend


@pytest.fixture
def failing_backend():
    return ScriptedBackend(error=InferenceTransportError("connection refused"))


@pytest.fixture
def make_request():
    """Factory for IncomingRequest values."""
    return build_request


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def build_request(path: str = "/", method: str = "GET", query: str = "", body: bytes = b"", **headers) -> IncomingRequest:
    """Build an IncomingRequest; header kwargs use underscores for dashes."""
    return IncomingRequest(
        method=method,
        path=path,
        query=query,
        headers={k.replace("_", "-"): v for k, v in headers.items()},
        body=body,
        client_host="203.0.113.7",
    )


# =============================================================================
# PYTEST CONFIGURATION
# =============================================================================


def pytest_configure(config):
    """Validate test environment and register custom markers."""
    missing = []
    for mod in ("httpx", "aiohttp", "fastapi", "pydantic", "anthropic"):
        try:
            __import__(mod)
        except ImportError:
            missing.append(mod)

    if missing:
        banner = "=" * 70
        print(
            f"\n{banner}\n"
            f" Missing dependencies: {', '.join(missing)}\n"
            f" Run: pip install -e '.[test]'\n{banner}",
            file=sys.stderr,
        )
        raise SystemExit(1)

    config.addinivalue_line(
        "markers", "unit: Fast unit tests with no external dependencies"
    )
