"""
Observability Package
=====================

- status: start-up snapshot served on the reserved status path
- health: reachability probes for configured backends
"""

from .health import BackendProbe, HealthReport, HealthStatus, ProbeResult, probe_backends
from .status import StatusReporter

__all__ = [
    'BackendProbe',
    'HealthReport',
    'HealthStatus',
    'ProbeResult',
    'StatusReporter',
    'probe_backends',
]
