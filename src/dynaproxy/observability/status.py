"""Read-only status snapshot served on the reserved status path."""

from pathlib import Path
from typing import Any

from dynaproxy.routing.config_loader import RouteTable


class StatusReporter:
    """
    Snapshot of the engine identity and the route table loaded at start-up.

    Computed once in the constructor; routing decisions made afterwards never
    change it.
    """

    def __init__(
        self,
        table: RouteTable,
        name: str = "dynaproxy",
        inference: str = "disabled",
        config_path: str | Path | None = None,
        version: str | None = None,
    ) -> None:
        snapshot: dict[str, Any] = {
            "status": "running",
            "name": name,
            "inference": inference,
            "config": str(config_path) if config_path is not None else None,
            "routes": table.as_pairs(),
        }
        if version:
            snapshot["version"] = version
        self._snapshot = snapshot

    def snapshot(self) -> dict[str, Any]:
        # Copies so callers cannot mutate the start-up view
        return {**self._snapshot, "routes": [dict(r) for r in self._snapshot["routes"]]}
