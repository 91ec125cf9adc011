"""Deterministic longest-prefix matching against the sorted RouteTable."""

from dynaproxy.core.exceptions import NoMatchingRoute
from dynaproxy.routing.config_loader import RouteRule, RouteTable
from dynaproxy.routing.url_utils import join_target


class DeterministicMatcher:
    """
    First-match scan over a RouteTable.

    The table is already ordered root-last and longest-prefix-first, so the
    first rule whose prefix is a plain string prefix of the path is the most
    specific one. The test is not path-segment aware: ``/admin2`` matches a
    ``/admin`` rule.
    """

    def __init__(self, table: RouteTable) -> None:
        self.table = table

    def match_rule(self, path: str) -> RouteRule | None:
        for rule in self.table:
            if path.startswith(rule.prefix):
                return rule
        return None

    def match(self, path: str, query: str = "") -> str:
        """Return the full target URL for ``path`` or raise NoMatchingRoute."""
        rule = self.match_rule(path)
        if rule is None:
            raise NoMatchingRoute(path, details={"route_count": len(self.table)})
        path_with_query = f"{path}?{query}" if query else path
        return join_target(rule.target, path_with_query)
