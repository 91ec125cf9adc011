"""
Route configuration loader for nginx-style location blocks.

Extraction is flat: every ``location <prefix> { ... proxy_pass <target>; }``
statement is collected regardless of how deeply it is nested inside
``http``/``server`` blocks. The resulting RouteTable is sorted once and is
read-only for the lifetime of the process.
"""

import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from dynaproxy.core.exceptions import ConfigParseError
from dynaproxy.core.structured_logger import get_logger
from dynaproxy.routing.url_utils import is_absolute_url

logger = get_logger("ConfigLoader")

ROOT_PREFIX = "/"

# location [=|^~] <prefix> { ... proxy_pass <target>; ... }
_LOCATION_RE = re.compile(
    r"location\s+(?:(?:=|\^~)\s+)?([^\s{]+)\s*\{[^}]*?proxy_pass\s+([^;]+);"
)
_COMMENT_RE = re.compile(r"#[^\n]*")


@dataclass(frozen=True)
class RouteRule:
    """A path prefix routed to an absolute target URL."""

    prefix: str
    target: str

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ValueError("route prefix must not be empty")
        if not is_absolute_url(self.target):
            raise ValueError(f"route target is not an absolute URL: {self.target!r}")

    def to_dict(self) -> dict[str, str]:
        return {"prefix": self.prefix, "target": self.target}


def _sort_key(indexed: tuple[int, RouteRule]) -> tuple[int, int, int]:
    position, rule = indexed
    is_root = rule.prefix == ROOT_PREFIX
    return (1 if is_root else 0, -len(rule.prefix), position)


def sort_rules(rules: Iterable[RouteRule]) -> tuple[RouteRule, ...]:
    """Order rules root-last, longest prefix first, configuration order on ties."""
    return tuple(rule for _, rule in sorted(enumerate(rules), key=_sort_key))


class RouteTable:
    """Immutable, sorted sequence of RouteRule shared by all requests."""

    __slots__ = ("_rules",)

    def __init__(self, rules: Iterable[RouteRule] = ()) -> None:
        self._rules = sort_rules(rules)

    def __iter__(self) -> Iterator[RouteRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __bool__(self) -> bool:
        return bool(self._rules)

    def __getitem__(self, index: int) -> RouteRule:
        return self._rules[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RouteTable):
            return NotImplemented
        return self._rules == other._rules

    def __hash__(self) -> int:
        return hash(self._rules)

    def __repr__(self) -> str:
        return f"RouteTable({list(self._rules)!r})"

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def targets(self) -> list[str]:
        """Unique targets in table order."""
        return list(dict.fromkeys(rule.target for rule in self._rules))

    def as_pairs(self) -> list[dict[str, str]]:
        return [rule.to_dict() for rule in self._rules]


def parse_config(text: str) -> RouteTable:
    """Extract all location/proxy_pass rules from configuration text."""
    rules: list[RouteRule] = []
    for match in _LOCATION_RE.finditer(_COMMENT_RE.sub("", text)):
        prefix = match.group(1).strip()
        target = match.group(2).strip()
        try:
            rules.append(RouteRule(prefix=prefix, target=target))
        except ValueError as e:
            logger.warning("Skipping invalid route rule", prefix=prefix, target=target, error=str(e))
    return RouteTable(rules)


def load_route_table_strict(config_path: str | Path) -> RouteTable:
    """
    Read and parse a route configuration file.

    Raises:
        ConfigParseError: If the file cannot be read or parsed
    """
    path = Path(config_path)
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigParseError(
            f"Cannot read route config {path}: {e}", details={"config_path": str(path)}
        ) from e

    try:
        return parse_config(text)
    except (re.error, ValueError) as e:
        raise ConfigParseError(
            f"Cannot parse route config {path}: {e}", details={"config_path": str(path)}
        ) from e


def load_route_table(config_path: str | Path) -> RouteTable:
    """
    Load the route table, degrading to an empty table on failure.

    The proxy must still start when the configuration is missing or broken;
    every request then depends on inference alone and otherwise fails with
    NoMatchingRoute.
    """
    try:
        table = load_route_table_strict(config_path)
    except ConfigParseError as e:
        logger.error("Route config unavailable, starting with empty route table", error=e.to_dict())
        return RouteTable()

    logger.info("Loaded routes from config", config_path=str(config_path), route_count=len(table))
    for rule in table:
        logger.info(f"{rule.prefix} => {rule.target}")
    return table
