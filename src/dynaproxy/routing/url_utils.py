"""URL helpers shared by the config loader, matcher and inference client."""

from urllib.parse import urlsplit

ALLOWED_SCHEMES = frozenset(["http", "https"])


def is_absolute_url(text: str) -> bool:
    """True if ``text`` is an http(s) URL with a host and a valid port (if any)."""
    if not text or any(ch.isspace() for ch in text):
        return False
    try:
        parts = urlsplit(text)
        # Accessing .port raises ValueError for out-of-range or non-numeric ports
        parts.port
    except ValueError:
        return False
    return parts.scheme.lower() in ALLOWED_SCHEMES and bool(parts.hostname)


def origin_of(url: str) -> str:
    """``scheme://host[:port]`` of an absolute URL."""
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def join_target(target: str, path_with_query: str) -> str:
    """Append the original request path (and query) to a rule target unchanged."""
    return target.rstrip("/") + path_with_query
