"""URL canonicalization used as the article deduplication key."""

from urllib.parse import urlsplit


def normalize_url(url: str) -> str:
    """
    Canonical deduplication key for an article URL.

    Keeps host + path, drops scheme, query and fragment, strips a single
    trailing slash from the path and lower-cases the result. Input that does
    not parse as an absolute URL falls back to the trimmed, lower-cased raw
    string with a single trailing slash removed. Never raises.
    """
    raw = url if isinstance(url, str) else ("" if url is None else str(url))
    try:
        parts = urlsplit(raw.strip())
        if not parts.scheme or not parts.hostname:
            raise ValueError(f"not an absolute URL: {raw!r}")
        path = parts.path[:-1] if parts.path.endswith("/") else parts.path
        return (parts.hostname + path).lower()
    except ValueError:
        fallback = raw.strip().lower()
        return fallback[:-1] if fallback.endswith("/") else fallback
