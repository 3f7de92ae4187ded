"""
URL composition for xhr_core.

Joins a client's configured base URL with the URL given to a verb call.
"""

from typing import Optional


def is_absolute(url: str) -> bool:
    """Check whether a URL already carries an http(s) scheme prefix."""
    return url.startswith("http")


def compose_url(base_url: Optional[str], url: Optional[str]) -> Optional[str]:
    """
    Merge a base URL and a per-call URL with exactly one slash between them.

    Args:
        base_url: The client's base URL, empty or None when not configured
        url: The URL or path supplied to the call

    Returns:
        The URL to request. ``url`` is returned unchanged when it is
        absolute, when there is no base URL, or when it is None.

    Examples:
        >>> compose_url("http://a.com/", "/b")
        'http://a.com/b'
        >>> compose_url("http://a.com", "b")
        'http://a.com/b'
    """
    if url is None or not base_url or is_absolute(url):
        return url

    base_has_slash = base_url.endswith("/")
    path_has_slash = url.startswith("/")

    if base_has_slash and path_has_slash:
        return base_url + url[1:]
    if not base_has_slash and not path_has_slash:
        return f"{base_url}/{url}"
    return base_url + url
