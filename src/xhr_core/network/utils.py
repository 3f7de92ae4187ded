"""
Network utilities for xhr_core.

This module provides helpers shared by the connection adapter and the
network backends: URL splitting, Host header formatting and SSL
context setup.
"""

import ssl
from typing import List, NamedTuple, Optional, Union
from urllib.parse import urlsplit

from ..exceptions import InvalidURLError

SUPPORTED_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}


class URLComponents(NamedTuple):
    """Immutable representation of the URL parts needed to connect."""
    scheme: str
    host: str
    port: int
    target: str

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"


def parse_url(url: str) -> URLComponents:
    """
    Parse URL into the components used to open a connection.

    Args:
        url: Absolute http or https URL

    Returns:
        URLComponents with the request target (path plus query)

    Raises:
        InvalidURLError: If the URL is malformed, has no host, uses an
            unsupported scheme or an invalid port
    """
    if not isinstance(url, str) or not url:
        raise InvalidURLError(f"expected a non-empty string, got {url!r}")

    if "://" not in url:
        raise InvalidURLError(f"no protocol: {url}")

    try:
        parsed = urlsplit(url)
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(f"{url}: {e}", cause=e) from e

    scheme = parsed.scheme.lower()
    if scheme not in SUPPORTED_SCHEMES:
        raise InvalidURLError(f"unsupported protocol {parsed.scheme!r} in {url}")

    host = parsed.hostname or ""
    if not host:
        raise InvalidURLError(f"no host in {url}")

    if port is None:
        port = DEFAULT_PORTS[scheme]
    else:
        port = validate_port(port)

    target = parsed.path or "/"
    if parsed.query:
        target += "?" + parsed.query

    return URLComponents(scheme=scheme, host=host, port=port, target=target)


def format_host_header(host: str, port: int, scheme: str) -> str:
    """
    Format host header for HTTP requests.

    Args:
        host: Hostname
        port: Port number
        scheme: URL scheme

    Returns:
        Formatted host header string
    """
    if ":" in host:
        host = f"[{host}]"
    if DEFAULT_PORTS.get(scheme) == port:
        return host
    return f"{host}:{port}"


def validate_port(port: Union[int, str]) -> int:
    """
    Validate and convert port to integer.

    Raises:
        InvalidURLError: If port is invalid
    """
    try:
        port_int = int(port)
    except (ValueError, TypeError) as e:
        raise InvalidURLError(f"invalid port: {port}", cause=e) from e

    if not (1 <= port_int <= 65535):
        raise InvalidURLError(f"port must be between 1 and 65535, got {port_int}")

    return port_int


def create_ssl_context(
    verify: bool = True,
    ca_file: Optional[str] = None,
    alpn_protocols: Optional[List[str]] = None,
) -> ssl.SSLContext:
    """
    Create an SSL context for client connections.

    Args:
        verify: Whether to verify the server certificate and hostname
        ca_file: Optional CA bundle to trust instead of the system store
        alpn_protocols: Optional list of ALPN protocols to negotiate

    Returns:
        Configured SSL context
    """
    context = ssl.create_default_context(cafile=ca_file)
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if alpn_protocols:
        context.set_alpn_protocols(alpn_protocols)

    context.minimum_version = ssl.TLSVersion.TLSv1_2

    return context
