"""
Network backend components for xhr_core.

This module provides the low-level networking abstractions the
connection adapter is built on.
"""

from .backend import NetworkBackend
from .stream import NetworkStream
from .asyncio_backend import AsyncioNetworkBackend, AsyncioNetworkStream
from .mock import MockNetworkBackend, MockNetworkStream
from .utils import (
    URLComponents,
    create_ssl_context,
    format_host_header,
    parse_url,
    validate_port,
)

__all__ = [
    "NetworkBackend",
    "NetworkStream",
    "AsyncioNetworkBackend",
    "AsyncioNetworkStream",
    "MockNetworkBackend",
    "MockNetworkStream",
    "URLComponents",
    "create_ssl_context",
    "format_host_header",
    "parse_url",
    "validate_port",
]
