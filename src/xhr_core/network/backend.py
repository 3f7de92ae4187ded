"""
Network backend interface for xhr_core.

This module defines the NetworkBackend interface that provides
abstractions for opening TCP connections and upgrading them to TLS.
The connection adapter only talks to the network through it.
"""

import ssl
from abc import ABC, abstractmethod
from typing import List, Optional

from .stream import NetworkStream


class NetworkBackend(ABC):
    """
    Interface for network backend implementations.

    Failures are reported with the exceptions the platform raises:
    ``ConnectionRefusedError`` and other ``OSError`` subclasses for TCP
    problems, ``ssl.SSLError`` for handshake and certificate problems,
    and ``asyncio.TimeoutError`` when a timeout expires.
    """

    @abstractmethod
    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> NetworkStream:
        """
        Connect to a TCP endpoint.

        Args:
            host: The hostname or IP address to connect to.
            port: The port number to connect to.
            timeout: Optional timeout in seconds for the connection.

        Returns:
            A NetworkStream representing the TCP connection.

        Raises:
            OSError: If the connection fails.
            asyncio.TimeoutError: If the connection times out.
        """

    @abstractmethod
    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        """
        Upgrade a TCP stream to TLS.

        Args:
            stream: The existing TCP NetworkStream to upgrade.
            host: The hostname for TLS certificate verification.
            port: The port number (used for logging/debugging).
            timeout: Optional timeout in seconds for the TLS handshake.
            alpn_protocols: Optional list of ALPN protocols to negotiate.
            ssl_context: Context to use instead of a default one.

        Returns:
            A NetworkStream representing the TLS connection.

        Raises:
            ssl.SSLError: If the TLS handshake or certificate check fails.
            asyncio.TimeoutError: If the TLS handshake times out.
        """
