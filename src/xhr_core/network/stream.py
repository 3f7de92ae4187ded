"""
Network stream interface for xhr_core.

This module defines the NetworkStream interface the connection adapter
reads from and writes to. Backends return implementations of it from
their connect calls.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class NetworkStream(ABC):
    """
    Interface for a connected byte stream with async I/O operations.

    A stream is owned by exactly one connection adapter for its whole
    lifetime and is closed by it when the request finishes.
    """

    @abstractmethod
    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        """
        Read data from the stream.

        Args:
            max_bytes: Maximum number of bytes to read. If None, an
                implementation-defined buffer size is used.

        Returns:
            The data read, or ``b""`` once the peer has closed its side.

        Raises:
            RuntimeError: If the stream is closed.
            OSError: If a network error occurs.
        """

    @abstractmethod
    async def write(self, data: bytes) -> None:
        """
        Write data to the stream and wait until it has been handed to
        the transport.

        Args:
            data: The data to write to the stream.

        Raises:
            RuntimeError: If the stream is closed.
            OSError: If a network error occurs.
        """

    @abstractmethod
    async def aclose(self) -> None:
        """Close the stream. Closing twice is a no-op."""

    @abstractmethod
    def get_extra_info(self, name: str) -> Optional[Any]:
        """
        Get extra information about the stream.

        Args:
            name: Common values are ``"peername"``, ``"sockname"`` and
                ``"ssl_object"``.

        Returns:
            The requested information or None if not available.
        """

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Check if the stream is closed."""
