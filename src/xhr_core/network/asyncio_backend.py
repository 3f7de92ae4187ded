"""
asyncio streams network backend for xhr_core.

This is the backend used for real traffic. It wraps the reader/writer
pair returned by ``asyncio.open_connection``.
"""

import asyncio
import errno
import logging
import ssl
from typing import Any, List, Optional

from .backend import NetworkBackend
from .stream import NetworkStream
from .utils import create_ssl_context

logger = logging.getLogger(__name__)


class AsyncioNetworkStream(NetworkStream):
    """Network stream backed by an asyncio StreamReader/StreamWriter pair."""

    DEFAULT_READ_SIZE = 65536

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self._reader = reader
        self._writer = writer
        self._closed = False

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")
        return await self._reader.read(max_bytes or self.DEFAULT_READ_SIZE)

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")
        self._writer.write(data)
        await self._writer.drain()

    async def start_tls(
        self,
        context: ssl.SSLContext,
        server_hostname: str,
        timeout: Optional[float] = None,
    ) -> None:
        """Upgrade this stream to TLS in place."""
        await self._writer.start_tls(
            context,
            server_hostname=server_hostname,
            ssl_handshake_timeout=timeout,
        )

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (OSError, ssl.SSLError) as e:
            logger.debug(f"Error while closing stream: {e}")

    def get_extra_info(self, name: str) -> Optional[Any]:
        if name == "ssl_object":
            return self._writer.get_extra_info("ssl_object") is not None
        return self._writer.get_extra_info(name)

    @property
    def is_closed(self) -> bool:
        return self._closed


class AsyncioNetworkBackend(NetworkBackend):
    """Network backend built on ``asyncio.open_connection``."""

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> AsyncioNetworkStream:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port, all_errors=True),
                timeout=timeout,
            )
        except ExceptionGroup as group:
            raise _collapse_connect_errors(host, port, group) from group

        logger.debug(f"TCP connection established to {host}:{port}")
        return AsyncioNetworkStream(reader, writer)

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        if not isinstance(stream, AsyncioNetworkStream):
            raise TypeError("AsyncioNetworkBackend can only upgrade its own streams")

        context = ssl_context or create_ssl_context(alpn_protocols=alpn_protocols)
        await stream.start_tls(context, server_hostname=host, timeout=timeout)
        logger.debug(f"TLS established with {host}:{port}")
        return stream


def _is_refused(error: BaseException) -> bool:
    return isinstance(error, ConnectionRefusedError) or (
        isinstance(error, OSError) and error.errno == errno.ECONNREFUSED
    )


def _collapse_connect_errors(host: str, port: int, group: ExceptionGroup) -> Exception:
    """
    Turn the failures of every address tried into one exception.

    A single failure is returned as is. When every address refused the
    connection the result is a ConnectionRefusedError; otherwise an
    OSError listing each failure.
    """
    errors = group.exceptions
    if len(errors) == 1:
        return errors[0]
    if all(_is_refused(error) for error in errors):
        return ConnectionRefusedError(
            errno.ECONNREFUSED,
            f"All {len(errors)} addresses of {host}:{port} refused the connection",
        )
    return OSError(f"Multiple exceptions: {', '.join(str(error) for error in errors)}")
