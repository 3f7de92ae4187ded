"""
Mock network implementations for testing.

This module provides in-memory implementations of NetworkStream and
NetworkBackend. Responses are queued per endpoint before a request runs;
every connect call takes the next queued response and gets a fresh
stream, so each request owns its own connection just like with a real
backend. Failures can be injected for connects, TLS handshakes, reads
and writes.
"""

import ssl
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from .backend import NetworkBackend
from .stream import NetworkStream

Endpoint = Tuple[str, int]


class MockNetworkStream(NetworkStream):
    """
    Mock network stream for testing.

    This implementation simulates a network stream in memory,
    allowing tests to verify what was written and to script what is read.
    """

    def __init__(
        self,
        data: bytes = b"",
        write_error: Optional[BaseException] = None,
        fail_after_writes: int = 0,
        read_error: Optional[BaseException] = None,
    ):
        """
        Initialize the mock stream.

        Args:
            data: Initial data to be available for reading.
            write_error: Exception raised by ``write`` once
                ``fail_after_writes`` writes have succeeded.
            fail_after_writes: Number of successful writes before
                ``write_error`` is raised.
            read_error: Exception raised by every ``read``.
        """
        self._data = data
        self._position = 0
        self._closed = False
        self._extra_info: Dict[str, Any] = {}
        self._write_buffer: List[bytes] = []
        self._write_error = write_error
        self._fail_after_writes = fail_after_writes
        self._read_error = read_error

    async def read(self, max_bytes: Optional[int] = None) -> bytes:
        if self._closed:
            raise RuntimeError("Stream is closed")

        if self._read_error is not None:
            raise self._read_error

        if self._position >= len(self._data):
            return b""

        if max_bytes is None:
            result = self._data[self._position:]
            self._position = len(self._data)
        else:
            end = min(self._position + max_bytes, len(self._data))
            result = self._data[self._position:end]
            self._position = end

        return result

    async def write(self, data: bytes) -> None:
        if self._closed:
            raise RuntimeError("Stream is closed")

        if self._write_error is not None and len(self._write_buffer) >= self._fail_after_writes:
            raise self._write_error

        self._write_buffer.append(data)

    async def aclose(self) -> None:
        self._closed = True

    def get_extra_info(self, name: str) -> Optional[Any]:
        return self._extra_info.get(name)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def written_data(self) -> bytes:
        """Get all data that was written to the stream."""
        return b"".join(self._write_buffer)

    @property
    def write_count(self) -> int:
        return len(self._write_buffer)

    def set_extra_info(self, name: str, value: Any) -> None:
        self._extra_info[name] = value

    def add_data(self, data: bytes) -> None:
        """Add data to be available for reading."""
        self._data += data


class MockNetworkBackend(NetworkBackend):
    """
    Mock network backend for testing.

    Endpoints without a queued response get an empty stream, which a
    connection sees as the server closing without answering.
    """

    def __init__(self) -> None:
        self._responses: Dict[Endpoint, Deque[MockNetworkStream]] = defaultdict(deque)
        self._connect_errors: Dict[Endpoint, BaseException] = {}
        self._tls_errors: Dict[str, BaseException] = {}
        self._connections: Dict[Endpoint, List[MockNetworkStream]] = defaultdict(list)
        self._events: List[Tuple[str, Endpoint]] = []
        self._connection_count = 0

    def queue_response(
        self,
        host: str,
        port: int,
        data: bytes,
        **stream_options: Any,
    ) -> MockNetworkStream:
        """
        Queue raw response bytes for the next connection to an endpoint.

        Args:
            host: The hostname.
            port: The port number.
            data: Bytes the server "sends" on that connection.
            **stream_options: Failure injection options forwarded to
                MockNetworkStream.

        Returns:
            The stream that the next connection will receive.
        """
        stream = MockNetworkStream(data, **stream_options)
        self._responses[(host, port)].append(stream)
        return stream

    def fail_connect(self, host: str, port: int, error: BaseException) -> None:
        """Make every connect to an endpoint raise ``error``."""
        self._connect_errors[(host, port)] = error

    def fail_tls(self, host: str, error: BaseException) -> None:
        """Make every TLS upgrade for a host raise ``error``."""
        self._tls_errors[host] = error

    async def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: Optional[float] = None,
    ) -> MockNetworkStream:
        key = (host, port)
        self._events.append(("connect", key))

        if key in self._connect_errors:
            raise self._connect_errors[key]

        queued = self._responses[key]
        stream = queued.popleft() if queued else MockNetworkStream()
        stream.set_extra_info("socket", self._connection_count)
        stream.set_extra_info("peername", key)
        stream.set_extra_info("sockname", ("127.0.0.1", 12345))
        self._connections[key].append(stream)
        self._connection_count += 1

        return stream

    async def connect_tls(
        self,
        stream: NetworkStream,
        host: str,
        port: int,
        timeout: Optional[float] = None,
        alpn_protocols: Optional[List[str]] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ) -> NetworkStream:
        self._events.append(("tls", (host, port)))

        if host in self._tls_errors:
            raise self._tls_errors[host]

        if isinstance(stream, MockNetworkStream):
            stream.set_extra_info("ssl_object", True)
            stream.set_extra_info(
                "selected_alpn_protocol",
                alpn_protocols[0] if alpn_protocols else "http/1.1",
            )
        return stream

    def get_connection(self, host: str, port: int) -> Optional[MockNetworkStream]:
        """Get the most recent connection made to an endpoint."""
        connections = self._connections.get((host, port))
        return connections[-1] if connections else None

    def get_connections(self, host: str, port: int) -> List[MockNetworkStream]:
        """Get every connection made to an endpoint, oldest first."""
        return list(self._connections.get((host, port), []))

    @property
    def events(self) -> List[Tuple[str, Endpoint]]:
        """Connect and TLS calls in the order they happened."""
        return list(self._events)

    @property
    def connection_count(self) -> int:
        return self._connection_count

    def reset(self) -> None:
        """Reset all queued responses, failures and recorded connections."""
        self._responses.clear()
        self._connect_errors.clear()
        self._tls_errors.clear()
        self._connections.clear()
        self._events.clear()
        self._connection_count = 0
