"""
HTTP/1.1 connection adapter for xhr_core.

This module implements the HTTP11Connection class, the connection
primitive a request lifecycle drives: it is opened for one method and
URL, connected through a NetworkBackend, given headers and a body, and
then asked for the response. HTTP/1.1 framing is handled by h11.
"""

import asyncio
import logging
import ssl
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import h11

from .exceptions import (
    ConnectionError,
    InvalidMethodError,
    ProtocolError,
    ResponseStatusError,
    StreamError,
    TimeoutError,
)
from .http_primitives import HttpOptions
from .network.backend import NetworkBackend
from .network.stream import NetworkStream
from .network.utils import create_ssl_context, format_host_header, parse_url
from .streams import RequestBodyWriter, ResponseBodyReader

logger = logging.getLogger(__name__)

# Headers computed by the connection itself; caller values are ignored.
_FRAMING_HEADERS = frozenset({"content-length", "transfer-encoding"})


class ConnectionState(Enum):
    """States of an HTTP/1.1 connection."""
    NEW = "new"               # Opened, not yet connected
    CONNECTED = "connected"   # Transport ready, nothing sent
    SENDING = "sending"       # Request head sent, body in progress
    SENT = "sent"             # Request fully sent
    RECEIVING = "receiving"   # Response head received, body pending
    DONE = "done"             # Response body fully received
    CLOSED = "closed"         # Connection closed, cannot be reused


class HTTP11Connection:
    """
    Single-use HTTP/1.1 connection.

    One instance carries exactly one request/response exchange. The
    request head is sent lazily: with the first body chunk when a fixed
    content length is set, when the body writer is closed, or when the
    response is first requested.
    """

    # Default configuration
    DEFAULT_CONNECT_TIMEOUT = 30.0  # 30 seconds
    DEFAULT_READ_TIMEOUT = 30.0  # 30 seconds
    DEFAULT_WRITE_TIMEOUT = 30.0  # 30 seconds
    READ_CHUNK_SIZE = 65536  # 64KB chunks

    VALID_METHODS = frozenset(
        {"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE"}
    )
    # Methods that announce an empty body when nothing is written
    BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

    def __init__(
        self,
        method: str,
        url: str,
        backend: NetworkBackend,
        options: Optional[HttpOptions] = None,
    ):
        """
        Initialize the connection without touching the network.

        Args:
            method: HTTP method, case-sensitive
            url: Absolute http or https URL
            backend: Network backend used by ``connect``
            options: Transport options (timeouts, TLS verification)

        Raises:
            InvalidURLError: If the URL cannot be parsed
            InvalidMethodError: If the method is not supported
        """
        self._url = parse_url(url)
        if method not in self.VALID_METHODS:
            raise InvalidMethodError(method)

        options = options or HttpOptions()
        self._method = method
        self._raw_url = url
        self._backend = backend
        self._options = options
        self._connect_timeout = options.connect_timeout or self.DEFAULT_CONNECT_TIMEOUT
        self._read_timeout = options.read_timeout or self.DEFAULT_READ_TIMEOUT
        self._write_timeout = options.write_timeout or self.DEFAULT_WRITE_TIMEOUT

        self._h11_connection = h11.Connection(h11.CLIENT)
        self._stream: Optional[NetworkStream] = None
        self._state = ConnectionState.NEW
        self._headers: Dict[str, str] = {}
        self._fixed_length: Optional[int] = None
        self._writer: Optional[RequestBodyWriter] = None
        self._response: Optional[h11.Response] = None
        self._eof = False

        # Metrics
        self._bytes_sent = 0
        self._bytes_received = 0

        logger.debug(f"HTTP/1.1 connection opened for {method} {url}")

    @classmethod
    def open(
        cls,
        method: str,
        url: str,
        backend: NetworkBackend,
        options: Optional[HttpOptions] = None,
    ) -> "HTTP11Connection":
        """Create a connection bound to ``method`` and ``url``."""
        return cls(method, url, backend, options)

    async def connect(self) -> None:
        """
        Establish the transport, upgrading to TLS for https URLs.

        Raises:
            ConnectionError: If the TCP connection or TLS handshake fails;
                the original exception is available as ``cause``
            TimeoutError: If connecting times out
        """
        if self._state is not ConnectionState.NEW:
            raise ConnectionError(f"Cannot connect in state {self._state.value}")

        host, port = self._url.host, self._url.port
        try:
            stream = await self._backend.connect_tcp(host, port, timeout=self._connect_timeout)
        except asyncio.TimeoutError as e:
            raise TimeoutError(f"Connecting to {host}:{port}", timeout=self._connect_timeout) from e
        except OSError as e:
            raise ConnectionError(f"Failed to connect to {host}:{port}: {e}", cause=e) from e

        if self._url.is_secure:
            try:
                context = create_ssl_context(
                    verify=self._options.verify_ssl,
                    ca_file=self._options.ca_file,
                )
                stream = await self._backend.connect_tls(
                    stream,
                    host,
                    port,
                    timeout=self._connect_timeout,
                    ssl_context=context,
                )
            except asyncio.TimeoutError as e:
                await stream.aclose()
                raise TimeoutError(f"TLS handshake with {host}", timeout=self._connect_timeout) from e
            except (ssl.SSLError, OSError) as e:
                await stream.aclose()
                raise ConnectionError(f"TLS handshake with {host} failed: {e}", cause=e) from e
            except BaseException:
                await stream.aclose()
                raise

        self._stream = stream
        self._state = ConnectionState.CONNECTED
        logger.debug(f"Connected to {host}:{port} (secure={self._url.is_secure})")

    def set_header(self, name: str, value: str) -> None:
        """
        Set a request header, replacing any value under the same name
        regardless of case.

        Raises:
            StreamError: If the request head was already sent
        """
        self._check_head_pending()
        name_lower = name.lower()
        for existing in [key for key in self._headers if key.lower() == name_lower]:
            del self._headers[existing]
        self._headers[name] = value

    def get_header(self, name: str) -> Optional[str]:
        """Get a request header value by name (case-insensitive)."""
        name_lower = name.lower()
        for key, value in self._headers.items():
            if key.lower() == name_lower:
                return value
        return None

    def set_fixed_content_length(self, length: int) -> None:
        """
        Announce the exact body size so the body can be streamed.

        Raises:
            ValueError: If length is negative
            StreamError: If the request head was already sent
        """
        if length < 0:
            raise ValueError("content length must be non-negative")
        self._check_head_pending()
        if self._writer is not None:
            raise StreamError("Content length must be set before the output stream is opened")
        self._fixed_length = length

    def get_output_stream(self) -> RequestBodyWriter:
        """
        Get the writer for the request body.

        Raises:
            StreamError: If the connection is not connected or the
                request was already sent
        """
        if self._writer is None:
            if self._state is not ConnectionState.CONNECTED:
                raise StreamError(f"Cannot write a body in state {self._state.value}")
            self._writer = RequestBodyWriter(self, streaming=self._fixed_length is not None)
        return self._writer

    async def get_input_stream(self) -> ResponseBodyReader:
        """
        Get the reader for a successful response body.

        Raises:
            ResponseStatusError: If the server answered with status >= 400;
                the body is then available from ``get_error_stream``
            ProtocolError: If the response cannot be parsed
        """
        response = await self._receive_response_head()
        if response.status_code >= 400:
            raise ResponseStatusError(response.status_code, response.reason.decode("latin-1"))
        return self._create_reader()

    async def get_error_stream(self) -> ResponseBodyReader:
        """Get the reader for the response body whatever the status."""
        await self._receive_response_head()
        return self._create_reader()

    async def get_status_code(self) -> int:
        response = await self._receive_response_head()
        return response.status_code

    async def get_status_message(self) -> str:
        response = await self._receive_response_head()
        return response.reason.decode("latin-1")

    async def get_response_headers(self) -> Dict[str, str]:
        """Get response headers with lower-cased names; repeated headers are comma-joined."""
        response = await self._receive_response_head()
        headers: Dict[str, str] = {}
        for name, value in response.headers:
            key = name.decode("latin-1")
            text = value.decode("latin-1")
            headers[key] = f"{headers[key]}, {text}" if key in headers else text
        return headers

    async def close(self) -> None:
        """Close the connection and cleanup resources."""
        if self._state is ConnectionState.CLOSED:
            return

        self._state = ConnectionState.CLOSED
        if self._stream is not None:
            await self._stream.aclose()

        logger.debug(
            f"Connection to {self._url.host}:{self._url.port} closed "
            f"(sent={self._bytes_sent}, received={self._bytes_received})"
        )

    def _check_head_pending(self) -> None:
        if self._state not in (ConnectionState.NEW, ConnectionState.CONNECTED):
            raise StreamError("Request headers were already sent")

    def _create_reader(self) -> ResponseBodyReader:
        return ResponseBodyReader(self, charset=self._response_charset())

    def _response_charset(self) -> Optional[str]:
        if self._response is None:
            return None
        for name, value in self._response.headers:
            if name == b"content-type":
                for param in value.decode("latin-1").split(";")[1:]:
                    key, _, charset = param.strip().partition("=")
                    if key.lower() == "charset" and charset:
                        return charset.strip('"')
        return None

    def _build_headers(self, content_length: Optional[int]) -> List[Tuple[bytes, bytes]]:
        names = {name.lower() for name in self._headers}
        headers: List[Tuple[bytes, bytes]] = []

        if "host" not in names:
            host = format_host_header(self._url.host, self._url.port, self._url.scheme)
            headers.append((b"Host", host.encode("idna") if not host.isascii() else host.encode()))
        if "user-agent" not in names:
            headers.append((b"User-Agent", self._options.user_agent.encode("latin-1")))
        if "connection" not in names:
            headers.append((b"Connection", b"close"))

        for name, value in self._headers.items():
            if name.lower() in _FRAMING_HEADERS:
                continue
            headers.append((name.encode("latin-1"), value.encode("latin-1")))

        if content_length is not None:
            headers.append((b"Content-Length", str(content_length).encode()))

        return headers

    async def _send_request_head(self, content_length: Optional[int]) -> None:
        """Send the request line and headers."""
        if self._state is not ConnectionState.CONNECTED:
            raise StreamError(f"Cannot send request in state {self._state.value}")

        h11_request = h11.Request(
            method=self._method.encode(),
            target=self._url.target.encode("ascii", errors="strict"),
            headers=self._build_headers(content_length),
        )
        await self._send_event(h11_request)
        self._state = ConnectionState.SENDING

    async def _send_body_chunk(self, data: bytes) -> None:
        """Send part of a fixed-length body, sending the head first if needed."""
        if self._state is ConnectionState.CONNECTED:
            await self._send_request_head(self._fixed_length)
        if data:
            await self._send_event(h11.Data(data=data))

    async def _end_request(self) -> None:
        """Finish a streamed body."""
        if self._state is ConnectionState.CONNECTED:
            await self._send_request_head(self._fixed_length)
        await self._send_event(h11.EndOfMessage())
        self._state = ConnectionState.SENT

    async def _send_complete_request(self, body: bytes) -> None:
        """Send head, body and end of message for a buffered body."""
        await self._send_request_head(len(body))
        if body:
            await self._send_event(h11.Data(data=body))
        await self._send_event(h11.EndOfMessage())
        self._state = ConnectionState.SENT

    async def _ensure_request_sent(self) -> None:
        """Send whatever part of the request has not been sent yet."""
        if self._state is ConnectionState.NEW:
            raise StreamError("Connection is not connected")

        if self._writer is not None and not self._writer.closed:
            await self._writer.close()
        elif self._state is ConnectionState.CONNECTED:
            empty_body = 0 if self._method in self.BODY_METHODS else None
            await self._send_request_head(empty_body)
            await self._send_event(h11.EndOfMessage())
            self._state = ConnectionState.SENT

    async def _send_event(self, event: Any) -> None:
        """
        Send an h11 event to the network stream.

        Args:
            event: The h11 event to send
        """
        if self._stream is None:
            raise StreamError("Connection is not connected")

        try:
            data = self._h11_connection.send(event)
        except h11.LocalProtocolError as e:
            raise ProtocolError(str(e), cause=e) from e

        if data:
            try:
                await asyncio.wait_for(self._stream.write(data), timeout=self._write_timeout)
            except asyncio.TimeoutError as e:
                raise TimeoutError("Writing request", timeout=self._write_timeout) from e
            self._bytes_sent += len(data)

    async def _receive_event(self) -> Any:
        """Get the next h11 event, reading from the network as needed."""
        if self._stream is None:
            raise StreamError("Connection is not connected")

        while True:
            try:
                event = self._h11_connection.next_event()
            except h11.RemoteProtocolError as e:
                raise ProtocolError(str(e), cause=e) from e

            if event is not h11.NEED_DATA:
                return event

            if self._eof:
                raise ProtocolError("Connection closed unexpectedly")

            try:
                data = await asyncio.wait_for(
                    self._stream.read(self.READ_CHUNK_SIZE),
                    timeout=self._read_timeout,
                )
            except asyncio.TimeoutError as e:
                raise TimeoutError("Reading response", timeout=self._read_timeout) from e

            if not data:
                self._eof = True
            self._h11_connection.receive_data(data)
            self._bytes_received += len(data)

    async def _receive_response_head(self) -> h11.Response:
        """
        Receive the response status line and headers once.

        Returns:
            The h11 Response event
        """
        if self._response is not None:
            return self._response

        if self._state is ConnectionState.CLOSED:
            raise StreamError("Connection is closed")

        await self._ensure_request_sent()

        while True:
            event = await self._receive_event()

            if isinstance(event, h11.InformationalResponse):
                continue

            if isinstance(event, h11.Response):
                self._response = event
                self._state = ConnectionState.RECEIVING
                logger.debug(
                    f"{self._method} {self._raw_url} -> {event.status_code} "
                    f"{event.reason.decode('latin-1')}"
                )
                return event

            if isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Connection closed by server")

            raise ProtocolError(f"Unexpected event before response: {type(event).__name__}")

    async def _receive_body_chunk(self) -> Optional[bytes]:
        """
        Receive a chunk of response body.

        Returns:
            Chunk of data or None if end of body
        """
        if self._state is ConnectionState.DONE:
            return None

        if self._response is None:
            raise StreamError("Response head has not been received")

        while True:
            event = await self._receive_event()

            if isinstance(event, h11.Data):
                return bytes(event.data)

            if isinstance(event, h11.EndOfMessage):
                self._state = ConnectionState.DONE
                return None

            if isinstance(event, h11.ConnectionClosed):
                raise ProtocolError("Connection closed by server")

    @property
    def method(self) -> str:
        return self._method

    @property
    def url(self) -> str:
        return self._raw_url

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_closed(self) -> bool:
        """Check if connection is closed."""
        return self._state is ConnectionState.CLOSED

    @property
    def metrics(self) -> Dict[str, Any]:
        """
        Get connection metrics.

        Returns:
            Dictionary with connection metrics
        """
        return {
            "bytes_sent": self._bytes_sent,
            "bytes_received": self._bytes_received,
            "state": self._state.value,
            "status_code": self._response.status_code if self._response else None,
        }
