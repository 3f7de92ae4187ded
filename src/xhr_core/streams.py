"""
Body streams for xhr_core.

This module provides the output stream a request body is written to and
the input stream a response body is drained from. Both are handed out by
an HTTP11Connection and delegate the protocol work back to it.
"""

import re
from typing import TYPE_CHECKING, AsyncIterator, List, Optional

from .exceptions import StreamError

if TYPE_CHECKING:
    from .http11 import HTTP11Connection  # Forward reference

DEFAULT_CHARSET = "utf-8"

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class RequestBodyWriter:
    """
    Output stream for a request body.

    In streaming mode (the connection has a fixed content length) every
    ``write`` goes straight to the network. Otherwise writes are buffered
    and the whole body is sent with a Content-Length header on ``close``;
    ``flush`` is then a no-op.
    """

    def __init__(self, connection: "HTTP11Connection", streaming: bool) -> None:
        self._connection = connection
        self._streaming = streaming
        self._buffer: List[bytes] = []
        self._closed = False
        self._bytes_written = 0

    async def write(self, data: bytes) -> None:
        """Write a chunk of the body."""
        if self._closed:
            raise StreamError("Cannot write to closed stream")

        if self._streaming:
            await self._connection._send_body_chunk(data)
        else:
            self._buffer.append(bytes(data))
        self._bytes_written += len(data)

    async def flush(self) -> None:
        """Make sure everything written so far has reached the transport."""
        if self._closed:
            raise StreamError("Cannot flush closed stream")

    async def close(self) -> None:
        """Finish the request body. Closing twice is a no-op."""
        if self._closed:
            return
        self._closed = True

        if self._streaming:
            await self._connection._end_request()
        else:
            body = b"".join(self._buffer)
            self._buffer = []
            await self._connection._send_complete_request(body)

    @property
    def streaming(self) -> bool:
        return self._streaming

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def bytes_written(self) -> int:
        return self._bytes_written


class ResponseBodyReader:
    """
    Input stream for a response body.

    Iterating yields body chunks as they arrive from the connection;
    ``aread`` and ``aread_text`` drain the remaining body.
    """

    def __init__(self, connection: "HTTP11Connection", charset: Optional[str] = None) -> None:
        self._connection = connection
        self._charset = charset or DEFAULT_CHARSET
        self._bytes_read = 0
        self._exhausted = False

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self

    async def __anext__(self) -> bytes:
        if self._exhausted:
            raise StopAsyncIteration

        chunk = await self._connection._receive_body_chunk()
        if chunk is None:
            self._exhausted = True
            raise StopAsyncIteration

        self._bytes_read += len(chunk)
        return chunk

    async def aread(self) -> bytes:
        """Read the rest of the body and return it as bytes."""
        chunks = []
        async for chunk in self:
            chunks.append(chunk)

        return b"".join(chunks)

    async def aread_text(self) -> str:
        """
        Read the rest of the body as text.

        Every line of the decoded body is terminated with ``\\n``, whatever
        line break the server used.
        """
        data = await self.aread()
        try:
            text = data.decode(self._charset, errors="replace")
        except LookupError:
            text = data.decode(DEFAULT_CHARSET, errors="replace")
        return join_lines(text)

    @property
    def charset(self) -> str:
        return self._charset

    @property
    def bytes_read(self) -> int:
        return self._bytes_read


def split_lines(text: str) -> List[str]:
    """
    Split text on ``\\r\\n``, ``\\r`` or ``\\n``.

    A trailing line break does not produce an empty final line.
    """
    if not text:
        return []

    lines = _LINE_BREAK.split(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def join_lines(text: str) -> str:
    """Normalize ``text`` so that every line ends with a single ``\\n``."""
    return "".join(line + "\n" for line in split_lines(text))
