"""
Request lifecycle for xhr_core.

This module implements RequestLifecycle, the state machine that takes a
single Request from UNSENT to DONE over an HTTP11Connection. Every
failure is classified into an HttpError at the point it is detected and
ends the run; nothing after a failure is attempted.
"""

import errno
import json
import logging
import ssl
import time
from contextlib import aclosing
from typing import Callable, List, Optional

from .body import JsonEncoder, MultipartForm, MultipartPart, encode_body, iter_file_chunks
from .exceptions import (
    ErrorKind,
    ErrorStage,
    HTTPCoreError,
    HttpError,
    InvalidMethodError,
    InvalidURLError,
    StreamError,
)
from .http11 import HTTP11Connection
from .http_primitives import HttpResponse, ReadyState, Request, UploadProgress
from .network.backend import NetworkBackend
from .streams import RequestBodyWriter

logger = logging.getLogger(__name__)

StateListener = Callable[[ReadyState], None]
ProgressListener = Callable[[UploadProgress], None]


def _ignore(_event: object) -> None:
    return None


def classify_connect_error(error: BaseException) -> ErrorKind:
    """
    Classify a failure raised while connecting.

    Library exceptions are unwrapped to the transport exception that
    caused them. TLS failures map to SSL_CERTIFICATE_INVALID, refused
    connections (by exception type or errno) to CONNECTION_REFUSED and
    everything else to UNKNOWN. An exception group from trying several
    addresses gets a kind only when every attempt failed the same way.
    """
    cause = error
    if isinstance(error, HTTPCoreError) and error.cause is not None:
        cause = error.cause

    if isinstance(cause, BaseExceptionGroup):
        kinds = {classify_connect_error(exc) for exc in cause.exceptions}
        return kinds.pop() if len(kinds) == 1 else ErrorKind.UNKNOWN
    if isinstance(cause, ssl.SSLError):
        return ErrorKind.SSL_CERTIFICATE_INVALID
    if isinstance(cause, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(cause, OSError) and cause.errno == errno.ECONNREFUSED:
        return ErrorKind.CONNECTION_REFUSED
    return ErrorKind.UNKNOWN


class RequestLifecycle:
    """
    Drives one request through its ready states.

    ``run`` returns the HttpResponse on success and raises HttpError on
    failure; exactly one of the two happens per instance. Ready state
    changes and upload progress are reported synchronously to the given
    listeners as they happen.
    """

    UPLOAD_CHUNK_SIZE = 512

    def __init__(
        self,
        request: Request,
        backend: NetworkBackend,
        on_ready_state_change: Optional[StateListener] = None,
        on_upload_progress: Optional[ProgressListener] = None,
        json_encoder: JsonEncoder = json.dumps,
    ):
        self._request = request
        self._backend = backend
        self._on_ready_state_change = on_ready_state_change or _ignore
        self._on_upload_progress = on_upload_progress or _ignore
        self._json_encoder = json_encoder

        self._connection: Optional[HTTP11Connection] = None
        self._ready_state = ReadyState.UNSENT
        self._error: Optional[HttpError] = None
        self._history: List[ReadyState] = [ReadyState.UNSENT]
        self._started = False

    async def run(self) -> HttpResponse:
        """
        Execute the request.

        Returns:
            The response, produced at the DONE transition

        Raises:
            HttpError: The classified failure
            RuntimeError: If the lifecycle was already run
        """
        if self._started:
            raise RuntimeError("RequestLifecycle can only be run once")
        self._started = True

        start_time = time.time()
        try:
            self._setup()
            await self._connect()
            await self._send_body()
            text = await self._read_response()
            response = await self._finalize(text)
        except HttpError as error:
            logger.error(
                f"{self._request.method} {self._request.url} failed: "
                f"{error.kind.name} during {error.stage.value} ({time.time() - start_time:.3f}s)"
            )
            raise
        finally:
            await self._close_connection()

        logger.debug(
            f"{self._request.method} {self._request.url} -> {response.status_code} "
            f"({time.time() - start_time:.3f}s)"
        )
        return response

    def _setup(self) -> None:
        """Open the connection adapter and apply the request headers."""
        request = self._request
        try:
            connection = HTTP11Connection.open(
                request.method, request.url, self._backend, request.options
            )
        except InvalidURLError as e:
            raise self._fail(ErrorKind.INVALID_URL, ErrorStage.CONNECTION, e) from e
        except InvalidMethodError as e:
            raise self._fail(ErrorKind.INVALID_REQUEST_METHOD, ErrorStage.CONNECTION, e) from e
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.CONNECTION, e) from e

        self._connection = connection
        try:
            for name, value in request.headers.items():
                connection.set_header(name, value)
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.HEADERS, e) from e

        self._transition(ReadyState.OPENED)

    async def _connect(self) -> None:
        connection = self._require_connection()
        try:
            await connection.connect()
        except Exception as e:
            raise self._fail(classify_connect_error(e), ErrorStage.CONNECTION, e) from e

        self._transition(ReadyState.OPENED)

    async def _send_body(self) -> None:
        """Write the request body, if any."""
        if self._error is not None:
            return

        request = self._request
        if not request.has_body:
            # Nothing to write; the head goes out with the first read.
            self._transition(ReadyState.HEADERS_RECEIVED)
            return

        connection = self._require_connection()
        content_type = request.content_type
        try:
            if content_type is not None:
                connection.set_header("Content-Type", content_type)
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.HEADERS, e) from e

        if isinstance(request.payload, MultipartForm):
            await self._send_multipart(request.payload)
        else:
            await self._send_plain(content_type)

        self._transition(ReadyState.HEADERS_RECEIVED)

    async def _send_plain(self, content_type: Optional[str]) -> None:
        connection = self._require_connection()
        try:
            data = encode_body(self._request.payload, content_type, self._json_encoder)
            output = connection.get_output_stream()
            await output.write(data)
            await output.flush()
            await output.close()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.SEND, e) from e

    async def _send_multipart(self, form: MultipartForm) -> None:
        connection = self._require_connection()
        try:
            body = form.measure()
            connection.set_fixed_content_length(body.content_length)
            output = connection.get_output_stream()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.SEND, e) from e

        files_count = body.files_count
        file_number = 0
        for part in body.parts:
            await self._write(output, part.pre_content)
            if part.is_file:
                file_number += 1
                await self._upload_file(output, part, file_number, files_count)
            else:
                await self._write(output, part.content)
            await self._write(output, part.post_content)

        try:
            await output.write(body.finish_line)
            await output.flush()
            await output.close()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.SEND, e) from e

    async def _write(self, output: RequestBodyWriter, data: bytes) -> None:
        try:
            await output.write(data)
            await output.flush()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.SEND, e) from e

    async def _upload_file(
        self,
        output: RequestBodyWriter,
        part: MultipartPart,
        file_number: int,
        files_count: int,
    ) -> None:
        """
        Stream one file part, reporting progress after every chunk.

        At most the size measured for the part is sent, so progress never
        passes ``total`` and the body matches the announced length.
        """
        path = part.field.path  # type: ignore[union-attr]
        total = part.content_length
        uploaded = 0
        try:
            chunks = iter_file_chunks(path, self.UPLOAD_CHUNK_SIZE, limit=total)
            async with aclosing(chunks):
                async for chunk in chunks:
                    await output.write(chunk)
                    await output.flush()
                    uploaded += len(chunk)
                    self._on_upload_progress(
                        UploadProgress(
                            file=path,
                            uploaded=uploaded,
                            total=total,
                            file_number=file_number,
                            files_count=files_count,
                        )
                    )
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.UPLOAD, e) from e

    async def _read_response(self) -> str:
        """Drain the response body, falling back to the error stream."""
        connection = self._require_connection()
        self._transition(ReadyState.LOADING)

        try:
            reader = await connection.get_input_stream()
            return await reader.aread_text()
        except Exception as e:
            logger.debug(f"Reading input stream failed ({e}); reading error stream")

        try:
            reader = await connection.get_error_stream()
            return await reader.aread_text()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.READ, e) from e

    async def _finalize(self, text: str) -> HttpResponse:
        connection = self._require_connection()
        try:
            status_code = await connection.get_status_code()
            status_text = await connection.get_status_message()
            headers = await connection.get_response_headers()
        except Exception as e:
            raise self._fail(ErrorKind.UNKNOWN, ErrorStage.READ, e) from e

        self._transition(ReadyState.DONE)
        return HttpResponse(
            status_code=status_code,
            status_text=status_text,
            text=text,
            headers=headers,
            url=self._request.url,
        )

    def _require_connection(self) -> HTTP11Connection:
        if self._connection is None:
            raise StreamError("Connection has not been opened")
        return self._connection

    async def _close_connection(self) -> None:
        if self._connection is None:
            return
        try:
            await self._connection.close()
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")

    def _fail(self, kind: ErrorKind, stage: ErrorStage, cause: BaseException) -> HttpError:
        """Record the request's single error and return it for raising."""
        if self._error is None:
            self._error = HttpError(kind, stage, cause)
        return self._error

    def _transition(self, state: ReadyState) -> None:
        """
        Move to ``state`` and notify the listener.

        Re-entering the current state is a no-op; moving backwards is a bug.
        """
        if self._error is not None or state == self._ready_state:
            return
        if state < self._ready_state:
            raise RuntimeError(
                f"Ready state cannot go from {self._ready_state.name} to {state.name}"
            )

        self._ready_state = state
        self._history.append(state)
        logger.debug(f"{self._request.method} {self._request.url}: {state.name}")
        self._on_ready_state_change(state)

    @property
    def request(self) -> Request:
        return self._request

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def error(self) -> Optional[HttpError]:
        return self._error

    @property
    def history(self) -> List[ReadyState]:
        """Every ready state entered so far, starting with UNSENT."""
        return list(self._history)
