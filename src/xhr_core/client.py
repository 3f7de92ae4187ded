"""
Public request API for xhr_core.

HttpClient is the entry point: verb methods build a Request, queue it on
the client's dispatcher and return immediately. Outcomes are delivered
through the client's event channels on its callback sink.
"""

import json
import logging
from typing import Any, Mapping, Optional

from .body import JsonEncoder, apply_content_type
from .dispatch import CallbackSink, Dispatcher, EventChannel, Handler, LoopCallbackSink
from .exceptions import DispatchError, ErrorKind, ErrorStage, HttpError
from .http_primitives import (
    HttpOptions,
    HttpResponse,
    Payload,
    ReadyState,
    ReadyStateChange,
    Request,
    UploadProgress,
)
from .lifecycle import RequestLifecycle
from .network.asyncio_backend import AsyncioNetworkBackend
from .network.backend import NetworkBackend
from .url import compose_url

logger = logging.getLogger(__name__)


class HttpClient:
    """
    Asynchronous HTTP client with callback delivery.

    Requests made through one client run one at a time, in the order
    they were made. For every request exactly one response or error
    event is emitted, preceded by any upload progress events.

    Example:
        client = HttpClient("https://api.example.com")
        client.on_response(lambda response: print(response.status_code))
        client.on_error(lambda error: print(error.kind))
        client.post("/items", {"name": "x"})
        await client.join()
    """

    def __init__(
        self,
        base_url: str = "",
        backend: Optional[NetworkBackend] = None,
        sink: Optional[CallbackSink] = None,
        json_encoder: JsonEncoder = json.dumps,
        default_options: Optional[HttpOptions] = None,
        max_pending: int = 0,
    ):
        """
        Initialize the client.

        Args:
            base_url: Prefix for relative URLs passed to the verb methods
            backend: Network backend; defaults to asyncio streams
            sink: Where callbacks are delivered; defaults to the running
                event loop
            json_encoder: Serializer for structured payloads
            default_options: Options used when a call passes none
            max_pending: Bound on queued requests; 0 means unbounded
        """
        self._base_url = base_url or ""
        self._backend = backend or AsyncioNetworkBackend()
        self._sink = sink or LoopCallbackSink()
        self._json_encoder = json_encoder
        self._default_options = default_options or HttpOptions()
        self._dispatcher = Dispatcher(max_pending=max_pending)

        self.responses: EventChannel[HttpResponse] = EventChannel("response", self._sink)
        self.errors: EventChannel[HttpError] = EventChannel("error", self._sink)
        self.upload_progress: EventChannel[UploadProgress] = EventChannel(
            "upload progress", self._sink
        )
        self.ready_state_changes: EventChannel[ReadyStateChange] = EventChannel(
            "ready state", self._sink
        )

    def on_response(self, handler: Optional[Handler[HttpResponse]]) -> None:
        self.responses.subscribe(handler)

    def on_error(self, handler: Optional[Handler[HttpError]]) -> None:
        self.errors.subscribe(handler)

    def on_upload_progress(self, handler: Optional[Handler[UploadProgress]]) -> None:
        self.upload_progress.subscribe(handler)

    def on_ready_state_change(self, handler: Optional[Handler[ReadyStateChange]]) -> None:
        self.ready_state_changes.subscribe(handler)

    def get(
        self,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        return self.request("GET", url, payload, headers, options)

    def post(
        self,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        return self.request("POST", url, payload, headers, options)

    def put(
        self,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        return self.request("PUT", url, payload, headers, options)

    def patch(
        self,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        return self.request("PATCH", url, payload, headers, options)

    def delete(
        self,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        return self.request("DELETE", url, payload, headers, options)

    def request(
        self,
        method: str,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        """
        Queue a request.

        Args:
            method: HTTP method
            url: Absolute URL, or a path joined to the client's base URL
            payload: Optional body; GET requests never send one
            headers: Optional request headers
            options: Optional transport options

        Returns:
            The Request that was queued

        Raises:
            DispatchError: If the client is closed or its queue is full
        """
        request = self.build_request(method, url, payload, headers, options)
        self._dispatcher.submit(
            lambda: self._execute(request),
            on_cancel=lambda: self._cancelled(request),
        )
        logger.debug(f"Queued {request.method} {request.url}")
        return request

    def build_request(
        self,
        method: str,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> Request:
        """Build the Request a verb call would queue, without queueing it."""
        return Request(
            method=method,
            url=compose_url(self._base_url, url),  # type: ignore[arg-type]
            payload=payload,
            headers=apply_content_type(method, payload, headers),
            options=options or self._default_options,
        )

    async def join(self) -> None:
        """Wait until every queued request has finished."""
        await self._dispatcher.join()

    async def aclose(self) -> None:
        """
        Stop the worker.

        The running request is cancelled and queued ones are discarded;
        each of them is reported to the error handler as an UNKNOWN error
        whose cause is a DispatchError.
        """
        await self._dispatcher.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.join()
        await self.aclose()

    async def _execute(self, request: Request) -> None:
        """Run one request and emit its outcome."""
        lifecycle = RequestLifecycle(
            request,
            self._backend,
            on_ready_state_change=lambda state: self._emit_ready_state(request, state),
            on_upload_progress=self.upload_progress.emit,
            json_encoder=self._json_encoder,
        )
        try:
            response = await lifecycle.run()
        except HttpError as error:
            self.errors.emit(error)
        except Exception as e:
            logger.exception(f"Unexpected failure running {request.method} {request.url}")
            self.errors.emit(HttpError(ErrorKind.UNKNOWN, ErrorStage.UNKNOWN, e))
        else:
            self.responses.emit(response)

    def _cancelled(self, request: Request) -> None:
        """Report a request that was stopped by ``aclose``."""
        logger.debug(f"Cancelled {request.method} {request.url}")
        cause = DispatchError(f"{request.method} {request.url} cancelled: client closed")
        self.errors.emit(HttpError(ErrorKind.UNKNOWN, ErrorStage.UNKNOWN, cause))

    def _emit_ready_state(self, request: Request, state: ReadyState) -> None:
        self.ready_state_changes.emit(ReadyStateChange(request.method, request.url, state))

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def backend(self) -> NetworkBackend:
        return self._backend

    @property
    def sink(self) -> CallbackSink:
        return self._sink

    @property
    def pending(self) -> int:
        """Number of requests queued but not yet started."""
        return self._dispatcher.pending
