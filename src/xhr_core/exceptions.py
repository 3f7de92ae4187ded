"""
Custom exceptions for xhr_core.

This module defines the exception hierarchy used throughout
the library for error handling and debugging, together with the
error taxonomy reported to callers through ``HttpError``.
"""

from enum import Enum
from typing import Optional


class HTTPCoreError(Exception):
    """Base exception for all xhr_core errors."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConnectionError(HTTPCoreError):
    """Raised when there's an error with network connections."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Connection error: {message}", cause)


class ProtocolError(HTTPCoreError):
    """Raised when there's an error with HTTP protocol handling."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Protocol error: {message}", cause)


class TimeoutError(HTTPCoreError):
    """Raised when an operation times out."""

    def __init__(self, message: str, timeout: Optional[float] = None) -> None:
        if timeout is not None:
            message = f"{message} (timeout: {timeout}s)"
        super().__init__(f"Timeout error: {message}")


class StreamError(HTTPCoreError):
    """Raised when there's an error with stream operations."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Stream error: {message}", cause)


class InvalidURLError(HTTPCoreError):
    """Raised when a URL cannot be used to open a connection."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Invalid URL: {message}", cause)


class InvalidMethodError(HTTPCoreError):
    """Raised when a request method is not supported by the connection."""

    def __init__(self, method: object) -> None:
        super().__init__(f"Invalid request method: {method!r}")
        self.method = method


class ResponseStatusError(HTTPCoreError):
    """Raised when the success stream is requested for an error status."""

    def __init__(self, status_code: int, reason: str = "") -> None:
        super().__init__(f"Server returned HTTP {status_code} {reason}".rstrip())
        self.status_code = status_code
        self.reason = reason


class DispatchError(HTTPCoreError):
    """Raised when a job cannot be queued on a dispatcher."""


class ErrorKind(Enum):
    """Classification of a failed request."""
    INVALID_URL = "invalid_url"
    INVALID_REQUEST_METHOD = "invalid_request_method"
    CONNECTION_REFUSED = "connection_refused"
    SSL_CERTIFICATE_INVALID = "ssl_certificate_invalid"
    UNKNOWN = "unknown"


class ErrorStage(Enum):
    """Phase of the request lifecycle in which a failure was detected."""
    CONNECTION = "connection"
    HEADERS = "headers"
    SEND = "send"
    UPLOAD = "upload"
    READ = "read"
    UNKNOWN = "unknown"


class HttpError(HTTPCoreError):
    """
    Classified failure of a single request.

    This is the error delivered to ``on_error`` listeners. Its kind,
    stage and cause are fixed at construction.
    """

    def __init__(
        self,
        kind: ErrorKind,
        stage: ErrorStage,
        cause: Optional[BaseException] = None,
    ) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{kind.name} during {stage.value}{detail}", cause)
        self._kind = kind
        self._stage = stage

    @property
    def kind(self) -> ErrorKind:
        """Get the error classification."""
        return self._kind

    @property
    def stage(self) -> ErrorStage:
        """Get the lifecycle stage that failed."""
        return self._stage

    def __repr__(self) -> str:
        return f"HttpError(kind={self._kind.name}, stage={self._stage.name}, cause={self.cause!r})"
