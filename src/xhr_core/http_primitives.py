"""
HTTP primitives for xhr_core.

This module defines the core data structures for requests, responses and
lifecycle events. All classes are immutable to ensure thread safety and
simplify reasoning.
"""

import json
from dataclasses import dataclass, field
from enum import IntEnum
from types import MappingProxyType
from typing import (
    TYPE_CHECKING,
    Any,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Union,
)

if TYPE_CHECKING:
    from .body import MultipartForm  # Forward reference


# Type aliases for better readability
HttpHeaders = Dict[str, str]
StatusCode = int
Payload = Union[None, str, bytes, Mapping[str, Any], List[Any], "MultipartForm"]

DEFAULT_USER_AGENT = "xhr_core/0.1.0"


class ReadyState(IntEnum):
    """Lifecycle stages of a single request, in the order they are entered."""
    UNSENT = 0
    OPENED = 1
    HEADERS_RECEIVED = 2
    LOADING = 3
    DONE = 4


@dataclass(frozen=True)
class HttpOptions:
    """
    Per-request transport configuration.

    The request lifecycle never inspects these values; they are handed
    to the connection adapter unchanged. ``None`` timeouts fall back to
    the adapter defaults.
    """

    connect_timeout: Optional[float] = None
    read_timeout: Optional[float] = None
    write_timeout: Optional[float] = None
    verify_ssl: bool = True
    ca_file: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        """Validate option values after initialization."""
        for name in ("connect_timeout", "read_timeout", "write_timeout"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be positive")


@dataclass(frozen=True)
class Request:
    """
    Immutable request description.

    A Request is built by the client for every verb call and handed to
    the dispatcher. Headers are copied into a read-only mapping so the
    caller's dictionary can be reused without affecting queued requests.
    """

    method: str
    url: str
    payload: Payload = None
    headers: Mapping[str, str] = field(default_factory=dict)
    options: HttpOptions = field(default_factory=HttpOptions)

    def __post_init__(self) -> None:
        """Freeze headers and validate field types."""
        if not isinstance(self.method, str):
            raise ValueError("method must be str")

        if not isinstance(self.options, HttpOptions):
            raise ValueError("options must be HttpOptions")

        for name, value in self.headers.items():
            if not isinstance(name, str) or not isinstance(value, str):
                raise ValueError("header names and values must be str")

        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @classmethod
    def create(
        cls,
        method: str,
        url: str,
        payload: Payload = None,
        headers: Optional[Mapping[str, str]] = None,
        options: Optional[HttpOptions] = None,
    ) -> "Request":
        """
        Create a Request, filling in empty defaults.

        Args:
            method: HTTP method (GET, POST, etc.)
            url: Absolute request URL
            payload: Optional request body
            headers: Optional mapping of header names to values
            options: Optional transport options

        Returns:
            New Request instance
        """
        return cls(
            method=method,
            url=url,
            payload=payload,
            headers=headers or {},
            options=options or HttpOptions(),
        )

    @property
    def content_type(self) -> Optional[str]:
        """Get the Content-Type header, checking both common spellings."""
        value = self.headers.get("Content-Type")
        if value is None:
            value = self.headers.get("content-type")
        return value

    @property
    def has_body(self) -> bool:
        """Whether this request writes a body."""
        return self.method != "GET" and self.payload is not None


@dataclass(frozen=True)
class HttpResponse:
    """
    Immutable HTTP response representation.

    The body has already been drained and decoded by the time a response
    is produced; ``text`` holds every line of it terminated by ``\\n``.
    """

    status_code: StatusCode
    status_text: str
    text: str
    headers: Mapping[str, str] = field(default_factory=dict)
    url: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate response data after initialization."""
        if not isinstance(self.status_code, int):
            raise ValueError("status_code must be int")

        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    @property
    def ok(self) -> bool:
        """True for 2xx and 3xx responses."""
        return 200 <= self.status_code < 400

    def get_header(self, name: str) -> Optional[str]:
        """Get a header value by name (case-insensitive)."""
        name_lower = name.lower()
        for header_name, header_value in self.headers.items():
            if header_name.lower() == name_lower:
                return header_value

        return None

    def has_header(self, name: str) -> bool:
        """Check if a header exists (case-insensitive)."""
        return self.get_header(name) is not None

    def json(self, loads: Callable[[str], Any] = json.loads) -> Any:
        """Decode the body as JSON."""
        return loads(self.text)


@dataclass(frozen=True)
class UploadProgress:
    """Progress of a single file part of a multipart upload."""

    file: str
    uploaded: int
    total: int
    file_number: int = 1
    files_count: int = 1

    @property
    def fraction(self) -> float:
        """Uploaded share of the file, 1.0 for empty files."""
        if self.total == 0:
            return 1.0
        return self.uploaded / self.total


@dataclass(frozen=True)
class ReadyStateChange:
    """Notification that a request entered a new ready state."""

    method: str
    url: str
    state: ReadyState
