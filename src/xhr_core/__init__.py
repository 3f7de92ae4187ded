"""
xhr_core - asynchronous HTTP client core

Runs GET/POST/PUT/PATCH/DELETE requests through a ready-state lifecycle
on a per-client worker, with JSON, urlencoded and streaming multipart
bodies, and delivers responses, classified errors and upload progress
through callbacks.
"""

__version__ = "0.1.0"
__author__ = "Developer"
__email__ = "dev@example.com"

# Import main components for easy access
from .client import HttpClient
from .http_primitives import (
    HttpOptions,
    HttpResponse,
    ReadyState,
    ReadyStateChange,
    Request,
    UploadProgress,
)
from .body import FileField, MultipartForm, TextField
from .dispatch import (
    CallbackSink,
    Dispatcher,
    EventChannel,
    LoopCallbackSink,
    QueueCallbackSink,
)
from .exceptions import (
    ConnectionError,
    DispatchError,
    ErrorKind,
    ErrorStage,
    HTTPCoreError,
    HttpError,
    ProtocolError,
    StreamError,
)
from .http11 import HTTP11Connection, ConnectionState
from .lifecycle import RequestLifecycle
from .url import compose_url

__all__ = [
    "HttpClient",
    "HttpOptions",
    "HttpResponse",
    "ReadyState",
    "ReadyStateChange",
    "Request",
    "UploadProgress",
    "FileField",
    "MultipartForm",
    "TextField",
    "CallbackSink",
    "Dispatcher",
    "EventChannel",
    "LoopCallbackSink",
    "QueueCallbackSink",
    "ConnectionError",
    "DispatchError",
    "ErrorKind",
    "ErrorStage",
    "HTTPCoreError",
    "HttpError",
    "ProtocolError",
    "StreamError",
    "HTTP11Connection",
    "ConnectionState",
    "RequestLifecycle",
    "compose_url",
]
