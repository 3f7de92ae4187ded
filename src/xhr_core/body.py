"""
Request body encoding for xhr_core.

This module turns request payloads into bytes. Plain payloads (text,
bytes, JSON-serializable objects and urlencoded key/value maps) become a
single chunk; multipart forms are described as a sequence of framing
steps so that file contents can be streamed in small chunks with
progress reporting.
"""

import asyncio
import json
import mimetypes
import os
import secrets
from dataclasses import dataclass
from typing import (
    Any,
    AsyncIterator,
    Callable,
    Dict,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)
from urllib.parse import urlencode

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_URL_ENCODED = "application/x-www-form-urlencoded"
CONTENT_TYPE_MULTIPART = "multipart/form-data"
DEFAULT_FILE_CONTENT_TYPE = "application/octet-stream"

CRLF = b"\r\n"

JsonEncoder = Callable[[Any], str]


@dataclass(frozen=True)
class TextField:
    """A named text value in a multipart form."""

    name: str
    value: str


@dataclass(frozen=True)
class FileField:
    """A named file in a multipart form, streamed from ``path``."""

    name: str
    path: str
    content_type: str = DEFAULT_FILE_CONTENT_TYPE

    @property
    def filename(self) -> str:
        """Base name sent in the Content-Disposition header."""
        return os.path.basename(self.path)

    @property
    def size(self) -> int:
        """Current size of the file on disk."""
        return os.path.getsize(self.path)


FormField = Union[TextField, FileField]


@dataclass(frozen=True)
class MultipartPart:
    """
    One part of a multipart body, split into its writing steps.

    ``pre_content`` holds the boundary line and part headers; for text
    fields ``content`` holds the encoded value, for file fields the
    content is streamed from ``field.path``. ``content_length`` is the
    content size measured when the part was built; file parts never
    send more than that.
    """

    field: FormField
    pre_content: bytes
    content: bytes
    post_content: bytes
    content_length: int

    @property
    def is_file(self) -> bool:
        return isinstance(self.field, FileField)


@dataclass(frozen=True)
class MultipartBody:
    """The parts of a form and its closing line, measured together."""

    parts: Tuple[MultipartPart, ...]
    finish_line: bytes

    @property
    def content_length(self) -> int:
        """Total body size in bytes."""
        total = len(self.finish_line)
        for part in self.parts:
            total += len(part.pre_content) + part.content_length + len(part.post_content)
        return total

    @property
    def files_count(self) -> int:
        return sum(1 for part in self.parts if part.is_file)


class MultipartForm:
    """
    Ordered multipart/form-data payload.

    Fields are written in the order they were added. The boundary is
    generated randomly per form unless one is supplied.
    """

    def __init__(self, boundary: Optional[str] = None) -> None:
        self._boundary = boundary or f"----xhrcore{secrets.token_hex(16)}"
        self._fields: List[FormField] = []

    def add_field(self, name: str, value: str) -> "MultipartForm":
        """Append a text field."""
        self._fields.append(TextField(name=name, value=str(value)))
        return self

    def add_file(
        self,
        name: str,
        path: Union[str, "os.PathLike[str]"],
        content_type: Optional[str] = None,
    ) -> "MultipartForm":
        """
        Append a file field.

        Args:
            name: Form field name
            path: Path of the file to upload
            content_type: Declared content type; guessed from the file
                name when omitted

        Returns:
            The form, for chaining
        """
        path = os.fspath(path)
        if content_type is None:
            content_type = mimetypes.guess_type(path)[0] or DEFAULT_FILE_CONTENT_TYPE
        self._fields.append(FileField(name=name, path=path, content_type=content_type))
        return self

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        """Content-Type header value announcing this form's boundary."""
        return f"{CONTENT_TYPE_MULTIPART}; boundary={self._boundary}"

    @property
    def fields(self) -> List[FormField]:
        return list(self._fields)

    @property
    def files_count(self) -> int:
        return sum(1 for item in self._fields if isinstance(item, FileField))

    @property
    def parts(self) -> List[MultipartPart]:
        """Framing steps for every field, in declaration order."""
        return list(self.measure().parts)

    @property
    def finish_line(self) -> bytes:
        """Closing boundary line terminating the body."""
        return f"--{self._boundary}--".encode() + CRLF

    @property
    def content_length(self) -> int:
        """
        Total body size in bytes.

        Sums all framing bytes, text values and current file sizes.

        Raises:
            OSError: If a file part cannot be read
        """
        return self.measure().content_length

    def measure(self) -> MultipartBody:
        """
        Build every part, measuring each file once.

        The returned body's length and part sizes stay consistent with
        each other even if files change on disk afterwards.

        Raises:
            OSError: If a file part cannot be read
        """
        parts = tuple(self._build_part(item) for item in self._fields)
        return MultipartBody(parts=parts, finish_line=self.finish_line)

    def _build_part(self, item: FormField) -> MultipartPart:
        disposition = f'Content-Disposition: form-data; name="{_quote(item.name)}"'
        lines = [f"--{self._boundary}"]
        if isinstance(item, FileField):
            lines.append(f'{disposition}; filename="{_quote(item.filename)}"')
            lines.append(f"Content-Type: {item.content_type}")
            content = b""
            content_length = item.size
        else:
            lines.append(disposition)
            content = item.value.encode("utf-8")
            content_length = len(content)
        pre_content = "\r\n".join(lines).encode("utf-8") + CRLF + CRLF
        return MultipartPart(
            field=item,
            pre_content=pre_content,
            content=content,
            post_content=CRLF,
            content_length=content_length,
        )

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"MultipartForm(boundary={self._boundary!r}, fields={len(self._fields)})"


def _quote(value: str) -> str:
    """Escape a value for use inside a quoted header parameter."""
    return value.replace("\\", "\\\\").replace('"', '\\"').replace("\r", "").replace("\n", "")


def apply_content_type(
    method: str,
    payload: Any,
    headers: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Return a copy of ``headers`` with the Content-Type negotiated.

    GET requests are left untouched. A multipart payload always wins over
    any caller-supplied Content-Type. Otherwise ``application/json`` is
    used when neither ``Content-Type`` nor ``content-type`` is present.
    """
    result = dict(headers or {})
    if method == "GET":
        return result

    if isinstance(payload, MultipartForm):
        result.pop("content-type", None)
        result["Content-Type"] = payload.content_type
    elif "Content-Type" not in result and "content-type" not in result:
        result["Content-Type"] = CONTENT_TYPE_JSON

    return result


def encode_body(
    payload: Any,
    content_type: Optional[str] = None,
    json_encoder: JsonEncoder = json.dumps,
) -> bytes:
    """
    Encode a non-multipart payload into a single chunk.

    Args:
        payload: Text, bytes, or an object to serialize
        content_type: The request's Content-Type; a urlencoded type makes
            mappings and pair lists urlencoded instead of JSON-encoded
        json_encoder: Serializer used for structured payloads

    Returns:
        Encoded body bytes

    Raises:
        TypeError: If the payload is a multipart form or cannot be serialized
    """
    if isinstance(payload, MultipartForm):
        raise TypeError("multipart forms are streamed, not encoded in one chunk")

    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)

    if isinstance(payload, str):
        return payload.encode("utf-8")

    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if media_type == CONTENT_TYPE_URL_ENCODED:
        return urlencode(payload, doseq=True).encode("ascii")

    return json_encoder(payload).encode("utf-8")


async def iter_file_chunks(
    path: str,
    chunk_size: int,
    limit: Optional[int] = None,
) -> AsyncIterator[bytes]:
    """
    Yield a file's contents in chunks of at most ``chunk_size`` bytes.

    Disk reads run in a worker thread so the event loop keeps serving
    callbacks while a file is read. When ``limit`` is given no more than
    ``limit`` bytes are yielded, even if the file grew after its size was
    measured.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    remaining = limit
    handle = await asyncio.to_thread(open, path, "rb")
    try:
        while remaining is None or remaining > 0:
            size = chunk_size if remaining is None else min(chunk_size, remaining)
            chunk = await asyncio.to_thread(handle.read, size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk
    finally:
        handle.close()
