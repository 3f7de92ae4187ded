"""
Pytest configuration for xhr_core tests.

This file contains shared fixtures and configuration
for all tests in the project.
"""

import pytest
from typing import Dict, List, Optional

from xhr_core.dispatch import QueueCallbackSink
from xhr_core.network.mock import MockNetworkBackend


def build_response(
    status_code: int = 200,
    reason: str = "OK",
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
) -> bytes:
    """Build raw HTTP/1.1 response bytes with a Content-Length header."""
    lines = [f"HTTP/1.1 {status_code} {reason}"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    lines.append(f"Content-Length: {len(body)}")
    head = "\r\n".join(lines).encode("latin-1") + b"\r\n\r\n"
    return head + body


class Recorder:
    """Collects events passed to it, in order."""

    def __init__(self) -> None:
        self.events: List[object] = []

    def __call__(self, event: object) -> None:
        self.events.append(event)


@pytest.fixture
def backend():
    """Create a mock network backend."""
    return MockNetworkBackend()


@pytest.fixture
def sink():
    """Create a callback sink drained explicitly by tests."""
    return QueueCallbackSink()


@pytest.fixture
def recorder():
    """Create a factory for event recorders."""
    return Recorder


@pytest.fixture
def response_bytes():
    """Create raw HTTP response bytes."""
    return build_response


@pytest.fixture
def upload_file(tmp_path):
    """Create a file of a given size to upload."""
    def _create(size: int, name: str = "upload.bin") -> str:
        path = tmp_path / name
        path.write_bytes(bytes(i % 251 for i in range(size)))
        return str(path)
    return _create
