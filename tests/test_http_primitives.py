"""
Unit tests for HTTP primitives.

Tests the Request, HttpResponse, HttpOptions and event classes
to ensure they work correctly and maintain immutability.
"""

import dataclasses

import pytest

from xhr_core.http_primitives import (
    HttpOptions,
    HttpResponse,
    ReadyState,
    ReadyStateChange,
    Request,
    UploadProgress,
)


class TestReadyState:
    """Test ReadyState ordering."""

    def test_values(self) -> None:
        assert [state.value for state in ReadyState] == [0, 1, 2, 3, 4]
        assert ReadyState.UNSENT < ReadyState.OPENED < ReadyState.DONE


class TestHttpOptions:
    """Test HttpOptions validation."""

    def test_defaults(self) -> None:
        options = HttpOptions()
        assert options.connect_timeout is None
        assert options.verify_ssl is True
        assert options.user_agent.startswith("xhr_core/")

    @pytest.mark.parametrize("name", ["connect_timeout", "read_timeout", "write_timeout"])
    def test_non_positive_timeouts(self, name) -> None:
        with pytest.raises(ValueError):
            HttpOptions(**{name: 0})


class TestRequest:
    """Test Request class functionality."""

    def test_create_with_defaults(self) -> None:
        """Test creating a request with default values."""
        request = Request.create("GET", "http://example.com")
        assert request.method == "GET"
        assert request.url == "http://example.com"
        assert request.payload is None
        assert dict(request.headers) == {}
        assert request.options == HttpOptions()

    def test_headers_are_copied_and_frozen(self) -> None:
        """Test that later changes to the caller's dict are not seen."""
        headers = {"X-Id": "1"}
        request = Request.create("POST", "http://example.com", "x", headers)
        headers["X-Id"] = "2"

        assert request.headers["X-Id"] == "1"
        with pytest.raises(TypeError):
            request.headers["X-Id"] = "3"  # type: ignore[index]

    def test_immutability(self) -> None:
        request = Request.create("GET", "http://example.com")
        with pytest.raises(dataclasses.FrozenInstanceError):
            request.method = "POST"  # type: ignore[misc]

    def test_header_types(self) -> None:
        with pytest.raises(ValueError):
            Request.create("GET", "http://example.com", headers={"X-Num": 1})  # type: ignore[dict-item]

    @pytest.mark.parametrize(
        "headers, expected",
        [
            ({"Content-Type": "a"}, "a"),
            ({"content-type": "b"}, "b"),
            ({"Content-Type": "a", "content-type": "b"}, "a"),
            ({}, None),
        ],
    )
    def test_content_type(self, headers, expected) -> None:
        request = Request.create("POST", "http://example.com", "x", headers)
        assert request.content_type == expected

    @pytest.mark.parametrize(
        "method, payload, expected",
        [
            ("GET", {"a": 1}, False),
            ("POST", None, False),
            ("POST", "", True),
            ("DELETE", {"a": 1}, True),
        ],
    )
    def test_has_body(self, method, payload, expected) -> None:
        assert Request.create(method, "http://example.com", payload).has_body is expected


class TestHttpResponse:
    """Test HttpResponse class functionality."""

    def test_header_lookup(self) -> None:
        response = HttpResponse(200, "OK", "", {"content-type": "text/plain"})
        assert response.get_header("Content-Type") == "text/plain"
        assert response.has_header("CONTENT-TYPE")
        assert not response.has_header("X-Missing")

    @pytest.mark.parametrize("status_code, ok", [(200, True), (302, True), (404, False), (500, False)])
    def test_ok(self, status_code, ok) -> None:
        assert HttpResponse(status_code, "", "").ok is ok

    def test_json(self) -> None:
        response = HttpResponse(200, "OK", '{"items": [1, 2]}\n')
        assert response.json() == {"items": [1, 2]}

    def test_status_code_type(self) -> None:
        with pytest.raises(ValueError):
            HttpResponse("200", "OK", "")  # type: ignore[arg-type]


class TestEvents:
    """Test event value objects."""

    def test_upload_progress_fraction(self) -> None:
        assert UploadProgress("f", 256, 1024).fraction == 0.25
        assert UploadProgress("f", 0, 0).fraction == 1.0

    def test_ready_state_change(self) -> None:
        change = ReadyStateChange("GET", "http://a.com", ReadyState.LOADING)
        assert change.state is ReadyState.LOADING
        assert change == ReadyStateChange("GET", "http://a.com", ReadyState.LOADING)
