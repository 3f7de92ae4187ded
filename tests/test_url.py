"""
Tests for base URL composition.
"""

import pytest

from xhr_core.url import compose_url, is_absolute


class TestComposeURL:
    """Test joining base URLs and paths."""

    @pytest.mark.parametrize(
        "base_url, url",
        [
            ("http://a.com/", "/b"),
            ("http://a.com", "b"),
            ("http://a.com", "/b"),
            ("http://a.com/", "b"),
        ],
    )
    def test_single_slash(self, base_url, url):
        """Test that exactly one slash separates base and path."""
        assert compose_url(base_url, url) == "http://a.com/b"

    def test_absolute_url_is_verbatim(self):
        """Test that URLs starting with http ignore the base URL."""
        assert compose_url("http://a.com", "https://other.org/x") == "https://other.org/x"
        assert compose_url("http://a.com/", "http://b.com") == "http://b.com"

    def test_no_base_url(self):
        """Test that the URL is used unchanged without a base."""
        assert compose_url("", "/b") == "/b"
        assert compose_url(None, "b") == "b"

    def test_none_url(self):
        """Test that a missing URL is passed through."""
        assert compose_url("http://a.com", None) is None

    def test_nested_paths(self):
        """Test base URLs with their own path."""
        assert compose_url("http://a.com/api/", "/v1/items?x=1") == "http://a.com/api/v1/items?x=1"


class TestIsAbsolute:
    """Test scheme prefix detection."""

    def test_http_prefixes(self):
        assert is_absolute("http://a.com")
        assert is_absolute("https://a.com")

    def test_relative(self):
        assert not is_absolute("/http")
        assert not is_absolute("items")
