"""
Tests for network interfaces, backends and utilities.
"""

import asyncio
import errno
import socket
import ssl

import pytest

from xhr_core.exceptions import InvalidURLError
from xhr_core.network import (
    AsyncioNetworkBackend,
    MockNetworkBackend,
    MockNetworkStream,
    NetworkBackend,
    NetworkStream,
    create_ssl_context,
    format_host_header,
    parse_url,
    validate_port,
)


class TestMockNetworkStream:
    """Test cases for MockNetworkStream."""

    @pytest.mark.asyncio
    async def test_read_write_basic(self):
        """Test basic read and write operations."""
        stream = MockNetworkStream(b"hello world")

        await stream.write(b"ping")
        assert stream.written_data == b"ping"

        assert await stream.read(5) == b"hello"
        assert await stream.read() == b" world"
        assert await stream.read() == b""

    @pytest.mark.asyncio
    async def test_closed_stream(self):
        """Test that a closed stream rejects I/O."""
        stream = MockNetworkStream()
        await stream.aclose()

        assert stream.is_closed
        with pytest.raises(RuntimeError):
            await stream.read()
        with pytest.raises(RuntimeError):
            await stream.write(b"x")

    @pytest.mark.asyncio
    async def test_write_failure_injection(self):
        """Test that writes fail after the configured count."""
        stream = MockNetworkStream(write_error=BrokenPipeError("gone"), fail_after_writes=2)

        await stream.write(b"a")
        await stream.write(b"b")
        with pytest.raises(BrokenPipeError):
            await stream.write(b"c")
        assert stream.written_data == b"ab"
        assert stream.write_count == 2

    @pytest.mark.asyncio
    async def test_read_failure_injection(self):
        stream = MockNetworkStream(b"data", read_error=ConnectionResetError("reset"))
        with pytest.raises(ConnectionResetError):
            await stream.read()

    def test_implements_interface(self):
        assert isinstance(MockNetworkStream(), NetworkStream)


class TestMockNetworkBackend:
    """Test cases for MockNetworkBackend."""

    @pytest.mark.asyncio
    async def test_each_connect_gets_a_new_stream(self, backend):
        """Test that queued responses are handed out in order."""
        backend.queue_response("a.com", 80, b"first")
        backend.queue_response("a.com", 80, b"second")

        first = await backend.connect_tcp("a.com", 80)
        second = await backend.connect_tcp("a.com", 80)
        third = await backend.connect_tcp("a.com", 80)

        assert first is not second
        assert await first.read() == b"first"
        assert await second.read() == b"second"
        assert await third.read() == b""
        assert backend.get_connections("a.com", 80) == [first, second, third]
        assert backend.get_connection("a.com", 80) is third
        assert backend.connection_count == 3

    @pytest.mark.asyncio
    async def test_connect_failure(self, backend):
        refused = ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused")
        backend.fail_connect("a.com", 80, refused)

        with pytest.raises(ConnectionRefusedError):
            await backend.connect_tcp("a.com", 80)
        assert backend.events == [("connect", ("a.com", 80))]

    @pytest.mark.asyncio
    async def test_tls(self, backend):
        stream = await backend.connect_tcp("a.com", 443)
        tls_stream = await backend.connect_tls(stream, "a.com", 443, alpn_protocols=["http/1.1"])

        assert tls_stream.get_extra_info("ssl_object") is True
        assert tls_stream.get_extra_info("selected_alpn_protocol") == "http/1.1"
        assert backend.events == [("connect", ("a.com", 443)), ("tls", ("a.com", 443))]

    @pytest.mark.asyncio
    async def test_tls_failure(self, backend):
        backend.fail_tls("a.com", ssl.SSLCertVerificationError("certificate verify failed"))
        stream = await backend.connect_tcp("a.com", 443)

        with pytest.raises(ssl.SSLError):
            await backend.connect_tls(stream, "a.com", 443)

    @pytest.mark.asyncio
    async def test_reset(self, backend):
        backend.queue_response("a.com", 80, b"x")
        await backend.connect_tcp("a.com", 80)
        backend.reset()

        assert backend.connection_count == 0
        assert backend.get_connection("a.com", 80) is None
        assert backend.events == []

    def test_implements_interface(self, backend):
        assert isinstance(backend, NetworkBackend)


class TestAsyncioNetworkBackend:
    """Test the asyncio backend against a local server."""

    @pytest.mark.asyncio
    async def test_echo_round_trip(self):
        """Test connecting, writing and reading through asyncio streams."""
        async def handle(reader, writer):
            data = await reader.read(100)
            writer.write(data.upper())
            await writer.drain()
            writer.close()

        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            backend = AsyncioNetworkBackend()
            stream = await backend.connect_tcp("127.0.0.1", port, timeout=5.0)
            await stream.write(b"hello")
            assert await stream.read() == b"HELLO"
            assert stream.get_extra_info("peername")[1] == port
            assert stream.get_extra_info("ssl_object") is False
            await stream.aclose()
            assert stream.is_closed
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_connection_refused(self):
        """Test that a closed port raises ConnectionRefusedError."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        backend = AsyncioNetworkBackend()
        with pytest.raises(ConnectionRefusedError):
            await backend.connect_tcp("127.0.0.1", port, timeout=5.0)

    @pytest.mark.asyncio
    async def test_refused_on_every_address(self, monkeypatch):
        """Test that refusals from several addresses collapse into one error."""
        server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        server.close()
        await server.wait_closed()

        async def resolve_twice(host, port, *, family=0, type=0, proto=0, flags=0):
            return [
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.1", port)),
                (socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP, "", ("127.0.0.2", port)),
            ]

        monkeypatch.setattr(asyncio.get_running_loop(), "getaddrinfo", resolve_twice)
        backend = AsyncioNetworkBackend()

        with pytest.raises(ConnectionRefusedError) as exc_info:
            await backend.connect_tcp("refusing.test", port, timeout=5.0)
        assert exc_info.value.errno == errno.ECONNREFUSED
        assert isinstance(exc_info.value.__cause__, ExceptionGroup)

    @pytest.mark.asyncio
    async def test_rejects_foreign_streams(self):
        backend = AsyncioNetworkBackend()
        with pytest.raises(TypeError):
            await backend.connect_tls(MockNetworkStream(), "a.com", 443)


class TestParseURL:
    """Test URL parsing for connections."""

    def test_http_defaults(self):
        components = parse_url("http://example.com")
        assert components == ("http", "example.com", 80, "/")
        assert not components.is_secure

    def test_https_with_port_and_query(self):
        components = parse_url("https://Example.com:8443/v1/data?x=1#frag")
        assert components.scheme == "https"
        assert components.host == "example.com"
        assert components.port == 8443
        assert components.target == "/v1/data?x=1"
        assert components.is_secure

    @pytest.mark.parametrize(
        "url",
        [
            "example.com/path",
            "http:/example.com",
            "",
            None,
            "ftp://example.com/file",
            "http://",
            "http://example.com:99999/",
            "http://example.com:abc/",
        ],
    )
    def test_malformed(self, url):
        with pytest.raises(InvalidURLError):
            parse_url(url)


class TestUtils:
    """Test the remaining network helpers."""

    def test_format_host_header(self):
        assert format_host_header("a.com", 80, "http") == "a.com"
        assert format_host_header("a.com", 443, "https") == "a.com"
        assert format_host_header("a.com", 8080, "http") == "a.com:8080"
        assert format_host_header("::1", 8080, "http") == "[::1]:8080"

    def test_validate_port(self):
        assert validate_port("8080") == 8080
        with pytest.raises(InvalidURLError):
            validate_port(0)
        with pytest.raises(InvalidURLError):
            validate_port("x")

    def test_ssl_context(self):
        context = create_ssl_context()
        assert context.verify_mode == ssl.CERT_REQUIRED
        assert context.check_hostname

        insecure = create_ssl_context(verify=False)
        assert insecure.verify_mode == ssl.CERT_NONE
        assert not insecure.check_hostname
