"""Unit tests for stream negotiation, SocketStream and SocketDialer."""

import socket
import time

import pytest

from chargen2p.context import background
from chargen2p.errors import DeadlineExceededError, InvalidAddressError, NotNetConnError
from chargen2p.stream import NetConn, SocketDialer, SocketStream, as_net_conn

from fakes import FakeNetConn


class TestAsNetConn:
    """Test the capability negotiation step."""

    def test_stream_socket_wrapped(self):
        """Test stream sockets become SocketStreams."""
        a, b = socket.socketpair()
        try:
            stream = as_net_conn(a)
            assert isinstance(stream, SocketStream)
            stream.write(b"x")
            assert b.recv(1) == b"x"
        finally:
            a.close()
            b.close()

    def test_net_conn_passes_through(self):
        """Test objects implementing NetConn are used as they are."""
        fake = FakeNetConn()
        assert isinstance(fake, NetConn)
        assert as_net_conn(fake) is fake

    def test_datagram_socket_rejected(self):
        """Test sockets that cannot half-close a stream are refused."""
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            with pytest.raises(NotNetConnError):
                as_net_conn(sock)

    def test_arbitrary_object_rejected(self):
        """Test objects without the stream operations are refused."""

        class ReadOnly:
            def read(self, size):
                return b""

            def close(self):
                pass

        with pytest.raises(NotNetConnError, match="ReadOnly"):
            as_net_conn(ReadOnly())


class TestSocketStream:
    """Test SocketStream on a socket pair."""

    def test_read_write_and_half_close(self):
        """Test data flows and close_write() signals end of stream."""
        a, b = socket.socketpair()
        left, right = SocketStream(a), SocketStream(b)
        try:
            assert left.write(b"hello") == 5
            left.close_write()

            received = b""
            while True:
                data = right.read(1024)
                if not data:
                    break
                received += data

            assert received == b"hello"

            # The other direction still works after the half-close
            right.write(b"back")
            assert left.read(1024) == b"back"
        finally:
            left.close()
            right.close()

    def test_read_deadline_expires(self):
        """Test a read blocks no longer than the read deadline."""
        a, b = socket.socketpair()
        stream = SocketStream(a)
        try:
            stream.set_read_deadline(time.monotonic() + 0.05)
            with pytest.raises(TimeoutError):
                stream.read(1024)
        finally:
            a.close()
            b.close()

    def test_passed_deadline_fails_immediately(self):
        """Test an already expired deadline fails without waiting."""
        a, b = socket.socketpair()
        stream = SocketStream(a)
        try:
            stream.set_write_deadline(time.monotonic() - 1)
            with pytest.raises(TimeoutError):
                stream.write(b"late")
        finally:
            a.close()
            b.close()

    def test_clearing_deadline(self):
        """Test a None deadline restores blocking mode."""
        a, b = socket.socketpair()
        stream = SocketStream(a)
        try:
            stream.set_read_deadline(time.monotonic() + 10)
            b.sendall(b"x")
            stream.read(1)
            stream.set_read_deadline(None)
            b.sendall(b"y")
            assert stream.read(1) == b"y"
            assert a.gettimeout() is None
        finally:
            a.close()
            b.close()

    def test_tcp_no_delay(self):
        """Test TCP sockets get send coalescing disabled."""
        with socket.create_server(("127.0.0.1", 0)) as lsock:
            client = socket.create_connection(lsock.getsockname())
            server, _ = lsock.accept()
            try:
                SocketStream(server)
                assert server.getsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY) != 0
            finally:
                client.close()
                server.close()


class TestSocketDialer:
    """Test SocketDialer."""

    def test_dial_tcp_tuple(self):
        """Test (host, port) tuples dial TCP and leave deadlines to the stream."""
        with socket.create_server(("127.0.0.1", 0)) as lsock:
            sock = SocketDialer(timeout=5).dial(lsock.getsockname(), background())
            try:
                assert sock.type == socket.SOCK_STREAM
                assert sock.gettimeout() is None
            finally:
                sock.close()

    def test_dial_done_context(self):
        """Test dialing with an expired context fails before connecting."""
        ctx = background().with_timeout(-1)
        with pytest.raises(DeadlineExceededError):
            SocketDialer().dial(("127.0.0.1", 1), ctx)

    def test_dial_invalid_address(self):
        """Test unsupported address shapes are rejected."""
        with pytest.raises(InvalidAddressError):
            SocketDialer().dial(12345, background())

    def test_invalid_timeout(self):
        """Test non-positive timeouts are rejected."""
        with pytest.raises(ValueError):
            SocketDialer(timeout=0)
