"""Network stream abstraction: what a chargen connection can run on."""

import logging
import socket
import time
from typing import Protocol, runtime_checkable

from chargen2p.context import Context
from chargen2p.errors import InvalidAddressError, NotNetConnError

logger = logging.getLogger(__name__)


@runtime_checkable
class NetConn(Protocol):
    """Protocol for a bidirectional byte stream that can half-close.

    Deadlines are absolute time.monotonic() values; None clears a deadline.
    """

    def read(self, size: int) -> bytes:
        """Read at most size bytes. Returns b"" at end of stream."""
        ...

    def write(self, data: bytes) -> int:
        """Write all of data and return the number of bytes written."""
        ...

    def close_write(self) -> None:
        """Shut down the sending direction only."""
        ...

    def close(self) -> None:
        ...

    def set_read_deadline(self, deadline: float | None) -> None:
        ...

    def set_write_deadline(self, deadline: float | None) -> None:
        ...


class SocketStream:
    """NetConn implementation on top of a stream socket.

    Python sockets only know a relative timeout shared by both directions, so
    the remaining time to the matching deadline is applied before each call.
    """

    def __init__(self, sock: socket.socket, no_delay: bool = True):
        if sock.type != socket.SOCK_STREAM:
            raise NotNetConnError(sock)

        self._sock = sock
        self._read_deadline: float | None = None
        self._write_deadline: float | None = None

        # Only TCP knows about send coalescing
        if no_delay and sock.family in (socket.AF_INET, socket.AF_INET6):
            try:
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
            except OSError as e:
                logger.debug("Could not set TCP_NODELAY: %s", e)

    def peer(self):
        try:
            return self._sock.getpeername()
        except OSError:
            return None

    def _apply_deadline(self, deadline: float | None):
        if deadline is None:
            self._sock.settimeout(None)
            return

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise TimeoutError("i/o deadline exceeded")
        self._sock.settimeout(remaining)

    def read(self, size: int) -> bytes:
        self._apply_deadline(self._read_deadline)
        return self._sock.recv(size)

    def write(self, data: bytes) -> int:
        self._apply_deadline(self._write_deadline)
        self._sock.sendall(data)
        return len(data)

    def close_write(self):
        self._sock.shutdown(socket.SHUT_WR)

    def close(self):
        self._sock.close()

    def set_read_deadline(self, deadline: float | None):
        self._read_deadline = deadline

    def set_write_deadline(self, deadline: float | None):
        self._write_deadline = deadline

    def __repr__(self):
        return f"SocketStream({self.peer()!r})"


def as_net_conn(conn: object) -> NetConn:
    """Negotiate the NetConn capability of an accepted or dialed connection.

    Args:
        conn: A stream socket or an object implementing NetConn

    Returns:
        A NetConn for conn

    Raises:
        NotNetConnError: If conn cannot half-close and take deadlines
    """
    if isinstance(conn, socket.socket):
        return SocketStream(conn)
    if isinstance(conn, NetConn):
        return conn
    raise NotNetConnError(conn)


class Dialer(Protocol):
    """Protocol for anything that can open a connection to an address."""

    def dial(self, address, ctx: Context) -> object:
        """Connect to address, honoring the deadline of ctx."""
        ...


class SocketDialer:
    """Dials TCP (host, port) tuples and Unix-domain socket paths."""

    def __init__(self, timeout: float | None = None):
        """Initialize the dialer.

        Args:
            timeout: Connect timeout in seconds. The context deadline, if
                     earlier, takes precedence.
        """
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout

    def dial(self, address, ctx: Context) -> socket.socket:
        ctx.raise_if_done()

        timeout = self.timeout
        remaining = ctx.remaining()
        if remaining is not None and (timeout is None or remaining < timeout):
            timeout = remaining

        if isinstance(address, str):
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.settimeout(timeout)
                sock.connect(address)
            except BaseException:
                sock.close()
                raise
        elif isinstance(address, tuple) and len(address) == 2:
            sock = socket.create_connection(address, timeout=timeout)
        else:
            raise InvalidAddressError(f"invalid address: {address!r}")

        # Deadlines take over from here
        sock.settimeout(None)
        return sock
