"""Listening sockets from address strings, including systemd socket activation."""

import logging
import os
import socket
import threading

from chargen2p.errors import InvalidAddressError, ListenerClosedError, SystemdUnavailableError
from chargen2p.stream import SocketStream

logger = logging.getLogger(__name__)

# First descriptor passed by systemd, see sd_listen_fds(3).
SD_LISTEN_FDS_START = 3

_TCP_FAMILIES = {
    "tcp": socket.AF_UNSPEC,
    "tcp4": socket.AF_INET,
    "tcp6": socket.AF_INET6,
}


class SocketListener:
    """Listening socket whose accept() yields SocketStreams.

    close() may be called from another thread (or a signal handler) to stop a
    blocked accept(), which then raises ListenerClosedError.
    """

    def __init__(self, sock: socket.socket):
        self._sock = sock
        self._closed = threading.Event()

    @property
    def address(self):
        return self._sock.getsockname()

    @property
    def family(self):
        return self._sock.family

    def accept(self) -> tuple[SocketStream, object]:
        if self._closed.is_set():
            raise ListenerClosedError()
        try:
            conn, peer = self._sock.accept()
        except OSError as e:
            if self._closed.is_set():
                raise ListenerClosedError() from e
            raise
        return SocketStream(conn), peer

    def close(self):
        if self._closed.is_set():
            return
        self._closed.set()
        # Shutting down wakes up threads blocked in accept() on Linux
        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        self._sock.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


def parse_host_port(text: str, default_port: int | None = None) -> tuple[str, int]:
    """Split "host:port" (IPv6 hosts in brackets) into a (host, port) tuple.

    Examples:
        >>> parse_host_port("localhost:19")
        ('localhost', 19)
        >>> parse_host_port("[::1]:8019")
        ('::1', 8019)
    """
    host, sep, port = text.rpartition(":")
    if not sep or "]" in port:
        if default_port is None:
            raise InvalidAddressError(f"missing port in address: {text}")
        host, port = text, str(default_port)

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    try:
        port_num = int(port)
    except ValueError:
        raise InvalidAddressError(f"invalid port in address: {text}") from None
    if not 0 <= port_num <= 65535:
        raise InvalidAddressError(f"port out of range in address: {text}")

    return host, port_num


def listen(address: str, backlog: int | None = None) -> SocketListener:
    """Create a listener from a "scheme:rest" address.

    Supported schemes:
    - tcp, tcp4, tcp6: "tcp:localhost:19", "tcp6:[::1]:19"
    - unix: "unix:/run/chargen2p.sock"
    - systemd: "systemd:0", the first socket passed by systemd

    Raises:
        InvalidAddressError: If the address cannot be interpreted
        SystemdUnavailableError: If systemd passed no sockets to this process
        OSError: If the socket cannot be created
    """
    scheme, sep, rest = address.partition(":")
    if not sep:
        raise InvalidAddressError(f"invalid address: {address}")

    if scheme == "systemd":
        try:
            index = int(rest)
        except ValueError:
            raise InvalidAddressError(f"invalid address: {address}") from None
        return listen_systemd(index)

    if scheme in _TCP_FAMILIES:
        host, port = parse_host_port(rest)
        family = _TCP_FAMILIES[scheme]
        if family == socket.AF_UNSPEC:
            family = _resolve_family(host, port)
        kwargs = {} if backlog is None else {"backlog": backlog}
        sock = socket.create_server((host, port), family=family, **kwargs)
        return SocketListener(sock)

    if scheme == "unix":
        if not rest:
            raise InvalidAddressError(f"invalid address: {address}")
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.bind(rest)
            if backlog is None:
                sock.listen()
            else:
                sock.listen(backlog)
        except BaseException:
            sock.close()
            raise
        return SocketListener(sock)

    raise InvalidAddressError(f"unsupported address scheme: {scheme}")


def _resolve_family(host: str, port: int) -> int:
    infos = socket.getaddrinfo(host or None, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    if not infos:
        raise InvalidAddressError(f"cannot resolve {host}")
    return infos[0][0]


def listen_systemd(index: int) -> SocketListener:
    """Wrap the systemd-provided listening socket with the given index.

    See https://www.freedesktop.org/software/systemd/man/sd_listen_fds.html.
    """
    fd = systemd_fd_by_index(index)
    try:
        sock = socket.socket(fileno=fd)
    except OSError as e:
        raise InvalidAddressError(f"invalid file descriptor {fd}: {e}") from e

    logger.debug("Using systemd socket: index=%d, fd=%d", index, fd)
    return SocketListener(sock)


def systemd_fd_by_index(index: int, environ=None, pid: int | None = None) -> int:
    """Return the descriptor belonging to a systemd socket index."""
    fds = parse_systemd_fds(environ, pid)
    if not 0 <= index < len(fds):
        raise InvalidAddressError(
            f"index out of bounds: {index} (range [0, {len(fds) - 1}])"
        )
    return fds[index]


def parse_systemd_fds(environ=None, pid: int | None = None) -> range:
    """Interpret the process environment and return the passed descriptors.

    Args:
        environ: Environment mapping, os.environ by default
        pid: Process id to compare LISTEN_PID with, os.getpid() by default

    Raises:
        SystemdUnavailableError: If LISTEN_PID is not this process or
                                 LISTEN_FDS is missing
        InvalidAddressError: If LISTEN_FDS is not a non-negative integer
    """
    if environ is None:
        environ = os.environ
    if pid is None:
        pid = os.getpid()

    if environ.get("LISTEN_PID", "") != str(pid):
        raise SystemdUnavailableError()

    value = environ.get("LISTEN_FDS")
    if value is None:
        raise SystemdUnavailableError()

    try:
        nfds = int(value)
    except ValueError:
        raise InvalidAddressError(f"invalid LISTEN_FDS: {value!r}") from None
    if nfds < 0:
        raise InvalidAddressError(f"invalid LISTEN_FDS: {value!r}")

    return range(SD_LISTEN_FDS_START, SD_LISTEN_FDS_START + nfds)
