"""Timed two-phase chargen connection."""

import logging
import time
from typing import Callable

from chargen2p.context import Context, background
from chargen2p.errors import NoDataReceivedError, NotNetConnError
from chargen2p.randtext import BUF_SIZE, RandomTextSource
from chargen2p.stream import Dialer, NetConn, SocketDialer, as_net_conn

logger = logging.getLogger(__name__)


class Conn:
    """A connection that can send random text and receive until end of stream.

    Durations are measured with the injected clock around the data movement
    only, so deadline setup and connection setup never count towards
    throughput.
    """

    def __init__(
        self,
        stream: NetConn,
        source: RandomTextSource | None = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """Wrap a stream.

        Args:
            stream: The NetConn to send and receive on. Owned by this Conn.
            source: Payload generator, a fresh RandomTextSource by default
            clock: Time source in seconds used for all measurements
        """
        if source is None:
            source = RandomTextSource()
        self.stream = stream
        self.source = source
        self.clock = clock

    def close(self):
        self.stream.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def send(self, ctx: Context | None, n: int) -> tuple[int, float]:
        """Send n bytes of random text, then close the sending side.

        Args:
            ctx: Context whose deadline bounds the write, or None
            n: Number of bytes to send

        Returns:
            (bytes written, duration in seconds). The duration is 0.0 if the
            data went out but the half-close failed.
        """
        if ctx is not None and ctx.deadline is not None:
            self.stream.set_write_deadline(ctx.deadline)

        written = 0
        start = self.clock()
        while written < n:
            written += self.stream.write(self.source.read(min(BUF_SIZE, n - written)))

        try:
            self.stream.close_write()
        except OSError as e:
            logger.warning("Half-close failed after sending %d bytes: %s", written, e)
            return written, 0.0

        return written, self.clock() - start

    def recv(self, ctx: Context | None) -> tuple[int, float, float]:
        """Receive and discard data until the peer closes its sending side.

        The first-byte latency depends on receive buffer sizes and is only an
        approximation of network latency.

        Args:
            ctx: Context whose deadline bounds the read, or None

        Returns:
            (bytes read, duration in seconds, seconds until the first block)

        Raises:
            NoDataReceivedError: If the stream ended without any data
        """
        if ctx is not None and ctx.deadline is not None:
            self.stream.set_read_deadline(ctx.deadline)

        sink = _FirstBlockSink(self.clock)
        start = self.clock()
        while True:
            data = self.stream.read(BUF_SIZE)
            if not data:
                break
            sink.write(data)

        if sink.n == 0:
            raise NoDataReceivedError()

        return sink.n, self.clock() - start, sink.first_time - start


class _FirstBlockSink:
    """Discards data, counting it and remembering when the first block came in."""

    def __init__(self, clock: Callable[[], float]):
        self.clock = clock
        self.n = 0
        self.first_time = 0.0

    def write(self, data: bytes) -> int:
        if self.n == 0:
            self.first_time = self.clock()
        self.n += len(data)
        return len(data)


def dial(
    address,
    ctx: Context | None = None,
    dialer: Dialer | None = None,
    clock: Callable[[], float] = time.perf_counter,
) -> Conn:
    """Dial address and wrap the connection.

    Args:
        address: (host, port) for TCP, or a path for a Unix-domain socket
        ctx: Context bounding the connect, background() by default
        dialer: Dialer to use, a SocketDialer by default
        clock: Time source handed to the Conn

    Raises:
        NotNetConnError: If the dialer produced something that is not a stream
    """
    if ctx is None:
        ctx = background()
    if dialer is None:
        dialer = SocketDialer()

    raw = dialer.dial(address, ctx)
    try:
        stream = as_net_conn(raw)
    except NotNetConnError:
        close = getattr(raw, "close", None)
        if close is not None:
            close()
        raise

    return Conn(stream, clock=clock)
