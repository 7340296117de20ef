"""Two-phase chargen server with bounded concurrency."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Protocol

from PySide6.QtCore import QThreadPool

from chargen2p.conn import Conn
from chargen2p.context import Context, background
from chargen2p.errors import NotNetConnError
from chargen2p.models import ThroughputInfo
from chargen2p.reporter import Reporter, format_peer
from chargen2p.stream import as_net_conn
from chargen2p.workers import ConnectionWorker

logger = logging.getLogger(__name__)

# How often a blocked admission re-checks the server context.
_ADMISSION_POLL_SECONDS = 0.05

ConnContextFactory = Callable[[Context, object], Context]


class Listener(Protocol):
    """Anything with a socket-style accept(). A listening socket qualifies."""

    def accept(self) -> tuple[object, object]:
        """Block until a connection arrives and return (connection, peer)."""
        ...


class ServerConn(Protocol):
    """The part of Conn that the protocol handler needs."""

    def recv(self, ctx: Context | None) -> tuple[int, float, float]:
        ...

    def send(self, ctx: Context | None, n: int) -> tuple[int, float]:
        ...


@dataclass(frozen=True)
class ServerConfig:
    """Server settings.

    Attributes:
        max_conns: Maximum number of simultaneously handled connections. Further
                   connections wait in the listen backlog, which pushes back
                   through the kernel to TCP clients. Default is 10.
        reporter: Optional result handler. Normally only the client cares
                  about the outcome, so this is often None.
        conn_context: Factory deriving the per-connection context, e.g. to
                      impose a timeout. None uses the server context as is.
    """

    max_conns: int = 10
    reporter: Reporter | None = None
    conn_context: ConnContextFactory | None = None

    def __post_init__(self):
        if self.max_conns < 1:
            raise ValueError("max_conns must be at least 1")


def timeout_conn_context(seconds: float) -> ConnContextFactory:
    """Build a conn_context factory that gives every connection `seconds` to finish."""
    if seconds <= 0:
        raise ValueError("seconds must be positive")

    def factory(ctx: Context, _peer) -> Context:
        return ctx.with_timeout(seconds)

    return factory


class Server:
    """Accepts connections and answers each with as many bytes as it received.

    Thread-safe: connections are handled on a Qt thread pool, the accept loop
    runs in the thread calling serve().
    """

    def __init__(self, config: ServerConfig | None = None, thread_pool: QThreadPool | None = None):
        """Initialize the server.

        Args:
            config: Server settings, ServerConfig() by default
            thread_pool: Pool running connection workers, the global pool by default
        """
        if config is None:
            config = ServerConfig()
        self.config = config

        self.thread_pool = thread_pool or QThreadPool.globalInstance()
        # Admitted connections must never wait for a pool thread
        if self.thread_pool.maxThreadCount() < config.max_conns:
            self.thread_pool.setMaxThreadCount(config.max_conns)

        self._slots = threading.BoundedSemaphore(config.max_conns)
        self._lock = threading.Lock()
        self._in_flight = 0
        self._served = 0

    def serve(self, listener: Listener, ctx: Context | None = None):
        """Accept connections and hand them to workers until something stops us.

        Never returns normally. Closing the listener makes accept() fail, which
        is the usual way to stop (ListenerClosedError for listeners from
        chargen2p.listeners).

        Args:
            listener: Source of connections
            ctx: Server context. Cancelling it stops a serve() waiting for
                 an admission slot and reaches every connection context.

        Raises:
            ContextCancelledError: If ctx was cancelled
            DeadlineExceededError: If ctx expired
            Exception: Whatever listener.accept() raised
        """
        if ctx is None:
            ctx = background()

        logger.info("Serving: max_conns=%d", self.config.max_conns)
        while True:
            self._acquire_slot(ctx)
            try:
                conn, peer = listener.accept()
            except BaseException as e:
                self._release_slot()
                logger.info("Accept loop stopped: %s", e)
                raise

            logger.debug("Accepted: peer=%s", format_peer(peer))

            scope = ctx.with_cancel()
            cctx = scope
            if self.config.conn_context is not None:
                cctx = self.config.conn_context(scope, peer)

            worker = ConnectionWorker(self, cctx, conn, peer, self._release_slot, scope=scope)
            self.thread_pool.start(worker)

    def _acquire_slot(self, ctx: Context):
        while True:
            ctx.raise_if_done()
            if self._slots.acquire(timeout=_ADMISSION_POLL_SECONDS):
                break

        with self._lock:
            self._in_flight += 1
            in_flight = self._in_flight
        logger.debug("Slot acquired (in-flight: %d/%d)", in_flight, self.config.max_conns)

    def _release_slot(self):
        with self._lock:
            self._in_flight -= 1
            in_flight = self._in_flight
        self._slots.release()
        logger.debug("Slot released (in-flight: %d/%d)", in_flight, self.config.max_conns)

    def serve_conn(self, ctx: Context, conn, peer):
        """Handle one accepted connection, including closing it.

        Connections that cannot half-close and take deadlines are reported as
        failed without any I/O.
        """
        try:
            try:
                stream = as_net_conn(conn)
            except NotNetConnError as e:
                logger.warning("Rejecting connection from %s: %s", format_peer(peer), e)
                self._report(peer, None, e)
                return

            self.handle_conn(ctx, peer, Conn(stream))
        finally:
            conn.close()

    def handle_conn(self, ctx: Context, peer, conn: ServerConn):
        """Count received data, then send back the same amount.

        The outcome is reported exactly once. A failed receive never sends.
        """
        try:
            nr, rdur, _ = conn.recv(ctx)
        except Exception as e:
            self._report(peer, None, e)
            return

        try:
            nw, wdur = conn.send(ctx, nr)
        except Exception as e:
            self._report(peer, None, e)
            return

        self._report(
            peer,
            ThroughputInfo(
                written_bytes=nw,
                write_duration=wdur,
                read_bytes=nr,
                read_duration=rdur,
            ),
            None,
        )

    def _report(self, peer, info: ThroughputInfo | None, error: Exception | None):
        with self._lock:
            self._served += 1
        if self.config.reporter is not None:
            self.config.reporter.connection_served(peer, info, error)

    def get_stats(self):
        """Get server statistics.

        Returns:
            Dict with in-flight connections, the cap and the number served
        """
        with self._lock:
            return {
                "in_flight": self._in_flight,
                "max_conns": self.config.max_conns,
                "served": self._served,
            }
