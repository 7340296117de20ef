"""Worker classes for background connection handling."""

import logging
from typing import Callable

from PySide6.QtCore import QRunnable

from chargen2p.context import Context

logger = logging.getLogger(__name__)


class ConnectionWorker(QRunnable):
    """Worker that serves one accepted connection in a pool thread."""

    def __init__(
        self,
        server,
        ctx: Context,
        conn,
        peer,
        release: Callable[[], None],
        scope: Context | None = None,
    ):
        """Initialize the worker.

        Args:
            server: Server whose serve_conn() handles the connection
            ctx: Context the connection is handled with
            conn: The accepted connection, owned by the worker from now on
            peer: Remote address of the connection
            release: Frees the admission slot; called exactly once
            scope: Context cancelled when the worker finishes, ctx by default.
                   Cancelling it must reach ctx.
        """
        super().__init__()
        self.server = server
        self.ctx = ctx
        self.conn = conn
        self.peer = peer
        self.release = release
        self.scope = scope if scope is not None else ctx

    def run(self):
        """Serve the connection, then give back the admission slot."""
        try:
            logger.debug("Worker starting: peer=%s", self.peer)

            self.server.serve_conn(self.ctx, self.conn, self.peer)

            logger.debug("Worker completed: peer=%s", self.peer)

        except Exception as e:
            logger.exception("Worker exception: peer=%s, error=%s", self.peer, str(e))

        finally:
            # Always free the slot, whatever happened to the connection
            self.scope.cancel()
            self.release()
