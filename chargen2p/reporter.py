"""Reporter abstraction for per-connection server outcomes."""

import logging
from typing import Protocol

from chargen2p.models import ThroughputInfo

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    """Protocol for receiving the outcome of each served connection.

    Implementations are called from connection worker threads and must be
    safe for concurrent use.
    """

    def connection_served(
        self, peer, info: ThroughputInfo | None, error: Exception | None
    ) -> None:
        """Called once when a connection is done. Exactly one of info and error is set."""
        ...


class LogReporter:
    """Reporter that logs one line per connection."""

    def __init__(self, enabled: bool = True):
        """Initialize, optionally muted (useful for busy public servers)."""
        self.enabled = enabled

    def connection_served(self, peer, info: ThroughputInfo | None, error: Exception | None):
        if not self.enabled:
            return

        if error is not None:
            logger.info("%s: %s", format_peer(peer), error)
            return

        logger.info(
            "%s: Received %d bytes in %.3fs, sent %d bytes in %.3fs.",
            format_peer(peer),
            info.read_bytes,
            info.read_duration,
            info.written_bytes,
            info.write_duration,
        )


def format_peer(peer) -> str:
    """Render a socket address the way it is usually written."""
    if isinstance(peer, tuple) and len(peer) >= 2:
        host, port = peer[0], peer[1]
        if ":" in str(host):
            return f"[{host}]:{port}"
        return f"{host}:{port}"
    if not peer:
        return "(unknown)"
    return str(peer)
