"""Entry point for the chargen2p server.

Implements a 2-phase character generator service. It first receives and
discards data until the client closes its sending side, and then sends back
the same amount of random text.
"""

import argparse
import logging
import os
import signal
import sys

from chargen2p.context import background
from chargen2p.errors import Chargen2pError, ListenerClosedError
from chargen2p.listeners import listen
from chargen2p.logging_config import configure_logging
from chargen2p.reporter import LogReporter, format_peer
from chargen2p.server import Server, ServerConfig, timeout_conn_context

logger = logging.getLogger(__name__)

EXIT_FAILURE = 11


def env_flag(name: str, default: bool) -> bool:
    """Read a boolean environment variable ("1", "true", "yes", "on" are true)."""
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser. Defaults come from CHARGEN2P_* variables."""
    parser = argparse.ArgumentParser(
        prog="chargen2pd",
        description="Two-phase character generator server.",
    )
    parser.add_argument(
        "--listen-addr",
        default=os.environ.get("CHARGEN2P_LISTEN_ADDR", "tcp:localhost:19"),
        help="Address to listen for connections on, e.g. tcp:localhost:19, "
        "unix:/run/chargen2p.sock, or systemd:0 for systemd socket activation.",
    )
    parser.add_argument(
        "--max-conns",
        type=int,
        default=os.environ.get("CHARGEN2P_MAX_CONNS", "10"),
        help="Maximum number of simultaneous connections.",
    )
    parser.add_argument(
        "--conn-timeout",
        type=float,
        default=os.environ.get("CHARGEN2P_CONN_TIMEOUT", "10"),
        help="Connection timeout in seconds.",
    )
    parser.add_argument(
        "--log-per-connection",
        action=argparse.BooleanOptionalAction,
        default=env_flag("CHARGEN2P_LOG_PER_CONNECTION", True),
        help="Whether to log statistics for each connection.",
    )
    parser.add_argument(
        "--standalone-log",
        action=argparse.BooleanOptionalAction,
        default=env_flag("CHARGEN2P_STANDALONE_LOG", True),
        help="Log to stderr with time prefix, instead of bare lines on stdout.",
    )
    return parser


def run(args: argparse.Namespace) -> int:
    """Serve until the listener is closed by a signal.

    Returns:
        Process exit status
    """
    config = ServerConfig(
        max_conns=args.max_conns,
        reporter=LogReporter(args.log_per_connection),
        conn_context=timeout_conn_context(args.conn_timeout),
    )

    listener = listen(args.listen_addr)
    logger.info("Listening for connections on %s...", format_peer(listener.address))

    # Closing the listener wakes up accept() with ListenerClosedError
    previous_handler = signal.signal(signal.SIGTERM, lambda *_: listener.close())

    ctx = background()
    server = Server(config)
    try:
        server.serve(listener, ctx)
    except ListenerClosedError:
        logger.info("Listener closed, stopping")
    except KeyboardInterrupt:
        logger.info("Interrupted, stopping")
    finally:
        ctx.cancel()
        listener.close()
        signal.signal(signal.SIGTERM, previous_handler)

    return 0


def main(argv=None) -> int:
    """Main entry point for the chargen2p server."""
    args = build_parser().parse_args(argv)
    configure_logging(standalone=args.standalone_log)

    try:
        return run(args)
    except (Chargen2pError, OSError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
