"""Entry point for the chargen2p throughput probe."""

import argparse
import logging
import os
import sys

from chargen2p.errors import Chargen2pError, ConvergenceError
from chargen2p.listeners import parse_host_port
from chargen2p.logging_config import configure_logging
from chargen2p.models import ThroughputInfo
from chargen2p.throughput import MeasurementOptions, measure_throughput

logger = logging.getLogger(__name__)

EXIT_FAILURE = 11

DEFAULT_PORT = 19


def build_parser() -> argparse.ArgumentParser:
    defaults = MeasurementOptions()

    parser = argparse.ArgumentParser(
        prog="chargen2p-probe",
        description="Measure upload and download throughput to a chargen2p server.",
    )
    parser.add_argument(
        "--addr",
        default=os.environ.get("CHARGEN2P_ADDR", "localhost:19"),
        help="TCP address (host:port) or Unix-domain socket path to connect to.",
    )
    parser.add_argument(
        "--max-bytes", type=int, default=defaults.max_bytes,
        help="Cap on the total number of bytes to receive.",
    )
    parser.add_argument(
        "--max-duration", type=float, default=defaults.max_duration,
        help="Cap on the duration of a single connection, in seconds.",
    )
    parser.add_argument(
        "--min-iterations", type=int, default=defaults.min_iterations,
        help="Minimum number of connections before max-bytes is reached.",
    )
    parser.add_argument(
        "--tolerance", type=float, default=defaults.tolerance,
        help="Tolerated relative error of the last iteration, in [0, 1].",
    )
    return parser


def parse_address(text: str):
    """A path (anything with a slash) dials a Unix-domain socket, the rest is host:port."""
    if "/" in text:
        return text
    return parse_host_port(text, default_port=DEFAULT_PORT)


def format_report(info: ThroughputInfo) -> str:
    lines = []
    for verb, nbytes, duration, mbps in (
        ("Uploaded", info.written_bytes, info.write_duration, info.upload_mbps),
        ("Downloaded", info.read_bytes, info.read_duration, info.download_mbps),
    ):
        rate = "n/a" if mbps is None else f"{mbps:.3f} Mbps"
        lines.append(f"{verb} {nbytes} bytes in {duration:.3f}s: {rate}")
    return "\n".join(lines)


def main(argv=None) -> int:
    """Main entry point for the throughput probe."""
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        options = MeasurementOptions(
            max_bytes=args.max_bytes,
            max_duration=args.max_duration,
            min_iterations=args.min_iterations,
            tolerance=args.tolerance,
        )
        info = measure_throughput(parse_address(args.addr), options)
    except ConvergenceError as e:
        print(format_report(e.info))
        logger.error("%s", e)
        return EXIT_FAILURE
    except (Chargen2pError, OSError, ValueError) as e:
        logger.error("%s", e)
        return EXIT_FAILURE

    print(format_report(info))
    return 0


if __name__ == "__main__":
    sys.exit(main())
