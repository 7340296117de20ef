"""Adaptive throughput measurement against a chargen2p server."""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from chargen2p.conn import dial
from chargen2p.context import Context, background
from chargen2p.errors import ConvergenceError
from chargen2p.models import ThroughputInfo
from chargen2p.randtext import BUF_SIZE
from chargen2p.stream import Dialer, SocketDialer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeasurementOptions:
    """Limits and knobs for measure_throughput().

    Attributes:
        max_bytes: Cap on the total number of bytes to receive. The hope is to
                   never hit this hard limit, but that the tolerance criterion
                   is fulfilled first. Default is 1 GiB.
        max_duration: Cap in seconds on the projected duration of a single
                      connection. This should be at most the connection
                      timeout of the server. Default is 10s.
        min_iterations: Per-iteration size is limited so that max_bytes is not
                        hit before this many iterations. Default is 8.
        tolerance: Tolerated relative error of the last iteration, in [0, 1].
                   Measuring stops once both send and receive are within it.
                   Default is 5%.
        dialer: Opens the connections
        clock: Time source in seconds
    """

    max_bytes: int = 1024 * 1024 * 1024
    max_duration: float = 10.0
    min_iterations: int = 8
    tolerance: float = 0.05
    dialer: Dialer = field(default_factory=SocketDialer)
    clock: Callable[[], float] = time.perf_counter

    def __post_init__(self):
        if self.max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        if self.min_iterations <= 0:
            raise ValueError("min_iterations must be positive")
        if self.max_bytes // self.min_iterations < 1:
            raise ValueError("max_bytes must be at least min_iterations")
        if self.max_duration <= 0:
            raise ValueError("max_duration must be positive")
        if not 0.0 <= self.tolerance <= 1.0:
            raise ValueError("tolerance must be in [0, 1]")

    @property
    def max_chunk(self) -> int:
        """The largest number of bytes a single iteration may send."""
        return self.max_bytes // self.min_iterations


def relative_deviation(total_bytes: int, total_duration: float, last_bytes: int, last_duration: float) -> float | None:
    """Relative difference between the cumulative rate and the rate without the last sample.

    Returns:
        |rate(all) / rate(all but last) - 1|, or None if either rate has no
        duration to divide by
    """
    prev_bytes = total_bytes - last_bytes
    prev_duration = total_duration - last_duration
    if last_duration <= 0 or total_duration <= 0 or prev_duration <= 0 or prev_bytes <= 0:
        return None

    return abs((total_bytes / total_duration) / (prev_bytes / prev_duration) - 1)


def measure_throughput(address, options: MeasurementOptions | None = None, ctx: Context | None = None) -> ThroughputInfo:
    """Measure upload and download throughput to a chargen2p server.

    Dials a fresh connection per iteration, sends a chunk and receives the
    answer, doubling the chunk size while the projected iteration time allows.
    Stops as soon as the cumulative write and read rates move less than the
    tolerance when the latest iteration is added.

    Args:
        address: (host, port) or Unix-domain socket path of the server
        options: Limits, MeasurementOptions() by default
        ctx: Context bounding every dial and transfer, background() by default

    Returns:
        Accumulated ThroughputInfo with read latency averaged over iterations

    Raises:
        ConvergenceError: If max_bytes ran out first. Carries the partial info.
        OSError: On any connection failure; measuring stops immediately
        NoDataReceivedError: If the server sent nothing back
    """
    if options is None:
        options = MeasurementOptions()
    if ctx is None:
        ctx = background()
    clock = options.clock

    dial_duration = 0.0
    written_bytes = 0
    write_duration = 0.0
    read_bytes = 0
    read_duration = 0.0
    read_latency = 0.0
    worst_accuracy = 0.0

    n = min(BUF_SIZE, options.max_chunk)
    i = 0
    while read_bytes + n <= options.max_bytes:
        dial_start = clock()
        conn = dial(address, ctx, options.dialer, clock)
        dial_end = clock()

        with conn:
            nw, wdur = conn.send(ctx, n)
            nr, rdur, latency = conn.recv(ctx)

        dial_duration += dial_end - dial_start
        written_bytes += nw
        write_duration += wdur
        read_bytes += nr
        read_duration += rdur
        read_latency += latency

        logger.debug(
            "Iteration %d: n=%d, wrote %d bytes in %.6fs, read %d bytes in %.6fs",
            i, n, nw, wdur, nr, rdur,
        )

        if i > 1:
            # A simple relative error check. Real-world use will tell whether
            # it needs to be more statistically robust.
            write_dev = relative_deviation(written_bytes, write_duration, nw, wdur)
            read_dev = relative_deviation(read_bytes, read_duration, nr, rdur)
            if write_dev is None or read_dev is None:
                logger.debug("Iteration %d: zero duration, skipping accuracy check", i)
            else:
                worst_accuracy = min(1.0, max(write_dev, read_dev))
                logger.debug("Iteration %d: worst accuracy %.4f", i, worst_accuracy)

                if worst_accuracy <= options.tolerance:
                    return ThroughputInfo(
                        dial_duration=dial_duration,
                        written_bytes=written_bytes,
                        write_duration=write_duration,
                        read_bytes=read_bytes,
                        read_duration=read_duration,
                        read_latency=read_latency / (i + 1),
                        worst_accuracy=worst_accuracy,
                    )

        # The number of iterations matters, so per-iteration size is capped.
        # Hitting the server-side timeout must be avoided too.
        if n < options.max_chunk and (i == 0 or _projected_duration(2 * n, written_bytes, write_duration, read_bytes, read_duration) < options.max_duration):
            n = min(2 * n, options.max_chunk)

        i += 1

    info = ThroughputInfo(
        dial_duration=dial_duration,
        written_bytes=written_bytes,
        write_duration=write_duration,
        read_bytes=read_bytes,
        read_duration=read_duration,
        read_latency=read_latency / i if i else 0.0,
        worst_accuracy=worst_accuracy,
    )
    raise ConvergenceError(info, worst_accuracy, options.tolerance)


def _projected_duration(n: int, written_bytes: int, write_duration: float, read_bytes: int, read_duration: float) -> float:
    """Linear extrapolation of how long sending and receiving n bytes takes."""
    projected = 0.0
    if written_bytes > 0:
        projected += n * write_duration / written_bytes
    if read_bytes > 0:
        projected += n * read_duration / read_bytes
    return projected
