"""Data models for chargen2p measurements."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ThroughputInfo:
    """Measurements from a throughput test or a single served connection.

    Durations are in seconds. Byte counts are payload bytes only; protocol
    headers are not included.
    """

    # How long connecting to the remote peer took.
    dial_duration: float = 0.0
    written_bytes: int = 0
    # Time to send the data, including closing the send endpoint.
    write_duration: float = 0.0
    read_bytes: int = 0
    # Time to receive the data, counting from after closing the send endpoint.
    read_duration: float = 0.0
    # Time from closing the send endpoint until the first received block.
    # A rough latency estimate that depends on receive buffer sizes.
    read_latency: float = 0.0
    # Worst relative error of the write and read throughput of the last
    # checked iteration, in [0, 1]. Dial duration and read latency are not
    # considered, they normally vary much more.
    worst_accuracy: float = 0.0

    def __post_init__(self):
        """Reject negative counters and out of range accuracies."""
        if self.written_bytes < 0 or self.read_bytes < 0:
            raise ValueError("byte counts must not be negative")
        if min(self.dial_duration, self.write_duration, self.read_duration, self.read_latency) < 0:
            raise ValueError("durations must not be negative")
        if not 0.0 <= self.worst_accuracy <= 1.0:
            raise ValueError("worst_accuracy must be in [0, 1]")

    @property
    def write_throughput(self) -> float | None:
        """Upload rate in bytes per second, None without a measured duration."""
        if self.write_duration <= 0:
            return None
        return self.written_bytes / self.write_duration

    @property
    def read_throughput(self) -> float | None:
        """Download rate in bytes per second, None without a measured duration."""
        if self.read_duration <= 0:
            return None
        return self.read_bytes / self.read_duration

    @property
    def upload_mbps(self) -> float | None:
        rate = self.write_throughput
        return None if rate is None else rate * 8 / 1e6

    @property
    def download_mbps(self) -> float | None:
        rate = self.read_throughput
        return None if rate is None else rate * 8 / 1e6
