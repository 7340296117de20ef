"""Test doubles shared by the chargen2p test suite."""

import itertools
import threading

from chargen2p.errors import ListenerClosedError


class FakeNetConn:
    """NetConn that serves num_read bytes and swallows everything written."""

    def __init__(self, num_read: int = 0, close_write_error: Exception | None = None):
        self.num_read = num_read
        self.close_write_error = close_write_error

        self.num_close_write = 0
        self.num_write = 0
        self.written = bytearray()
        self.read_deadline = None
        self.write_deadline = None
        self.closed = False

    def read(self, size: int) -> bytes:
        if self.num_read == 0:
            return b""
        n = min(size, self.num_read)
        self.num_read -= n
        return b"x" * n

    def write(self, data: bytes) -> int:
        self.num_write += len(data)
        self.written += data
        return len(data)

    def close_write(self):
        self.num_close_write += 1
        if self.close_write_error is not None:
            raise self.close_write_error

    def close(self):
        self.closed = True

    def set_read_deadline(self, deadline):
        self.read_deadline = deadline

    def set_write_deadline(self, deadline):
        self.write_deadline = deadline


class StepClock:
    """Clock returning 1, 2, 3, ... seconds on successive calls."""

    def __init__(self):
        self._counter = itertools.count(1)

    def __call__(self) -> float:
        return float(next(self._counter))


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class SimulatedConn:
    """NetConn behaving like a chargen2p server behind a link of fixed rate.

    Writing and reading advance the clock by size / rate. After the write
    side is closed, reads return as many bytes as were written.
    """

    def __init__(self, clock: ManualClock, rate: float, close_write_error: Exception | None = None):
        self.clock = clock
        self.rate = rate
        self.close_write_error = close_write_error
        self.num_write = 0
        self.pending = 0
        self.closed = False

    def read(self, size: int) -> bytes:
        if self.pending == 0:
            return b""
        n = min(size, self.pending)
        self.pending -= n
        self.clock.advance(n / self.rate)
        return b"x" * n

    def write(self, data: bytes) -> int:
        self.clock.advance(len(data) / self.rate)
        self.num_write += len(data)
        return len(data)

    def close_write(self):
        self.pending = self.num_write
        if self.close_write_error is not None:
            raise self.close_write_error

    def close(self):
        self.closed = True

    def set_read_deadline(self, deadline):
        pass

    def set_write_deadline(self, deadline):
        pass


class SimulatedDialer:
    """Dialer handing out SimulatedConns, cycling through the given rates."""

    def __init__(self, clock: ManualClock, rates, dial_time: float = 0.001, close_write_error=None):
        self.clock = clock
        self._rates = itertools.cycle(rates)
        self.dial_time = dial_time
        self.close_write_error = close_write_error
        self.conns: list[SimulatedConn] = []

    def dial(self, address, ctx):
        self.clock.advance(self.dial_time)
        conn = SimulatedConn(self.clock, next(self._rates), self.close_write_error)
        self.conns.append(conn)
        return conn

    @property
    def chunk_sizes(self) -> list[int]:
        return [conn.num_write for conn in self.conns]


class FakeListener:
    """Listener producing num_accept FakeNetConns, then ListenerClosedError."""

    def __init__(self, num_accept: int, num_read: int = 1024, on_accept=None):
        self.num_accept = num_accept
        self.num_read = num_read
        self.on_accept = on_accept
        self.conns: list[FakeNetConn] = []

    def accept(self):
        if self.on_accept is not None:
            self.on_accept()
        if self.num_accept == 0:
            raise ListenerClosedError()
        self.num_accept -= 1
        conn = FakeNetConn(num_read=self.num_read)
        self.conns.append(conn)
        return conn, ("192.0.2.1", 40000 + len(self.conns))


class RecordingReporter:
    """Thread-safe Reporter remembering every outcome."""

    def __init__(self):
        self._lock = threading.Lock()
        self.results = []
        self.done = threading.Condition(self._lock)

    def connection_served(self, peer, info, error):
        with self._lock:
            self.results.append((peer, info, error))
            self.done.notify_all()

    @property
    def errors(self):
        with self._lock:
            return [error for _, _, error in self.results]

    def wait_for(self, count: int, timeout: float = 5.0) -> bool:
        with self._lock:
            return self.done.wait_for(lambda: len(self.results) >= count, timeout)
