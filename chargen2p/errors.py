"""Exception types raised by chargen2p."""


class Chargen2pError(Exception):
    """Base class for all chargen2p errors."""


class NoDataReceivedError(Chargen2pError):
    """The peer closed its side without sending a single byte."""

    def __init__(self, message: str = "no data received"):
        super().__init__(message)


class NotNetConnError(Chargen2pError, TypeError):
    """The connection cannot half-close or take deadlines."""

    def __init__(self, conn: object):
        super().__init__(
            f"connection does not support half-close and deadlines: {type(conn).__name__}"
        )
        self.conn = conn


class ListenerClosedError(Chargen2pError):
    """The listener was closed. Accept loops treat this as a normal stop."""

    def __init__(self, message: str = "listener closed"):
        super().__init__(message)


class ContextCancelledError(Chargen2pError):
    """The context was cancelled."""

    def __init__(self, message: str = "context cancelled"):
        super().__init__(message)


class DeadlineExceededError(Chargen2pError, TimeoutError):
    """The context deadline passed."""

    def __init__(self, message: str = "context deadline exceeded"):
        super().__init__(message)


class ConvergenceError(Chargen2pError):
    """Throughput measurement ran out of budget before reaching the tolerance.

    Attributes:
        info: The partial ThroughputInfo collected so far
        achieved: The worst relative accuracy of the last checked iteration
        wanted: The configured tolerance
    """

    def __init__(self, info, achieved: float, wanted: float):
        super().__init__(
            f"couldn't reach tolerance within limits: got {achieved:.2f}, want {wanted:.2f}"
        )
        self.info = info
        self.achieved = achieved
        self.wanted = wanted


class SystemdUnavailableError(Chargen2pError):
    """No systemd socket activation descriptors were passed to this process."""

    def __init__(self, message: str = "systemd is not available"):
        super().__init__(message)


class InvalidAddressError(Chargen2pError, ValueError):
    """A listen or dial address could not be interpreted."""
