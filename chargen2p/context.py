"""Cancellation and deadline propagation between servers and connections."""

import threading
import time

from chargen2p.errors import ContextCancelledError, DeadlineExceededError


class Context:
    """A cancellation signal with an optional absolute deadline.

    Contexts form a tree: cancelling a context cancels everything derived
    from it, and a derived context never outlives its parent's deadline.
    Deadlines are absolute values of ``time.monotonic()``.

    Thread-safe: cancel() may be called from any thread.
    """

    def __init__(self, deadline: float | None = None, parent: "Context | None" = None):
        """Initialize a context.

        Args:
            deadline: Absolute time.monotonic() value, or None for no deadline
            parent: Context to derive from, or None for a root context
        """
        self._parent = parent
        self._own_deadline = deadline
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._children: set[Context] = set()

        if parent is not None:
            parent._adopt(self)

    def _adopt(self, child: "Context"):
        with self._lock:
            if not self._cancelled.is_set():
                self._children.add(child)
                return
        child.cancel()

    def _forget(self, child: "Context"):
        with self._lock:
            self._children.discard(child)

    @property
    def deadline(self) -> float | None:
        """Effective deadline: the earliest of this context's and its ancestors'."""
        deadlines = []
        ctx = self
        while ctx is not None:
            if ctx._own_deadline is not None:
                deadlines.append(ctx._own_deadline)
            ctx = ctx._parent
        return min(deadlines) if deadlines else None

    def remaining(self) -> float | None:
        """Seconds until the deadline (never negative), or None without one."""
        deadline = self.deadline
        if deadline is None:
            return None
        return max(0.0, deadline - time.monotonic())

    def cancel(self):
        """Cancel this context and every context derived from it."""
        with self._lock:
            self._cancelled.set()
            children, self._children = self._children, set()
        for child in children:
            child.cancel()
        # A finished context must not stay reachable from a long-lived parent
        if self._parent is not None:
            self._parent._forget(self)

    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def done(self) -> bool:
        """True once the context is cancelled or its deadline has passed."""
        return self.error() is not None

    def error(self) -> Exception | None:
        """The reason this context is done, or None while it is still live."""
        if self.cancelled():
            return ContextCancelledError()
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            return DeadlineExceededError()
        return None

    def raise_if_done(self):
        err = self.error()
        if err is not None:
            raise err

    def with_cancel(self) -> "Context":
        """Derive a context that can be cancelled on its own."""
        return Context(parent=self)

    def with_deadline(self, deadline: float) -> "Context":
        return Context(deadline=deadline, parent=self)

    def with_timeout(self, seconds: float) -> "Context":
        """Derive a context whose deadline is `seconds` from now."""
        return self.with_deadline(time.monotonic() + seconds)


def background() -> Context:
    """Return a new root context without deadline."""
    return Context()
