"""Random printable text used as chargen payload."""

import random

# How much data is generated and handed to the kernel per call.
BUF_SIZE = 1024 * 1024

LINE_WIDTH = 80

# Maps every byte value onto the graphical ASCII range [33, 127).
_GRAPH_TABLE = bytes(33 + b % (127 - 33) for b in range(256))


class RandomTextSource:
    """Generates pseudo-random graphical ASCII characters broken into lines."""

    def __init__(self, seed: int | None = None):
        """Initialize with optional random seed for deterministic behavior."""
        # Isolated random instance, never shared through module state
        self._random = random.Random(seed)

    def read(self, n: int) -> bytes:
        """Return n bytes of random text.

        Every byte is in the range [33, 127), except positions 0, 80, 160, ...
        of the returned block, which are newlines.

        Args:
            n: Number of bytes to generate

        Returns:
            The generated bytes
        """
        if n < 0:
            raise ValueError("n must not be negative")
        if n == 0:
            return b""

        data = bytearray(self._random.randbytes(n).translate(_GRAPH_TABLE))
        data[::LINE_WIDTH] = b"\n" * len(range(0, n, LINE_WIDTH))
        return bytes(data)
