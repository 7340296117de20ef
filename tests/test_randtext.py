"""Unit tests for RandomTextSource."""

import pytest

from chargen2p.randtext import LINE_WIDTH, RandomTextSource


class TestRandomTextSource:
    """Test the generated payload text."""

    def test_exact_length(self):
        """Test that read(n) returns exactly n bytes."""
        source = RandomTextSource(seed=1)
        for n in (0, 1, 79, 80, 81, 4096, 100_000):
            assert len(source.read(n)) == n

    def test_bytes_are_graphical_or_newline(self):
        """Test every byte is in [33, 127) or a newline."""
        data = RandomTextSource(seed=2).read(10_000)

        for b in data:
            assert b == ord("\n") or 33 <= b < 127, f"unexpected byte {b}"

    def test_newline_every_line_width(self):
        """Test newlines sit exactly on positions 0, 80, 160, ..."""
        data = RandomTextSource(seed=3).read(1000)

        for i, b in enumerate(data):
            if i % LINE_WIDTH == 0:
                assert b == ord("\n"), f"position {i} should be a newline"
            else:
                assert b != ord("\n"), f"position {i} should not be a newline"

    def test_no_whitespace_besides_newlines(self):
        """Test the text contains no spaces or tabs."""
        data = RandomTextSource(seed=4).read(50_000)
        assert b" " not in data
        assert b"\t" not in data

    def test_deterministic_with_seed(self):
        """Test seeded sources produce identical text."""
        assert RandomTextSource(seed=42).read(500) == RandomTextSource(seed=42).read(500)

    def test_successive_reads_differ(self):
        """Test the source keeps producing fresh data when reused."""
        source = RandomTextSource(seed=5)
        assert source.read(500) != source.read(500)

    def test_negative_length_rejected(self):
        """Test read() rejects negative lengths."""
        with pytest.raises(ValueError):
            RandomTextSource().read(-1)
