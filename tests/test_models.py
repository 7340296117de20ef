"""Tests for chargen2p.models.ThroughputInfo invariants."""

import dataclasses

import pytest

from chargen2p.models import ThroughputInfo


class TestThroughputInfo:
    """Test ThroughputInfo dataclass behavior and invariants."""

    def test_defaults_are_zero(self):
        """Test an empty record is all zeros."""
        info = ThroughputInfo()

        assert info.dial_duration == 0.0
        assert info.written_bytes == 0
        assert info.read_bytes == 0
        assert info.worst_accuracy == 0.0

    def test_rates(self):
        """Test throughput properties divide bytes by seconds."""
        info = ThroughputInfo(
            written_bytes=1_000_000, write_duration=2.0, read_bytes=3_000_000, read_duration=1.0
        )

        assert info.write_throughput == 500_000
        assert info.read_throughput == 3_000_000
        assert info.upload_mbps == pytest.approx(4.0)
        assert info.download_mbps == pytest.approx(24.0)

    def test_zero_duration_has_no_rate(self):
        """Test a zero duration yields None instead of dividing by zero."""
        info = ThroughputInfo(written_bytes=100, read_bytes=100)

        assert info.write_throughput is None
        assert info.read_throughput is None
        assert info.upload_mbps is None
        assert info.download_mbps is None

    def test_immutable(self):
        """Test records cannot be modified once built."""
        info = ThroughputInfo()
        with pytest.raises(dataclasses.FrozenInstanceError):
            info.read_bytes = 5

    def test_replace_validates(self):
        """Test derived records go through the same validation."""
        info = ThroughputInfo(worst_accuracy=0.5)
        with pytest.raises(ValueError):
            dataclasses.replace(info, worst_accuracy=1.5)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"written_bytes": -1},
            {"read_bytes": -1},
            {"write_duration": -0.1},
            {"read_latency": -0.1},
            {"worst_accuracy": -0.01},
            {"worst_accuracy": 1.01},
        ],
    )
    def test_invalid_values(self, kwargs):
        """Test negative counters and out of range accuracies are rejected."""
        with pytest.raises(ValueError):
            ThroughputInfo(**kwargs)

    def test_accuracy_bounds_allowed(self):
        """Test both ends of [0, 1] are valid accuracies."""
        assert ThroughputInfo(worst_accuracy=0.0).worst_accuracy == 0.0
        assert ThroughputInfo(worst_accuracy=1.0).worst_accuracy == 1.0
