"""Tests for ThrottledLogger."""

import logging

import pytest

from vofusion.logutil import ThrottledLogger


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def throttled(clock) -> ThrottledLogger:
    return ThrottledLogger(logging.getLogger("vofusion.test"), period=10.0, clock=clock)


class TestThrottledLogger:
    """Test suite for ThrottledLogger."""

    def test_first_record_is_emitted(self, throttled, caplog):
        caplog.set_level(logging.WARNING, logger="vofusion.test")

        assert throttled.warning("a", "frame %s missing", "cam0") is True
        assert "frame cam0 missing" in caplog.text

    def test_suppressed_within_period(self, throttled, clock, caplog):
        """Repeats inside the period are dropped."""
        caplog.set_level(logging.WARNING, logger="vofusion.test")

        throttled.warning("a", "missing")
        clock.now += 9.9
        assert throttled.warning("a", "missing") is False

        clock.now += 0.1
        assert throttled.warning("a", "missing") is True
        assert caplog.text.count("missing") == 2

    def test_keys_are_independent(self, throttled):
        """Each key has its own period."""
        assert throttled.error("a", "x") is True
        assert throttled.error("b", "y") is True
        assert throttled.error("a", "x") is False

    def test_reset(self, throttled):
        """reset forgets previous emissions."""
        throttled.warning("a", "x")
        throttled.reset()
        assert throttled.should_emit("a") is True
        assert throttled.period == 10.0
