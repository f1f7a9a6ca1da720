"""
Unit tests for ThrottleGate.
"""

from bookfeed.feed.throttle import ThrottleGate


class TestThrottleGate:
    """Tests for the minimum interval between replacements."""

    def test_first_update_admitted(self) -> None:
        gate = ThrottleGate(200)
        assert gate.admit(1000)
        assert gate.last_admitted == 1000

    def test_within_interval_rejected(self) -> None:
        gate = ThrottleGate(200)
        gate.admit(1000)
        assert not gate.admit(1199)
        assert gate.dropped == 1

    def test_at_interval_admitted(self) -> None:
        gate = ThrottleGate(200)
        gate.admit(1000)
        assert gate.admit(1200)

    def test_rejected_does_not_move_window(self) -> None:
        """A rejected update must not push the next slot further out."""
        gate = ThrottleGate(200)
        gate.admit(0)
        assert not gate.admit(150)
        assert gate.admit(200)
        assert gate.last_admitted == 200

    def test_zero_interval_admits_everything(self) -> None:
        gate = ThrottleGate(0)
        assert all(gate.admit(5) for _ in range(3))

    def test_reset(self) -> None:
        gate = ThrottleGate(200)
        gate.admit(0)
        gate.admit(10)
        gate.reset()
        assert gate.last_admitted is None
        assert gate.admitted == 0
        assert gate.dropped == 0
        assert gate.admit(10)
