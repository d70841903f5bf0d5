"""
Unit tests for the reactive primitives.
"""

import asyncio

import pytest

from expense_tracker_mcp.core.observable import Debouncer, NotificationCenter, Published, Signal


@pytest.mark.unit
class TestSignal:
    """Tests for Signal."""

    def test_emit_reaches_subscribers(self):
        signal = Signal()
        received = []
        signal.connect(received.append)
        signal.emit(1)
        signal.emit(2)
        assert received == [1, 2]

    def test_disconnect(self):
        """Test that the returned callable removes the subscription."""
        signal = Signal()
        received = []
        disconnect = signal.connect(received.append)
        disconnect()
        disconnect()
        signal.emit(1)
        assert received == []
        assert signal.subscriber_count == 0


@pytest.mark.unit
class TestPublished:
    """Tests for Published."""

    def test_assignment_notifies(self):
        value = Published(0)
        received = []
        value.subscribe(received.append)
        value.value = 5
        assert value.value == 5
        assert received == [5]

    def test_equal_assignment_is_silent(self):
        value = Published("a")
        received = []
        value.subscribe(received.append)
        value.value = "a"
        assert received == []

    def test_notify_unchanged(self):
        """Test that notify_unchanged re-announces equal values."""
        value = Published("error", notify_unchanged=True)
        received = []
        value.subscribe(received.append)
        value.value = "error"
        assert received == ["error"]


@pytest.mark.unit
class TestDebouncer:
    """Tests for Debouncer."""

    def test_fires_immediately_without_loop(self):
        calls = []
        debouncer = Debouncer(10.0, lambda: calls.append(1))
        debouncer.trigger()
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_burst_coalesces_to_one_call(self):
        """Test that rapid triggers produce a single callback."""
        calls = []
        debouncer = Debouncer(0.2, lambda: calls.append(1))
        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.01)
        assert calls == []
        assert debouncer.pending

        await asyncio.sleep(0.4)
        assert calls == [1]
        assert not debouncer.pending

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(0.02, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.cancel()
        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    async def test_fire_now(self):
        calls = []
        debouncer = Debouncer(10.0, lambda: calls.append(1))
        debouncer.trigger()
        debouncer.fire_now()
        assert calls == [1]
        debouncer.fire_now()
        assert calls == [1]


@pytest.mark.unit
class TestNotificationCenter:
    """Tests for NotificationCenter."""

    def test_post(self):
        center = NotificationCenter()
        received = []
        center.add_observer("changed", received.append)
        center.post("changed", "payload")
        center.post("other", "ignored")
        assert received == ["payload"]

    def test_remove_observer(self):
        center = NotificationCenter()
        received = []
        remove = center.add_observer("changed", received.append)
        remove()
        center.post("changed")
        assert received == []

    def test_post_after_without_loop_is_immediate(self):
        center = NotificationCenter()
        received = []
        center.add_observer("changed", received.append)
        center.post_after(5.0, "changed", 1)
        assert received == [1]

    @pytest.mark.asyncio
    async def test_post_after_is_delayed(self):
        center = NotificationCenter()
        received = []
        center.add_observer("changed", received.append)
        center.post_after(0.02, "changed", 1)
        assert received == []
        await asyncio.sleep(0.06)
        assert received == [1]
