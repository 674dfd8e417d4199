"""Unit tests for call contexts."""
import threading
import time
import unittest

from b2client.context import CallContext
from b2client.errors import CancellationRequested


class TestCallContext(unittest.TestCase):
    """Test cases for CallContext."""

    def test_background(self):
        """Test a background context never finishes."""
        ctx = CallContext.background()
        self.assertFalse(ctx.done())
        self.assertIsNone(ctx.remaining())
        self.assertIsNone(ctx.error())
        self.assertTrue(ctx.sleep(0.01))

    def test_cancel(self):
        """Test cancellation is reported as an error."""
        ctx = CallContext()
        ctx.cancel()
        self.assertTrue(ctx.done())
        err = ctx.error()
        self.assertIsInstance(err, CancellationRequested)
        self.assertFalse(err.deadline_exceeded)
        with self.assertRaises(CancellationRequested):
            ctx.raise_if_done()

    def test_deadline(self):
        """Test an expired deadline is reported as deadline exceeded."""
        ctx = CallContext(timeout=0)
        self.assertTrue(ctx.deadline_exceeded)
        self.assertEqual(ctx.remaining(), 0.0)
        self.assertTrue(ctx.error().deadline_exceeded)

    def test_sleep_on_done_context_returns_immediately(self):
        """Test sleeping on a cancelled context does not wait."""
        ctx = CallContext()
        ctx.cancel()
        start = time.monotonic()
        self.assertFalse(ctx.sleep(10))
        self.assertLess(time.monotonic() - start, 1)

    def test_cancel_wakes_sleeper(self):
        """Test cancelling from another thread interrupts a sleep."""
        ctx = CallContext()
        timer = threading.Timer(0.05, ctx.cancel)
        timer.start()
        start = time.monotonic()
        try:
            self.assertFalse(ctx.sleep(10))
        finally:
            timer.cancel()
        self.assertLess(time.monotonic() - start, 5)

    def test_sleep_past_deadline(self):
        """Test a sleep longer than the deadline stops at the deadline."""
        ctx = CallContext(timeout=0.05)
        start = time.monotonic()
        self.assertFalse(ctx.sleep(10))
        self.assertLess(time.monotonic() - start, 5)

    def test_shared_stop_event(self):
        """Test an existing event can cancel the context."""
        stop_event = threading.Event()
        ctx = CallContext(cancel_event=stop_event)
        stop_event.set()
        self.assertTrue(ctx.cancelled)


if __name__ == "__main__":
    unittest.main()
