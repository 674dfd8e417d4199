"""Cancellation and deadline handling for client calls."""
import threading
import time
from typing import Optional

from .errors import CancellationRequested


class CallContext:
    """Carries a cancellation signal and an optional deadline for one or more calls.

    A context may be shared between threads; ``cancel()`` wakes every sleeper
    waiting on it.
    """

    def __init__(self, timeout: Optional[float] = None,
                 cancel_event: Optional[threading.Event] = None):
        """Initialize the context.

        Args:
            timeout: Seconds from now after which the context expires, or None
            cancel_event: Event to observe instead of a private one, so that an
                existing stop event can cancel calls
        """
        self._event = cancel_event or threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None

    @classmethod
    def background(cls) -> "CallContext":
        """A context that is never cancelled and has no deadline."""
        return cls()

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def done(self) -> bool:
        return self.cancelled or self.deadline_exceeded

    def remaining(self) -> Optional[float]:
        """Seconds left until the deadline, or None without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def error(self) -> Optional[CancellationRequested]:
        """The cancellation error for a done context, None otherwise."""
        if self.cancelled:
            return CancellationRequested("call cancelled")
        if self.deadline_exceeded:
            return CancellationRequested("deadline exceeded", deadline_exceeded=True)
        return None

    def raise_if_done(self):
        err = self.error()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> bool:
        """Sleep for ``seconds`` unless the context finishes first.

        Returns:
            True if the full delay elapsed, False if the context was cancelled
            or its deadline passed before that
        """
        if self.done():
            return False
        remaining = self.remaining()
        if remaining is not None and remaining < seconds:
            self._event.wait(remaining)
            return False
        if self._event.wait(max(0.0, seconds)):
            return False
        return not self.done()
