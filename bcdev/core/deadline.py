"""Cooperative cancellation for long network operations.

A ``Deadline`` is passed to every network call. Calls check it before
issuing a request and between streamed chunks, and clip their request
timeouts to the time remaining.
"""

from __future__ import annotations

import threading
import time

from bcdev.errors import OperationCancelled


class Deadline:
    """Absolute expiry plus a cancel flag, shareable across threads.

    Parameters
    ----------
    seconds:
        Time budget from now. ``None`` means no expiry; the deadline can
        still be cancelled explicitly.
    """

    def __init__(self, seconds: float | None = None) -> None:
        self._expires_at = None if seconds is None else time.monotonic() + seconds
        self._cancelled = threading.Event()

    @classmethod
    def never(cls) -> Deadline:
        return cls(None)

    def cancel(self) -> None:
        """Request cancellation; the next check raises ``OperationCancelled``."""
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def remaining(self) -> float | None:
        """Seconds left, ``None`` if unbounded. Never negative."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        left = self.remaining()
        return left is not None and left <= 0.0

    def check(self, what: str = "operation") -> None:
        """Raise ``OperationCancelled`` if cancelled or expired."""
        if self.cancelled:
            raise OperationCancelled(f"{what} cancelled")
        if self.expired:
            raise OperationCancelled(f"{what} exceeded its deadline")

    def clip(self, timeout: float) -> float:
        """Return *timeout* limited to the remaining time."""
        left = self.remaining()
        if left is None:
            return timeout
        return min(timeout, left)
