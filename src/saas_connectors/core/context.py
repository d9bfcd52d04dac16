"""
Per-call execution context.

Every operation that performs I/O accepts an optional :class:`CallContext`.
The context carries a deadline and a cancellation flag shared across threads.
It is consulted before each HTTP request and while a bounded parallel batch
is scheduling work; its remaining time also bounds each request timeout so a
blocked request is terminated once the deadline passes.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import Optional

from .errors import ConnectorError, ErrorTag


@dataclass(slots=True)
class CallContext:
    """
    Deadline and cancellation token for a single library call.

    Attributes
    ----------
    deadline:
        Absolute :func:`time.monotonic` timestamp after which the call is
        abandoned. ``None`` disables the deadline.
    cancel_event:
        Event set by :meth:`cancel`. Safe to share between threads.
    """

    deadline: Optional[float] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def with_timeout(cls, seconds: float) -> "CallContext":
        """Build a context that expires ``seconds`` from now."""

        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        """Request cancellation of the call."""

        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def alive(self) -> bool:
        return not self.cancelled and not self.expired

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, ``None`` without a deadline."""

        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self) -> None:
        """Raise a ``cancelled`` error when the call was cancelled or its deadline passed."""

        if self.cancelled:
            raise ConnectorError(ErrorTag.CANCELLED, "call was cancelled")
        if self.expired:
            raise ConnectorError(ErrorTag.CANCELLED, "deadline exceeded")
