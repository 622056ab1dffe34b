"""Cancellation and deadline scope shared by every suspension point.

A CallScope is the caller's handle on one logical operation: it can be
cancelled from outside (e.g. on SIGINT) and may carry an absolute deadline.
Backoff sleeps and poll intervals go through :meth:`CallScope.sleep`, which
wakes early when the scope is cancelled and never sleeps past the deadline.
"""

import asyncio
import copy
import logging
import time
from typing import Callable, Optional

from terminuscli.domain.errors import Canceled

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class CallScope:
    """Cancel signal plus optional deadline for one logical operation."""

    def __init__(self, timeout: Optional[float] = None, clock: Clock = time.monotonic):
        """Initializes the scope.

        Args:
            timeout: Seconds from now until the deadline; None means no deadline.
            clock: Monotonic time source, injectable for tests.
        """
        self._clock = clock
        self._cancel_event = asyncio.Event()
        self.deadline: Optional[float] = None if timeout is None else clock() + timeout

    def child(self, timeout: Optional[float] = None) -> "CallScope":
        """Derives a scope sharing this cancel signal, bounded by the earlier deadline."""
        child = copy.copy(self)
        if timeout is not None:
            candidate = self._clock() + timeout
            if child.deadline is None or candidate < child.deadline:
                child.deadline = candidate
        return child

    def cancel(self) -> None:
        if not self._cancel_event.is_set():
            logger.debug("Call scope cancelled")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def now(self) -> float:
        return self._clock()

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline (never negative), or None without a deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - self._clock())

    def expired(self) -> bool:
        return self.deadline is not None and self._clock() >= self.deadline

    def raise_if_done(self) -> None:
        """Raises Canceled if the scope is cancelled or past its deadline."""
        if self.cancelled:
            raise Canceled("operation canceled")
        if self.expired():
            raise Canceled("deadline exceeded", deadline_exceeded=True)

    async def sleep(self, delay: float) -> None:
        """Sleeps for delay seconds unless cancelled or the deadline comes first.

        Raises:
            Canceled: The scope was cancelled during (or before) the sleep, or the
                deadline was reached before the full delay elapsed.
        """
        self.raise_if_done()
        remaining = self.remaining()
        pause = delay if remaining is None else min(delay, remaining)
        if await self._pause(max(0.0, pause)):
            raise Canceled("operation canceled")
        if remaining is not None and remaining < delay:
            raise Canceled("deadline exceeded", deadline_exceeded=True)

    async def _pause(self, seconds: float) -> bool:
        """Waits up to seconds for the cancel signal. Returns True if it fired."""
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True
