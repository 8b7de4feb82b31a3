"""
Readiness tracking for asynchronously-checked metadata.

Tables and indexes become usable only after a round trip to the backing
database confirms they exist and are available. Readiness models that as
a small state machine (PENDING -> READY | FAILED) with exactly-once
notification of every registered waiter.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, List, Optional


Waiter = Callable[[Optional[BaseException]], None]


class ReadinessState(str, Enum):
    """Readiness states."""
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class Readiness:
    """
    Tri-state readiness with a subscribe/notify primitive.

    Waiters are plain callables taking ``None`` on success or the failure
    exception. Each waiter is invoked exactly once, in registration order,
    and the waiter list is cleared afterwards.

    Example:
        >>> readiness = Readiness()
        >>> readiness.on_ready(lambda err: print("ready" if err is None else err))
        >>> readiness.resolve()
        ready
        True
    """

    def __init__(self):
        self._state = ReadinessState.PENDING
        self._error: Optional[BaseException] = None
        self._waiters: List[Waiter] = []
        self._notifying = False

    @property
    def state(self) -> ReadinessState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def is_ready(self) -> bool:
        return self._state is ReadinessState.READY

    @property
    def is_pending(self) -> bool:
        return self._state is ReadinessState.PENDING

    def on_ready(self, callback: Waiter) -> None:
        """
        Register a waiter.

        If readiness has already been resolved the callback runs
        synchronously with the stored outcome. A callback registered by
        another waiter during notification runs after every waiter that
        was already queued.
        """
        if self._notifying:
            self._waiters.append(callback)
        elif self._state is ReadinessState.READY:
            callback(None)
        elif self._state is ReadinessState.FAILED:
            callback(self._error)
        else:
            self._waiters.append(callback)

    async def wait(self) -> None:
        """
        Wait until resolved.

        Raises:
            The stored failure if readiness resolved to FAILED.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _done(err: Optional[BaseException]) -> None:
            if future.done():
                return
            if err is None:
                future.set_result(None)
            else:
                future.set_exception(err)

        self.on_ready(_done)
        await future

    def resolve(self) -> bool:
        """
        Transition to READY and notify waiters.

        Returns:
            False if readiness was already resolved (the call is ignored)
        """
        return self._settle(ReadinessState.READY, None)

    def fail(self, error: BaseException) -> bool:
        """
        Transition to FAILED and notify waiters with ``error``.

        Returns:
            False if readiness was already resolved (the call is ignored)
        """
        return self._settle(ReadinessState.FAILED, error)

    def take_waiters(self) -> List[Waiter]:
        """Remove and return the pending waiters."""
        waiters, self._waiters = self._waiters, []
        return waiters

    def adopt_waiters(self, waiters: List[Waiter]) -> None:
        """Register waiters taken from another Readiness, keeping their order."""
        for waiter in waiters:
            self.on_ready(waiter)

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    def __repr__(self) -> str:
        if self._state is ReadinessState.FAILED:
            return f"Readiness(failed: {self._error})"
        return f"Readiness({self._state.value}, waiters={len(self._waiters)})"

    def _settle(self, state: ReadinessState, error: Optional[BaseException]) -> bool:
        if self._state is not ReadinessState.PENDING:
            return False

        self._state = state
        self._error = error

        self._notifying = True
        try:
            while self._waiters:
                for waiter in self.take_waiters():
                    waiter(error)
        finally:
            self._notifying = False
        return True
