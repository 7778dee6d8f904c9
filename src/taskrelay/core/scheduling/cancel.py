"""One-shot cancellation signal for interruptible waits.

A ``CancelToken`` belongs to exactly one ``TaskWorker``. ``stop()`` on the
worker fires the token, which wakes a sleeping control loop immediately
instead of letting it run out the poll interval.

Once fired, the token stays fired: every ``wait()`` or ``sleep()`` started
afterwards returns at once, so there is no window in which a cancel can
be missed between the loop's check and its next sleep.

Tags:
    taskrelay, scheduling, cancellation, asyncio
"""

from __future__ import annotations

import asyncio


class CancelToken:
    """Broadcast, one-shot cancellation backed by ``asyncio.Event``.

    Example:
        >>> token = CancelToken.create()
        >>> cancelled = await token.sleep(5.0)   # False after 5s ...
        >>> token.cancel()                         # ... or True right away
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @classmethod
    def create(cls) -> CancelToken:
        return cls()

    def cancel(self) -> None:
        """Fire the token. Calling it again has no further effect."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        """Resolve once the token has been cancelled."""
        await self._event.wait()

    async def sleep(self, seconds: float) -> bool:
        """Sleep for *seconds*, or less if the token fires first.

        Returns:
            True if cancellation ended the sleep, False if the timer elapsed.
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(0.0, seconds))
        except TimeoutError:
            return False
        return True
