"""Cooperative one-second countdown used to gate OTP entry."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable


class Countdown:
    """
    Counts down from `seconds` to zero, one `tick()` per interval.

    `tick()` is synchronous, so reaching zero and the expiry callback happen
    in the same step. `start()` drives ticks from an asyncio task; `cancel()`
    tears that task down and must be called when the owner goes away.
    """

    def __init__(
        self,
        seconds: int,
        on_expire: Callable[[], None] | None = None,
        on_tick: Callable[[int], None] | None = None,
        interval: float = 1.0,
    ) -> None:
        if seconds <= 0:
            msg = "Countdown must start above zero"
            raise ValueError(msg)
        self.total = seconds
        self.remaining = seconds
        self.interval = interval
        self._on_expire = on_expire
        self._on_tick = on_tick
        self._task: asyncio.Task[None] | None = None
        self._started = False

    @property
    def expired(self) -> bool:
        return self.remaining <= 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def tick(self) -> int:
        """Advance one second. Returns the remaining seconds."""
        if self.expired:
            return 0
        self.remaining -= 1
        if self._on_tick is not None:
            self._on_tick(self.remaining)
        if self.expired and self._on_expire is not None:
            self._on_expire()
        return self.remaining

    def start(self) -> None:
        """Begin ticking on the running event loop."""
        if self.running or self.expired:
            return
        self._started = True
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while not self.expired:
            await asyncio.sleep(self.interval)
            self.tick()

    def reset(self, seconds: int | None = None) -> None:
        """Restart from the full window (or `seconds`), keeping the ticker running."""
        restart = self._started
        self.cancel()
        if seconds is not None:
            self.total = seconds
        self.remaining = self.total
        if restart:
            self.start()

    def cancel(self) -> None:
        """Stop ticking. Safe to call repeatedly."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait_cancelled(self) -> None:
        """Cancel and wait for the ticker task to finish."""
        task = self._task
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def format(self) -> str:
        """Remaining time as m:ss."""
        minutes, secs = divmod(max(self.remaining, 0), 60)
        return f"{minutes}:{secs:02d}"
