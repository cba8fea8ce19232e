# neon_spinner/services/timer_registry.py
"""Registry of every scheduled callback, so a run can cancel them all."""

import asyncio
import logging
from typing import Callable, Optional, Set

logger = logging.getLogger(__name__)


class TimerHandle:
    """A one-shot or repeating callback armed on the event loop."""

    def __init__(
        self, callback: Callable[[], None], delay_ms: float, repeating: bool, generation: int
    ):
        self.callback = callback
        self.delay_ms = delay_ms
        self.repeating = repeating
        self.generation = generation
        self.cancelled = False
        self._primitive: Optional[asyncio.TimerHandle] = None

    def __repr__(self):
        kind = "repeating" if self.repeating else "once"
        return f"<TimerHandle {kind} {self.delay_ms}ms gen={self.generation}>"


class TimerRegistry:
    """Tracks timers created by the engine.

    After cancel_all() no previously scheduled callback runs: the asyncio
    primitive is cancelled, and the generation bump makes any callback that
    was already dequeued by the loop return without doing anything.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop
        self._handles: Set[TimerHandle] = set()
        self.generation = 0

    @property
    def pending(self) -> int:
        return len(self._handles)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule(self, fn: Callable[[], None], delay_ms: float) -> TimerHandle:
        """Run fn once after delay_ms."""
        return self._arm(TimerHandle(fn, delay_ms, False, self.generation))

    def schedule_repeating(self, fn: Callable[[], None], interval_ms: float) -> TimerHandle:
        """Run fn every interval_ms until cancelled."""
        return self._arm(TimerHandle(fn, interval_ms, True, self.generation))

    def cancel(self, handle: Optional[TimerHandle]):
        """Cancel a single timer. None is accepted and ignored."""
        if handle is None:
            return
        handle.cancelled = True
        if handle._primitive is not None:
            handle._primitive.cancel()
            handle._primitive = None
        self._handles.discard(handle)

    def cancel_all(self):
        """Cancel every registered timer and start a new generation."""
        self.generation += 1
        count = len(self._handles)
        for handle in list(self._handles):
            self.cancel(handle)
        if count:
            logger.debug("Cancelled %d timers (generation %d)", count, self.generation)

    def _arm(self, handle: TimerHandle) -> TimerHandle:
        handle._primitive = self._get_loop().call_later(
            handle.delay_ms / 1000, self._fire, handle
        )
        self._handles.add(handle)
        return handle

    def _fire(self, handle: TimerHandle):
        if handle.cancelled or handle.generation != self.generation:
            self._handles.discard(handle)
            return

        if handle.repeating:
            # Re-arm first so the callback may cancel its own interval
            handle._primitive = self._get_loop().call_later(
                handle.delay_ms / 1000, self._fire, handle
            )
        else:
            handle._primitive = None
            self._handles.discard(handle)

        try:
            handle.callback()
        except Exception:
            logger.exception("Timer callback %r failed", handle)
