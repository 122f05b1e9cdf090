"""
Single control thread for the download cycle.

All download state transitions happen on the thread running this loop.
Worker threads (HTTP transport) hand their results back through
``call_soon_threadsafe()``. Callbacks queued with ``call_soon()`` run on
the next tick, never inside the frame that queued them, which keeps
chained downloads from recursing through the transport's completion
handler.

The clock is injectable so tests can drive timers without sleeping:

    loop = EventLoop(clock=fake_clock)
    loop.call_later(60, start)
    fake_clock.advance(60)
    loop.run_pending()
"""

import heapq
import itertools
import logging
import threading
import time
from collections import deque
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class Handle:
    """Callback scheduled on the loop. Can be cancelled until it runs."""

    __slots__ = ('callback', 'args', 'cancelled')

    def __init__(self, callback: Callable, args: tuple):
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def _run(self) -> None:
        try:
            self.callback(*self.args)
        except Exception:
            logger.exception(f'Error in loop callback {getattr(self.callback, "__qualname__", self.callback)}')


class TimerHandle(Handle):
    """Callback scheduled for a point in time."""

    __slots__ = ('when',)

    def __init__(self, when: float, callback: Callable, args: tuple):
        super().__init__(callback, args)
        self.when = when


class EventLoop:
    """
    Minimal cooperative scheduler.

    Thread-safe for scheduling; callbacks only ever run on the thread
    executing ``run_once()``, ``run_pending()`` or ``run_forever()``.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        self._clock = clock or time.monotonic
        self._ready: deque = deque()
        self._timers: List[tuple] = []
        self._counter = itertools.count()
        self._cond = threading.Condition()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def time(self) -> float:
        return self._clock()

    def call_soon(self, callback: Callable, *args) -> Handle:
        """Run callback on the next tick."""
        handle = Handle(callback, args)
        with self._cond:
            self._ready.append(handle)
            self._cond.notify()
        return handle

    # Same implementation - the condition makes call_soon safe from any thread
    call_soon_threadsafe = call_soon

    def call_later(self, delay: float, callback: Callable, *args) -> TimerHandle:
        """Run callback once after delay seconds."""
        handle = TimerHandle(self.time() + max(0.0, delay), callback, args)
        with self._cond:
            heapq.heappush(self._timers, (handle.when, next(self._counter), handle))
            self._cond.notify()
        return handle

    def pending_timers(self) -> List[TimerHandle]:
        """Timers not yet run and not cancelled."""
        with self._cond:
            return [entry[2] for entry in self._timers if not entry[2].cancelled]

    def run_once(self) -> int:
        """
        Execute one tick.

        Moves due timers to the ready queue and runs everything that was
        ready at the start of the tick. Returns the number of callbacks run.
        """
        with self._cond:
            now = self.time()
            while self._timers and self._timers[0][0] <= now:
                _, _, timer = heapq.heappop(self._timers)
                self._ready.append(timer)
            batch = list(self._ready)
            self._ready.clear()

        count = 0
        for handle in batch:
            if not handle.cancelled:
                handle._run()
                count += 1
        return count

    def _has_due_work(self) -> bool:
        with self._cond:
            return bool(self._ready) or bool(self._timers and self._timers[0][0] <= self.time())

    def run_pending(self, max_ticks: int = 1000) -> int:
        """Run ticks until nothing is ready or due. Returns callbacks run."""
        total = 0
        for _ in range(max_ticks):
            if not self._has_due_work():
                break
            total += self.run_once()
        return total

    def run_forever(self) -> None:
        """Run the loop until ``stop()`` is called. This method blocks."""
        self._running = True
        self._run_until_stopped()

    def _run_until_stopped(self) -> None:
        logger.debug('Event loop started')

        while self._running:
            self.run_once()

            with self._cond:
                if not self._running or self._ready:
                    continue
                timeout = None
                if self._timers:
                    timeout = max(0.0, self._timers[0][0] - self.time())
                self._cond.wait(timeout)

        logger.debug('Event loop stopped')

    def start_background(self) -> None:
        """Run the loop in a background thread."""
        if self._thread and self._thread.is_alive():
            logger.warning('Event loop already running')
            return

        # stop() may run before the thread does
        self._running = True
        self._thread = threading.Thread(target=self._run_until_stopped, name='onlinedata-loop', daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop a running loop and wait for the background thread."""
        with self._cond:
            self._running = False
            self._cond.notify_all()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=5)
        self._thread = None
