"""
Trailing-edge debounce: a burst of calls within `wait_ms` runs the function once,
after the last call. Timers are pluggable so the same primitive works with threads,
an asyncio loop, or a manual clock in tests.
"""
import asyncio
import logging
import threading
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# (delay in seconds, callback) -> handle with cancel()
TimerFactory = Callable[[float, Callable[[], None]], Any]

def thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer

def loop_timer(loop: asyncio.AbstractEventLoop) -> TimerFactory:
    def factory(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return loop.call_later(delay, callback)
    return factory


class Debouncer:
    def __init__(self, func: Callable[[], Any], wait_ms: float = 1000, timer_factory: Optional[TimerFactory] = None) -> None:
        self._func = func
        self._wait = wait_ms / 1000
        self.timer_factory = timer_factory or thread_timer
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def __call__(self) -> None:
        """
        (Re)arm the timer; a pending call is superseded.
        """
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            generation = self._generation
            self._timer = self.timer_factory(self._wait, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            # a cancelled thread timer may still fire once it is already running
            if generation != self._generation or self._timer is None:
                return
            self._timer = None
        self._run()

    def _run(self) -> None:
        try:
            self._func()
        except Exception as e:  # pylint: disable=broad-exception-caught
            logger.error(f"Debounced call {getattr(self._func, '__name__', self._func)} failed: {e}")

    def cancel(self) -> bool:
        with self._lock:
            if self._timer is None:
                return False
            self._timer.cancel()
            self._timer = None
            self._generation += 1
            return True

    def flush(self) -> bool:
        """
        Run the pending call now. Return False if nothing was pending.
        """
        if not self.cancel():
            return False
        self._run()
        return True
