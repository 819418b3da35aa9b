import asyncio
from dataclasses import dataclass
from typing import Callable, Optional


class Timer:
    def __init__(self, callback: Callable[[], None], period: Optional[float] = None):
        self.callback = callback
        self.period = period
        self.cancelled = False
        self._handle: Optional[asyncio.TimerHandle] = None

    def cancel(self) -> None:
        self.cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


@dataclass
class TimerFired:
    timer: Timer


class LoopScheduler:
    """Timers on the running asyncio loop.

    A due timer is not run in place: a TimerFired event is posted to the
    engine queue and handled by the dispatch loop between network events.
    """

    def __init__(self, events: asyncio.Queue):
        self.events = events

    def after(self, delay: float, callback: Callable[[], None]) -> Timer:
        timer = Timer(callback)
        self._arm(timer, delay)
        return timer

    def every(self, period: float, callback: Callable[[], None]) -> Timer:
        timer = Timer(callback, period)
        self._arm(timer, period)
        return timer

    def _arm(self, timer: Timer, delay: float) -> None:
        loop = asyncio.get_running_loop()
        timer._handle = loop.call_later(delay, self._fire, timer)

    def _fire(self, timer: Timer) -> None:
        if timer.cancelled:
            return
        self.events.put_nowait(TimerFired(timer))
        if timer.period:
            self._arm(timer, timer.period)
