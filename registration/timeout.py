"""
Idle timeout watchdog for the registration session.

One timer is in flight at most. Every (re)arm cancels the previous handle
and bumps a generation counter; a timer that fires with an old generation
is ignored, so a reset racing with a firing thread timer cannot resurrect
the old deadline.
"""
import asyncio
import logging
import threading
from enum import Enum
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_SECONDS = 2 * 60 * 60


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadingScheduler:
    """Schedules callbacks on daemon threading.Timer threads."""

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        timer = threading.Timer(delay_seconds, callback)
        timer.daemon = True
        timer.start()
        return timer


class LoopScheduler:
    """Schedules callbacks on an asyncio event loop (TimerHandle.cancel)."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self.loop = loop or asyncio.get_running_loop()

    def call_later(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        return self.loop.call_later(delay_seconds, callback)


class TimeoutState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"


class SessionTimeoutManager:
    def __init__(
        self,
        timeout_seconds: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        scheduler: Optional[Scheduler] = None,
    ):
        self.timeout_seconds = timeout_seconds
        self.scheduler = scheduler or ThreadingScheduler()
        self._on_timeout: Optional[Callable[[], None]] = None
        self._handle: Optional[TimerHandle] = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> TimeoutState:
        return TimeoutState.ARMED if self._handle is not None else TimeoutState.IDLE

    @property
    def is_armed(self) -> bool:
        return self._handle is not None

    def start_timeout(self, on_timeout: Callable[[], None]) -> None:
        with self._lock:
            self._on_timeout = on_timeout
            self._arm()

    def reset_timeout(self) -> None:
        with self._lock:
            if self._on_timeout is None:
                return
            self._arm()

    def clear_timeout(self) -> None:
        with self._lock:
            self._cancel()

    def extend_session(self) -> None:
        self.reset_timeout()

    def _cancel(self) -> None:
        self._generation += 1
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _arm(self) -> None:
        self._cancel()
        generation = self._generation
        self._handle = self.scheduler.call_later(self.timeout_seconds, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._handle is None:
                return
            self._handle = None
            callback = self._on_timeout

        logger.info("registration session idle for %ss, firing timeout", self.timeout_seconds)
        if callback is not None:
            callback()
