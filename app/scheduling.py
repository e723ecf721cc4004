
# app/scheduling.py
from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Protocol

logger = logging.getLogger("pushpay.scheduler")


class Clock(Protocol):
    def now(self) -> datetime: ...
    def sleep(self, seconds: float) -> None: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class Handle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay_s: float, fn: Callable[[], None], *, name: str = "") -> Handle: ...
    def call_every(self, interval_s: float, fn: Callable[[], None], *, name: str = "") -> Handle: ...
    def shutdown(self) -> None: ...


def _run_safely(fn: Callable[[], None], name: str) -> None:
    try:
        fn()
    except Exception:
        logger.exception("scheduled_task_failed name=%s", name or getattr(fn, "__name__", "?"))


# ==========================================================
# Real time
# ==========================================================

class _TimerHandle:
    def __init__(self, timer: threading.Timer):
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()

    @property
    def active(self) -> bool:
        return self._timer.is_alive()


class _RepeatingHandle:
    def __init__(self) -> None:
        self.stopped = threading.Event()

    def cancel(self) -> None:
        self.stopped.set()

    @property
    def active(self) -> bool:
        return not self.stopped.is_set()


class ThreadScheduler:
    """
    Runs deferred callbacks on daemon timer threads.
    Callback exceptions are logged, never propagated.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handles: list = []
        self._closed = False

    def call_later(self, delay_s: float, fn: Callable[[], None], *, name: str = "") -> Handle:
        timer = threading.Timer(max(0.0, float(delay_s)), _run_safely, args=(fn, name))
        timer.daemon = True
        handle = _TimerHandle(timer)
        with self._lock:
            if self._closed:
                raise RuntimeError("scheduler is shut down")
            self._handles = [h for h in self._handles if h.active]
            self._handles.append(handle)
        timer.start()
        return handle

    def call_every(self, interval_s: float, fn: Callable[[], None], *, name: str = "") -> Handle:
        handle = _RepeatingHandle()

        def _loop() -> None:
            while not handle.stopped.wait(interval_s):
                _run_safely(fn, name)

        thread = threading.Thread(target=_loop, name=name or "pushpay-repeat", daemon=True)
        with self._lock:
            if self._closed:
                raise RuntimeError("scheduler is shut down")
            self._handles = [h for h in self._handles if h.active]
            self._handles.append(handle)
        thread.start()
        return handle

    def shutdown(self) -> None:
        with self._lock:
            self._closed = True
            handles, self._handles = self._handles, []
        for h in handles:
            h.cancel()


# ==========================================================
# Virtual time (tests)
# ==========================================================

class ManualClock:
    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        self.scheduler: Optional["VirtualScheduler"] = None

    def now(self) -> datetime:
        return self._now

    def sleep(self, seconds: float) -> None:
        # sleeping moves virtual time and fires whatever became due
        if self.scheduler is not None:
            self.scheduler.advance(seconds)
        else:
            self._now += timedelta(seconds=seconds)

    def set(self, value: datetime) -> None:
        self._now = value


class _VirtualHandle:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """
    Deterministic scheduler driven by ManualClock.
    Nothing runs until advance() moves time past a task's due time.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        clock.scheduler = self
        self._queue: list[tuple[datetime, int, _VirtualHandle, Callable[[], None], str, Optional[float]]] = []
        self._seq = itertools.count()

    def _push(self, due: datetime, handle: _VirtualHandle, fn, name: str, every: Optional[float]) -> None:
        heapq.heappush(self._queue, (due, next(self._seq), handle, fn, name, every))

    def call_later(self, delay_s: float, fn: Callable[[], None], *, name: str = "") -> Handle:
        handle = _VirtualHandle()
        self._push(self.clock.now() + timedelta(seconds=max(0.0, delay_s)), handle, fn, name, None)
        return handle

    def call_every(self, interval_s: float, fn: Callable[[], None], *, name: str = "") -> Handle:
        handle = _VirtualHandle()
        self._push(self.clock.now() + timedelta(seconds=interval_s), handle, fn, name, interval_s)
        return handle

    def advance(self, seconds: float) -> int:
        """Move time forward, running due tasks in order. Returns tasks run."""
        target = self.clock.now() + timedelta(seconds=seconds)
        ran = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, fn, name, every = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self.clock.set(max(self.clock.now(), due))
            _run_safely(fn, name)
            ran += 1
            if every is not None and not handle.cancelled:
                self._push(due + timedelta(seconds=every), handle, fn, name, every)
        self.clock.set(max(self.clock.now(), target))
        return ran

    def pending(self) -> int:
        return sum(1 for item in self._queue if not item[2].cancelled)

    def shutdown(self) -> None:
        for item in self._queue:
            item[2].cancel()
        self._queue.clear()
