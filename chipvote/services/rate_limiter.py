from __future__ import annotations

from threading import Lock, Timer
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


Scheduler = Callable[[float, Callable[[], None]], TimerHandle]
_PendingCall = Tuple[Tuple[Any, ...], Dict[str, Any]]


def start_timer(delay: float, callback: Callable[[], None]) -> Timer:
    """Run ``callback`` once after ``delay`` seconds on a daemon thread."""
    timer = Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class Debouncer:
    """
    Coalesce a burst of calls into one call fired after the burst goes quiet.

    Each ``schedule()`` replaces the pending arguments and restarts the wait.
    ``flush()`` runs the pending call now instead of waiting for the timer.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        wait_seconds: float,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._func = func
        self._wait = max(0.0, float(wait_seconds))
        self._scheduler = scheduler or start_timer
        self._lock = Lock()
        self._handle: Optional[TimerHandle] = None
        self._pending: Optional[_PendingCall] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            self._pending = (args, kwargs)
            if self._handle is not None:
                self._handle.cancel()
            self._generation += 1
            generation = self._generation
            self._handle = self._scheduler(self._wait, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            # A timer that lost a cancel race must not run a newer burst early
            if generation != self._generation:
                return
            pending = self._pending
            self._pending = None
            self._handle = None
        if pending is not None:
            args, kwargs = pending
            self._func(*args, **kwargs)

    def flush(self) -> bool:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1
            pending = self._pending
            self._pending = None
        if pending is None:
            return False
        args, kwargs = pending
        self._func(*args, **kwargs)
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1
            self._pending = None


class Throttler:
    """
    Run at most one call per window, keeping a single trailing call.

    The first call in a quiet period runs immediately and opens a window.
    Calls made while the window is open overwrite one pending slot; when the
    window closes the pending call runs and opens the next window.
    """

    def __init__(
        self,
        func: Callable[..., Any],
        wait_seconds: float,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._func = func
        self._wait = max(0.0, float(wait_seconds))
        self._scheduler = scheduler or start_timer
        self._lock = Lock()
        self._handle: Optional[TimerHandle] = None
        self._pending: Optional[_PendingCall] = None
        self._generation = 0

    @property
    def window_open(self) -> bool:
        with self._lock:
            return self._handle is not None

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def _open_window(self) -> None:
        self._generation += 1
        generation = self._generation
        self._handle = self._scheduler(
            self._wait, lambda: self._close_window(generation)
        )

    def schedule(self, *args: Any, **kwargs: Any) -> bool:
        """Return True when the call ran now, False when it was queued."""
        with self._lock:
            if self._handle is not None:
                self._pending = (args, kwargs)
                return False
            self._open_window()
        self._func(*args, **kwargs)
        return True

    def _close_window(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._handle = None
            pending = self._pending
            self._pending = None
            if pending is not None:
                self._open_window()
        if pending is not None:
            args, kwargs = pending
            self._func(*args, **kwargs)

    def flush(self) -> bool:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1
            pending = self._pending
            self._pending = None
        if pending is None:
            return False
        args, kwargs = pending
        self._func(*args, **kwargs)
        return True

    def cancel(self) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            self._generation += 1
            self._pending = None
