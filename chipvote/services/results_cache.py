from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Callable, ContextManager, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from chipvote.config.loader import get_results_cache_settings
from chipvote.database import session_scope
from chipvote.services.rate_limiter import Debouncer, Scheduler, Throttler
from chipvote.services.results_manager import ResultsManager

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], ContextManager[Session]]


class ResultsCache:
    """In-process TTL cache of results documents keyed by session, layer and group."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        enabled: bool = True,
    ) -> None:
        self._lock = Lock()
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._enabled = enabled
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @staticmethod
    def key(
        session_id: str, layer: Optional[str] = None, group_id: Optional[str] = None
    ) -> str:
        return f"{session_id}:{layer or 'all'}:{group_id or '*'}"

    def configure(
        self,
        ttl_seconds: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
        enabled: Optional[bool] = None,
    ) -> None:
        with self._lock:
            if ttl_seconds is not None:
                self._ttl = float(ttl_seconds)
            if clock is not None:
                self._clock = clock
            if enabled is not None:
                self._enabled = enabled
            self._entries.clear()

    def get(
        self, session_id: str, layer: Optional[str] = None, group_id: Optional[str] = None
    ) -> Optional[Any]:
        if not self._enabled:
            return None
        cache_key = self.key(session_id, layer, group_id)
        with self._lock:
            entry = self._entries.get(cache_key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                self._entries.pop(cache_key, None)
                return None
            return value

    def set(
        self,
        session_id: str,
        value: Any,
        layer: Optional[str] = None,
        group_id: Optional[str] = None,
    ) -> None:
        if not self._enabled:
            return
        with self._lock:
            self._entries[self.key(session_id, layer, group_id)] = (
                self._clock() + self._ttl,
                value,
            )

    def invalidate_session(self, session_id: str) -> None:
        prefix = f"{session_id}:"
        with self._lock:
            for cache_key in [k for k in self._entries if k.startswith(prefix)]:
                del self._entries[cache_key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class ResultsRefreshCoordinator:
    """
    Paces recomputation per session.

    Vote writes go through a debouncer so a burst of submissions costs one
    recompute. Explicit refresh requests from polling displays go through a
    throttler: one recompute per window plus at most one trailing call.
    """

    def __init__(
        self,
        cache: ResultsCache,
        session_factory: SessionFactory = session_scope,
        settings: Optional[Dict[str, Any]] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        self._lock = Lock()
        self._debouncers: Dict[str, Debouncer] = {}
        self._throttlers: Dict[str, Throttler] = {}
        self._apply(cache, session_factory, settings, scheduler)

    def _apply(self, cache, session_factory, settings, scheduler) -> None:
        settings = settings or get_results_cache_settings()
        self._cache = cache
        self._session_factory = session_factory
        self._scheduler = scheduler
        self._debounce_seconds = int(settings.get("debounce_ms", 750)) / 1000
        self._throttle_seconds = int(settings.get("throttle_ms", 2000)) / 1000

    def configure(
        self,
        cache: Optional[ResultsCache] = None,
        session_factory: Optional[SessionFactory] = None,
        settings: Optional[Dict[str, Any]] = None,
        scheduler: Optional[Scheduler] = None,
    ) -> None:
        """Swap collaborators; pending timers are cancelled."""
        self.shutdown()
        self._apply(
            cache or self._cache,
            session_factory or self._session_factory,
            settings,
            scheduler,
        )

    def _recompute(self, session_id: str) -> None:
        try:
            with self._session_factory() as db:
                ResultsManager(db, self._cache).recompute(session_id)
        except Exception:  # noqa: BLE001
            logger.exception("Background results refresh failed for session %s", session_id)

    def _debouncer(self, session_id: str) -> Debouncer:
        with self._lock:
            debouncer = self._debouncers.get(session_id)
            if debouncer is None:
                debouncer = Debouncer(
                    self._recompute, self._debounce_seconds, self._scheduler
                )
                self._debouncers[session_id] = debouncer
            return debouncer

    def _throttler(self, session_id: str) -> Throttler:
        with self._lock:
            throttler = self._throttlers.get(session_id)
            if throttler is None:
                throttler = Throttler(
                    self._recompute, self._throttle_seconds, self._scheduler
                )
                self._throttlers[session_id] = throttler
            return throttler

    def notify_vote(self, session_id: str) -> None:
        self._debouncer(session_id).schedule(session_id)

    def request_refresh(self, session_id: str) -> bool:
        """Return True when the recompute ran during this call."""
        return self._throttler(session_id).schedule(session_id)

    def flush(self, session_id: Optional[str] = None) -> None:
        with self._lock:
            if session_id is None:
                limiters = list(self._debouncers.values()) + list(
                    self._throttlers.values()
                )
            else:
                limiters = [
                    limiter
                    for limiter in (
                        self._debouncers.get(session_id),
                        self._throttlers.get(session_id),
                    )
                    if limiter is not None
                ]
        for limiter in limiters:
            limiter.flush()

    def shutdown(self) -> None:
        with self._lock:
            limiters = list(self._debouncers.values()) + list(self._throttlers.values())
            self._debouncers.clear()
            self._throttlers.clear()
        for limiter in limiters:
            limiter.cancel()


def _build_cache() -> ResultsCache:
    settings = get_results_cache_settings()
    return ResultsCache(
        ttl_seconds=settings["ttl_seconds"], enabled=settings["enabled"]
    )


results_cache = _build_cache()
results_refresh = ResultsRefreshCoordinator(results_cache)
