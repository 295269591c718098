"""Service layer for the chip voting engine."""

from .results_cache import (
    results_cache,
    results_refresh,
    ResultsCache,
    ResultsRefreshCoordinator,
)  # noqa: F401

__all__ = [
    "results_cache",
    "results_refresh",
    "ResultsCache",
    "ResultsRefreshCoordinator",
]
