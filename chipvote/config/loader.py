from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_TRUTHY = {"1", "true", "yes", "on"}

_DEFAULT_SESSION_SETTINGS = {
    "chips_per_type": 4,
    "layer1_seconds": 7 * 60,
    "layer2_seconds": 7 * 60,
    "require_department": True,
    "allow_revotes": False,
}
_DEFAULT_RESULTS_CACHE = {
    "enabled": True,
    "ttl_seconds": 3,
    "debounce_ms": 750,
    "throttle_ms": 2000,
}
# results_cache key -> environment override
_RESULTS_CACHE_ENV = {
    "enabled": "CHIPVOTE_RESULTS_CACHE_ENABLED",
    "ttl_seconds": "CHIPVOTE_RESULTS_CACHE_TTL_SECONDS",
    "debounce_ms": "CHIPVOTE_RESULTS_DEBOUNCE_MS",
    "throttle_ms": "CHIPVOTE_RESULTS_THROTTLE_MS",
}


def load_config() -> Dict[str, Any]:
    """Read ``config.yaml``; any problem with the file yields an empty mapping."""
    try:
        raw = _CONFIG_PATH.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("No config file at %s; using built-in defaults.", _CONFIG_PATH)
        return {}
    except OSError as exc:
        logger.error("Could not read config file %s: %s", _CONFIG_PATH, exc)
        return {}
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        logger.error("Config file %s is not valid YAML: %s", _CONFIG_PATH, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Config file %s must hold a mapping; ignoring it.", _CONFIG_PATH)
        return {}
    return data


def _as_positive_int(value: Any, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    try:
        number = int(value)
    except (TypeError, ValueError):
        return fallback
    return number if number > 0 else fallback


def _as_bool(value: Any, fallback: bool) -> bool:
    if value is None:
        return fallback
    if isinstance(value, str):
        return value.strip().lower() in _TRUTHY
    return bool(value)


def sanitize_base_url(value: Optional[str]) -> Optional[str]:
    trimmed = str(value or "").strip()
    if not trimmed:
        return None
    return trimmed.rstrip("/") or None


def get_session_defaults() -> Dict[str, Any]:
    """Defaults applied to newly created voting sessions."""
    section = load_config().get("session_defaults") or {}
    defaults = _DEFAULT_SESSION_SETTINGS
    settings: Dict[str, Any] = {}
    for key in ("chips_per_type", "layer1_seconds", "layer2_seconds"):
        settings[key] = _as_positive_int(section.get(key), defaults[key])
    for key in ("require_department", "allow_revotes"):
        settings[key] = _as_bool(section.get(key), defaults[key])
    return settings


def get_results_cache_settings() -> Dict[str, Any]:
    """Results cache TTL and refresh pacing; env vars override the config file."""
    section = load_config().get("results_cache") or {}
    merged: Dict[str, Any] = {}
    for key, env_name in _RESULTS_CACHE_ENV.items():
        env_value = os.getenv(env_name)
        merged[key] = section.get(key) if env_value is None else env_value.strip()

    settings: Dict[str, Any] = {
        "enabled": _as_bool(merged["enabled"], _DEFAULT_RESULTS_CACHE["enabled"])
    }
    for key in ("ttl_seconds", "debounce_ms", "throttle_ms"):
        settings[key] = _as_positive_int(merged[key], _DEFAULT_RESULTS_CACHE[key])
    return settings


def get_participant_base_url() -> Optional[str]:
    """
    Base URL participants use to join a session.

    Priority:
    1) CHIPVOTE_PARTICIPANT_BASE_URL env var
    2) config.yaml participant_base_url
    3) None (no join link is advertised)
    """
    from_env = sanitize_base_url(os.getenv("CHIPVOTE_PARTICIPANT_BASE_URL"))
    if from_env:
        return from_env
    return sanitize_base_url(load_config().get("participant_base_url"))
