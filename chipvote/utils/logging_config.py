import logging
import logging.config
import os
from pathlib import Path
from typing import Optional

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# uvicorn logger name -> handlers it writes to
_SERVER_LOGGERS = {
    "uvicorn": ["console", "file_app"],
    "uvicorn.access": ["console", "file_app"],
    "uvicorn.error": ["console", "file_error"],
}


def _drop_stale_rotations(directory: Path, base_name: str, keep: int) -> None:
    if keep < 1:
        return
    rotated = sorted(
        directory.glob(f"{base_name}.*"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in rotated[keep:]:
        try:
            stale.unlink()
        except OSError:
            continue


def _rotating(path: Path, level: str, max_bytes: int, backup_count: int) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "default",
        "filename": str(path),
        "maxBytes": max_bytes,
        "backupCount": backup_count,
        "level": level,
        "encoding": "utf8",
    }


def setup_logging(log_dir: Optional[str] = None):
    """
    Configure console and rotating file logging.

    Files land in ``log_dir`` (default ``CHIPVOTE_LOG_DIR`` or ``logs``):
    ``app.log`` for INFO and up, ``error.log`` for errors only. Rotation size
    and depth come from ``LOG_MAX_BYTES`` / ``LOG_BACKUP_COUNT``.
    """
    directory = Path(log_dir or os.getenv("CHIPVOTE_LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)
    max_bytes = int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024)))
    backup_count = int(os.getenv("LOG_BACKUP_COUNT", "3"))
    app_level = os.getenv("CHIPVOTE_LOG_LEVEL", "DEBUG").upper()
    for name in ("app.log", "error.log"):
        _drop_stale_rotations(directory, name, backup_count)

    loggers = {
        "": {
            "handlers": ["console", "file_app", "file_error"],
            "level": "INFO",
            "propagate": True,
        },
        # Engine modules log under chipvote.*; root handlers write them out
        "chipvote": {"level": app_level, "propagate": True},
    }
    for name, handlers in _SERVER_LOGGERS.items():
        loggers[name] = {"handlers": handlers, "level": "INFO", "propagate": False}

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": _FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": "INFO",
                },
                "file_app": _rotating(
                    directory / "app.log", "INFO", max_bytes, backup_count
                ),
                "file_error": _rotating(
                    directory / "error.log", "ERROR", max_bytes, backup_count
                ),
            },
            "loggers": loggers,
        }
    )
    logging.getLogger("chipvote").info("Logging configured in %s", directory)
