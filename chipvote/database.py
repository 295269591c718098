import logging
import os
import sqlite3
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from chipvote.config.loader import load_config

logger = logging.getLogger("chipvote.database")

_DEFAULT_DATABASE_URL = "sqlite:///./chipvote.db"


@dataclass(frozen=True)
class StoreSettings:
    url: str
    journal_mode: str = "WAL"
    synchronous: str = "NORMAL"
    busy_timeout_ms: int = 30000
    pool_size: int = 20
    max_overflow: int = 40
    pool_timeout_seconds: int = 15
    pool_recycle_seconds: int = 1800

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")


def _positive(value, fallback: int) -> int:
    try:
        candidate = int(value)
    except (TypeError, ValueError):
        return fallback
    return candidate if candidate > 0 else fallback


def load_store_settings() -> StoreSettings:
    """Read `database_url`, `sqlite` and `database_pool` from config.

    ``CHIPVOTE_DATABASE_URL`` wins over the config file.
    """
    config = load_config()
    sqlite_section = config.get("sqlite") or {}
    pool_section = config.get("database_pool") or {}
    url = os.getenv("CHIPVOTE_DATABASE_URL") or config.get("database_url")
    defaults = StoreSettings(url=str(url or _DEFAULT_DATABASE_URL))
    return StoreSettings(
        url=defaults.url,
        journal_mode=str(sqlite_section.get("journal_mode") or defaults.journal_mode),
        synchronous=str(sqlite_section.get("synchronous") or defaults.synchronous),
        busy_timeout_ms=_positive(
            sqlite_section.get("busy_timeout_ms"), defaults.busy_timeout_ms
        ),
        pool_size=_positive(pool_section.get("pool_size"), defaults.pool_size),
        max_overflow=_positive(pool_section.get("max_overflow"), defaults.max_overflow),
        pool_timeout_seconds=_positive(
            pool_section.get("pool_timeout_seconds"), defaults.pool_timeout_seconds
        ),
        pool_recycle_seconds=_positive(
            pool_section.get("pool_recycle_seconds"), defaults.pool_recycle_seconds
        ),
    )


def _prepare_sqlite_file(url: str) -> None:
    database = make_url(url).database
    if not database or database == ":memory:":
        return
    path = Path(database)
    if not path.is_absolute():
        path = Path.cwd() / path
    path.parent.mkdir(parents=True, exist_ok=True)


def build_engine(settings: StoreSettings):
    connect_args = {}
    if settings.is_sqlite:
        _prepare_sqlite_file(settings.url)
        connect_args = {
            "check_same_thread": False,
            "timeout": max(1, settings.busy_timeout_ms / 1000),
        }
    built = create_engine(
        settings.url,
        connect_args=connect_args,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        pool_timeout=settings.pool_timeout_seconds,
        pool_recycle=settings.pool_recycle_seconds,
        pool_pre_ping=True,
        pool_use_lifo=True,
    )
    if settings.is_sqlite:

        @event.listens_for(built, "connect")
        def _apply_pragmas(dbapi_connection, _connection_record) -> None:
            if not isinstance(dbapi_connection, sqlite3.Connection):
                return
            cursor = dbapi_connection.cursor()
            cursor.execute(f"PRAGMA journal_mode={settings.journal_mode}")
            cursor.execute(f"PRAGMA synchronous={settings.synchronous}")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={settings.busy_timeout_ms}")
            cursor.close()

    return built


STORE_SETTINGS = load_store_settings()
engine = build_engine(STORE_SETTINGS)

_WRITE_LOCK = threading.RLock()


def _is_lock_contention(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return "database is locked" in message or "database table is locked" in message


class QueuedSession(Session):
    """
    Serialises SQLite writers in-process.

    A commit that still hits lock contention after the busy timeout rolls the
    whole unit of work back and raises. Commits are never retried.
    """

    def commit(self) -> None:
        with _WRITE_LOCK:
            try:
                return super().commit()
            except OperationalError as exc:
                if _is_lock_contention(exc):
                    logger.warning("SQLite busy on commit; rolling back: %s", exc)
                    super().rollback()
                raise

    def flush(self, objects=None) -> None:
        with _WRITE_LOCK:
            return super().flush(objects)


SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    class_=QueuedSession if STORE_SETTINGS.is_sqlite else Session,
)

Base = declarative_base()


def get_db():
    request_id = uuid.uuid4().hex[:8]
    logger.debug("[%s] opening store session", request_id)
    db = SessionLocal()
    try:
        yield db
    finally:
        logger.debug("[%s] closing store session", request_id)
        db.close()


@contextmanager
def session_scope():
    """Open a store handle for work running outside a request (timers, workers)."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
