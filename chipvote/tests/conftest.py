import contextlib

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from chipvote.database import Base, get_db
from chipvote.main import app
from chipvote.data.participant_manager import ParticipantManager
from chipvote.data.session_manager import SessionManager
from chipvote.services.results_cache import results_cache, results_refresh
from chipvote.tests.helpers import ManualScheduler

# Define a test database URL
TEST_DATABASE_URL = "sqlite:///:memory:"  # Use in-memory SQLite for tests
engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite needs explicit BEGIN for SAVEPOINT-based test isolation
@event.listens_for(engine, "connect")
def _disable_pysqlite_transactions(dbapi_connection, _connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    join_transaction_mode="create_savepoint",
)


@pytest.fixture(scope="session")
def create_test_tables():
    """Create all database tables once per session before tests run."""
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture(scope="function")
def db_session(create_test_tables):
    """
    Provides a transactional database session for a test.
    Rolls back changes after the test and overrides the app's get_db.
    """
    connection = engine.connect()
    transaction = connection.begin()
    db = TestingSessionLocal(bind=connection)

    original_get_db = app.dependency_overrides.get(get_db)
    app.dependency_overrides[get_db] = lambda: db

    try:
        yield db
    finally:
        db.close()
        transaction.rollback()
        connection.close()
        if original_get_db:
            app.dependency_overrides[get_db] = original_get_db
        else:
            del app.dependency_overrides[get_db]


@pytest.fixture(scope="function")
def scheduler():
    return ManualScheduler()


@pytest.fixture(autouse=True)
def refresh_coordinator(request, scheduler):
    """Point the shared cache and refresh coordinator at the test session."""
    results_cache.configure(ttl_seconds=3, clock=lambda: scheduler.now, enabled=True)
    if "db_session" in request.fixturenames:
        db = request.getfixturevalue("db_session")
        results_refresh.configure(
            cache=results_cache,
            session_factory=lambda: contextlib.nullcontext(db),
            settings={"debounce_ms": 750, "throttle_ms": 2000},
            scheduler=scheduler,
        )
    yield results_refresh
    results_refresh.shutdown()
    results_cache.clear()


@pytest.fixture(scope="function")
def client(db_session: Session):
    """Provides a TestClient instance for making requests to the FastAPI app."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def session_manager(db_session: Session) -> SessionManager:
    return SessionManager(db_session)


@pytest.fixture
def participant_manager(db_session: Session) -> ParticipantManager:
    return ParticipantManager(db_session)


@pytest.fixture
def voting_session(session_manager: SessionManager):
    return session_manager.create_session("facilitator-1")

