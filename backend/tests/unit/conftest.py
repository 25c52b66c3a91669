import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from booking_engine.database import Base, build_session_factory, init_db


@pytest.fixture(scope="function")
def _unit_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def unit_db(_unit_engine) -> Session:
    """
    Provide a session on a fresh in-memory database.

    The repository commits through this session, so each test gets its own
    engine instead of a rolled-back outer transaction.
    """
    session = build_session_factory(_unit_engine)()
    try:
        yield session
    finally:
        session.close()
