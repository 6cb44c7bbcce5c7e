"""
Test configuration and shared fixtures for the Clinic Scheduler test suite.

Uses an in-memory SQLite database per test: the schema is created from the
models, so each test starts from an empty database.
"""

import pytest
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.database import build_engine, create_tables, drop_tables
from services import change_feed, first_visit_service
from services.change_feed import AppointmentChangeFeed
from services.first_visit_service import IntakeSessionRegistry


@pytest.fixture(scope="function")
def db_engine() -> Generator[Engine, None, None]:
    """
    Create an in-memory database engine for one test.

    StaticPool keeps a single connection so every session (including the
    ones FastAPI opens in its thread pool) sees the same database.
    """
    engine = build_engine("sqlite://", poolclass=StaticPool)
    create_tables(bind=engine)

    yield engine

    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker[Session]:
    """Session factory bound to the test engine."""
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine, expire_on_commit=False)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Provide a database session for a test."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def file_engine(tmp_path) -> Generator[Engine, None, None]:
    """
    Create a file-backed SQLite engine.

    Used by tests that open one connection per thread.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'scheduler.db'}")
    create_tables(bind=engine)

    yield engine

    engine.dispose()


@pytest.fixture(autouse=True)
def fresh_process_state(monkeypatch):
    """Give every test its own change feed and intake session registry."""
    monkeypatch.setattr(change_feed, "_change_feed", AppointmentChangeFeed())
    monkeypatch.setattr(first_visit_service, "_intake_registry", IntakeSessionRegistry())
