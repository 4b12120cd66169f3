"""
Фикстуры pytest: база SQLite в памяти и параметры раннера для тестов.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leads_sync.database import Base
from leads_sync.services.job_store import JobStore
from leads_sync.services.reconciliation import RunnerOptions


@pytest.fixture
def session_factory():
    """Фабрика сессий поверх одной базы в памяти на весь тест."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def job_store(session_factory) -> JobStore:
    return JobStore(session_factory, max_error_details=500)


@pytest.fixture
def fast_options() -> RunnerOptions:
    """Параметры раннера без пауз между батчами и повторами."""
    return RunnerOptions(
        batch_size=10,
        concurrency=3,
        batch_pause_seconds=0,
        max_attempts=2,
        retry_base_delay=0,
        timeout_seconds=5,
    )
