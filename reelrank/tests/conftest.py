"""
Pytest configuration and fixtures for database testing.

Tests run against a throwaway SQLite file by default. Set TEST_DATABASE_URL
to run them against PostgreSQL instead; the database name must contain
"test" since every table is truncated between tests.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.pop("OPENWEATHER_API_KEY", None)

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from reelrank.database import db
from reelrank.database.db import Base


def _resolve_test_database_url(tmp_path) -> str:
    """
    Pick the database for a test run.

    Refuses to run against a PostgreSQL database whose name does not
    contain "test" so a misconfigured environment cannot wipe real data.
    """
    url = os.getenv("TEST_DATABASE_URL")
    if not url:
        return f"sqlite+aiosqlite:///{tmp_path / 'reelrank_test.db'}"

    if not url.startswith("sqlite"):
        db_name = url.rsplit("/", 1)[-1].split("?", 1)[0]
        if "test" not in db_name.lower():
            raise RuntimeError(
                f"Refusing to run tests against database '{db_name}': "
                "TEST_DATABASE_URL must point at a database whose name contains 'test'"
            )
    return url


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """
    Create a test database engine with a fresh schema.

    Also points db.AsyncSessionLocal at the test database so code that opens
    its own sessions (queue worker, lifecycle worker) uses it too.
    """
    url = _resolve_test_database_url(tmp_path)
    engine = create_async_engine(url, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        if engine.dialect.name == "postgresql":
            table_list = ", ".join(f'"{t.name}"' for t in Base.metadata.sorted_tables)
            await conn.execute(text(f"TRUNCATE TABLE {table_list} RESTART IDENTITY CASCADE"))

    session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    original_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = session_maker

    yield engine

    db.AsyncSessionLocal = original_session_local
    if engine.dialect.name == "postgresql":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Create a database session for a test."""
    async with db.AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest.fixture(autouse=True)
def no_external_calls(monkeypatch):
    """Keep weather lookups and push delivery off the network."""
    from reelrank.services import notification_service, weather_service

    async def fake_get_weather_data(latitude, longitude):
        return None

    sent = []

    async def fake_send_push_notifications(messages):
        sent.extend(messages)

    monkeypatch.setattr(weather_service, "get_weather_data", fake_get_weather_data)
    monkeypatch.setattr(notification_service, "send_push_notifications", fake_send_push_notifications)
    return sent

