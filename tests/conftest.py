"""pytest fixtures for brandshot tests.

Provides:
- postgres_container: Session-scoped testcontainer PostgreSQL instance (skipped without Docker)
- utc_timezone: Autouse fixture enforcing UTC timezone
- session: Function-scoped database session with table truncation
- uow_factory: Function-scoped UnitOfWork factory
- make_user: Inserts a committed user with a given daily quota
- settings: Settings with fast poll intervals and no credentials
"""

import os
import subprocess
import sys
from pathlib import Path
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brandshot.core.config import Settings
from brandshot.core.database import setup_db_session
from brandshot.models.user import User
from brandshot.uow import create_uow_factory

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def postgres_container():
    """Provide session-scoped PostgreSQL container with migrations applied.

    Container starts once per test session and is reused across all tests.
    Migrations are applied using subprocess to avoid asyncio event loop conflicts.
    """
    try:
        from testcontainers.postgres import PostgresContainer

        container = PostgresContainer(
            image="postgres:17",
            username="test",
            password="test",
            dbname="test_brandshot",
        )
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available for PostgreSQL tests: {e}")

    try:
        db_url = container.get_connection_url(driver="psycopg")

        # Set DATABASE_URL environment variable for alembic env.py
        env = os.environ.copy()
        env["DATABASE_URL"] = db_url

        subprocess.run(
            [sys.executable, "-m", "alembic", "upgrade", "head"],
            check=True,
            capture_output=True,
            text=True,
            env=env,
            cwd=PROJECT_ROOT,
        )

        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session", autouse=True)
def utc_timezone():
    """Enforce UTC timezone for all tests."""
    os.environ["TZ"] = "UTC"
    yield


@pytest.fixture
def settings() -> Settings:
    """Settings with fast intervals, no provider credentials and no limiter."""
    return Settings(
        POLL_INTERVAL_SECONDS=0.01,
        CLAIM_ERROR_BACKOFF_SECONDS=0.01,
        GENERATION_TIMEOUT_SECONDS=5,
        MAX_CONCURRENT_GENERATIONS=0,
        QWEN_API_KEY="",
        GEMINI_API_KEY="",
        REPLICATE_API_TOKEN="",
        _env_file=None,
    )  # type: ignore[call-arg]


@pytest_asyncio.fixture(scope="function")
async def session(postgres_container) -> AsyncGenerator[AsyncSession, None]:
    """Provide function-scoped database session with table truncation.

    Each test gets a fresh session with empty tables (truncated between tests).
    """
    db_url = postgres_container.get_connection_url(driver="psycopg")
    session_factory = setup_db_session(db_url, pool_size=5)

    async with session_factory() as session:
        yield session

        # Rollback any uncommitted changes from the test
        await session.rollback()

        # Order matters: delete from dependent tables first
        await session.execute(text("DELETE FROM assets"))
        await session.execute(text("DELETE FROM generation_jobs"))
        await session.execute(text("DELETE FROM users"))
        await session.commit()

    await session.bind.dispose()


@pytest_asyncio.fixture(scope="function")
async def uow_factory(session: AsyncSession):
    """Provide function-scoped UnitOfWork factory bound to the test database."""
    session_factory = async_sessionmaker(
        bind=session.bind,
        expire_on_commit=False,
    )
    return create_uow_factory(session_factory)


@pytest_asyncio.fixture(scope="function")
async def make_user(uow_factory):
    """Factory fixture inserting a committed user."""

    async def _make_user(quota_daily: int = 2, quota_used_today: int = 0, **kwargs) -> User:
        async with await uow_factory() as uow:
            user = await uow.users.add(
                User(quota_daily=quota_daily, quota_used_today=quota_used_today, **kwargs)
            )
        return user

    return _make_user
