# app/db/session.py
import os
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core.config import get_settings
from app.db.base import Base

# Import ORM models so that Base.metadata is aware of them
from app.models.meeting import MeetingRecord  # noqa: F401
from app.models.user import UserRecord  # noqa: F401

settings = get_settings()

# Detect if we're running under pytest
IS_TEST = "PYTEST_CURRENT_TEST" in os.environ or settings.APP_ENV == "test"

# ---------------------------------------------------------------------------
# Main application engine + session
# ---------------------------------------------------------------------------
engine = create_async_engine(
    settings.DB_URL,
    echo=False,
    # Tests drive the app from several event loops (TestClient + pytest-asyncio),
    # so use NullPool to avoid connection reuse across loops.
    poolclass=NullPool if IS_TEST else None,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides an async SQLAlchemy session.

    The session is automatically closed when the request is completed.
    """
    async with AsyncSessionLocal() as session:
        yield session


# ---------------------------------------------------------------------------
# PRODUCTION / DEV: DB init for app startup
# ---------------------------------------------------------------------------
async def init_db_for_startup() -> None:
    """
    Initialize DB schema for application startup.

    Safe to call from FastAPI startup in non-test environments.
    Typically you'd eventually replace this with Alembic migrations.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---------------------------------------------------------------------------
# TESTS ONLY: reset schema
# ---------------------------------------------------------------------------
async def init_db() -> None:
    """
    TEST-ONLY: reset the database schema.

    Drops all tables and recreates them using the current models.
    Do NOT call this from production code. Only from tests/fixtures.
    """
    async with engine.begin() as conn:
        # Drop everything to guarantee a clean slate per test session
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
