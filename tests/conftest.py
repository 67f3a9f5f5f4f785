"""
Test configuration and fixtures.
Uses SQLite (aiosqlite) for fast tests. No network, no carrier calls.
"""
import os

# Settings require DATABASE_URL; set test defaults before anything imports revive.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("TWILIO_VALIDATE_SIGNATURES", "false")

import uuid

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.dialects.postgresql import JSONB, UUID

from revive.database import Base
import revive.models  # noqa: F401  registers tables on Base.metadata


# Register JSONB as JSON for SQLite compatibility in tests
@compiles(JSONB, "sqlite")
def _compile_jsonb_sqlite(type_, compiler, **kw):
    return "JSON"


# UUID would get NUMERIC affinity on SQLite; all-digit ids then read back as numbers
@compiles(UUID, "sqlite")
def _compile_uuid_sqlite(type_, compiler, **kw):
    return "CHAR(32)"


@pytest.fixture
async def db():
    """In-memory SQLite database for tests."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
async def session_factory(tmp_path):
    """
    File-backed SQLite shared by several sessions, for concurrent writers.
    In-memory SQLite is per-connection, so races need a real file.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'revive.db'}",
        connect_args={"timeout": 15},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def account_id():
    return uuid.UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def other_account_id():
    return uuid.UUID("22222222-2222-2222-2222-222222222222")
