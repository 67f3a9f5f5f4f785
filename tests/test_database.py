"""
Tests for revive/database.py - lazy engine creation and the request session.
"""
from unittest.mock import MagicMock, patch

import pytest

import revive.database as database


@pytest.fixture(autouse=True)
def _reset_engine():
    database._engine = None
    database._session_factory = None
    yield
    database._engine = None
    database._session_factory = None


def _settings(url):
    settings = MagicMock()
    settings.database_url = url
    settings.database_pool_size = 20
    settings.database_max_overflow = 10
    settings.app_env = "production"
    return settings


class TestGetEngine:
    def test_postgres_gets_pool_sizing(self):
        with (
            patch("revive.config.get_settings", return_value=_settings("postgresql+asyncpg://u:p@db/revive")),
            patch("revive.database.create_async_engine") as create,
        ):
            database._get_engine()
        kwargs = create.call_args.kwargs
        assert kwargs["pool_size"] == 20
        assert kwargs["max_overflow"] == 10
        assert kwargs["pool_pre_ping"] is True

    def test_sqlite_skips_pool_sizing(self):
        with (
            patch("revive.config.get_settings", return_value=_settings("sqlite+aiosqlite:///:memory:")),
            patch("revive.database.create_async_engine") as create,
        ):
            database._get_engine()
        assert create.call_args.kwargs == {"echo": False}

    def test_engine_is_cached(self):
        with (
            patch("revive.config.get_settings", return_value=_settings("sqlite+aiosqlite:///:memory:")),
            patch("revive.database.create_async_engine") as create,
        ):
            first = database._get_engine()
            second = database._get_engine()
        assert first is second
        assert create.call_count == 1


class TestGetDb:
    @pytest.mark.asyncio
    async def test_yields_session_and_commits(self):
        with patch("revive.config.get_settings", return_value=_settings("sqlite+aiosqlite:///:memory:")):
            gen = database.get_db()
            session = await gen.__anext__()
            assert session is not None
            with pytest.raises(StopAsyncIteration):
                await gen.__anext__()
        await database._engine.dispose()
