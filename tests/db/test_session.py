"""Tests for engine construction and the database ping."""

import pytest
from sqlalchemy import text

from resourceplan.config.settings import Settings
from resourceplan.db import session as db_session_module
from resourceplan.db.session import build_engine


class TestBuildEngine:
    @pytest.mark.anyio
    async def test_sqlite_engine_without_pool_options(self) -> None:
        engine = build_engine(Settings(DATABASE_URL="sqlite+aiosqlite:///:memory:"))
        assert engine.dialect.name == "sqlite"
        async with engine.connect() as conn:
            assert (await conn.execute(text("SELECT 1"))).scalar() == 1
        await engine.dispose()

    def test_postgres_engine_uses_pool_size(self) -> None:
        engine = build_engine(Settings(
            DATABASE_URL="postgresql+asyncpg://u:p@localhost:5432/db", DB_POOL_SIZE=3,
        ))
        assert engine.dialect.name == "postgresql"
        assert engine.pool.size() == 3


class TestPingDatabase:
    @pytest.mark.anyio
    async def test_unreachable_database_reports_false(self, monkeypatch) -> None:
        from sqlalchemy.ext.asyncio import async_sessionmaker

        unreachable = build_engine(Settings(DATABASE_URL="sqlite+aiosqlite:////nonexistent/dir/x.db"))
        monkeypatch.setattr(
            db_session_module, "async_session_factory", async_sessionmaker(bind=unreachable),
        )
        assert await db_session_module.ping_database() is False
        await unreachable.dispose()
