"""
Unit tests for engine configuration.
"""

from sqlalchemy import pool

from common.db.session import async_database_url, engine_options


class TestAsyncDatabaseUrl:
    def test_postgres_uses_asyncpg(self):
        assert (
            async_database_url("postgresql://u:p@db:5432/billing")
            == "postgresql+asyncpg://u:p@db:5432/billing"
        )

    def test_other_urls_untouched(self):
        assert async_database_url("sqlite+aiosqlite:///:memory:") == "sqlite+aiosqlite:///:memory:"


class TestEngineOptions:
    def test_api_pool(self):
        options = engine_options("postgresql+asyncpg://u:p@db/billing", use_nullpool=False)

        assert "poolclass" not in options
        assert options["pool_size"] > 0
        assert options["connect_args"]["prepared_statement_name_func"]().startswith(
            "__asyncpg_"
        )

    def test_job_mode(self):
        options = engine_options("postgresql+asyncpg://u:p@db/billing", use_nullpool=True)

        assert options["poolclass"] is pool.NullPool
        assert "pool_size" not in options

    def test_sqlite_has_no_pool_sizing(self):
        options = engine_options("sqlite+aiosqlite:///billing.db", use_nullpool=False)

        assert "pool_size" not in options
        assert "connect_args" not in options
