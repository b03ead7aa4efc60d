import time
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import pool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


def async_database_url(url: str) -> str:
    """Map a plain postgresql:// URL onto the asyncpg driver."""
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def engine_options(url: str, use_nullpool: bool) -> Dict[str, Any]:
    """
    Engine keyword arguments for the given async URL.

    The billing sweep runs as a short-lived job with NullPool; the API keeps
    a pool. asyncpg gets unique prepared statement names so it works behind
    PgBouncer in transaction mode.
    """
    options: Dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if url.startswith("postgresql+asyncpg://"):
        options["connect_args"] = {
            "prepared_statement_name_func": lambda: f"__asyncpg_{uuid4()}__",
        }
    if use_nullpool:
        options["poolclass"] = pool.NullPool
    elif not url.startswith("sqlite"):
        options.update(
            pool_recycle=3600,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_pool_overflow,
        )
    return options


ASYNC_DATABASE_URL = async_database_url(settings.database_url)

if settings.db_use_nullpool:
    logger.info("Using NullPool - no connection pooling (job mode)")
else:
    logger.info(
        f"Using connection pooling - pool_size={settings.db_pool_size}, "
        f"max_overflow={settings.db_pool_overflow}"
    )

engine = create_async_engine(
    ASYNC_DATABASE_URL, **engine_options(ASYNC_DATABASE_URL, settings.db_use_nullpool)
)
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

# Same engine today; point this at a replica when one exists
AsyncSessionLocalReadonly = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db():
    """Request-scoped session for endpoints that talk to the database directly."""
    start = time.perf_counter()
    async with AsyncSessionLocal() as session:
        logger.debug(f"Session acquire: {(time.perf_counter() - start) * 1000:.2f}ms")
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Rolling back due to error {e}")
            await session.rollback()
            raise


async def init_db():
    # Schema is managed by Alembic migrations
    pass
