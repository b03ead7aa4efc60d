"""
Operation-scoped database sessions.

get_session() hands repositories a session for one operation: the enclosing
transaction()'s session when there is one, otherwise a short-lived session
that commits and releases its connection as soon as the operation ends. No
connection is held while a payment provider or the message broker is being
called.

transaction() opens an explicit boundary. Every repository call inside it
shares one session and the whole block commits or rolls back as a unit.
Opening a transaction() inside another one starts an independent session;
the audit log relies on this to write outside the business transaction.

See also:
    - common/db/context.py: ContextVars and the @readonly decorator
    - common/db/session.py: engine and session factories
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal, AsyncSessionLocalReadonly
from common.db.context import (
    get_current_session,
    set_current_session,
    reset_current_session,
    is_readonly_forced,
)

logger = get_logger(__name__)


@asynccontextmanager
async def transaction(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Explicit transaction boundary.

    Args:
        readonly: Use the readonly session factory and skip the commit.
                  Also honoured when the caller is under @readonly.

    Yields:
        The session shared by every repository call in the block

    Raises:
        Exception: Re-raises any exception after rollback
    """
    effective_readonly = readonly or is_readonly_forced()
    session_factory = (
        AsyncSessionLocalReadonly if effective_readonly else AsyncSessionLocal
    )

    start = time.perf_counter()
    async with session_factory() as session:
        logger.debug(
            f"Transaction session acquire: {(time.perf_counter() - start) * 1000:.2f}ms, readonly={effective_readonly}"
        )

        token = set_current_session(session, readonly=effective_readonly)
        try:
            yield session
            if not effective_readonly:
                await session.commit()
        except Exception as e:
            logger.warning(f"Transaction rollback due to: {e!r}")
            await session.rollback()
            raise
        finally:
            reset_current_session(token, readonly=effective_readonly)


@asynccontextmanager
async def get_session(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """
    Get a session for a single DB operation.

    Reuses the enclosing transaction()'s session when there is one and leaves
    the commit to it. Otherwise acquires a new session, commits and releases.

    Args:
        readonly: Use the readonly session factory.
    """
    effective_readonly = readonly or is_readonly_forced()
    existing = get_current_session(readonly=effective_readonly)

    if existing:
        yield existing
        return

    session_factory = (
        AsyncSessionLocalReadonly if effective_readonly else AsyncSessionLocal
    )
    async with session_factory() as session:
        try:
            yield session
            if not effective_readonly:
                await session.commit()
        except Exception as e:
            logger.warning(f"Operation rollback due to: {e!r}")
            await session.rollback()
            raise
