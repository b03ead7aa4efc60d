"""
Database session context.

The session of the innermost open transaction() is kept in a ContextVar so
repositories can join it without the session being threaded through every
call:

    async with transaction():
        await subscription_repo.debit_tokens(subscription_id, 5)
        await token_transaction_repo.append(entry)  # same session, one commit

@readonly forces every repository call below it onto the read session
factory, which is how reporting queries are kept off the writer.
"""

from contextvars import ContextVar
from functools import wraps
from typing import Optional, Callable, TypeVar, ParamSpec

from sqlalchemy.ext.asyncio import AsyncSession

_write_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_write_session", default=None
)
_read_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_read_session", default=None
)
_force_readonly: ContextVar[bool] = ContextVar("db_force_readonly", default=False)


def is_readonly_forced() -> bool:
    return _force_readonly.get()


def get_current_session(readonly: bool = False) -> Optional[AsyncSession]:
    """
    Get the session of the enclosing transaction, if any.

    Args:
        readonly: Look up the read session instead of the write session.
                  Ignored (treated as True) under @readonly.
    """
    if readonly or is_readonly_forced():
        return _read_session.get()
    return _write_session.get()


def set_current_session(session: AsyncSession, readonly: bool = False) -> object:
    """Bind a session to the current context. Returns the reset token."""
    if readonly:
        return _read_session.set(session)
    return _write_session.set(session)


def reset_current_session(token: object, readonly: bool = False) -> None:
    if readonly:
        _read_session.reset(token)
    else:
        _write_session.reset(token)


def in_transaction(readonly: bool = False) -> bool:
    return get_current_session(readonly=readonly) is not None


P = ParamSpec("P")
T = TypeVar("T")


def readonly(func: Callable[P, T]) -> Callable[P, T]:
    """
    Force every DB operation in this call chain onto readonly sessions.

    Usage:
        @readonly
        async def get_metrics(period_start, period_end):
            invoices = await payment_repo.sum_completed_between(period_start, period_end)
            ...
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        token = _force_readonly.set(True)
        try:
            return await func(*args, **kwargs)
        finally:
            _force_readonly.reset(token)

    return wrapper
