"""
Request-scoped audit context.

The HTTP layer binds the acting principal and client IP once per request;
AuditService.record falls back to them when a caller does not pass an actor.
"""

from contextvars import ContextVar
from typing import Optional

_actor: ContextVar[Optional[str]] = ContextVar("audit_actor", default=None)
_ip_address: ContextVar[Optional[str]] = ContextVar("audit_ip_address", default=None)

SYSTEM_ACTOR = "system"


def set_audit_context(actor: Optional[str], ip_address: Optional[str]) -> tuple:
    return _actor.set(actor), _ip_address.set(ip_address)


def reset_audit_context(tokens: tuple) -> None:
    actor_token, ip_token = tokens
    _actor.reset(actor_token)
    _ip_address.reset(ip_token)


def current_actor() -> Optional[str]:
    return _actor.get()


def current_ip_address() -> Optional[str]:
    return _ip_address.get()
