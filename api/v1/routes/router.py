from fastapi import APIRouter, Depends

from api.v1.routes import (
    health,
)
from packages.audit.routes import audit
from packages.billing.routes import (
    auto_payments,
    coupons,
    invoices,
    metrics,
    plans,
    subscriptions,
    tokens,
)
from packages.billing.routes.dependencies import audit_actor

api_router = APIRouter()

# Health check (no actor binding)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Plans (public pricing info plus admin edits)
api_router.include_router(
    plans.router,
    prefix="/billing/plans",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)

# Billing routes (acting principal taken from X-Actor-Id for the audit log)
api_router.include_router(
    subscriptions.router,
    prefix="/billing/subscriptions",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)
api_router.include_router(
    tokens.router,
    prefix="/billing/tokens",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)
api_router.include_router(
    invoices.router,
    prefix="/billing/invoices",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)
api_router.include_router(
    coupons.router,
    prefix="/billing/coupons",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)
api_router.include_router(
    auto_payments.router,
    prefix="/billing/auto-payments",
    tags=["billing"],
    dependencies=[Depends(audit_actor)],
)
api_router.include_router(
    metrics.router,
    prefix="/billing/metrics",
    tags=["billing"],
)

# Audit log (read-only)
api_router.include_router(audit.router, prefix="/audit", tags=["audit"])
