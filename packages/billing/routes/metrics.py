"""
Billing metrics API routes.
"""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import trace_span
from packages.billing.models.domain.metrics import BillingMetrics
from packages.billing.routes.dependencies import unwrap
from packages.billing.services.billing_metrics_service import BillingMetricsService

router = APIRouter()


def get_metrics_service() -> BillingMetricsService:
    return BillingMetricsService()


@router.get("", response_model=BillingMetrics)
@trace_span
async def get_metrics(
    period_start: Optional[datetime] = Query(None),
    period_end: Optional[datetime] = Query(None),
    metrics_service: BillingMetricsService = Depends(get_metrics_service),
):
    """MRR, ARR, revenue and token figures. Defaults to the last 30 days."""
    period_end = period_end or utc_now()
    period_start = period_start or period_end - timedelta(days=30)
    return unwrap(await metrics_service.get_metrics(period_start, period_end))
