"""Billing events handed to the notification sender."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from common.core.clock import utc_now
from packages.billing.models.domain.enums import NotificationType


class BillingNotification(BaseModel):
    type: NotificationType
    subscription_id: int
    invoice_id: Optional[int] = None
    payload: Dict[str, Any] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=utc_now)
