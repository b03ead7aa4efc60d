"""
Shared failure handling for billing services.
"""

from logging import Logger
from typing import Any

from packages.billing.models.domain.results import BillingErrorCode, BillingResult


def store_failure(
    logger: Logger, operation: str, error: Exception, **extra: Any
) -> BillingResult:
    """Log an unexpected store failure and turn it into an INTERNAL_ERROR result."""
    logger.error(
        f"{operation} failed: {error}",
        extra={"operation": operation, **extra},
        exc_info=True,
    )
    return BillingResult.fail(
        BillingErrorCode.INTERNAL_ERROR, f"{operation} failed due to a store error"
    )
