"""
Interface for payment providers.

Abstracts off-session charges against a stored payment method so the
auto-payment orchestrator never branches on the provider.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, Optional

from packages.billing.models.domain.auto_payment import ChargeResult
from packages.billing.models.domain.enums import PaymentProvider


class PaymentProviderInterface(ABC):
    """Abstract interface for payment providers."""

    provider: PaymentProvider

    @abstractmethod
    async def charge(
        self,
        payment_method_ref: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        customer_ref: Optional[str] = None,
    ) -> ChargeResult:
        """
        Charge a stored payment method without the customer present.

        Declines and authentication requests are reported through the
        result, not raised.

        Args:
            payment_method_ref: Provider reference of the stored method
            amount: Amount in major units (e.g. 1210.00)
            currency: ISO currency code
            metadata: invoice_id, subscription_id, idempotency_key
            customer_ref: Provider customer the method belongs to

        Returns:
            ChargeResult with status succeeded, requires_action or failed

        Raises:
            PaymentProviderError: The provider could not be reached or
                answered with something unusable
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the payment backend is available and healthy.

        Returns:
            True if healthy, False otherwise
        """
        pass
