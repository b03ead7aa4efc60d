"""
Stripe implementation of payment provider.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import stripe

from common.core.config import settings
from common.core.exceptions import PaymentProviderError
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.auto_payment import ChargeResult
from packages.billing.models.domain.enums import PaymentProvider
from packages.billing.providers.payment.interface import PaymentProviderInterface

logger = get_logger(__name__)


def to_minor_units(amount: Decimal) -> int:
    """Stripe amounts are integers in the smallest currency unit."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class StripePaymentProvider(PaymentProviderInterface):
    """Off-session PaymentIntents against a saved Stripe PaymentMethod."""

    provider = PaymentProvider.STRIPE

    def __init__(self):
        """Initialize Stripe with API credentials."""
        stripe.api_key = settings.stripe_secret_key

    @trace_span
    async def charge(
        self,
        payment_method_ref: str,
        amount: Decimal,
        currency: str,
        metadata: Dict[str, Any],
        customer_ref: Optional[str] = None,
    ) -> ChargeResult:
        """
        Create and confirm a PaymentIntent in one call.

        Returns:
            succeeded when the intent settles, requires_action when 3DS is
            needed, failed on a card decline
        """
        request = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "payment_method": payment_method_ref,
            "off_session": True,
            "confirm": True,
            "metadata": {key: str(value) for key, value in metadata.items()},
        }
        if customer_ref:
            request["customer"] = customer_ref
        if metadata.get("idempotency_key"):
            request["idempotency_key"] = str(metadata["idempotency_key"])

        try:
            intent = stripe.PaymentIntent.create(**request)
        except stripe.CardError as e:
            intent_id = None
            payment_intent = getattr(e.error, "payment_intent", None) if e.error else None
            if payment_intent is not None:
                intent_id = payment_intent.get("id")

            if e.code == "authentication_required":
                logger.info(
                    "Stripe charge requires customer authentication",
                    extra={"payment_intent_id": intent_id, **metadata},
                )
                return ChargeResult.requires_action(
                    action_url=None, provider_payment_id=intent_id
                )

            logger.warning(
                f"Stripe card declined: {e.user_message or str(e)}",
                extra={"decline_code": e.code, **metadata},
            )
            return ChargeResult.failed(
                reason=e.user_message or str(e), provider_payment_id=intent_id
            )
        except stripe.StripeError as e:
            logger.error(f"Error charging Stripe payment method: {str(e)}", extra=metadata)
            raise PaymentProviderError(self.provider.value, str(e)) from e

        if intent.status == "succeeded":
            logger.info(
                "Stripe charge succeeded",
                extra={"payment_intent_id": intent.id, **metadata},
            )
            return ChargeResult.succeeded(provider_payment_id=intent.id)

        if intent.status in ("requires_action", "processing"):
            action_url = None
            next_action = getattr(intent, "next_action", None)
            if next_action and next_action.get("type") == "redirect_to_url":
                action_url = next_action["redirect_to_url"]["url"]
            return ChargeResult.requires_action(
                action_url=action_url, provider_payment_id=intent.id
            )

        return ChargeResult.failed(
            reason=f"Payment intent ended in status {intent.status}",
            provider_payment_id=intent.id,
        )

    @trace_span
    async def health_check(self) -> bool:
        try:
            stripe.Balance.retrieve()
            return True
        except stripe.StripeError as e:
            logger.warning(f"Stripe health check failed: {str(e)}")
            return False
