"""
Factory for payment provider instances.
"""

from typing import Callable, Dict

from packages.billing.models.domain.enums import PaymentProvider
from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.mercadopago_payment import (
    MercadoPagoPaymentProvider,
)
from packages.billing.providers.payment.stripe_payment import StripePaymentProvider

# Stored provider identity -> implementation
PAYMENT_PROVIDER_REGISTRY: Dict[PaymentProvider, Callable[[], PaymentProviderInterface]] = {
    PaymentProvider.STRIPE: StripePaymentProvider,
    PaymentProvider.MERCADOPAGO: MercadoPagoPaymentProvider,
}


def get_payment_provider(provider: PaymentProvider) -> PaymentProviderInterface:
    """
    Get the payment provider stored on an auto-payment config.

    Raises:
        KeyError: No implementation is registered for the provider
    """
    return PAYMENT_PROVIDER_REGISTRY[PaymentProvider(provider)]()


def get_payment_providers() -> Dict[PaymentProvider, PaymentProviderInterface]:
    """One instance of every registered provider."""
    return {provider: factory() for provider, factory in PAYMENT_PROVIDER_REGISTRY.items()}
