"""Payment providers - off-session charges against stored payment methods."""

from packages.billing.providers.payment.interface import PaymentProviderInterface
from packages.billing.providers.payment.factory import (
    get_payment_provider,
    get_payment_providers,
)

__all__ = [
    "PaymentProviderInterface",
    "get_payment_provider",
    "get_payment_providers",
]
