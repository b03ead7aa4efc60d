"""
Billing enums - strongly typed enumerations for subscription, ledger and invoice states.
"""

from enum import Enum


class BillingCycle(str, Enum):
    """How often a subscription is invoiced."""

    MONTHLY = "monthly"
    ANNUAL = "annual"

    def nominal_days(self) -> int:
        """Fixed period length used for daily rates (not calendar days)."""
        return 365 if self == BillingCycle.ANNUAL else 30

    def months(self) -> int:
        return 12 if self == BillingCycle.ANNUAL else 1


class SubscriptionStatus(str, Enum):
    """
    Subscription status lifecycle.

    Flow: trialing -> active <-> past_due, active <-> paused, any -> canceled
    """

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"  # Renewal invoice not paid yet
    PAUSED = "paused"
    CANCELED = "canceled"  # Soft cancel; rows are never deleted

    @classmethod
    def consumable(cls) -> tuple["SubscriptionStatus", ...]:
        """Statuses in which tokens may be consumed."""
        return (cls.TRIALING, cls.ACTIVE, cls.PAST_DUE)

    def can_consume(self) -> bool:
        return self in SubscriptionStatus.consumable()


class TokenTransactionType(str, Enum):
    """Kinds of token ledger entries."""

    MONTHLY_CREDIT = "monthly_credit"
    PURCHASE = "purchase"
    USAGE = "usage"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    EXPIRATION = "expiration"


class InvoiceStatus(str, Enum):
    """
    Invoice lifecycle.

    draft -> open -> paid | void | uncollectible; draft -> void.
    """

    DRAFT = "draft"
    OPEN = "open"
    PAID = "paid"
    VOID = "void"
    UNCOLLECTIBLE = "uncollectible"

    def is_terminal(self) -> bool:
        return self in (
            InvoiceStatus.PAID,
            InvoiceStatus.VOID,
            InvoiceStatus.UNCOLLECTIBLE,
        )

    def is_editable(self) -> bool:
        """Totals and discounts may only change before payment."""
        return self in (InvoiceStatus.DRAFT, InvoiceStatus.OPEN)


class InvoiceItemType(str, Enum):
    SUBSCRIPTION = "subscription"
    CHARGE = "charge"
    CREDIT = "credit"
    TOKENS = "tokens"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """How money was received."""

    CASH = "cash"
    TRANSFER = "transfer"
    CARD = "card"
    MERCADOPAGO = "mercadopago"
    STRIPE = "stripe"


class PaymentProvider(str, Enum):
    """Supported auto-payment providers."""

    STRIPE = "stripe"
    MERCADOPAGO = "mercadopago"

    def payment_method(self) -> PaymentMethod:
        return PaymentMethod(self.value)


class ChargeStatus(str, Enum):
    """Outcome of a charge attempt against a stored payment method."""

    SUCCEEDED = "succeeded"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"


class ProrationLineType(str, Enum):
    CREDIT = "credit"
    CHARGE = "charge"


class NotificationType(str, Enum):
    """Billing events sent to the notification collaborator."""

    INVOICE_CREATED = "invoice_created"
    PAYMENT_RECEIVED = "payment_received"
    PAYMENT_FAILED = "payment_failed"
    LOW_TOKENS = "low_tokens"
