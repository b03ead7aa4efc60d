from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from packages.billing.models.database import (
    CouponEntity,
    InvoiceEntity,
    InvoiceItemEntity,
    PlanEntity,
    SubscriptionEntity,
)
from packages.billing.models.domain.coupon import Coupon
from packages.billing.models.domain.enums import (
    BillingCycle,
    DiscountType,
    InvoiceItemType,
    InvoiceStatus,
    SubscriptionStatus,
)
from packages.billing.models.domain.invoice import Invoice
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.subscription import Subscription


async def _add(db: AsyncSession, entity):
    db.add(entity)
    await db.commit()
    await db.refresh(entity)
    return entity


class BillingFactory:
    """Factory for inserting billing rows directly, bypassing the services."""

    @staticmethod
    async def create_plan(
        db: AsyncSession,
        name: str = "basic",
        monthly_price: Decimal = Decimal("1000.00"),
        annual_price: Optional[Decimal] = Decimal("10000.00"),
        included_tokens_monthly: int = 1000,
        is_active: bool = True,
    ) -> Plan:
        entity = await _add(
            db,
            PlanEntity(
                name=name,
                display_name=name.title(),
                currency="ARS",
                monthly_price=monthly_price,
                annual_price=annual_price,
                included_tokens_monthly=included_tokens_monthly,
                module_keys=["invoices"],
                features=[],
                is_active=is_active,
            ),
        )
        return Plan.model_validate(entity)

    @staticmethod
    async def create_subscription(
        db: AsyncSession,
        plan: Plan,
        owner_id: int,
        status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
        included: int = 0,
        purchased: int = 0,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    ) -> Subscription:
        period_start = period_start or utc_now() - timedelta(days=10)
        period_end = period_end or period_start + timedelta(days=30)
        entity = await _add(
            db,
            SubscriptionEntity(
                owner_id=owner_id,
                plan_id=plan.id,
                billing_cycle=billing_cycle.value,
                status=status.value,
                current_period_start=period_start,
                current_period_end=period_end,
                next_billing_date=period_end,
                included_tokens_remaining=included,
                purchased_tokens_balance=purchased,
                tokens_used_this_period=0,
            ),
        )
        return Subscription.model_validate(entity)

    @staticmethod
    async def create_invoice(
        db: AsyncSession,
        subscription: Subscription,
        number: str,
        status: InvoiceStatus = InvoiceStatus.OPEN,
        subtotal: Decimal = Decimal("1000.00"),
        tax_rate: Decimal = Decimal("21"),
        due_date: Optional[datetime] = None,
    ) -> Invoice:
        """Invoice with a single subscription line; due yesterday unless given."""
        tax = (subtotal * tax_rate / Decimal("100")).quantize(Decimal("0.01"))
        entity = await _add(
            db,
            InvoiceEntity(
                number=number,
                subscription_id=subscription.id,
                status=status.value,
                currency="ARS",
                subtotal=subtotal,
                tax_rate=tax_rate,
                tax=tax,
                discount=Decimal("0"),
                total=subtotal + tax,
                due_date=due_date or utc_now() - timedelta(days=1),
                opened_at=None if status == InvoiceStatus.DRAFT else utc_now(),
            ),
        )
        db.add(
            InvoiceItemEntity(
                invoice_id=entity.id,
                position=1,
                type=InvoiceItemType.SUBSCRIPTION.value,
                description="Basic (monthly)",
                quantity=Decimal("1"),
                unit_price=subtotal,
                line_total=subtotal,
            )
        )
        await db.commit()
        return Invoice.model_validate(entity)

    @staticmethod
    async def create_coupon(db: AsyncSession, code: str, **overrides) -> Coupon:
        """20% coupon without restrictions unless overridden."""
        values = {
            "code": code,
            "name": f"{code} promotion",
            "discount_type": DiscountType.PERCENTAGE.value,
            "discount_value": Decimal("20"),
            "current_uses": 0,
            "applicable_plan_ids": [],
            "applicable_billing_cycles": [],
            "is_active": True,
        }
        values.update(overrides)
        entity = await _add(db, CouponEntity(**values))
        return Coupon.model_validate(entity)
