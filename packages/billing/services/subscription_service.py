"""
Service for managing subscriptions.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.core.clock import utc_now
from common.core.config import settings
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.enums import (
    BillingCycle,
    InvoiceStatus,
    SubscriptionStatus,
)
from packages.billing.models.domain.invoice import Invoice
from packages.billing.models.domain.plans import Plan
from packages.billing.models.domain.proration import (
    PlanPricing,
    ProrationInput,
    ProrationResult,
)
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.models.domain.subscription import (
    Subscription,
    SubscriptionCreateModel,
    SubscriptionUpdateModel,
)
from packages.billing.models.domain.summary import (
    PlanChangeOutcome,
    RenewalOutcome,
    SubscriptionSummary,
)
from packages.billing.repositories.auto_payment_repository import (
    AutoPaymentConfigRepository,
)
from packages.billing.repositories.invoice_repository import InvoiceRepository
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.services.coupon_service import CouponService
from packages.billing.services.errors import store_failure
from packages.billing.services.invoice_service import InvoiceService
from packages.billing.services.proration import calculate_proration
from packages.billing.services.token_ledger_service import TokenLedgerService

logger = get_logger(__name__)

SUBSCRIPTION_ENTITY = "subscription"


def _not_found(subscription_id: int) -> BillingResult:
    return BillingResult.fail(
        BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
        f"Subscription {subscription_id} not found",
    )


def _pricing(plan: Plan) -> PlanPricing:
    return PlanPricing(
        plan_id=plan.id,
        name=plan.display_name,
        monthly_price=plan.monthly_price,
        annual_price=plan.annual_price,
    )


class SubscriptionService:
    """Service for the subscription lifecycle."""

    def __init__(
        self,
        ledger: Optional[TokenLedgerService] = None,
        invoice_service: Optional[InvoiceService] = None,
        coupon_service: Optional[CouponService] = None,
    ):
        self.subscription_repo = SubscriptionRepository()
        self.plan_repo = PlanRepository()
        self.invoice_repo = InvoiceRepository()
        self.auto_payment_repo = AutoPaymentConfigRepository()
        self.ledger = ledger or TokenLedgerService()
        self.coupons = coupon_service or CouponService()
        self.invoices = invoice_service or InvoiceService(coupon_service=self.coupons)
        self.audit = AuditService()

    @trace_span
    async def create_subscription(
        self,
        owner_id: int,
        plan_id: int,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        start_trial: bool = False,
        actor: Optional[str] = None,
    ) -> BillingResult[Subscription]:
        """
        Subscribe an owner to a plan and credit the first monthly allowance.

        A trial runs for billing_trial_days and its period ends with the trial.
        """
        logger.info(
            f"Creating subscription for owner {owner_id}, plan {plan_id}, cycle {billing_cycle.value}"
        )

        try:
            existing = await self.subscription_repo.get_by_owner_id(owner_id)
            plan = await self.plan_repo.get(plan_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Subscription lookup", e, owner_id=owner_id)
        if existing:
            return BillingResult.fail(
                BillingErrorCode.ALREADY_EXISTS,
                f"Owner {owner_id} already has a subscription",
            )
        if plan is None:
            return BillingResult.fail(
                BillingErrorCode.PLAN_NOT_FOUND, f"Plan {plan_id} not found"
            )
        if not plan.is_active:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                f"Plan {plan.name} is not available for new subscriptions",
            )

        now = utc_now()
        if start_trial:
            status = SubscriptionStatus.TRIALING
            trial_ends_at = now + timedelta(days=settings.billing_trial_days)
            period_end = trial_ends_at
        else:
            status = SubscriptionStatus.ACTIVE
            trial_ends_at = None
            period_end = now + relativedelta(months=billing_cycle.months())

        try:
            subscription = await self.subscription_repo.create(
                SubscriptionCreateModel(
                    owner_id=owner_id,
                    plan_id=plan_id,
                    billing_cycle=billing_cycle,
                    status=status,
                    current_period_start=now,
                    current_period_end=period_end,
                    next_billing_date=period_end,
                    trial_ends_at=trial_ends_at,
                )
            )
        except IntegrityError:
            return BillingResult.fail(
                BillingErrorCode.ALREADY_EXISTS,
                f"Owner {owner_id} already has a subscription",
            )
        except SQLAlchemyError as e:
            return store_failure(logger, "Subscription creation", e, owner_id=owner_id)

        credited = await self.ledger.reset_monthly_allowance(subscription.id, actor=actor)
        if not credited.success:
            logger.error(
                f"Initial allowance for subscription {subscription.id} failed: {credited.error.message}",
                extra={"subscription_id": subscription.id},
            )

        refreshed = await self.get_subscription(subscription.id)
        if not refreshed.success:
            return refreshed
        subscription = refreshed.data
        logger.info(
            f"Created subscription {subscription.id} for owner {owner_id}",
            extra={
                "subscription_id": subscription.id,
                "owner_id": owner_id,
                "plan_id": plan_id,
                "status": subscription.status.value,
            },
        )
        await self.audit.record(
            AuditAction.SUBSCRIPTION_CREATED,
            SUBSCRIPTION_ENTITY,
            subscription.id,
            after=subscription,
            actor=actor,
        )
        return BillingResult.ok(subscription)

    @trace_span
    async def get_subscription(self, subscription_id: int) -> BillingResult[Subscription]:
        try:
            subscription = await self.subscription_repo.get(subscription_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Subscription lookup", e, subscription_id=subscription_id
            )
        if subscription is None:
            return _not_found(subscription_id)
        return BillingResult.ok(subscription)

    @trace_span
    async def get_by_owner_id(self, owner_id: int) -> BillingResult[Subscription]:
        try:
            subscription = await self.subscription_repo.get_by_owner_id(owner_id)
        except SQLAlchemyError as e:
            return store_failure(logger, "Subscription lookup", e, owner_id=owner_id)
        if subscription is None:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                f"Owner {owner_id} has no subscription",
            )
        return BillingResult.ok(subscription)

    async def _price_change(
        self,
        subscription_id: int,
        new_plan_id: int,
        new_cycle: Optional[BillingCycle],
        change_date: datetime,
    ) -> BillingResult[Tuple[Subscription, Plan, Plan, BillingCycle, ProrationResult]]:
        try:
            subscription = await self.subscription_repo.get(subscription_id)
            if subscription is None:
                return _not_found(subscription_id)
            old_plan = await self.plan_repo.get(subscription.plan_id)
            new_plan = await self.plan_repo.get(new_plan_id)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Plan change lookup", e, subscription_id=subscription_id
            )
        if subscription.status == SubscriptionStatus.CANCELED:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_INACTIVE,
                "Canceled subscriptions cannot change plan",
            )

        new_cycle = new_cycle or subscription.billing_cycle
        if new_plan_id == subscription.plan_id and new_cycle == subscription.billing_cycle:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                "Subscription is already on this plan and cycle",
            )

        if old_plan is None or new_plan is None:
            return BillingResult.fail(
                BillingErrorCode.PLAN_NOT_FOUND,
                f"Plan {new_plan_id if new_plan is None else subscription.plan_id} not found",
            )
        if not new_plan.is_active:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                f"Plan {new_plan.name} is not available",
            )

        proration = calculate_proration(
            ProrationInput(
                old_plan=_pricing(old_plan),
                new_plan=_pricing(new_plan),
                old_cycle=subscription.billing_cycle,
                new_cycle=new_cycle,
                period_start=subscription.current_period_start,
                period_end=subscription.current_period_end,
                change_date=change_date,
            )
        )
        return BillingResult.ok((subscription, old_plan, new_plan, new_cycle, proration))

    @trace_span
    async def preview_plan_change(
        self,
        subscription_id: int,
        new_plan_id: int,
        new_cycle: Optional[BillingCycle] = None,
        change_date: Optional[datetime] = None,
    ) -> BillingResult[ProrationResult]:
        """Proration a plan change would produce, without changing anything."""
        priced = await self._price_change(
            subscription_id, new_plan_id, new_cycle, change_date or utc_now()
        )
        if not priced.success:
            return priced
        return BillingResult.ok(priced.data[-1])

    async def _switch_plan(
        self,
        subscription: Subscription,
        new_plan_id: int,
        new_cycle: BillingCycle,
    ) -> BillingResult[Subscription]:
        try:
            async with transaction():
                locked = await self.subscription_repo.get_for_update(subscription.id)
                if (
                    locked.plan_id != subscription.plan_id
                    or locked.billing_cycle != subscription.billing_cycle
                ):
                    return BillingResult.fail(
                        BillingErrorCode.INVALID_STATE,
                        "Subscription plan changed concurrently; retry",
                    )
                updated = await self.subscription_repo.update(
                    subscription.id,
                    SubscriptionUpdateModel(plan_id=new_plan_id, billing_cycle=new_cycle),
                )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Plan change", e, subscription_id=subscription.id
            )
        return BillingResult.ok(updated)

    async def _void_unused_invoice(
        self, invoice: Invoice, failure: BillingResult, actor: Optional[str]
    ) -> None:
        """Void a proration invoice whose plan switch did not happen."""
        voided = await self.invoices.void_invoice(
            invoice.id, f"Plan change not applied: {failure.error.message}", actor=actor
        )
        if not voided.success:
            logger.error(
                f"Proration invoice {invoice.number} left open after failed plan change: {voided.error.message}",
                extra={
                    "invoice_id": invoice.id,
                    "subscription_id": invoice.subscription_id,
                },
            )

    @trace_span
    async def change_plan(
        self,
        subscription_id: int,
        new_plan_id: int,
        new_cycle: Optional[BillingCycle] = None,
        change_date: Optional[datetime] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[PlanChangeOutcome]:
        """
        Move a subscription to another plan or billing cycle mid-period.

        The prorated difference for the rest of the current period is
        invoiced right away when positive, and the plan only switches once
        that invoice exists. A negative net (downgrade) is reported in the
        outcome and left to the next renewal.
        """
        priced = await self._price_change(
            subscription_id, new_plan_id, new_cycle, change_date or utc_now()
        )
        if not priced.success:
            return priced
        subscription, old_plan, new_plan, new_cycle, proration = priced.data

        invoice = None
        if proration.net_amount > 0:
            invoiced = await self.invoices.create_plan_change_invoice(
                subscription_id, proration, actor=actor
            )
            if not invoiced.success:
                return invoiced
            invoice = invoiced.data.invoice

        switched = await self._switch_plan(subscription, new_plan_id, new_cycle)
        if not switched.success:
            if invoice is not None:
                await self._void_unused_invoice(invoice, switched, actor)
            return switched
        updated = switched.data

        logger.info(
            f"Subscription {subscription_id} changed plan {old_plan.name} -> {new_plan.name}, net {proration.net_amount}",
            extra={
                "subscription_id": subscription_id,
                "old_plan_id": old_plan.id,
                "new_plan_id": new_plan.id,
                "net_amount": str(proration.net_amount),
            },
        )
        outcome = PlanChangeOutcome(
            subscription=updated, proration=proration, invoice=invoice
        )
        await self.audit.record(
            AuditAction.SUBSCRIPTION_PLAN_CHANGED,
            SUBSCRIPTION_ENTITY,
            subscription_id,
            before=subscription,
            after=outcome,
            actor=actor,
        )
        return BillingResult.ok(outcome)

    async def _set_lifecycle(
        self,
        subscription: Subscription,
        update_model: SubscriptionUpdateModel,
        action: AuditAction,
        actor: Optional[str],
    ) -> BillingResult[Subscription]:
        try:
            updated = await self.subscription_repo.update(subscription.id, update_model)
        except SQLAlchemyError as e:
            return store_failure(
                logger, action.value, e, subscription_id=subscription.id
            )
        await self.audit.record(
            action,
            SUBSCRIPTION_ENTITY,
            subscription.id,
            before=subscription,
            after=updated,
            actor=actor,
        )
        return BillingResult.ok(updated)

    @trace_span
    async def cancel_subscription(
        self,
        subscription_id: int,
        at_period_end: bool = True,
        actor: Optional[str] = None,
    ) -> BillingResult[Subscription]:
        """Cancel now, or flag the subscription to end with its current period."""
        loaded = await self.get_subscription(subscription_id)
        if not loaded.success:
            return loaded
        subscription = loaded.data
        if subscription.status == SubscriptionStatus.CANCELED:
            return BillingResult.fail(
                BillingErrorCode.INVALID_STATE, "Subscription is already canceled"
            )

        if at_period_end:
            update_model = SubscriptionUpdateModel(cancel_at_period_end=True)
        else:
            update_model = SubscriptionUpdateModel(
                status=SubscriptionStatus.CANCELED,
                canceled_at=utc_now(),
                cancel_at_period_end=False,
            )
        logger.info(
            f"Canceling subscription {subscription_id} (at period end: {at_period_end})",
            extra={"subscription_id": subscription_id},
        )
        return await self._set_lifecycle(
            subscription, update_model, AuditAction.SUBSCRIPTION_CANCELED, actor
        )

    @trace_span
    async def reactivate_subscription(
        self, subscription_id: int, actor: Optional[str] = None
    ) -> BillingResult[Subscription]:
        """
        Undo a pending cancellation, or restart a canceled or paused
        subscription with a fresh period and allowance.
        """
        loaded = await self.get_subscription(subscription_id)
        if not loaded.success:
            return loaded
        subscription = loaded.data

        if subscription.status in (SubscriptionStatus.CANCELED, SubscriptionStatus.PAUSED):
            now = utc_now()
            period_end = now + relativedelta(months=subscription.billing_cycle.months())
            result = await self._set_lifecycle(
                subscription,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.ACTIVE,
                    current_period_start=now,
                    current_period_end=period_end,
                    next_billing_date=period_end,
                    cancel_at_period_end=False,
                    canceled_at=None,
                ),
                AuditAction.SUBSCRIPTION_REACTIVATED,
                actor,
            )
            if result.success:
                await self.ledger.reset_monthly_allowance(subscription_id, actor=actor)
                result = await self.get_subscription(subscription_id)
            return result

        if subscription.cancel_at_period_end:
            return await self._set_lifecycle(
                subscription,
                SubscriptionUpdateModel(cancel_at_period_end=False),
                AuditAction.SUBSCRIPTION_REACTIVATED,
                actor,
            )

        return BillingResult.fail(
            BillingErrorCode.INVALID_STATE,
            f"Subscription is {subscription.status.value} and not pending cancellation",
        )

    async def _has_overdue_invoice(self, subscription_id: int, now: datetime) -> bool:
        open_invoices = await self.invoice_repo.list_for_subscription(
            subscription_id, InvoiceStatus.OPEN, limit=100
        )
        return any(inv.due_date is not None and inv.due_date < now for inv in open_invoices)

    @trace_span
    async def renew_period(
        self, subscription_id: int, actor: Optional[str] = None
    ) -> BillingResult[RenewalOutcome]:
        """
        Roll a subscription into its next billing period.

        Issues the renewal invoice, advances the period, ends a trial and
        resets the token allowance. Each step is idempotent for the period,
        so a renewal interrupted half-way can simply be run again. A
        subscription flagged to cancel at period end is canceled instead.
        """
        loaded = await self.get_subscription(subscription_id)
        if not loaded.success:
            return loaded
        subscription = loaded.data

        if subscription.cancel_at_period_end:
            await self._set_lifecycle(
                subscription,
                SubscriptionUpdateModel(
                    status=SubscriptionStatus.CANCELED,
                    canceled_at=utc_now(),
                    cancel_at_period_end=False,
                ),
                AuditAction.SUBSCRIPTION_CANCELED,
                actor,
            )
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_INACTIVE,
                "Subscription was set to cancel at period end and is now canceled",
            )
        if not subscription.can_consume():
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_INACTIVE,
                f"Subscription is {subscription.status.value} and is not renewed",
            )

        invoiced = await self.invoices.generate_renewal_invoice(subscription_id, actor=actor)
        if not invoiced.success:
            return invoiced
        invoice = invoiced.data.invoice

        now = utc_now()
        try:
            async with transaction():
                locked = await self.subscription_repo.get_for_update(subscription_id)
                if locked.current_period_end == invoice.period_start:
                    overdue = await self._has_overdue_invoice(subscription_id, now)
                    status = (
                        SubscriptionStatus.PAST_DUE if overdue else SubscriptionStatus.ACTIVE
                    )
                    await self.subscription_repo.update(
                        subscription_id,
                        SubscriptionUpdateModel(
                            status=status,
                            current_period_start=invoice.period_start,
                            current_period_end=invoice.period_end,
                            next_billing_date=invoice.period_end,
                        ),
                    )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Period renewal", e, subscription_id=subscription_id
            )

        tokens = await self.ledger.reset_monthly_allowance(subscription_id, actor=actor)
        if not tokens.success:
            return tokens

        refreshed = await self.get_subscription(subscription_id)
        if not refreshed.success:
            return refreshed
        renewed = refreshed.data
        logger.info(
            f"Renewed subscription {subscription_id} until {renewed.current_period_end:%Y-%m-%d} with invoice {invoice.number}",
            extra={
                "subscription_id": subscription_id,
                "invoice_id": invoice.id,
                "status": renewed.status.value,
            },
        )
        await self.audit.record(
            AuditAction.SUBSCRIPTION_RENEWED,
            SUBSCRIPTION_ENTITY,
            subscription_id,
            before=subscription,
            after=renewed,
            actor=actor,
        )
        return BillingResult.ok(
            RenewalOutcome(subscription=renewed, invoice=invoice, tokens=tokens.data)
        )

    @trace_span
    async def renew_due_subscriptions(self, now: Optional[datetime] = None) -> List[int]:
        """Renew every subscription whose period has ended. Returns the renewed ids."""
        renewed = []
        for subscription in await self.subscription_repo.get_due_for_renewal(now or utc_now()):
            try:
                result = await self.renew_period(subscription.id)
            except Exception as e:
                logger.error(
                    f"Renewal of subscription {subscription.id} raised: {e}",
                    extra={"subscription_id": subscription.id},
                    exc_info=True,
                )
                continue
            if result.success:
                renewed.append(subscription.id)
            else:
                logger.warning(
                    f"Subscription {subscription.id} not renewed: {result.error.message}",
                    extra={
                        "subscription_id": subscription.id,
                        "error_code": result.error_code.value,
                    },
                )
        return renewed

    @trace_span
    async def reset_due_allowances(self, now: Optional[datetime] = None) -> List[int]:
        """
        Credit the monthly allowance of annual subscriptions mid-period.

        Renewal only resets tokens once a year for annual plans; this runs
        the reset for every running annual period. Slots that were already
        credited are no-ops. Returns the ids whose reset succeeded.
        """
        now = now or utc_now()
        reset = []
        for subscription in await self.subscription_repo.list_annual_in_period(now):
            result = await self.ledger.reset_monthly_allowance(subscription.id, now=now)
            if result.success:
                reset.append(subscription.id)
            else:
                logger.warning(
                    f"Allowance of subscription {subscription.id} not reset: {result.error.message}",
                    extra={
                        "subscription_id": subscription.id,
                        "error_code": result.error_code.value,
                    },
                )
        return reset

    @trace_span
    async def get_summary(
        self, subscription_id: int, history_limit: int = 20
    ) -> BillingResult[SubscriptionSummary]:
        """Subscription, plan, balances, payment method, coupon and recent activity."""
        loaded = await self.get_subscription(subscription_id)
        if not loaded.success:
            return loaded
        subscription = loaded.data

        tokens = await self.ledger.get_balance(subscription_id)
        if not tokens.success:
            return tokens
        history = await self.ledger.get_history(subscription_id, limit=history_limit)
        if not history.success:
            return history
        try:
            plan = await self.plan_repo.get(subscription.plan_id)
            if plan is None:
                return BillingResult.fail(
                    BillingErrorCode.PLAN_NOT_FOUND,
                    f"Plan {subscription.plan_id} not found",
                )
            summary = SubscriptionSummary(
                subscription=subscription,
                plan=plan,
                tokens=tokens.data,
                auto_payment=await self.auto_payment_repo.get_by_subscription_id(
                    subscription_id
                ),
                active_coupon=await self.coupons.get_active_redemption(subscription_id),
                recent_invoices=await self.invoice_repo.list_for_subscription(
                    subscription_id, limit=5
                ),
                token_history=history.data,
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Summary lookup", e, subscription_id=subscription_id
            )
        return BillingResult.ok(summary)
