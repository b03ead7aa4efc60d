"""
Token ledger service.

Tokens live in two buckets on the subscription row:
- included: the plan's monthly allowance, expired at each monthly reset
- purchased: bought separately, carried over between periods

Every change is mirrored by one append-only TokenTransaction carrying the
post-operation balances, so the sum of a subscription's transaction amounts
always equals included + purchased.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from common.core.clock import utc_now
from common.core.config import settings
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.scoped import transaction
from packages.audit.models.domain.audit_log import AuditAction
from packages.audit.services.audit_service import AuditService
from packages.billing.models.domain.enums import (
    NotificationType,
    SubscriptionStatus,
    TokenTransactionType,
)
from packages.billing.models.domain.results import BillingErrorCode, BillingResult
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.tokens import (
    TokenBalance,
    TokenBalanceSnapshot,
    TokenTransaction,
    TokenTransactionCreateModel,
)
from packages.billing.repositories.plan_repository import PlanRepository
from packages.billing.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.billing.repositories.token_transaction_repository import (
    TokenTransactionRepository,
)
from packages.billing.services.errors import store_failure
from packages.billing.services.notification_service import NotificationService

logger = get_logger(__name__)

SUBSCRIPTION_ENTITY = "subscription"


def allowance_slot_start(subscription: Subscription, now: datetime) -> datetime:
    """
    Start of the monthly allowance slot that contains now.

    A monthly period is a single slot. An annual period holds twelve, one
    per month counted from the period start; now outside the period is
    clamped to its first or last slot.
    """
    start = subscription.current_period_start
    if now <= start:
        return start
    elapsed = relativedelta(now, start)
    months = min(
        elapsed.years * 12 + elapsed.months,
        subscription.billing_cycle.months() - 1,
    )
    return start + relativedelta(months=months)


def allowance_key(subscription_id: int, slot_start: datetime) -> str:
    """Idempotency key of the MONTHLY_CREDIT entry for one allowance slot."""
    return f"allowance:{subscription_id}:{slot_start:%Y%m%d}"


def _balance(subscription_id: int, snapshot: TokenBalanceSnapshot) -> TokenBalance:
    return TokenBalance(
        subscription_id=subscription_id,
        included=snapshot.included,
        purchased=snapshot.purchased,
        used_this_period=snapshot.used_this_period,
    )


class TokenLedgerService:
    """Consume, credit and query subscription tokens."""

    def __init__(self, notification_service: Optional[NotificationService] = None):
        self.subscription_repo = SubscriptionRepository()
        self.token_repo = TokenTransactionRepository()
        self.plan_repo = PlanRepository()
        self.audit = AuditService()
        self.notifications = notification_service or NotificationService()

    def _replay(
        self, existing: TokenTransaction, subscription_id: int
    ) -> BillingResult[TokenBalance]:
        """Cached result for a retried idempotency key."""
        if existing.subscription_id != subscription_id:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR,
                "Idempotency key already used by another subscription",
            )
        logger.info(
            f"Replaying token transaction {existing.id} for key {existing.idempotency_key}",
            extra={
                "subscription_id": subscription_id,
                "transaction_id": existing.id,
            },
        )
        return BillingResult.ok(TokenBalance.after(existing))

    async def _replay_after_conflict(
        self, idempotency_key: Optional[str], subscription_id: int, error: Exception
    ) -> BillingResult[TokenBalance]:
        """A concurrent request with the same key won the insert; return its result."""
        if idempotency_key:
            existing = await self.token_repo.get_by_idempotency_key(idempotency_key)
            if existing:
                return self._replay(existing, subscription_id)
        return store_failure(
            logger, "Token transaction", error, subscription_id=subscription_id
        )

    async def _rejection(
        self, subscription_id: int, amount: int
    ) -> BillingResult[TokenBalance]:
        """Explain why the guarded debit changed no row."""
        current = await self.subscription_repo.get_balance_snapshot(subscription_id)
        if current is None:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                f"Subscription {subscription_id} not found",
            )
        if not SubscriptionStatus(current.status).can_consume():
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_INACTIVE,
                f"Subscription is {current.status}; tokens cannot be consumed",
            )
        available = current.included + current.purchased
        return BillingResult.fail(
            BillingErrorCode.INSUFFICIENT_TOKENS,
            f"Insufficient tokens: requested {amount}, available {available}, "
            f"short by {amount - available}",
        )

    @trace_span
    async def consume(
        self,
        subscription_id: int,
        amount: int,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[TokenBalance]:
        """
        Debit tokens, included bucket first.

        The debit is one conditional UPDATE, so concurrent consumers can never
        overdraw the combined balance. Retrying with the same idempotency key
        returns the first call's balances without debiting again.
        """
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Amount must be greater than 0"
            )

        try:
            async with transaction():
                if idempotency_key:
                    existing = await self.token_repo.get_by_idempotency_key(
                        idempotency_key
                    )
                    if existing:
                        return self._replay(existing, subscription_id)

                before = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
                if not await self.subscription_repo.debit_tokens(
                    subscription_id, amount
                ):
                    return await self._rejection(subscription_id, amount)

                after = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
                entry = await self.token_repo.append(
                    TokenTransactionCreateModel(
                        subscription_id=subscription_id,
                        type=TokenTransactionType.USAGE,
                        amount=-amount,
                        included_balance_after=after.included,
                        purchased_balance_after=after.purchased,
                        description=description,
                        idempotency_key=idempotency_key,
                        reference_type=reference_type,
                        reference_id=reference_id,
                        created_by=actor,
                    )
                )
        except IntegrityError as e:
            return await self._replay_after_conflict(idempotency_key, subscription_id, e)
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Token consumption", e, subscription_id=subscription_id
            )

        logger.info(
            f"Consumed {amount} tokens from subscription {subscription_id}",
            extra={
                "subscription_id": subscription_id,
                "amount": amount,
                "included_after": after.included,
                "purchased_after": after.purchased,
            },
        )
        await self.audit.record(
            AuditAction.TOKENS_CONSUMED,
            SUBSCRIPTION_ENTITY,
            subscription_id,
            before=before,
            after=entry,
            actor=actor,
        )
        await self._check_low_tokens(
            subscription_id,
            before.included + before.purchased,
            after.included + after.purchased,
        )
        return BillingResult.ok(TokenBalance.after(entry))

    async def _check_low_tokens(
        self, subscription_id: int, available_before: int, available_after: int
    ) -> None:
        """Send LOW_TOKENS once, when the balance crosses below the threshold."""
        try:
            subscription = await self.subscription_repo.get(subscription_id)
            plan = await self.plan_repo.get(subscription.plan_id) if subscription else None
            if plan is None or plan.included_tokens_monthly <= 0:
                return
            threshold = (
                plan.included_tokens_monthly * settings.low_token_threshold_percent / 100
            )
            if available_after < threshold <= available_before:
                await self.notifications.notify(
                    NotificationType.LOW_TOKENS,
                    subscription_id,
                    payload={
                        "available": available_after,
                        "included_tokens_monthly": plan.included_tokens_monthly,
                    },
                )
        except SQLAlchemyError as e:
            logger.warning(
                f"Low token check failed for subscription {subscription_id}: {e}",
                extra={"subscription_id": subscription_id},
            )

    async def _credit(
        self,
        subscription_id: int,
        amount: int,
        transaction_type: TokenTransactionType,
        action: AuditAction,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        unit_price: Optional[Decimal] = None,
        total_price: Optional[Decimal] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[TokenBalance]:
        """Apply a signed amount to the purchased bucket and record it."""
        try:
            async with transaction():
                if idempotency_key:
                    existing = await self.token_repo.get_by_idempotency_key(
                        idempotency_key
                    )
                    if existing:
                        return self._replay(existing, subscription_id)

                before = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
                if before is None:
                    return BillingResult.fail(
                        BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                        f"Subscription {subscription_id} not found",
                    )
                await self.subscription_repo.credit_purchased(subscription_id, amount)
                after = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
                entry = await self.token_repo.append(
                    TokenTransactionCreateModel(
                        subscription_id=subscription_id,
                        type=transaction_type,
                        amount=amount,
                        included_balance_after=after.included,
                        purchased_balance_after=after.purchased,
                        unit_price=unit_price,
                        total_price=total_price,
                        description=description,
                        idempotency_key=idempotency_key,
                        reference_type=reference_type,
                        reference_id=reference_id,
                        created_by=actor,
                    )
                )
        except IntegrityError as e:
            return await self._replay_after_conflict(idempotency_key, subscription_id, e)
        except SQLAlchemyError as e:
            return store_failure(
                logger,
                f"Token {transaction_type.value}",
                e,
                subscription_id=subscription_id,
            )

        logger.info(
            f"Recorded {transaction_type.value} of {amount} tokens for subscription {subscription_id}",
            extra={
                "subscription_id": subscription_id,
                "amount": amount,
                "transaction_type": transaction_type.value,
            },
        )
        await self.audit.record(
            action,
            SUBSCRIPTION_ENTITY,
            subscription_id,
            before=before,
            after=entry,
            actor=actor,
        )
        return BillingResult.ok(_balance(subscription_id, after))

    @trace_span
    async def add_purchased_tokens(
        self,
        subscription_id: int,
        amount: int,
        unit_price: Decimal,
        description: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[TokenBalance]:
        """Credit a token pack bought by the customer."""
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Amount must be greater than 0"
            )
        if unit_price < 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Unit price cannot be negative"
            )

        return await self._credit(
            subscription_id,
            amount,
            TokenTransactionType.PURCHASE,
            AuditAction.TOKENS_PURCHASED,
            description=description or f"Purchase of {amount} tokens",
            idempotency_key=idempotency_key,
            unit_price=unit_price,
            total_price=round_money(unit_price * amount),
            actor=actor,
        )

    @trace_span
    async def adjust_tokens(
        self,
        subscription_id: int,
        amount: int,
        reason: str,
        actor: Optional[str] = None,
    ) -> BillingResult[TokenBalance]:
        """
        Administrative correction in either direction.

        Lands in the purchased bucket and is not balance-checked: a negative
        adjustment may leave purchased below zero until it is corrected.
        """
        if amount == 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Adjustment amount cannot be 0"
            )
        if not reason or not reason.strip():
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Adjustment reason is required"
            )

        return await self._credit(
            subscription_id,
            amount,
            TokenTransactionType.ADJUSTMENT,
            AuditAction.TOKENS_ADJUSTED,
            description=reason,
            actor=actor,
        )

    @trace_span
    async def refund_tokens(
        self,
        subscription_id: int,
        amount: int,
        reason: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> BillingResult[TokenBalance]:
        """Give tokens back, e.g. for a failed job that had already consumed them."""
        if amount <= 0:
            return BillingResult.fail(
                BillingErrorCode.VALIDATION_ERROR, "Amount must be greater than 0"
            )

        return await self._credit(
            subscription_id,
            amount,
            TokenTransactionType.REFUND,
            AuditAction.TOKENS_REFUNDED,
            description=reason,
            reference_type=reference_type,
            reference_id=reference_id,
            actor=actor,
        )

    @trace_span
    async def reset_monthly_allowance(
        self,
        subscription_id: int,
        actor: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> BillingResult[TokenBalance]:
        """
        Expire the unused allowance and credit the plan's monthly tokens.

        Runs at most once per monthly slot: the MONTHLY_CREDIT entry carries
        an idempotency key derived from the slot start, and a second call in
        the same slot returns the current balance unchanged. Annual periods
        get a fresh allowance every month.
        """
        try:
            async with transaction():
                subscription = await self.subscription_repo.get_for_update(
                    subscription_id
                )
                if subscription is None:
                    return BillingResult.fail(
                        BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                        f"Subscription {subscription_id} not found",
                    )

                key = allowance_key(
                    subscription_id,
                    allowance_slot_start(subscription, now or utc_now()),
                )
                if await self.token_repo.get_by_idempotency_key(key):
                    logger.info(
                        f"Allowance already reset for subscription {subscription_id} this month",
                        extra={"subscription_id": subscription_id},
                    )
                    current = await self.subscription_repo.get_balance_snapshot(
                        subscription_id
                    )
                    return BillingResult.ok(_balance(subscription_id, current))

                plan = await self.plan_repo.get(subscription.plan_id)
                if plan is None:
                    return BillingResult.fail(
                        BillingErrorCode.PLAN_NOT_FOUND,
                        f"Plan {subscription.plan_id} not found",
                    )

                before = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
                allowance = plan.included_tokens_monthly

                if before.included > 0:
                    await self.token_repo.append(
                        TokenTransactionCreateModel(
                            subscription_id=subscription_id,
                            type=TokenTransactionType.EXPIRATION,
                            amount=-before.included,
                            included_balance_after=0,
                            purchased_balance_after=before.purchased,
                            description="Unused monthly allowance expired",
                            created_by=actor,
                        )
                    )

                await self.subscription_repo.reset_allowance(subscription_id, allowance)
                await self.token_repo.append(
                    TokenTransactionCreateModel(
                        subscription_id=subscription_id,
                        type=TokenTransactionType.MONTHLY_CREDIT,
                        amount=allowance,
                        included_balance_after=allowance,
                        purchased_balance_after=before.purchased,
                        description=f"Monthly allowance for {plan.display_name}",
                        idempotency_key=key,
                        created_by=actor,
                    )
                )
                after = await self.subscription_repo.get_balance_snapshot(
                    subscription_id
                )
        except IntegrityError:
            # Another reset for this slot committed first
            current = await self.subscription_repo.get_balance_snapshot(subscription_id)
            if current is None:
                return BillingResult.fail(
                    BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                    f"Subscription {subscription_id} not found",
                )
            return BillingResult.ok(_balance(subscription_id, current))
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Allowance reset", e, subscription_id=subscription_id
            )

        logger.info(
            f"Reset allowance for subscription {subscription_id}: expired {before.included}, credited {allowance}",
            extra={
                "subscription_id": subscription_id,
                "expired": before.included,
                "credited": allowance,
            },
        )
        await self.audit.record(
            AuditAction.TOKENS_ALLOWANCE_RESET,
            SUBSCRIPTION_ENTITY,
            subscription_id,
            before=before,
            after=after,
            actor=actor,
        )
        return BillingResult.ok(_balance(subscription_id, after))

    @trace_span
    async def get_balance(self, subscription_id: int) -> BillingResult[TokenBalance]:
        try:
            snapshot = await self.subscription_repo.get_balance_snapshot(
                subscription_id
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "Balance lookup", e, subscription_id=subscription_id
            )
        if snapshot is None:
            return BillingResult.fail(
                BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                f"Subscription {subscription_id} not found",
            )
        return BillingResult.ok(_balance(subscription_id, snapshot))

    @trace_span
    async def get_history(
        self,
        subscription_id: int,
        transaction_type: Optional[TokenTransactionType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> BillingResult[List[TokenTransaction]]:
        """Ledger entries, newest first."""
        try:
            if (
                await self.subscription_repo.get_balance_snapshot(subscription_id)
                is None
            ):
                return BillingResult.fail(
                    BillingErrorCode.SUBSCRIPTION_NOT_FOUND,
                    f"Subscription {subscription_id} not found",
                )
            history = await self.token_repo.list_for_subscription(
                subscription_id, transaction_type, limit=limit, offset=offset
            )
        except SQLAlchemyError as e:
            return store_failure(
                logger, "History lookup", e, subscription_id=subscription_id
            )
        return BillingResult.ok(history)
