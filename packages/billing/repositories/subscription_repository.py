"""
Repository for subscriptions and their cached token balances.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.subscription import SubscriptionEntity
from packages.billing.models.domain.enums import BillingCycle, SubscriptionStatus
from packages.billing.models.domain.subscription import Subscription
from packages.billing.models.domain.tokens import TokenBalanceSnapshot


class SubscriptionRepository(BaseRepository[SubscriptionEntity, Subscription]):
    """Repository for managing owner subscriptions."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(SubscriptionEntity, Subscription, db_session)

    @trace_span
    async def get_by_owner_id(self, owner_id: int) -> Optional[Subscription]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(SubscriptionEntity.owner_id == owner_id)
                .execution_options(populate_existing=True)
            )
            db_subscription = result.scalar_one_or_none()
            return self._entity_to_domain(db_subscription) if db_subscription else None

    @trace_span
    async def get_balance_snapshot(
        self, subscription_id: int
    ) -> Optional[TokenBalanceSnapshot]:
        """Read the balance columns directly, bypassing the identity map."""
        async with self._get_session() as session:
            result = await session.execute(
                select(
                    SubscriptionEntity.included_tokens_remaining,
                    SubscriptionEntity.purchased_tokens_balance,
                    SubscriptionEntity.tokens_used_this_period,
                    SubscriptionEntity.status,
                ).where(SubscriptionEntity.id == subscription_id)
            )
            row = result.one_or_none()
            if row is None:
                return None
            return TokenBalanceSnapshot(
                included=row[0],
                purchased=row[1],
                used_this_period=row[2],
                status=row[3],
            )

    @trace_span
    async def debit_tokens(self, subscription_id: int, amount: int) -> bool:
        """
        Debit tokens in one conditional UPDATE.

        The WHERE clause carries the guard (consumable status and enough
        combined balance), so two concurrent debits can never both pass on
        the same balance. SET expressions see the pre-update row: included
        is drained first and only the remainder comes out of purchased.

        Returns:
            True if the row was debited, False if the guard rejected it
        """
        included = SubscriptionEntity.included_tokens_remaining
        purchased = SubscriptionEntity.purchased_tokens_balance
        consumable = [s.value for s in SubscriptionStatus.consumable()]

        stmt = (
            update(SubscriptionEntity)
            .where(
                SubscriptionEntity.id == subscription_id,
                SubscriptionEntity.status.in_(consumable),
                included + purchased >= amount,
            )
            .values(
                included_tokens_remaining=case(
                    (included >= amount, included - amount), else_=0
                ),
                purchased_tokens_balance=case(
                    (included >= amount, purchased),
                    else_=purchased - (amount - included),
                ),
                tokens_used_this_period=SubscriptionEntity.tokens_used_this_period
                + amount,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @trace_span
    async def credit_purchased(self, subscription_id: int, amount: int) -> bool:
        """Add a signed amount to the purchased bucket. No balance guard."""
        stmt = (
            update(SubscriptionEntity)
            .where(SubscriptionEntity.id == subscription_id)
            .values(
                purchased_tokens_balance=SubscriptionEntity.purchased_tokens_balance
                + amount,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @trace_span
    async def reset_allowance(self, subscription_id: int, included: int) -> bool:
        """Replace the included bucket and zero the period counter."""
        stmt = (
            update(SubscriptionEntity)
            .where(SubscriptionEntity.id == subscription_id)
            .values(
                included_tokens_remaining=included,
                tokens_used_this_period=0,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        async with self._get_session() as session:
            result = await session.execute(stmt)
            return result.rowcount == 1

    @trace_span
    async def get_for_update(self, subscription_id: int) -> Optional[Subscription]:
        """Load and row-lock a subscription for a lifecycle change."""
        async with self._get_session() as session:
            entity = await self._get_entity(session, subscription_id, for_update=True)
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_due_for_renewal(self, now: datetime) -> List[Subscription]:
        """Subscriptions whose current period has ended and that still bill."""
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(
                    SubscriptionEntity.current_period_end <= now,
                    SubscriptionEntity.status.in_(
                        [
                            SubscriptionStatus.TRIALING.value,
                            SubscriptionStatus.ACTIVE.value,
                            SubscriptionStatus.PAST_DUE.value,
                        ]
                    ),
                )
                .order_by(SubscriptionEntity.current_period_end)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def list_annual_in_period(self, now: datetime) -> List[Subscription]:
        """Consuming annual subscriptions whose period is still running."""
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity)
                .where(
                    SubscriptionEntity.billing_cycle == BillingCycle.ANNUAL.value,
                    SubscriptionEntity.current_period_start <= now,
                    SubscriptionEntity.current_period_end > now,
                    SubscriptionEntity.status.in_(
                        [s.value for s in SubscriptionStatus.consumable()]
                    ),
                )
                .order_by(SubscriptionEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def count_by_status(self) -> Dict[str, int]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity.status, func.count(SubscriptionEntity.id))
                .group_by(SubscriptionEntity.status)
            )
            return {status: count for status, count in result.all()}

    @trace_span
    async def list_by_status(
        self, statuses: List[SubscriptionStatus]
    ) -> List[Subscription]:
        async with self._get_session() as session:
            result = await session.execute(
                select(SubscriptionEntity).where(
                    SubscriptionEntity.status.in_([s.value for s in statuses])
                )
            )
            return self._entities_to_domain(result.scalars().all())
