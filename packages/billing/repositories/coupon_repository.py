"""
Repository for coupons and coupon redemptions.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.coupon import (
    CouponEntity,
    CouponRedemptionEntity,
)
from packages.billing.models.domain.coupon import Coupon, CouponRedemption


def normalise_code(code: str) -> str:
    return code.strip().upper()


class CouponRepository(BaseRepository[CouponEntity, Coupon]):
    """Repository for managing coupons. Lookups by code are case-insensitive."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(CouponEntity, Coupon, db_session)

    @trace_span
    async def get_by_code(self, code: str) -> Optional[Coupon]:
        async with self._get_session() as session:
            result = await session.execute(
                select(CouponEntity)
                .where(CouponEntity.code == normalise_code(code))
                .execution_options(populate_existing=True)
            )
            coupon = result.scalar_one_or_none()
            return self._entity_to_domain(coupon) if coupon else None

    @trace_span
    async def increment_uses(self, coupon_id: int) -> bool:
        """Atomically bump the global use counter, refusing to pass max_uses."""
        async with self._get_session() as session:
            result = await session.execute(
                update(CouponEntity)
                .where(
                    CouponEntity.id == coupon_id,
                    (CouponEntity.max_uses.is_(None))
                    | (CouponEntity.current_uses < CouponEntity.max_uses),
                )
                .values(
                    current_uses=CouponEntity.current_uses + 1,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    @trace_span
    async def set_active(self, coupon_id: int, is_active: bool) -> Optional[Coupon]:
        async with self._get_session() as session:
            await session.execute(
                update(CouponEntity)
                .where(CouponEntity.id == coupon_id)
                .values(is_active=is_active, updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            entity = await self._get_entity(session, coupon_id)
            return self._entity_to_domain(entity) if entity else None


class CouponRedemptionRepository(
    BaseRepository[CouponRedemptionEntity, CouponRedemption]
):
    """Repository for coupon redemptions, one row per (coupon, subscription)."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(CouponRedemptionEntity, CouponRedemption, db_session)

    @trace_span
    async def get_for_subscription(
        self, coupon_id: int, subscription_id: int, for_update: bool = False
    ) -> Optional[CouponRedemption]:
        query = (
            select(CouponRedemptionEntity)
            .where(
                CouponRedemptionEntity.coupon_id == coupon_id,
                CouponRedemptionEntity.subscription_id == subscription_id,
            )
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        async with self._get_session() as session:
            result = await session.execute(query)
            redemption = result.scalar_one_or_none()
            return self._entity_to_domain(redemption) if redemption else None

    @trace_span
    async def get_active_recurring(
        self, subscription_id: int, now: datetime
    ) -> Optional[CouponRedemption]:
        """Most recently applied redemption whose recurring window is still open."""
        async with self._get_session() as session:
            result = await session.execute(
                select(CouponRedemptionEntity)
                .where(
                    CouponRedemptionEntity.subscription_id == subscription_id,
                    CouponRedemptionEntity.expires_at.is_not(None),
                    CouponRedemptionEntity.expires_at > now,
                )
                .order_by(CouponRedemptionEntity.last_applied_at.desc())
                .limit(1)
            )
            redemption = result.scalar_one_or_none()
            return self._entity_to_domain(redemption) if redemption else None

    @trace_span
    async def record_first(
        self,
        coupon_id: int,
        subscription_id: int,
        invoice_id: int,
        expires_at: Optional[datetime],
    ) -> CouponRedemption:
        now = utc_now()
        redemption = CouponRedemptionEntity(
            coupon_id=coupon_id,
            subscription_id=subscription_id,
            applied_count=1,
            first_applied_at=now,
            last_applied_at=now,
            expires_at=expires_at,
            last_invoice_id=invoice_id,
        )
        async with self._get_session() as session:
            session.add(redemption)
            await session.flush()
            return self._entity_to_domain(redemption)

    @trace_span
    async def record_reapplied(
        self, redemption_id: int, invoice_id: int
    ) -> Optional[CouponRedemption]:
        async with self._get_session() as session:
            await session.execute(
                update(CouponRedemptionEntity)
                .where(CouponRedemptionEntity.id == redemption_id)
                .values(
                    applied_count=CouponRedemptionEntity.applied_count + 1,
                    last_applied_at=utc_now(),
                    last_invoice_id=invoice_id,
                )
                .execution_options(synchronize_session=False)
            )
            entity = await self._get_entity(session, redemption_id)
            return self._entity_to_domain(entity) if entity else None

