"""
Repository for auto-payment configuration.
"""

from typing import Any, Optional

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.auto_payment import AutoPaymentConfigEntity
from packages.billing.models.domain.auto_payment import (
    AutoPaymentConfig,
    AutoPaymentSetup,
)


class AutoPaymentConfigRepository(
    BaseRepository[AutoPaymentConfigEntity, AutoPaymentConfig]
):
    """Repository for stored payment methods, one per subscription."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(AutoPaymentConfigEntity, AutoPaymentConfig, db_session)

    @trace_span
    async def get_by_subscription_id(
        self, subscription_id: int, for_update: bool = False
    ) -> Optional[AutoPaymentConfig]:
        query = (
            select(AutoPaymentConfigEntity)
            .where(AutoPaymentConfigEntity.subscription_id == subscription_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        async with self._get_session() as session:
            result = await session.execute(query)
            config = result.scalar_one_or_none()
            return self._entity_to_domain(config) if config else None

    @trace_span
    async def upsert(
        self, subscription_id: int, setup: AutoPaymentSetup
    ) -> AutoPaymentConfig:
        """Store a new payment method. Replacing one re-enables and clears failures."""
        values = setup.model_dump()
        async with self._get_session() as session:
            result = await session.execute(
                select(AutoPaymentConfigEntity).where(
                    AutoPaymentConfigEntity.subscription_id == subscription_id
                )
            )
            entity = result.scalar_one_or_none()
            if entity is None:
                entity = AutoPaymentConfigEntity(
                    subscription_id=subscription_id, **values
                )
                session.add(entity)
            else:
                for key, value in values.items():
                    setattr(entity, key, value)
            entity.is_enabled = True
            entity.failed_attempts = 0
            entity.last_failure_reason = None
            await session.flush()
            await session.refresh(entity)
            return self._entity_to_domain(entity)

    @trace_span
    async def set_fields(
        self, subscription_id: int, **values: Any
    ) -> Optional[AutoPaymentConfig]:
        values["updated_at"] = utc_now()
        async with self._get_session() as session:
            await session.execute(
                update(AutoPaymentConfigEntity)
                .where(AutoPaymentConfigEntity.subscription_id == subscription_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        return await self.get_by_subscription_id(subscription_id)

    @trace_span
    async def record_failure(
        self, subscription_id: int, reason: str, max_failed_attempts: int
    ) -> Optional[AutoPaymentConfig]:
        """
        Count a failed attempt in one UPDATE and disable the config once the
        counter reaches max_failed_attempts.
        """
        failed = AutoPaymentConfigEntity.failed_attempts + 1
        now = utc_now()
        async with self._get_session() as session:
            await session.execute(
                update(AutoPaymentConfigEntity)
                .where(AutoPaymentConfigEntity.subscription_id == subscription_id)
                .values(
                    failed_attempts=failed,
                    last_failure_reason=reason[:500],
                    last_attempt_at=now,
                    is_enabled=case(
                        (failed >= max_failed_attempts, False),
                        else_=AutoPaymentConfigEntity.is_enabled,
                    ),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
        return await self.get_by_subscription_id(subscription_id)

    @trace_span
    async def record_success(self, subscription_id: int) -> Optional[AutoPaymentConfig]:
        now = utc_now()
        return await self.set_fields(
            subscription_id,
            failed_attempts=0,
            last_failure_reason=None,
            last_attempt_at=now,
            last_payment_at=now,
        )
