"""
Repository for payments.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from common.core.money import round_money
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.invoice import PaymentEntity
from packages.billing.models.domain.enums import PaymentStatus
from packages.billing.models.domain.invoice import Payment


class PaymentRepository(BaseRepository[PaymentEntity, Payment]):
    """Repository for managing invoice payments."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(PaymentEntity, Payment, db_session)

    @trace_span
    async def sum_completed(self, invoice_id: int) -> Decimal:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.sum(PaymentEntity.amount)).where(
                    PaymentEntity.invoice_id == invoice_id,
                    PaymentEntity.status == PaymentStatus.COMPLETED.value,
                )
            )
            return round_money(result.scalar_one())

    @trace_span
    async def list_for_invoice(self, invoice_id: int) -> List[Payment]:
        async with self._get_session() as session:
            result = await session.execute(
                select(PaymentEntity)
                .where(PaymentEntity.invoice_id == invoice_id)
                .order_by(PaymentEntity.created_at, PaymentEntity.id)
                .execution_options(populate_existing=True)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def has_pending(self, invoice_id: int) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(PaymentEntity.id)).where(
                    PaymentEntity.invoice_id == invoice_id,
                    PaymentEntity.status == PaymentStatus.PENDING.value,
                )
            )
            return (result.scalar_one() or 0) > 0

    @trace_span
    async def complete(
        self, payment_id: int, provider_payment_id: Optional[str] = None
    ) -> bool:
        values = {
            "status": PaymentStatus.COMPLETED.value,
            "paid_at": utc_now(),
            "updated_at": utc_now(),
        }
        if provider_payment_id:
            values["provider_payment_id"] = provider_payment_id
        async with self._get_session() as session:
            result = await session.execute(
                update(PaymentEntity)
                .where(
                    PaymentEntity.id == payment_id,
                    PaymentEntity.status == PaymentStatus.PENDING.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    @trace_span
    async def fail(self, payment_id: int, reason: str) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                update(PaymentEntity)
                .where(
                    PaymentEntity.id == payment_id,
                    PaymentEntity.status == PaymentStatus.PENDING.value,
                )
                .values(
                    status=PaymentStatus.FAILED.value,
                    failure_reason=reason,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    @trace_span
    async def fail_pending_for_invoice(self, invoice_id: int, reason: str) -> int:
        """Mark every PENDING payment of an invoice as FAILED. Returns the count."""
        async with self._get_session() as session:
            result = await session.execute(
                update(PaymentEntity)
                .where(
                    PaymentEntity.invoice_id == invoice_id,
                    PaymentEntity.status == PaymentStatus.PENDING.value,
                )
                .values(
                    status=PaymentStatus.FAILED.value,
                    failure_reason=reason,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    @trace_span
    async def sum_completed_between(
        self, start_date: datetime, end_date: datetime
    ) -> Decimal:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.sum(PaymentEntity.amount)).where(
                    PaymentEntity.status == PaymentStatus.COMPLETED.value,
                    PaymentEntity.paid_at >= start_date,
                    PaymentEntity.paid_at < end_date,
                )
            )
            return round_money(result.scalar_one())
