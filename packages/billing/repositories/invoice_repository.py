"""
Repository for invoices and invoice items.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.clock import utc_now
from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.auto_payment import AutoPaymentConfigEntity
from packages.billing.models.database.invoice import InvoiceEntity, InvoiceItemEntity
from packages.billing.models.domain.enums import InvoiceStatus
from packages.billing.models.domain.invoice import (
    Invoice,
    InvoiceItem,
    InvoiceItemInput,
)

INVOICE_NUMBER_PREFIX = "INV"


def invoice_number_prefix(issued_at: datetime) -> str:
    """INV-YYYYMM- prefix shared by every invoice of a month."""
    return f"{INVOICE_NUMBER_PREFIX}-{issued_at:%Y%m}-"


def format_invoice_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:04d}"


def next_sequence(last_number: Optional[str], prefix: str) -> int:
    if not last_number:
        return 1
    return int(last_number[len(prefix):]) + 1


class InvoiceRepository(BaseRepository[InvoiceEntity, Invoice]):
    """Repository for managing invoices."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(InvoiceEntity, Invoice, db_session)

    @trace_span
    async def get_last_number(self, prefix: str) -> Optional[str]:
        """
        Highest invoice number with this prefix.

        Ordered by length first so INV-202501-10000 sorts after INV-202501-9999.
        """
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity.number)
                .where(InvoiceEntity.number.like(f"{prefix}%"))
                .order_by(
                    func.length(InvoiceEntity.number).desc(),
                    InvoiceEntity.number.desc(),
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    @trace_span
    async def insert_with_items(
        self, values: Dict[str, Any], items: List[InvoiceItemInput]
    ) -> Invoice:
        """
        Insert the header and its lines inside a savepoint.

        A unique violation on the number rolls back only the savepoint, so the
        caller can pick the next number and retry within its transaction.
        """
        async with self._get_session() as session:
            async with session.begin_nested():
                invoice = InvoiceEntity(**values)
                session.add(invoice)
                await session.flush()
                session.add_all(
                    [
                        InvoiceItemEntity(
                            invoice_id=invoice.id,
                            position=position,
                            type=item.type.value,
                            description=item.description,
                            quantity=item.quantity,
                            unit_price=item.unit_price,
                            line_total=item.line_total,
                        )
                        for position, item in enumerate(items, start=1)
                    ]
                )
                await session.flush()
            await session.refresh(invoice)
            return self._entity_to_domain(invoice)

    @trace_span
    async def get_for_update(self, invoice_id: int) -> Optional[Invoice]:
        """Load and row-lock an invoice (FOR UPDATE on PostgreSQL)."""
        async with self._get_session() as session:
            entity = await self._get_entity(session, invoice_id, for_update=True)
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_items(self, invoice_id: int) -> List[InvoiceItem]:
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceItemEntity)
                .where(InvoiceItemEntity.invoice_id == invoice_id)
                .order_by(InvoiceItemEntity.position)
            )
            return [InvoiceItem.model_validate(item) for item in result.scalars().all()]

    @trace_span
    async def set_fields(self, invoice_id: int, **values: Any) -> Optional[Invoice]:
        """Write header fields and return the fresh row."""
        values["updated_at"] = utc_now()
        async with self._get_session() as session:
            entity = await self._update_values(session, invoice_id, values)
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def transition(
        self,
        invoice_id: int,
        from_statuses: List[InvoiceStatus],
        to_status: InvoiceStatus,
        **values: Any,
    ) -> bool:
        """Compare-and-set the status. False when the invoice was not in from_statuses."""
        values["status"] = to_status.value
        values["updated_at"] = utc_now()
        async with self._get_session() as session:
            result = await session.execute(
                update(InvoiceEntity)
                .where(
                    InvoiceEntity.id == invoice_id,
                    InvoiceEntity.status.in_([s.value for s in from_statuses]),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    @trace_span
    async def list_for_subscription(
        self,
        subscription_id: int,
        status: Optional[InvoiceStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Invoice]:
        """Newest first."""
        query = select(InvoiceEntity).where(
            InvoiceEntity.subscription_id == subscription_id
        )
        if status is not None:
            query = query.where(InvoiceEntity.status == status.value)
        query = (
            query.order_by(InvoiceEntity.created_at.desc(), InvoiceEntity.id.desc())
            .limit(limit)
            .offset(offset)
        )
        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def get_for_period(
        self, subscription_id: int, period_start: datetime
    ) -> Optional[Invoice]:
        """Non-void invoice already issued for a billing period, if any."""
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity)
                .where(
                    InvoiceEntity.subscription_id == subscription_id,
                    InvoiceEntity.period_start == period_start,
                    InvoiceEntity.status != InvoiceStatus.VOID.value,
                )
                .order_by(InvoiceEntity.id.desc())
                .limit(1)
            )
            invoice = result.scalar_one_or_none()
            return self._entity_to_domain(invoice) if invoice else None

    @trace_span
    async def has_paid_invoice(self, subscription_id: int) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(InvoiceEntity.id)).where(
                    InvoiceEntity.subscription_id == subscription_id,
                    InvoiceEntity.status == InvoiceStatus.PAID.value,
                )
            )
            return (result.scalar_one() or 0) > 0

    @trace_span
    async def get_due_auto_payable(self, now: datetime) -> List[Invoice]:
        """OPEN invoices past their due date whose subscription has auto-payment enabled."""
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity)
                .join(
                    AutoPaymentConfigEntity,
                    AutoPaymentConfigEntity.subscription_id
                    == InvoiceEntity.subscription_id,
                )
                .where(
                    InvoiceEntity.status == InvoiceStatus.OPEN.value,
                    InvoiceEntity.due_date <= now,
                    AutoPaymentConfigEntity.is_enabled.is_(True),
                )
                .order_by(InvoiceEntity.due_date, InvoiceEntity.id)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def count_by_status(
        self, start_date: datetime, end_date: datetime
    ) -> Dict[str, int]:
        async with self._get_session() as session:
            result = await session.execute(
                select(InvoiceEntity.status, func.count(InvoiceEntity.id))
                .where(
                    InvoiceEntity.created_at >= start_date,
                    InvoiceEntity.created_at < end_date,
                )
                .group_by(InvoiceEntity.status)
            )
            return {status: count for status, count in result.all()}

    @trace_span
    async def sum_open_totals(self) -> Optional[Decimal]:
        """Total of every OPEN invoice (revenue not collected yet)."""
        async with self._get_session() as session:
            result = await session.execute(
                select(func.sum(InvoiceEntity.total)).where(
                    InvoiceEntity.status == InvoiceStatus.OPEN.value
                )
            )
            return result.scalar_one()
