"""
Repository for the append-only token ledger.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.repositories.base import BaseRepository
from packages.billing.models.database.token_transaction import TokenTransactionEntity
from packages.billing.models.domain.enums import TokenTransactionType
from packages.billing.models.domain.tokens import (
    TokenTransaction,
    TokenTransactionCreateModel,
)


class TokenTransactionRepository(
    BaseRepository[TokenTransactionEntity, TokenTransaction]
):
    """Insert and read ledger entries. There is deliberately no update path."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(TokenTransactionEntity, TokenTransaction, db_session)

    @trace_span
    async def append(self, entry: TokenTransactionCreateModel) -> TokenTransaction:
        return await self.create(entry)

    @trace_span
    async def get_by_idempotency_key(self, key: str) -> Optional[TokenTransaction]:
        async with self._get_session() as session:
            result = await session.execute(
                select(TokenTransactionEntity).where(
                    TokenTransactionEntity.idempotency_key == key
                )
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def list_for_subscription(
        self,
        subscription_id: int,
        transaction_type: Optional[TokenTransactionType] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[TokenTransaction]:
        """Newest first."""
        query = select(TokenTransactionEntity).where(
            TokenTransactionEntity.subscription_id == subscription_id
        )
        if transaction_type is not None:
            query = query.where(TokenTransactionEntity.type == transaction_type.value)
        query = (
            query.order_by(
                TokenTransactionEntity.created_at.desc(),
                TokenTransactionEntity.id.desc(),
            )
            .limit(limit)
            .offset(offset)
        )

        async with self._get_session() as session:
            result = await session.execute(query)
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def sum_amounts(self, subscription_id: int) -> int:
        """Sum of signed amounts; equals included + purchased on the subscription."""
        async with self._get_session() as session:
            result = await session.execute(
                select(func.coalesce(func.sum(TokenTransactionEntity.amount), 0)).where(
                    TokenTransactionEntity.subscription_id == subscription_id
                )
            )
            return int(result.scalar_one() or 0)

    @trace_span
    async def totals_by_type(
        self, start_date: datetime, end_date: datetime
    ) -> Dict[str, int]:
        """Sum of absolute amounts per transaction type in [start_date, end_date)."""
        async with self._get_session() as session:
            result = await session.execute(
                select(
                    TokenTransactionEntity.type,
                    func.coalesce(func.sum(func.abs(TokenTransactionEntity.amount)), 0),
                )
                .where(
                    TokenTransactionEntity.created_at >= start_date,
                    TokenTransactionEntity.created_at < end_date,
                )
                .group_by(TokenTransactionEntity.type)
            )
            return {tx_type: int(total) for tx_type, total in result.all()}

    @trace_span
    async def purchase_revenue(self, start_date: datetime, end_date: datetime):
        """Sum of total_price for PURCHASE entries in [start_date, end_date)."""
        async with self._get_session() as session:
            result = await session.execute(
                select(func.sum(TokenTransactionEntity.total_price)).where(
                    TokenTransactionEntity.type == TokenTransactionType.PURCHASE.value,
                    TokenTransactionEntity.created_at >= start_date,
                    TokenTransactionEntity.created_at < end_date,
                )
            )
            return result.scalar_one()
