from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Generic, List, Optional, Type, TypeVar

from pydantic import BaseModel
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.scoped import get_session

EntityType = TypeVar("EntityType")
DomainModelType = TypeVar("DomainModelType")
CreateModelType = TypeVar("CreateModelType", bound=BaseModel)
UpdateModelType = TypeVar("UpdateModelType", bound=BaseModel)


class BaseRepository(Generic[EntityType, DomainModelType]):
    """
    Entity <-> domain model mapping plus the CRUD every billing table needs.

    Without an explicit db_session each call goes through get_session(), so
    it joins the caller's transaction() when there is one. Money and balance
    columns are changed by guarded UPDATE statements, so primary-key reads
    always refresh the identity map (populate_existing).
    """

    def __init__(
        self,
        entity_class: Type[EntityType],
        domain_class: Type[DomainModelType],
        db_session: Optional[AsyncSession] = None,
    ):
        self.entity_class = entity_class
        self.domain_class = domain_class
        self._explicit_session = db_session

    @asynccontextmanager
    async def _get_session(self) -> AsyncGenerator[AsyncSession, None]:
        if self._explicit_session is not None:
            yield self._explicit_session
            return
        async with get_session() as session:
            yield session

    def _entity_to_domain(self, entity: EntityType) -> DomainModelType:
        return self.domain_class.model_validate(entity)

    def _entities_to_domain(self, entities: List[EntityType]) -> List[DomainModelType]:
        return [self._entity_to_domain(entity) for entity in entities]

    async def _get_entity(
        self, session: AsyncSession, id: int, for_update: bool = False
    ) -> Optional[EntityType]:
        """Fresh row by primary key; for_update takes a row lock where supported."""
        query = (
            select(self.entity_class)
            .where(self.entity_class.id == id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        return (await session.execute(query)).scalar_one_or_none()

    async def _update_values(
        self, session: AsyncSession, id: int, values: Dict[str, Any]
    ) -> Optional[EntityType]:
        await session.execute(
            update(self.entity_class)
            .where(self.entity_class.id == id)
            .values(values)
            .execution_options(synchronize_session=False)
        )
        await session.flush()
        return await self._get_entity(session, id)

    @trace_span
    async def get(self, id: int) -> Optional[DomainModelType]:
        async with self._get_session() as session:
            entity = await self._get_entity(session, id)
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def create(self, create_model: CreateModelType) -> DomainModelType:
        """Insert a row; None fields fall back to column defaults."""
        entity = self.entity_class(**create_model.model_dump(exclude_none=True))
        async with self._get_session() as session:
            session.add(entity)
            await session.flush()
            await session.refresh(entity)
            return self._entity_to_domain(entity)

    @trace_span
    async def update(
        self, id: int, update_model: UpdateModelType
    ) -> Optional[DomainModelType]:
        """
        Apply the fields that were explicitly set on update_model.

        A field set to None clears the column; an unset field is untouched.
        """
        values = update_model.model_dump(exclude_unset=True)
        if not values:
            return await self.get(id)
        async with self._get_session() as session:
            entity = await self._update_values(session, id, values)
            return self._entity_to_domain(entity) if entity else None
