"""
Database entity for audit log entries.
"""

from sqlalchemy import Column, DateTime, Index, JSON, String

from common.core.clock import utc_now
from common.db.base import Base, BigIntegerType


class AuditLogEntity(Base):
    """
    Immutable audit entry.

    High volume, insert-only table. before/after hold JSON snapshots of the
    mutated entity.
    """

    __tablename__ = "audit_log"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    actor = Column(String(255), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(String(100), nullable=False)
    before = Column(JSON, nullable=True)
    after = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (Index("idx_audit_entity", "entity_type", "entity_id"),)
