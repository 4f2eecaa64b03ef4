"""Append-only audit log shared by orders, payments and revisions.

Rows are only ever inserted. There is no update or delete path anywhere in
the codebase; reconciliation and disputes read from this table.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, JSON, DateTime, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin, utcnow


class AuditEntry(Base, ULIDMixin):
    __tablename__ = "audit_entries"
    __table_args__ = (
        UniqueConstraint("entity_type", "entity_id", "sequence", name="uq_audit_entity_sequence"),
        Index("ix_audit_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[str] = mapped_column(String(20))  # order | payment | revision
    entity_id: Mapped[str] = mapped_column(String(26))
    sequence: Mapped[int] = mapped_column(Integer)  # per entity, from 1
    action: Mapped[str] = mapped_column(String(30))
    performed_by: Mapped[str] = mapped_column(String(26))
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    details: Mapped[str] = mapped_column(String(300), default="")
    previous_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    new_state: Mapped[dict | None] = mapped_column(JSON, nullable=True)
