from __future__ import annotations

from sqlalchemy import String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin


class InternalNote(Base, ULIDMixin):
    __tablename__ = "internal_notes"
    __table_args__ = (Index("ix_note_entity", "entity_type", "entity_id"),)

    entity_type: Mapped[str] = mapped_column(String(20))  # order | revision
    entity_id: Mapped[str] = mapped_column(String(26))
    author_id: Mapped[str] = mapped_column(String(26))
    note: Mapped[str] = mapped_column(Text)
    priority: Mapped[str | None] = mapped_column(String(10), nullable=True, default=None)  # orders: low | medium | high
    note_type: Mapped[str | None] = mapped_column(String(30), nullable=True, default=None)  # revisions
