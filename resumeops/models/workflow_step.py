"""Saga step ledger: one row per executed cross-entity workflow step."""

from __future__ import annotations

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin


class WorkflowStep(Base, ULIDMixin):
    __tablename__ = "workflow_steps"

    idempotency_key: Mapped[str] = mapped_column(String(200), unique=True, index=True)
    saga: Mapped[str] = mapped_column(String(50), index=True)
    trigger_type: Mapped[str] = mapped_column(String(20))  # order | payment | revision
    trigger_id: Mapped[str] = mapped_column(String(26), index=True)
    step: Mapped[str] = mapped_column(String(100))
    status: Mapped[str] = mapped_column(String(20))  # completed | skipped | failed
    actor_id: Mapped[str] = mapped_column(String(26), default="system")
    detail: Mapped[str] = mapped_column(Text, default="")
