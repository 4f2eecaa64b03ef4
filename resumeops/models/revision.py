"""Revision model: a bounded change request against a delivered draft."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, JSON, DateTime, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin, as_utc, utcnow
from resumeops.states import RevisionStatus, REVISION_PROGRESS

_SETTLED = {
    RevisionStatus.COMPLETED.value,
    RevisionStatus.DELIVERED.value,
    RevisionStatus.APPROVED.value,
    RevisionStatus.CANCELLED.value,
}


class Revision(Base, ULIDMixin):
    __tablename__ = "revisions"
    __table_args__ = (
        UniqueConstraint("order_id", "revision_number", name="uq_revision_order_number"),
    )

    revision_code: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), index=True)
    client_id: Mapped[str] = mapped_column(String(26), index=True)
    # Snapshot of the order's assignee at creation; not kept in sync
    assigned_admin_id: Mapped[str | None] = mapped_column(String(26), nullable=True, default=None)
    revision_number: Mapped[int] = mapped_column(Integer)
    type: Mapped[str] = mapped_column(String(30))
    priority: Mapped[str] = mapped_column(String(10), default="medium")
    status: Mapped[str] = mapped_column(String(20), default=RevisionStatus.PENDING.value, index=True)
    urgency_level: Mapped[str] = mapped_column(String(20), default="standard")

    # Request details
    description: Mapped[str] = mapped_column(Text)
    specific_changes: Mapped[list] = mapped_column(JSON, default=list)  # [{section, current_content, requested_change, reason}]
    attachment_ids: Mapped[list] = mapped_column(JSON, default=list)
    reference_file_ids: Mapped[list] = mapped_column(JSON, default=list)

    # Timeline; per-state stamps are written at most once
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    client_response_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    estimated_completion: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    actual_duration: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)  # hours

    # Effort
    estimated_hours: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)
    actual_hours: Mapped[float | None] = mapped_column(Float, nullable=True, default=None)
    complexity: Mapped[str] = mapped_column(String(20), default="moderate")
    difficulty_rating: Mapped[int] = mapped_column(Integer, default=5)

    # Deliverables
    revised_file_ids: Mapped[list] = mapped_column(JSON, default=list)
    changes_summary: Mapped[str] = mapped_column(Text, default="")

    # Feedback
    client_rating: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    client_comments: Mapped[str] = mapped_column(Text, default="")
    admin_notes: Mapped[str] = mapped_column(Text, default="")
    quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    feedback_submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    # Pricing snapshot taken at creation
    is_chargeable: Mapped[bool] = mapped_column(Boolean, default=False)
    revision_fee: Mapped[float] = mapped_column(Float, default=0.0)
    free_revisions_used: Mapped[int] = mapped_column(Integer, default=0)
    free_revisions_limit: Mapped[int] = mapped_column(Integer, default=2)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.deadline is None or self.status in _SETTLED:
            return False
        return as_utc(self.deadline) < (now or utcnow())

    @property
    def overdue(self) -> bool:
        return self.is_overdue()

    @property
    def hours_until_deadline(self) -> int | None:
        if self.deadline is None:
            return None
        hours = int((as_utc(self.deadline) - utcnow()).total_seconds() // 3600)
        return max(0, hours)

    @property
    def progress_percentage(self) -> int:
        return REVISION_PROGRESS[RevisionStatus(self.status)]
