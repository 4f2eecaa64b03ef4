"""Revision state machine and revision mutations."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.config import Settings, get_settings
from resumeops.db import crud
from resumeops.errors import InvalidState, InvalidStatusTransition, ValidationFailed
from resumeops.models import Order, Revision
from resumeops.models.base import as_utc, utcnow
from resumeops.services import audit
from resumeops.services.identifiers import REVISION_PREFIX
from resumeops.services.revision_pricing import estimate_revision_hours, revision_eligibility
from resumeops.states import (
    AuditAction, EntityType, NoteType, OrderStatus, RevisionStatus, UrgencyLevel, REVISION_TRANSITIONS,
)

logger = logging.getLogger(__name__)

AUDIT_FIELDS = ("status", "priority", "urgency_level", "deadline", "is_chargeable", "revision_fee")

# Orders must have a draft in the client's hands before a revision can be opened.
REVISABLE_ORDER_STATUSES = {OrderStatus.CLIENT_REVIEW, OrderStatus.COMPLETED, OrderStatus.DELIVERED}

UPDATABLE_FIELDS = {
    "priority", "urgency_level", "estimated_hours", "actual_hours", "complexity",
    "difficulty_rating", "estimated_completion", "admin_notes", "quality_score",
}

NULLABLE_FIELDS = {"estimated_hours", "actual_hours", "estimated_completion", "quality_score"}

# First-entry timestamp written for each status.
_STAMPS = {
    RevisionStatus.ACKNOWLEDGED: "acknowledged_at",
    RevisionStatus.IN_PROGRESS: "started_at",
    RevisionStatus.COMPLETED: "completed_at",
    RevisionStatus.DELIVERED: "delivered_at",
    RevisionStatus.APPROVED: "client_response_at",
    RevisionStatus.REJECTED: "client_response_at",
}

_AUDIT_ACTIONS = {
    RevisionStatus.COMPLETED: AuditAction.COMPLETED,
    RevisionStatus.APPROVED: AuditAction.APPROVED,
    RevisionStatus.REJECTED: AuditAction.REJECTED,
    RevisionStatus.CANCELLED: AuditAction.CANCELLED,
}


def check_transition(current: str, target: str) -> RevisionStatus:
    current_status = RevisionStatus(current)
    target_status = RevisionStatus(target)
    if target_status not in REVISION_TRANSITIONS[current_status]:
        raise InvalidStatusTransition("revision", current_status.value, target_status.value)
    return target_status


def deadline_for(urgency_level: str, start: datetime, settings: Settings) -> datetime | None:
    urgency = UrgencyLevel(urgency_level)
    if urgency is UrgencyLevel.URGENT:
        return start + timedelta(days=settings.revision_policy.urgent_deadline_days)
    if urgency is UrgencyLevel.EXPRESS:
        return start + timedelta(days=settings.revision_policy.express_deadline_days)
    return None


def apply_transition(revision: Revision, target: str, now: datetime | None = None) -> Revision:
    """Validate and apply a status move in memory.

    Timestamps are written the first time a status is entered. Entering
    ``completed`` with a known start records the elapsed hours.
    """
    target_status = check_transition(revision.status, target)
    now = now or utcnow()
    revision.status = target_status.value
    stamp = _STAMPS.get(target_status)
    if stamp and getattr(revision, stamp) is None:
        setattr(revision, stamp, now)
    if target_status is RevisionStatus.COMPLETED and revision.started_at is not None:
        elapsed = (now - as_utc(revision.started_at)).total_seconds() / 3600
        revision.actual_duration = round(elapsed, 1)
    return revision


async def _transition(
    db: AsyncSession,
    revision: Revision,
    target: str,
    actor_id: str,
    note: str | None = None,
    details: str | None = None,
    now: datetime | None = None,
) -> Revision:
    before = audit.snapshot(revision, AUDIT_FIELDS)
    previous = revision.status
    apply_transition(revision, target, now)
    if note:
        crud.stage_internal_note(
            db, EntityType.REVISION, revision.id, actor_id, note, note_type=NoteType.GENERAL.value,
        )
    action = _AUDIT_ACTIONS.get(RevisionStatus(revision.status), AuditAction.STATUS_CHANGED)
    await audit.record(
        db, EntityType.REVISION, revision.id, action, actor_id,
        details=details or f"Status changed from {previous} to {revision.status}",
        previous_state=before, new_state=audit.snapshot(revision, AUDIT_FIELDS), timestamp=now,
    )
    await crud.commit(db)
    await db.refresh(revision)
    logger.info("Revision %s moved %s -> %s by %s", revision.revision_code, previous, revision.status, actor_id)
    return revision


async def transition(
    db: AsyncSession,
    revision: Revision,
    target: str,
    actor_id: str,
    note: str | None = None,
    now: datetime | None = None,
) -> Revision:
    return await _transition(db, revision, target, actor_id, note=note, now=now)


async def create_revision(
    db: AsyncSession,
    order: Order,
    *,
    actor_id: str,
    revision_type: str,
    description: str,
    priority: str = "medium",
    urgency_level: str = "standard",
    complexity: str = "moderate",
    specific_changes: list[dict] | None = None,
    attachment_ids: list[str] | None = None,
    reference_file_ids: list[str] | None = None,
    estimated_hours: float | None = None,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> Revision:
    """Open a revision on an order, snapshotting pricing and ownership from it."""
    settings = settings or get_settings()
    if OrderStatus(order.status) not in REVISABLE_ORDER_STATUSES:
        raise InvalidState(f"Order {order.order_number} is {order.status}; revisions need a reviewed or finished order")
    if not description or not description.strip():
        raise ValidationFailed("Revision description is required")

    now = now or utcnow()
    existing_count, highest_number = await crud.revision_counts_for_order(db, order.id)
    limit = settings.revision_policy.free_revisions_limit
    chargeable, fee = revision_eligibility(existing_count, limit, complexity, urgency_level)
    specific_changes = specific_changes or []
    if estimated_hours is None:
        estimated_hours = estimate_revision_hours(complexity, priority, urgency_level, len(specific_changes))

    revision = Revision(
        revision_code=await crud.unique_code(db, Revision.revision_code, REVISION_PREFIX, now),
        order_id=order.id,
        client_id=order.client_id,
        assigned_admin_id=order.assigned_admin_id,
        revision_number=highest_number + 1,
        type=revision_type,
        priority=priority,
        urgency_level=urgency_level,
        complexity=complexity,
        description=description.strip(),
        specific_changes=specific_changes,
        attachment_ids=attachment_ids or [],
        reference_file_ids=reference_file_ids or [],
        requested_at=now,
        deadline=deadline_for(urgency_level, now, settings),
        estimated_hours=estimated_hours,
        estimated_completion=now + timedelta(hours=estimated_hours),
        is_chargeable=chargeable,
        revision_fee=fee,
        free_revisions_used=existing_count,
        free_revisions_limit=limit,
    )
    db.add(revision)
    await db.flush()
    await audit.record(
        db, EntityType.REVISION, revision.id, AuditAction.CREATED, actor_id,
        details=f"Revision #{revision.revision_number} requested" + (f", fee {fee:.2f}" if chargeable else ", free"),
        new_state=audit.snapshot(revision, AUDIT_FIELDS), timestamp=now,
    )
    await crud.commit(db)
    await db.refresh(revision)
    logger.info(
        "revision_created %s order=%s number=%d chargeable=%s fee=%.2f",
        revision.revision_code, order.order_number, revision.revision_number, chargeable, fee,
    )
    return revision


async def update_revision(
    db: AsyncSession, revision: Revision, actor_id: str, changes: dict, settings: Settings | None = None,
) -> Revision:
    """Edit work-tracking fields. Raising urgency sets a deadline if none exists."""
    settings = settings or get_settings()
    if "status" in changes:
        raise ValidationFailed("Status changes go through the status endpoint")
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    cleared = sorted(name for name, value in changes.items() if value is None and name not in NULLABLE_FIELDS)
    if cleared:
        raise ValidationFailed(f"Fields cannot be null: {', '.join(cleared)}")
    changed = [name for name, value in changes.items() if getattr(revision, name) != value]
    if not changed:
        return revision

    before = audit.snapshot(revision, AUDIT_FIELDS)
    for name in changed:
        setattr(revision, name, changes[name])
    if "urgency_level" in changed and revision.deadline is None:
        revision.deadline = deadline_for(revision.urgency_level, utcnow(), settings)
    await audit.record(
        db, EntityType.REVISION, revision.id, AuditAction.UPDATED, actor_id,
        details=f"Revision updated: {', '.join(changed)}",
        previous_state=before, new_state=audit.snapshot(revision, AUDIT_FIELDS),
    )
    await crud.commit(db)
    await db.refresh(revision)
    return revision


async def mark_as_completed(
    db: AsyncSession,
    revision: Revision,
    actor_id: str,
    summary: str,
    revised_file_ids: list[str] | None = None,
    now: datetime | None = None,
) -> Revision:
    if revision.status != RevisionStatus.IN_PROGRESS.value:
        raise InvalidStatusTransition("revision", revision.status, RevisionStatus.COMPLETED.value)
    revision.changes_summary = summary or ""
    revision.revised_file_ids = list(revised_file_ids or [])
    revision = await _transition(
        db, revision, RevisionStatus.COMPLETED, actor_id,
        details=f"Revision completed: {summary}" if summary else "Revision completed", now=now,
    )
    logger.info("revision_completed %s duration=%s", revision.revision_code, revision.actual_duration)
    return revision


async def approve(
    db: AsyncSession,
    revision: Revision,
    actor_id: str,
    rating: int | None = None,
    comments: str | None = None,
    now: datetime | None = None,
) -> Revision:
    if revision.status != RevisionStatus.DELIVERED.value:
        raise InvalidState(f"Only delivered revisions can be approved; {revision.revision_code} is {revision.status}")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5")
    now = now or utcnow()
    revision.client_rating = rating
    revision.client_comments = comments or ""
    revision.feedback_submitted_at = now
    details = "Approved by client" + (f" with rating {rating}" if rating is not None else "")
    return await _transition(db, revision, RevisionStatus.APPROVED, actor_id, details=details, now=now)


async def reject(
    db: AsyncSession, revision: Revision, actor_id: str, comments: str, now: datetime | None = None,
) -> Revision:
    if revision.status != RevisionStatus.DELIVERED.value:
        raise InvalidState(f"Only delivered revisions can be rejected; {revision.revision_code} is {revision.status}")
    if not comments or not comments.strip():
        raise ValidationFailed("Comments are required when rejecting a revision")
    now = now or utcnow()
    revision.client_comments = comments.strip()
    revision.feedback_submitted_at = now
    return await _transition(
        db, revision, RevisionStatus.REJECTED, actor_id, details=f"Rejected by client: {comments.strip()}", now=now,
    )
