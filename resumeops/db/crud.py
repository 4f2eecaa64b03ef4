"""Persistence helpers for orders, payments, revisions and their side tables.

Functions take an AsyncSession first. Lookups and listings live here; status
changes live in the workflow services, which stage rows and finish with
``commit``.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from resumeops.errors import ConcurrencyConflict, NotFound, ValidationFailed
from resumeops.models import Order, Payment, Revision, InternalNote, ChatRoom, WorkflowStep
from resumeops.services.identifiers import ROOM_PREFIX, generate_code
from resumeops.services.pricing import round_money, to_decimal
from resumeops.states import EntityType, PaymentStatus

logger = logging.getLogger(__name__)

MAX_NOTE_LENGTH = 1000


async def commit(db: AsyncSession) -> None:
    """Commit, turning a lost optimistic-lock race into ConcurrencyConflict."""
    try:
        await db.commit()
    except StaleDataError as exc:
        await db.rollback()
        logger.warning("Stale write rejected: %s", exc)
        raise ConcurrencyConflict("Record was modified by another request; reload and retry") from exc
    except IntegrityError as exc:
        await db.rollback()
        logger.warning("Conflicting insert rejected: %s", exc.orig)
        raise ConcurrencyConflict("Conflicting concurrent write; reload and retry") from exc


async def unique_code(db: AsyncSession, column, prefix: str, now: datetime | None = None) -> str:
    for _ in range(20):
        code = generate_code(prefix, now)
        result = await db.execute(select(column).where(column == code))
        if result.first() is None:
            return code
    raise ConcurrencyConflict(f"Could not allocate a unique {prefix} identifier")


def _apply_sort(query, model, sort: str, allowed: set[str]):
    field = sort.lstrip("-")
    if field not in allowed:
        raise ValidationFailed(f"Cannot sort by {field}")
    column = getattr(model, field)
    return query.order_by(column.desc() if sort.startswith("-") else column.asc())


async def _paginate(db: AsyncSession, query, limit: int, offset: int) -> tuple[list, int]:
    total = (await db.execute(select(func.count()).select_from(query.order_by(None).subquery()))).scalar() or 0
    result = await db.execute(query.limit(limit).offset(offset))
    return list(result.scalars().all()), total


# ── Orders ───────────────────────────────────────────────

ORDER_SORT_FIELDS = {"created_at", "total_amount", "priority", "estimated_completion", "status", "last_activity"}


async def get_order(db: AsyncSession, order_id: str) -> Order | None:
    return await db.get(Order, order_id)


async def require_order(db: AsyncSession, order_id: str) -> Order:
    order = await db.get(Order, order_id)
    if order is None:
        raise NotFound("Order", order_id)
    return order


async def list_orders(
    db: AsyncSession,
    *,
    status: str | None = None,
    urgency_level: str | None = None,
    priority: int | None = None,
    assigned_admin_id: str | None = None,
    service_type: str | None = None,
    client_id: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    search: str | None = None,
    visible_to_admin: str | None = None,
    sort: str = "-created_at",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Order], int]:
    """Filtered, paginated order listing.

    ``visible_to_admin`` restricts results to orders assigned to that admin
    plus unassigned ones.
    """
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if urgency_level:
        query = query.where(Order.urgency_level == urgency_level)
    if priority is not None:
        query = query.where(Order.priority == priority)
    if assigned_admin_id:
        query = query.where(Order.assigned_admin_id == assigned_admin_id)
    if service_type:
        query = query.where(Order.service_type == service_type)
    if client_id:
        query = query.where(Order.client_id == client_id)
    if created_from:
        query = query.where(Order.created_at >= created_from)
    if created_to:
        query = query.where(Order.created_at <= created_to)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            Order.order_number.ilike(pattern),
            Order.requirements["target_role"].as_string().ilike(pattern),
            Order.requirements["industry"].as_string().ilike(pattern),
        ))
    if visible_to_admin:
        query = query.where(or_(
            Order.assigned_admin_id == visible_to_admin,
            Order.assigned_admin_id.is_(None),
        ))
    query = _apply_sort(query, Order, sort, ORDER_SORT_FIELDS)
    return await _paginate(db, query, limit, offset)


async def order_statistics(db: AsyncSession, assigned_admin_id: str | None = None) -> dict:
    conditions = []
    if assigned_admin_id:
        conditions.append(Order.assigned_admin_id == assigned_admin_id)
    totals = (await db.execute(
        select(func.count(Order.id), func.sum(Order.total_amount), func.avg(Order.total_amount)).where(*conditions)
    )).one()
    breakdown = await db.execute(
        select(Order.status, func.count(Order.id)).where(*conditions).group_by(Order.status)
    )
    return {
        "total_orders": totals[0] or 0,
        "total_revenue": round_money(to_decimal(totals[1])),
        "average_order_value": round_money(to_decimal(totals[2])),
        "status_breakdown": {status: count for status, count in breakdown.all()},
    }


# ── Payments ─────────────────────────────────────────────

PAYMENT_SORT_FIELDS = {"initiated_at", "created_at", "amount", "status"}
_REVENUE_STATUSES = (
    PaymentStatus.COMPLETED.value, PaymentStatus.REFUNDED.value, PaymentStatus.PARTIALLY_REFUNDED.value,
)
_REFUND_STATUSES = (PaymentStatus.REFUNDED.value, PaymentStatus.PARTIALLY_REFUNDED.value)
# An order may carry a new payment only when every earlier one ended in one of these.
PAYMENT_RETRY_STATUSES = (PaymentStatus.FAILED.value, PaymentStatus.CANCELLED.value, PaymentStatus.EXPIRED.value)


async def get_payment(db: AsyncSession, payment_id: str) -> Payment | None:
    return await db.get(Payment, payment_id)


async def require_payment(db: AsyncSession, payment_id: str) -> Payment:
    payment = await db.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment", payment_id)
    return payment


async def get_open_payment_for_order(db: AsyncSession, order_id: str) -> Payment | None:
    """A payment that blocks a new one: not failed/cancelled/expired and not pending past expiry."""
    result = await db.execute(
        select(Payment)
        .where(
            Payment.order_id == order_id,
            Payment.status.not_in(PAYMENT_RETRY_STATUSES),
        )
        .order_by(Payment.initiated_at.desc())
    )
    for payment in result.scalars():
        if not payment.is_expired():
            return payment
    return None


async def list_payments(
    db: AsyncSession,
    *,
    status: str | None = None,
    payment_method: str | None = None,
    order_id: str | None = None,
    client_id: str | None = None,
    initiated_from: datetime | None = None,
    initiated_to: datetime | None = None,
    sort: str = "-initiated_at",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Payment], int]:
    query = select(Payment)
    if status:
        query = query.where(Payment.status == status)
    if payment_method:
        query = query.where(Payment.payment_method == payment_method)
    if order_id:
        query = query.where(Payment.order_id == order_id)
    if client_id:
        query = query.where(Payment.client_id == client_id)
    if initiated_from:
        query = query.where(Payment.initiated_at >= initiated_from)
    if initiated_to:
        query = query.where(Payment.initiated_at <= initiated_to)
    query = _apply_sort(query, Payment, sort, PAYMENT_SORT_FIELDS)
    return await _paginate(db, query, limit, offset)


async def payment_statistics(db: AsyncSession) -> dict:
    revenue_row = (await db.execute(
        select(func.count(Payment.id), func.sum(Payment.amount), func.avg(Payment.amount))
        .where(Payment.status.in_(_REVENUE_STATUSES))
    )).one()
    refunded = (await db.execute(
        select(func.sum(Payment.refund_amount)).where(Payment.status.in_(_REFUND_STATUSES))
    )).scalar()
    total_payments = (await db.execute(select(func.count(Payment.id)))).scalar() or 0
    by_status = await db.execute(select(Payment.status, func.count(Payment.id)).group_by(Payment.status))
    by_method = await db.execute(
        select(Payment.payment_method, func.count(Payment.id)).group_by(Payment.payment_method)
    )
    revenue = to_decimal(revenue_row[1])
    refunded = to_decimal(refunded)
    return {
        "total_payments": total_payments,
        "total_revenue": round_money(revenue),
        "total_refunded": round_money(refunded),
        "net_revenue": round_money(revenue - refunded),
        "average_payment": round_money(to_decimal(revenue_row[2])),
        "status_breakdown": {status: count for status, count in by_status.all()},
        "method_breakdown": {method: count for method, count in by_method.all()},
    }


# ── Revisions ────────────────────────────────────────────

REVISION_SORT_FIELDS = {"requested_at", "created_at", "deadline", "revision_number", "priority", "status"}


async def get_revision(db: AsyncSession, revision_id: str) -> Revision | None:
    return await db.get(Revision, revision_id)


async def require_revision(db: AsyncSession, revision_id: str) -> Revision:
    revision = await db.get(Revision, revision_id)
    if revision is None:
        raise NotFound("Revision", revision_id)
    return revision


async def revision_counts_for_order(db: AsyncSession, order_id: str) -> tuple[int, int]:
    """(count, max revision_number) of existing revisions on an order."""
    row = (await db.execute(
        select(func.count(Revision.id), func.max(Revision.revision_number)).where(Revision.order_id == order_id)
    )).one()
    return row[0] or 0, row[1] or 0


async def list_revisions(
    db: AsyncSession,
    *,
    status: str | None = None,
    priority: str | None = None,
    revision_type: str | None = None,
    order_id: str | None = None,
    client_id: str | None = None,
    assigned_admin_id: str | None = None,
    sort: str = "-requested_at",
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[Revision], int]:
    query = select(Revision)
    if status:
        query = query.where(Revision.status == status)
    if priority:
        query = query.where(Revision.priority == priority)
    if revision_type:
        query = query.where(Revision.type == revision_type)
    if order_id:
        query = query.where(Revision.order_id == order_id)
    if client_id:
        query = query.where(Revision.client_id == client_id)
    if assigned_admin_id:
        query = query.where(Revision.assigned_admin_id == assigned_admin_id)
    query = _apply_sort(query, Revision, sort, REVISION_SORT_FIELDS)
    return await _paginate(db, query, limit, offset)


async def revision_statistics(db: AsyncSession, order_id: str | None = None) -> dict:
    conditions = [Revision.order_id == order_id] if order_id else []
    row = (await db.execute(
        select(func.count(Revision.id), func.avg(Revision.actual_duration), func.sum(Revision.revision_fee))
        .where(*conditions)
    )).one()

    async def breakdown(column) -> dict:
        result = await db.execute(select(column, func.count(Revision.id)).where(*conditions).group_by(column))
        return {key: count for key, count in result.all()}

    return {
        "total_revisions": row[0] or 0,
        "average_duration": round(row[1] or 0.0, 1),
        "total_revision_fees": round_money(to_decimal(row[2])),
        "status_breakdown": await breakdown(Revision.status),
        "priority_breakdown": await breakdown(Revision.priority),
        "type_breakdown": await breakdown(Revision.type),
        "complexity_breakdown": await breakdown(Revision.complexity),
    }


# ── Internal notes ───────────────────────────────────────

def stage_internal_note(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    author_id: str,
    note: str,
    priority: str | None = None,
    note_type: str | None = None,
) -> InternalNote:
    """Add a note to the session without committing."""
    note = (note or "").strip()
    if not note:
        raise ValidationFailed("Note must not be empty")
    if len(note) > MAX_NOTE_LENGTH:
        raise ValidationFailed(f"Note must be at most {MAX_NOTE_LENGTH} characters")
    row = InternalNote(
        entity_type=EntityType(entity_type).value,
        entity_id=entity_id,
        author_id=author_id,
        note=note,
        priority=priority,
        note_type=note_type,
    )
    db.add(row)
    return row


async def add_internal_note(db: AsyncSession, entity_type, entity_id: str, author_id: str, note: str, **kwargs) -> InternalNote:
    row = stage_internal_note(db, entity_type, entity_id, author_id, note, **kwargs)
    await commit(db)
    await db.refresh(row)
    return row


async def list_internal_notes(
    db: AsyncSession, entity_type: EntityType | str, entity_id: str, limit: int = 50, offset: int = 0,
) -> list[InternalNote]:
    result = await db.execute(
        select(InternalNote)
        .where(InternalNote.entity_type == EntityType(entity_type).value, InternalNote.entity_id == entity_id)
        .order_by(InternalNote.created_at, InternalNote.id)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


# ── Chat rooms ───────────────────────────────────────────

async def get_chat_room_for_order(db: AsyncSession, order_id: str) -> ChatRoom | None:
    result = await db.execute(select(ChatRoom).where(ChatRoom.order_id == order_id))
    return result.scalars().first()


async def create_chat_room(db: AsyncSession, order: Order) -> ChatRoom:
    """Create the order's room, or return the existing one."""
    existing = await get_chat_room_for_order(db, order.id)
    if existing is not None:
        return existing
    participants = [{"user_id": order.client_id, "role": "client", "is_active": True}]
    if order.assigned_admin_id:
        participants.append({"user_id": order.assigned_admin_id, "role": "admin", "is_active": True})
    room = ChatRoom(
        room_code=await unique_code(db, ChatRoom.room_code, ROOM_PREFIX),
        order_id=order.id,
        participants=participants,
    )
    db.add(room)
    await commit(db)
    await db.refresh(room)
    return room


async def add_chat_participant(db: AsyncSession, room: ChatRoom, user_id: str, role: str) -> ChatRoom:
    if any(p["user_id"] == user_id for p in room.participants):
        return room
    # Reassign so the JSON column is flagged dirty
    room.participants = [*room.participants, {"user_id": user_id, "role": role, "is_active": True}]
    await commit(db)
    await db.refresh(room)
    return room


# ── Workflow steps ───────────────────────────────────────

async def get_workflow_step(db: AsyncSession, idempotency_key: str) -> WorkflowStep | None:
    result = await db.execute(select(WorkflowStep).where(WorkflowStep.idempotency_key == idempotency_key))
    return result.scalars().first()


async def save_workflow_step(
    db: AsyncSession,
    idempotency_key: str,
    *,
    saga: str,
    trigger_type: str,
    trigger_id: str,
    step: str,
    status: str,
    actor_id: str,
    detail: str = "",
) -> WorkflowStep:
    """Insert or overwrite the ledger row for one saga step."""
    row = await get_workflow_step(db, idempotency_key)
    if row is None:
        row = WorkflowStep(
            idempotency_key=idempotency_key, saga=saga, trigger_type=trigger_type,
            trigger_id=trigger_id, step=step, actor_id=actor_id,
        )
        db.add(row)
    row.status = status
    row.detail = detail[:1000]
    await commit(db)
    return row


async def list_failed_workflow_steps(db: AsyncSession) -> list[WorkflowStep]:
    result = await db.execute(
        select(WorkflowStep).where(WorkflowStep.status == "failed").order_by(WorkflowStep.created_at)
    )
    return list(result.scalars().all())


async def list_workflow_steps(db: AsyncSession, trigger_id: str) -> list[WorkflowStep]:
    result = await db.execute(
        select(WorkflowStep).where(WorkflowStep.trigger_id == trigger_id).order_by(WorkflowStep.created_at)
    )
    return list(result.scalars().all())
