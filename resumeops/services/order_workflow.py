"""Order state machine and order mutations.

Every mutation stages its internal note and audit entry on the same session
and commits once, so the order row, its note and its history move together.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.config import Settings, get_settings
from resumeops.db import crud
from resumeops.errors import InvalidStatusTransition, ValidationFailed
from resumeops.models import Order
from resumeops.models.base import as_utc, utcnow
from resumeops.services import audit
from resumeops.states import AuditAction, EntityType, NotePriority, OrderStatus, ORDER_TRANSITIONS

logger = logging.getLogger(__name__)

AUDIT_FIELDS = ("status", "assigned_admin_id", "priority", "urgency_level", "total_amount")

UPDATABLE_FIELDS = {
    "assigned_admin_id", "priority", "urgency_level", "requirements", "base_price",
    "urgency_fee", "additional_services", "discount", "estimated_completion", "quality_score",
}

NULLABLE_FIELDS = {"assigned_admin_id", "quality_score"}


def check_transition(current: str, target: str) -> OrderStatus:
    """Return the target status if the move is in the transition table, else raise."""
    current_status = OrderStatus(current)
    target_status = OrderStatus(target)
    if target_status not in ORDER_TRANSITIONS[current_status]:
        raise InvalidStatusTransition("order", current_status.value, target_status.value)
    return target_status


def apply_transition(order: Order, target: str, now: datetime | None = None) -> Order:
    """Validate and apply a status move in memory, stamping first-time milestones."""
    target_status = check_transition(order.status, target)
    now = now or utcnow()
    order.status = target_status.value
    if target_status is OrderStatus.IN_PROGRESS and order.actual_start_date is None:
        order.actual_start_date = now
    if target_status in (OrderStatus.COMPLETED, OrderStatus.DELIVERED) and order.actual_completion_date is None:
        order.actual_completion_date = now
    order.last_activity = now
    return order


async def transition(
    db: AsyncSession,
    order: Order,
    target: str,
    actor_id: str,
    note: str | None = None,
    now: datetime | None = None,
) -> Order:
    before = audit.snapshot(order, AUDIT_FIELDS)
    previous = order.status
    apply_transition(order, target, now)
    if note:
        crud.stage_internal_note(db, EntityType.ORDER, order.id, actor_id, note, priority=NotePriority.MEDIUM.value)
    await audit.record(
        db, EntityType.ORDER, order.id, AuditAction.STATUS_CHANGED, actor_id,
        details=f"Status changed from {previous} to {order.status}",
        previous_state=before, new_state=audit.snapshot(order, AUDIT_FIELDS),
        timestamp=now,
    )
    await crud.commit(db)
    await db.refresh(order)
    logger.info("Order %s moved %s -> %s by %s", order.order_number, previous, order.status, actor_id)
    return order


def _require_future(value: datetime, now: datetime) -> None:
    if as_utc(value) <= now:
        raise ValidationFailed("Estimated completion must be in the future")


async def create_order(
    db: AsyncSession,
    *,
    actor_id: str,
    client_id: str,
    service_type: str,
    base_price: float,
    estimated_completion: datetime,
    urgency_level: str = "standard",
    priority: int = 3,
    requirements: dict | None = None,
    urgency_fee: float = 0.0,
    additional_services: list[dict] | None = None,
    discount: float = 0.0,
    currency: str | None = None,
    milestones: list | None = None,
    source_info: dict | None = None,
    settings: Settings | None = None,
) -> Order:
    """Create an order assigned to its creator, with its `created` audit entry."""
    settings = settings or get_settings()
    now = utcnow()
    _require_future(estimated_completion, now)
    order = Order(
        order_number=await crud.unique_code(db, Order.order_number, settings.orders.number_prefix, now),
        client_id=client_id,
        assigned_admin_id=actor_id,
        service_type=service_type,
        urgency_level=urgency_level,
        priority=priority,
        requirements=requirements or {},
        base_price=base_price,
        urgency_fee=urgency_fee,
        additional_services=additional_services or [],
        discount=discount,
        currency=currency or settings.payments.default_currency,
        estimated_completion=estimated_completion,
        milestones=milestones or [],
        source_info=source_info or {},
    )
    order.recalculate_total()
    db.add(order)
    await db.flush()
    await audit.record(
        db, EntityType.ORDER, order.id, AuditAction.CREATED, actor_id,
        details=f"Order {order.order_number} created",
        new_state=audit.snapshot(order, AUDIT_FIELDS), timestamp=now,
    )
    await crud.commit(db)
    await db.refresh(order)
    logger.info("order_created %s client=%s total=%.2f", order.order_number, client_id, order.total_amount)
    return order


async def update_order(db: AsyncSession, order: Order, actor_id: str, changes: dict) -> Order:
    """Apply non-status field changes; totals are re-derived on flush."""
    if "status" in changes:
        raise ValidationFailed("Status changes go through the status endpoint")
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    cleared = sorted(name for name, value in changes.items() if value is None and name not in NULLABLE_FIELDS)
    if cleared:
        raise ValidationFailed(f"Fields cannot be null: {', '.join(cleared)}")
    changed = [name for name, value in changes.items() if getattr(order, name) != value]
    if not changed:
        return order
    if "estimated_completion" in changed:
        _require_future(changes["estimated_completion"], utcnow())

    before = audit.snapshot(order, AUDIT_FIELDS)
    for name in changed:
        setattr(order, name, changes[name])
    order.recalculate_total()
    order.last_activity = utcnow()
    fields = ", ".join(changed)
    crud.stage_internal_note(
        db, EntityType.ORDER, order.id, actor_id, f"Order updated: {fields}", priority=NotePriority.LOW.value,
    )
    await audit.record(
        db, EntityType.ORDER, order.id, AuditAction.UPDATED, actor_id,
        details=f"Order updated: {fields}",
        previous_state=before, new_state=audit.snapshot(order, AUDIT_FIELDS),
    )
    await crud.commit(db)
    await db.refresh(order)
    return order


async def assign_order(db: AsyncSession, order: Order, admin_id: str, actor_id: str) -> Order:
    before = audit.snapshot(order, AUDIT_FIELDS)
    order.assigned_admin_id = admin_id
    order.last_activity = utcnow()
    crud.stage_internal_note(
        db, EntityType.ORDER, order.id, actor_id, f"Order assigned to {admin_id}", priority=NotePriority.MEDIUM.value,
    )
    await audit.record(
        db, EntityType.ORDER, order.id, AuditAction.ASSIGNED, actor_id,
        details=f"Assigned to {admin_id}",
        previous_state=before, new_state=audit.snapshot(order, AUDIT_FIELDS),
    )
    await crud.commit(db)
    await db.refresh(order)

    try:
        room = await crud.get_chat_room_for_order(db, order.id)
        if room is not None:
            await crud.add_chat_participant(db, room, admin_id, "admin")
    except Exception:
        logger.exception("Could not add %s to chat room of order %s", admin_id, order.order_number)
    return order
