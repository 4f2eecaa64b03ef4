from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.config import Settings
from resumeops.db import crud
from resumeops.db.engine import get_db
from resumeops.dependencies import ActorContext, get_settings_dep, require_actor, require_staff
from resumeops.models import Order
from resumeops.schemas import (
    AuditEntryRead, AuditPage, InternalNoteRead, OrderAssign, OrderCreate, OrderNoteCreate, OrderPage, OrderRead,
    OrderStatistics, OrderStatusUpdate, OrderUpdate,
)
from resumeops.services import audit, order_workflow
from resumeops.services.coordinator import WorkflowCoordinator
from resumeops.states import EntityType, OrderStatus, ServiceType, UrgencyLevel

router = APIRouter(prefix="/api/orders", tags=["orders"])


def can_see_order(order: Order, actor: ActorContext) -> bool:
    """Clients see their own orders; plain admins their own and unassigned ones."""
    if actor.is_super_admin:
        return True
    if actor.is_staff:
        return order.assigned_admin_id in (None, actor.actor_id)
    return order.client_id == actor.actor_id


async def get_visible_order(db: AsyncSession, order_id: str, actor: ActorContext) -> Order:
    order = await crud.get_order(db, order_id)
    if not order:
        raise HTTPException(404, "Order not found")
    if not can_see_order(order, actor):
        raise HTTPException(403, "Access denied")
    return order


@router.post("", response_model=OrderRead, status_code=201)
async def create_order(
    body: OrderCreate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    data = body.model_dump(exclude={"requirements", "source_info", "additional_services"})
    order = await order_workflow.create_order(
        db,
        actor_id=actor.actor_id,
        requirements=body.requirements.model_dump(mode="json"),
        source_info=body.source_info.model_dump(mode="json"),
        additional_services=[s.model_dump() for s in body.additional_services],
        settings=settings,
        **data,
    )
    await WorkflowCoordinator(db, actor.actor_id).order_created(order)
    return order


@router.get("", response_model=OrderPage)
async def list_orders(
    status: OrderStatus | None = None,
    urgency_level: UrgencyLevel | None = None,
    priority: int | None = Query(default=None, ge=1, le=5),
    assigned_admin_id: str | None = None,
    service_type: ServiceType | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    search: str | None = Query(default=None, max_length=100),
    sort: str = "-created_at",
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await crud.list_orders(
        db,
        status=status.value if status else None,
        urgency_level=urgency_level.value if urgency_level else None,
        priority=priority,
        assigned_admin_id=assigned_admin_id,
        service_type=service_type.value if service_type else None,
        client_id=None if actor.is_staff else actor.actor_id,
        created_from=created_from,
        created_to=created_to,
        search=search,
        visible_to_admin=actor.actor_id if actor.is_staff and not actor.is_super_admin else None,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return OrderPage(items=[OrderRead.model_validate(o) for o in items], total=total, limit=limit, offset=offset)


@router.get("/statistics", response_model=OrderStatistics)
async def order_statistics(
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    scope = None if actor.is_super_admin else actor.actor_id
    return await crud.order_statistics(db, assigned_admin_id=scope)


@router.get("/{order_id}", response_model=OrderRead)
async def get_order(
    order_id: str,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    return await get_visible_order(db, order_id, actor)


@router.patch("/{order_id}", response_model=OrderRead)
async def update_order(
    order_id: str,
    body: OrderUpdate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    changes = body.model_dump(exclude_unset=True)
    if body.requirements is not None:
        changes["requirements"] = body.requirements.model_dump(mode="json")
    if not changes:
        raise HTTPException(400, "No fields to update")
    return await order_workflow.update_order(db, order, actor.actor_id, changes)


@router.put("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: str,
    body: OrderStatusUpdate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    return await order_workflow.transition(db, order, body.status, actor.actor_id, note=body.note)


@router.put("/{order_id}/assign", response_model=OrderRead)
async def assign_order(
    order_id: str,
    body: OrderAssign,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    return await order_workflow.assign_order(db, order, body.admin_id, actor.actor_id)


@router.post("/{order_id}/notes", response_model=InternalNoteRead, status_code=201)
async def add_order_note(
    order_id: str,
    body: OrderNoteCreate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    return await crud.add_internal_note(
        db, EntityType.ORDER, order.id, actor.actor_id, body.note, priority=body.priority,
    )


@router.get("/{order_id}/notes", response_model=list[InternalNoteRead])
async def list_order_notes(
    order_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    return await crud.list_internal_notes(db, EntityType.ORDER, order.id, limit=limit, offset=offset)


@router.get("/{order_id}/audit", response_model=AuditPage)
async def order_audit_trail(
    order_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    order = await get_visible_order(db, order_id, actor)
    items = await audit.list_entries(db, EntityType.ORDER, order.id, limit=limit, offset=offset)
    total = await audit.count_entries(db, EntityType.ORDER, order.id)
    return AuditPage(
        entity_type=EntityType.ORDER.value, entity_id=order.id,
        items=[AuditEntryRead.model_validate(e) for e in items], total=total, limit=limit, offset=offset,
    )
