from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.api.orders import can_see_order, get_visible_order
from resumeops.config import Settings
from resumeops.db import crud
from resumeops.db.engine import get_db
from resumeops.dependencies import ActorContext, get_settings_dep, require_actor, require_staff
from resumeops.models import Payment
from resumeops.schemas import (
    AuditEntryRead, AuditPage, PaymentConfirm, PaymentCreate, PaymentDetailsUpdate, PaymentPage,
    PaymentRead, PaymentReason, PaymentRefund, PaymentStatistics,
)
from resumeops.services import audit, payment_workflow
from resumeops.services.coordinator import WorkflowCoordinator
from resumeops.states import EntityType, PaymentMethod, PaymentStatus

router = APIRouter(prefix="/api/payments", tags=["payments"])


async def get_visible_payment(db: AsyncSession, payment_id: str, actor: ActorContext) -> Payment:
    payment = await crud.get_payment(db, payment_id)
    if not payment:
        raise HTTPException(404, "Payment not found")
    order = await crud.get_order(db, payment.order_id)
    if order is None or not can_see_order(order, actor):
        raise HTTPException(403, "Access denied")
    return payment


@router.post("", response_model=PaymentRead, status_code=201)
async def create_payment(
    body: PaymentCreate,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    order = await get_visible_order(db, body.order_id, actor)
    return await payment_workflow.create_payment(
        db, order, actor_id=actor.actor_id, settings=settings, **body.model_dump(exclude={"order_id"}),
    )


@router.get("", response_model=PaymentPage)
async def list_payments(
    status: PaymentStatus | None = None,
    payment_method: PaymentMethod | None = None,
    order_id: str | None = None,
    initiated_from: datetime | None = None,
    initiated_to: datetime | None = None,
    sort: str = "-initiated_at",
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await crud.list_payments(
        db,
        status=status.value if status else None,
        payment_method=payment_method.value if payment_method else None,
        order_id=order_id,
        client_id=None if actor.is_staff else actor.actor_id,
        initiated_from=initiated_from,
        initiated_to=initiated_to,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return PaymentPage(items=[PaymentRead.model_validate(p) for p in items], total=total, limit=limit, offset=offset)


@router.get("/statistics", response_model=PaymentStatistics)
async def payment_statistics(
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await crud.payment_statistics(db)


@router.get("/{payment_id}", response_model=PaymentRead)
async def get_payment(
    payment_id: str,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    return await get_visible_payment(db, payment_id, actor)


@router.post("/{payment_id}/confirm", response_model=PaymentRead)
async def confirm_payment(
    payment_id: str,
    body: PaymentConfirm,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    payment = await payment_workflow.confirm(db, payment, actor.actor_id, notes=body.notes)
    await WorkflowCoordinator(db, actor.actor_id).payment_confirmed(payment)
    return payment


@router.post("/{payment_id}/refund", response_model=PaymentRead)
async def refund_payment(
    payment_id: str,
    body: PaymentRefund,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    payment = await payment_workflow.refund(
        db, payment, actor.actor_id, body.amount, body.reason,
        notes=body.notes, refund_transaction_id=body.refund_transaction_id,
    )
    await WorkflowCoordinator(db, actor.actor_id).payment_refunded(payment)
    return payment


@router.post("/{payment_id}/process", response_model=PaymentRead)
async def mark_payment_processing(
    payment_id: str,
    body: PaymentReason,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    return await payment_workflow.mark_processing(db, payment, actor.actor_id, notes=body.reason)


@router.post("/{payment_id}/fail", response_model=PaymentRead)
async def fail_payment(
    payment_id: str,
    body: PaymentReason,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    return await payment_workflow.fail(db, payment, actor.actor_id, reason=body.reason)


@router.post("/{payment_id}/cancel", response_model=PaymentRead)
async def cancel_payment(
    payment_id: str,
    body: PaymentReason,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    return await payment_workflow.cancel(db, payment, actor.actor_id, reason=body.reason)


@router.post("/{payment_id}/dispute", response_model=PaymentRead)
async def dispute_payment(
    payment_id: str,
    body: PaymentReason,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    if not body.reason:
        raise HTTPException(400, "A dispute needs a reason")
    payment = await get_visible_payment(db, payment_id, actor)
    return await payment_workflow.dispute(db, payment, actor.actor_id, body.reason)


@router.patch("/{payment_id}", response_model=PaymentRead)
async def update_payment_details(
    payment_id: str,
    body: PaymentDetailsUpdate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    return await payment_workflow.update_details(db, payment, actor.actor_id, changes)


@router.get("/{payment_id}/audit", response_model=AuditPage)
async def payment_audit_trail(
    payment_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    payment = await get_visible_payment(db, payment_id, actor)
    items = await audit.list_entries(db, EntityType.PAYMENT, payment.id, limit=limit, offset=offset)
    total = await audit.count_entries(db, EntityType.PAYMENT, payment.id)
    return AuditPage(
        entity_type=EntityType.PAYMENT.value, entity_id=payment.id,
        items=[AuditEntryRead.model_validate(e) for e in items], total=total, limit=limit, offset=offset,
    )
