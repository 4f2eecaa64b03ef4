"""Payment state machine: confirm, refund and the smaller lifecycle moves.

Payments move by named operation. ``PAYMENT_OPERATIONS`` lists what each
status allows; anything else raises InvalidState. Each operation appends
exactly one audit entry.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.config import Settings, get_settings
from resumeops.db import crud
from resumeops.errors import InvalidAmount, InvalidState, ValidationFailed
from resumeops.models import Order, Payment
from resumeops.models.base import utcnow
from resumeops.services import audit
from resumeops.services.identifiers import PAYMENT_PREFIX
from resumeops.services.pricing import round_money, to_decimal
from resumeops.states import (
    AuditAction, EntityType, OrderStatus, PaymentAction, PaymentStatus, PAYMENT_OPERATIONS,
)

logger = logging.getLogger(__name__)

AUDIT_FIELDS = ("status", "amount", "refund_amount", "net_amount")

DETAIL_FIELDS = {
    "external_transaction_id", "gateway_provider", "payment_proof", "reference_number",
    "bank_details", "processing_fee", "platform_fee",
}

NULLABLE_FIELDS = {"external_transaction_id", "payment_proof", "reference_number", "bank_details"}

_CLOSED_ORDER_STATUSES = {OrderStatus.CANCELLED, OrderStatus.REFUNDED}


def check_operation(payment: Payment, action: PaymentAction) -> None:
    status = PaymentStatus(payment.status)
    if action not in PAYMENT_OPERATIONS[status]:
        raise InvalidState(f"Cannot {action.value} a payment that is {status.value}")


async def _finish(db: AsyncSession, payment: Payment) -> Payment:
    await crud.commit(db)
    await db.refresh(payment)
    return payment


async def create_payment(
    db: AsyncSession,
    order: Order,
    *,
    actor_id: str,
    amount: float,
    payment_method: str,
    currency: str | None = None,
    gateway_provider: str = "manual",
    external_transaction_id: str | None = None,
    payment_proof: str | None = None,
    reference_number: str | None = None,
    bank_details: dict | None = None,
    processing_fee: float = 0.0,
    platform_fee: float = 0.0,
    source_info: dict | None = None,
    settings: Settings | None = None,
) -> Payment:
    """Open a pending payment for an order that has no live payment."""
    settings = settings or get_settings()
    if to_decimal(amount) <= 0:
        raise InvalidAmount("Payment amount must be positive")
    if OrderStatus(order.status) in _CLOSED_ORDER_STATUSES:
        raise InvalidState(f"Order {order.order_number} is {order.status} and cannot take a payment")
    existing = await crud.get_open_payment_for_order(db, order.id)
    if existing is not None:
        raise InvalidState(f"Order {order.order_number} already has payment {existing.payment_number}")

    now = utcnow()
    payment = Payment(
        payment_number=await crud.unique_code(db, Payment.payment_number, PAYMENT_PREFIX, now),
        order_id=order.id,
        client_id=order.client_id,
        amount=amount,
        currency=currency or order.currency or settings.payments.default_currency,
        payment_method=payment_method,
        gateway_provider=gateway_provider,
        external_transaction_id=external_transaction_id,
        payment_proof=payment_proof,
        reference_number=reference_number,
        bank_details=bank_details,
        processing_fee=processing_fee,
        platform_fee=platform_fee,
        source_info=source_info or {},
        initiated_at=now,
        expires_at=now + timedelta(days=settings.payments.expiry_days),
    )
    payment.recalculate_net_amount()
    db.add(payment)
    await db.flush()
    await audit.ensure_created_entry(
        db, EntityType.PAYMENT, payment.id, actor_id,
        details=f"Payment {payment.payment_number} created for {payment.amount:.2f} {payment.currency}",
        timestamp=now, new_state=audit.snapshot(payment, AUDIT_FIELDS),
    )
    await _finish(db, payment)
    logger.info("payment_created %s order=%s amount=%.2f", payment.payment_number, order.order_number, amount)
    return payment


async def confirm(
    db: AsyncSession, payment: Payment, actor_id: str, notes: str | None = None, now: datetime | None = None,
) -> Payment:
    check_operation(payment, PaymentAction.CONFIRM)
    now = now or utcnow()
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.status = PaymentStatus.COMPLETED.value
    if payment.confirmed_at is None:
        payment.confirmed_at = now
    if payment.completed_at is None:
        payment.completed_at = now
    payment.confirmed_by = actor_id
    if notes:
        payment.confirmation_notes = notes
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.CONFIRMED, actor_id,
        details=notes or "Payment confirmed",
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS), timestamp=now,
    )
    await _finish(db, payment)
    logger.info("payment_confirmed %s by %s", payment.payment_number, actor_id)
    return payment


async def refund(
    db: AsyncSession,
    payment: Payment,
    actor_id: str,
    amount: float,
    reason: str,
    notes: str | None = None,
    refund_transaction_id: str | None = None,
    now: datetime | None = None,
) -> Payment:
    """Add a (partial) refund. The cumulative total may never exceed the amount paid."""
    check_operation(payment, PaymentAction.REFUND)
    requested = to_decimal(amount)
    if requested <= 0:
        raise InvalidAmount("Refund amount must be positive")
    paid = to_decimal(payment.amount)
    total_refunded = to_decimal(payment.refund_amount) + requested
    if total_refunded > paid:
        raise InvalidAmount(
            f"Refund of {round_money(requested):.2f} exceeds remaining {payment.remaining_refundable:.2f}"
        )

    now = now or utcnow()
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.refund_amount = round_money(total_refunded)
    payment.status = (
        PaymentStatus.REFUNDED.value if total_refunded == paid else PaymentStatus.PARTIALLY_REFUNDED.value
    )
    payment.refund_reason = reason
    payment.refunded_by = actor_id
    payment.last_refunded_at = now
    if payment.refunded_at is None:
        payment.refunded_at = now
    if refund_transaction_id:
        payment.refund_transaction_id = refund_transaction_id
    if notes:
        payment.refund_notes = notes
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.REFUNDED, actor_id,
        details=f"Refunded {round_money(requested):.2f} ({reason})" + (f": {notes}" if notes else ""),
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS), timestamp=now,
    )
    await _finish(db, payment)
    logger.info(
        "payment_refunded %s amount=%.2f total=%.2f status=%s",
        payment.payment_number, float(requested), payment.refund_amount, payment.status,
    )
    return payment


async def mark_processing(db: AsyncSession, payment: Payment, actor_id: str, notes: str | None = None) -> Payment:
    check_operation(payment, PaymentAction.PROCESS)
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.status = PaymentStatus.PROCESSING.value
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.PROCESSING, actor_id,
        details=notes or "Payment processing",
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS),
    )
    return await _finish(db, payment)


async def fail(db: AsyncSession, payment: Payment, actor_id: str, reason: str | None = None) -> Payment:
    check_operation(payment, PaymentAction.FAIL)
    now = utcnow()
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.status = PaymentStatus.FAILED.value
    if payment.failed_at is None:
        payment.failed_at = now
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.FAILED, actor_id,
        details=reason or "Payment failed",
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS), timestamp=now,
    )
    await _finish(db, payment)
    logger.warning("Payment %s failed: %s", payment.payment_number, reason or "no reason given")
    return payment


async def cancel(db: AsyncSession, payment: Payment, actor_id: str, reason: str | None = None) -> Payment:
    check_operation(payment, PaymentAction.CANCEL)
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.status = PaymentStatus.CANCELLED.value
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.CANCELLED, actor_id,
        details=reason or "Payment cancelled",
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS),
    )
    return await _finish(db, payment)


async def dispute(db: AsyncSession, payment: Payment, actor_id: str, reason: str) -> Payment:
    check_operation(payment, PaymentAction.DISPUTE)
    before = audit.snapshot(payment, AUDIT_FIELDS)
    payment.status = PaymentStatus.DISPUTED.value
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.DISPUTED, actor_id,
        details=reason,
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS),
    )
    await _finish(db, payment)
    logger.warning("Payment %s disputed: %s", payment.payment_number, reason)
    return payment


async def update_details(db: AsyncSession, payment: Payment, actor_id: str, changes: dict) -> Payment:
    """Edit transaction details and fees; net amount is re-derived."""
    unknown = set(changes) - DETAIL_FIELDS
    if unknown:
        raise ValidationFailed(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    cleared = sorted(name for name, value in changes.items() if value is None and name not in NULLABLE_FIELDS)
    if cleared:
        raise ValidationFailed(f"Fields cannot be null: {', '.join(cleared)}")
    changed = [name for name, value in changes.items() if getattr(payment, name) != value]
    if not changed:
        return payment
    fees = to_decimal(changes.get("processing_fee", payment.processing_fee)) + to_decimal(
        changes.get("platform_fee", payment.platform_fee)
    )
    if fees < 0 or fees > to_decimal(payment.amount):
        raise InvalidAmount("Fees must be non-negative and not exceed the payment amount")

    before = audit.snapshot(payment, AUDIT_FIELDS)
    for name in changed:
        setattr(payment, name, changes[name])
    payment.recalculate_net_amount()
    await audit.record(
        db, EntityType.PAYMENT, payment.id, AuditAction.UPDATED, actor_id,
        details=f"Payment updated: {', '.join(changed)}",
        previous_state=before, new_state=audit.snapshot(payment, AUDIT_FIELDS),
    )
    return await _finish(db, payment)
