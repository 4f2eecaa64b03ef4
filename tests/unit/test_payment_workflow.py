from datetime import timedelta

import pytest

from resumeops.errors import InvalidAmount, InvalidState, ValidationFailed
from resumeops.models.base import utcnow
from resumeops.services import audit, payment_workflow
from resumeops.states import EntityType, PaymentStatus, PAYMENT_OPERATIONS

ADMIN = "01ADMIN0000000000000000000"


@pytest.fixture
def make_payment(db, make_order, settings):
    async def _make(amount=200.0, **overrides):
        order = await make_order(base_price=amount)
        fields = dict(actor_id=ADMIN, amount=amount, payment_method="stripe", settings=settings)
        fields.update(overrides)
        return await payment_workflow.create_payment(db, order, **fields)
    return _make


async def _actions(db, payment):
    return [e.action for e in await audit.list_entries(db, EntityType.PAYMENT, payment.id)]


async def test_create_payment_defaults(db, make_payment):
    payment = await make_payment(amount=200, processing_fee=5.8, platform_fee=10)
    assert payment.status == "pending"
    assert payment.payment_number.startswith("PAY-")
    assert payment.net_amount == 184.20
    assert payment.expires_at is not None
    assert payment.is_expired() is False
    assert await _actions(db, payment) == ["created"]


async def test_created_entry_is_written_once(db, make_payment):
    payment = await make_payment()
    again = await audit.ensure_created_entry(db, EntityType.PAYMENT, payment.id, ADMIN, "duplicate")
    assert again is None
    assert await _actions(db, payment) == ["created"]


async def test_second_live_payment_rejected(db, make_order, settings):
    order = await make_order()
    await payment_workflow.create_payment(db, order, actor_id=ADMIN, amount=150, payment_method="paypal", settings=settings)
    with pytest.raises(InvalidState):
        await payment_workflow.create_payment(db, order, actor_id=ADMIN, amount=150, payment_method="paypal", settings=settings)


async def test_new_payment_allowed_after_failure(db, make_order, settings):
    order = await make_order()
    first = await payment_workflow.create_payment(
        db, order, actor_id=ADMIN, amount=150, payment_method="paypal", settings=settings,
    )
    await payment_workflow.fail(db, first, ADMIN, reason="Card declined")
    second = await payment_workflow.create_payment(
        db, order, actor_id=ADMIN, amount=150, payment_method="credit_card", settings=settings,
    )
    assert second.id != first.id


async def test_expired_payment_does_not_hide_live_one(db, make_order, settings):
    order = await make_order()
    stale = await payment_workflow.create_payment(
        db, order, actor_id=ADMIN, amount=150, payment_method="paypal", settings=settings,
    )
    stale.expires_at = utcnow() - timedelta(hours=1)
    await db.commit()
    assert stale.is_expired() is True

    live = await payment_workflow.create_payment(
        db, order, actor_id=ADMIN, amount=150, payment_method="stripe", settings=settings,
    )
    assert live.is_expired() is False
    with pytest.raises(InvalidState):
        await payment_workflow.create_payment(
            db, order, actor_id=ADMIN, amount=150, payment_method="cash", settings=settings,
        )


async def test_confirm_sets_timestamps_once(db, make_payment):
    payment = await make_payment()
    await payment_workflow.mark_processing(db, payment, ADMIN)
    await payment_workflow.confirm(db, payment, ADMIN, notes="Seen in Stripe dashboard")
    assert payment.status == "completed"
    assert payment.confirmed_at is not None
    assert payment.completed_at is not None
    assert payment.confirmed_by == ADMIN
    assert payment.confirmation_notes == "Seen in Stripe dashboard"
    assert await _actions(db, payment) == ["created", "processing", "confirmed"]


async def test_confirm_twice_fails(db, make_payment):
    payment = await make_payment()
    await payment_workflow.confirm(db, payment, ADMIN)
    with pytest.raises(InvalidState):
        await payment_workflow.confirm(db, payment, ADMIN)


async def test_refund_sequence(db, make_payment):
    payment = await make_payment(amount=200)
    await payment_workflow.confirm(db, payment, ADMIN)

    await payment_workflow.refund(db, payment, ADMIN, 80, "client_request")
    assert payment.status == "partially_refunded"
    assert payment.refund_amount == 80
    first_refund_at = payment.refunded_at

    await payment_workflow.refund(db, payment, ADMIN, 120, "client_request")
    assert payment.status == "refunded"
    assert payment.refund_amount == 200
    assert payment.refunded_at == first_refund_at

    with pytest.raises(InvalidAmount):
        await payment_workflow.refund(db, payment, ADMIN, 1, "client_request")
    assert payment.refund_amount == 200
    assert await _actions(db, payment) == ["created", "confirmed", "refunded", "refunded"]


async def test_refund_over_amount_rejected(db, make_payment):
    payment = await make_payment(amount=100)
    await payment_workflow.confirm(db, payment, ADMIN)
    with pytest.raises(InvalidAmount):
        await payment_workflow.refund(db, payment, ADMIN, 100.01, "quality_issue")
    assert payment.status == "completed"


async def test_refund_with_cents_sums_exactly(db, make_payment):
    payment = await make_payment(amount=0.3)
    await payment_workflow.confirm(db, payment, ADMIN)
    await payment_workflow.refund(db, payment, ADMIN, 0.1, "other")
    await payment_workflow.refund(db, payment, ADMIN, 0.2, "other")
    assert payment.status == "refunded"


async def test_refund_requires_positive_amount(db, make_payment):
    payment = await make_payment()
    await payment_workflow.confirm(db, payment, ADMIN)
    with pytest.raises(InvalidAmount):
        await payment_workflow.refund(db, payment, ADMIN, 0, "other")


async def test_refund_pending_payment_fails(db, make_payment):
    payment = await make_payment()
    with pytest.raises(InvalidState):
        await payment_workflow.refund(db, payment, ADMIN, 10, "other")


async def test_cancel_and_dispute(db, make_payment):
    payment = await make_payment()
    await payment_workflow.cancel(db, payment, ADMIN, reason="Duplicate checkout")
    assert payment.status == "cancelled"
    with pytest.raises(InvalidState):
        await payment_workflow.dispute(db, payment, ADMIN, "chargeback")


async def test_dispute_after_partial_refund(db, make_payment):
    payment = await make_payment(amount=100)
    await payment_workflow.confirm(db, payment, ADMIN)
    await payment_workflow.refund(db, payment, ADMIN, 30, "quality_issue")
    await payment_workflow.dispute(db, payment, ADMIN, "Chargeback opened")
    assert payment.status == "disputed"
    assert PAYMENT_OPERATIONS[PaymentStatus.DISPUTED] == frozenset()


async def test_update_details_recomputes_net(db, make_payment):
    payment = await make_payment(amount=100)
    await payment_workflow.update_details(db, payment, ADMIN, {"processing_fee": 3.2, "reference_number": "R-1"})
    assert payment.net_amount == 96.80
    assert (await _actions(db, payment))[-1] == "updated"


async def test_update_details_rejects_unknown_field(db, make_payment):
    payment = await make_payment()
    with pytest.raises(ValidationFailed):
        await payment_workflow.update_details(db, payment, ADMIN, {"amount": 1})


async def test_update_details_null_handling(db, make_payment):
    payment = await make_payment(amount=100, processing_fee=2)
    with pytest.raises(ValidationFailed, match="processing_fee"):
        await payment_workflow.update_details(db, payment, ADMIN, {"processing_fee": None})
    assert payment.processing_fee == 2

    await payment_workflow.update_details(db, payment, ADMIN, {"reference_number": "R-9"})
    await payment_workflow.update_details(db, payment, ADMIN, {"reference_number": None})
    assert payment.reference_number is None


async def test_expiry_is_derived(make_payment):
    payment = await make_payment()
    assert payment.is_expired(now=utcnow() + timedelta(days=8)) is True
    assert payment.is_expired(now=utcnow() + timedelta(days=6)) is False
    assert payment.hours_until_expiry >= 167
