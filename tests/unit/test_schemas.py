from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from resumeops.schemas import (
    OrderCreate, OrderRead, OrderStatusUpdate, PaymentCreate, PaymentRead, PaymentRefund, RevisionCreate,
)

FUTURE = datetime.now(timezone.utc) + timedelta(days=10)


def test_order_create_defaults():
    body = OrderCreate(client_id="c1", service_type="resume_writing", base_price=150, estimated_completion=FUTURE)
    assert body.urgency_level == "standard"
    assert body.priority == 3
    assert body.requirements.target_role == ""
    assert body.source_info.source == "website"


def test_order_create_ignores_client_total():
    body = OrderCreate.model_validate({
        "client_id": "c1",
        "service_type": "cv_writing",
        "base_price": 100,
        "estimated_completion": FUTURE.isoformat(),
        "total_amount": 1.0,
    })
    assert "total_amount" not in body.model_dump()


@pytest.mark.parametrize("field,value", [
    ("service_type", "ghostwriting"),
    ("urgency_level", "yesterday"),
    ("priority", 6),
    ("discount", 120),
    ("base_price", -1),
])
def test_order_create_rejects_bad_values(field, value):
    data = {
        "client_id": "c1",
        "service_type": "resume_writing",
        "base_price": 100,
        "estimated_completion": FUTURE.isoformat(),
        field: value,
    }
    with pytest.raises(ValidationError):
        OrderCreate.model_validate(data)


def test_status_update_requires_known_status():
    assert OrderStatusUpdate(status="in_review").status == "in_review"
    with pytest.raises(ValidationError):
        OrderStatusUpdate(status="shipped")


def test_payment_amount_must_be_positive():
    with pytest.raises(ValidationError):
        PaymentCreate(order_id="o1", amount=0, payment_method="stripe")
    with pytest.raises(ValidationError):
        PaymentCreate(order_id="o1", amount=10, payment_method="barter")


def test_refund_reason_is_closed():
    assert PaymentRefund(amount=5, reason="quality_issue").reason == "quality_issue"
    with pytest.raises(ValidationError):
        PaymentRefund(amount=5, reason="changed_my_mind")


def test_revision_create_validates_changes():
    body = RevisionCreate(
        order_id="o1",
        type="content_change",
        description="Update skills",
        specific_changes=[{"section": "skills", "requested_change": "Add Go"}],
    )
    assert body.specific_changes[0].section == "skills"
    with pytest.raises(ValidationError):
        RevisionCreate(order_id="o1", type="content_change", description="x",
                       specific_changes=[{"section": "hobbies", "requested_change": "Add chess"}])


async def test_read_models_expose_derived_fields(db, make_order, settings):
    from resumeops.services import payment_workflow

    order = await make_order(status="in_progress")
    read = OrderRead.model_validate(order)
    assert read.progress_percentage == 30
    assert read.version == order.version

    payment = await payment_workflow.create_payment(
        db, order, actor_id="01ADMIN0000000000000000000", amount=150, payment_method="stripe", settings=settings,
    )
    payment_read = PaymentRead.model_validate(payment)
    assert payment_read.is_expired is False
    assert payment_read.hours_until_expiry >= 167
