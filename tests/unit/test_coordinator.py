import pytest

from resumeops.db import crud
from resumeops.services import audit, order_workflow, payment_workflow, revision_workflow
from resumeops.services.coordinator import WorkflowCoordinator, order_path
from resumeops.states import EntityType, OrderStatus

ADMIN = "01ADMIN0000000000000000000"
CLIENT = "01CLIENT000000000000000000"


def test_order_path_shortest_route():
    assert order_path("pending", "in_progress") == [OrderStatus.IN_REVIEW, OrderStatus.IN_PROGRESS]
    assert order_path("in_revision", "client_review") == [OrderStatus.DRAFT_READY, OrderStatus.CLIENT_REVIEW]
    assert order_path("client_review", "in_revision") == [OrderStatus.REVISION_REQUESTED, OrderStatus.IN_REVISION]


def test_order_path_edges():
    assert order_path("draft_ready", "draft_ready") == []
    assert order_path("completed", "in_progress") is None
    assert order_path("delivered", "refunded") == [OrderStatus.REFUNDED]
    assert order_path("cancelled", "pending") is None


@pytest.fixture
def confirmed_payment(db, make_order, settings):
    async def _make(order_status="payment_pending"):
        order = await make_order(status=order_status)
        payment = await payment_workflow.create_payment(
            db, order, actor_id=ADMIN, amount=order.total_amount, payment_method="stripe", settings=settings,
        )
        await payment_workflow.confirm(db, payment, ADMIN)
        return order, payment
    return _make


async def test_order_created_opens_chat_room(db, make_order):
    order = await make_order()
    steps = await WorkflowCoordinator(db, ADMIN).order_created(order)
    assert [(s.step, s.status) for s in steps] == [("chat_room", "completed")]
    room = await crud.get_chat_room_for_order(db, order.id)
    assert room.room_code.startswith("ROOM-")
    assert {p["role"] for p in room.participants} == {"client", "admin"}


async def test_payment_confirmation_starts_work(db, confirmed_payment):
    order, payment = await confirmed_payment()
    steps = await WorkflowCoordinator(db, ADMIN).payment_confirmed(payment)
    assert steps[0].status == "completed"
    assert order.status == "in_progress"
    notes = await crud.list_internal_notes(db, EntityType.ORDER, order.id)
    assert notes[-1].note == f"Payment {payment.payment_number} confirmed"


async def test_payment_confirmation_leaves_other_orders_alone(db, confirmed_payment):
    order, payment = await confirmed_payment(order_status="pending")
    steps = await WorkflowCoordinator(db, ADMIN).payment_confirmed(payment)
    assert steps[0].status == "skipped"
    assert order.status == "pending"


async def test_rerun_is_idempotent(db, confirmed_payment):
    order, payment = await confirmed_payment()
    coordinator = WorkflowCoordinator(db, ADMIN)
    first = await coordinator.payment_confirmed(payment)
    entries_after_first = await audit.count_entries(db, EntityType.ORDER, order.id)
    second = await coordinator.payment_confirmed(payment)
    assert second[0].idempotency_key == first[0].idempotency_key
    assert await audit.count_entries(db, EntityType.ORDER, order.id) == entries_after_first
    assert len(await crud.list_workflow_steps(db, first[0].trigger_id)) == 1


async def test_full_refund_refunds_delivered_order(db, confirmed_payment):
    order, payment = await confirmed_payment(order_status="delivered")
    await payment_workflow.refund(db, payment, ADMIN, payment.amount, "quality_issue")
    steps = await WorkflowCoordinator(db, ADMIN).payment_refunded(payment)
    assert steps[0].status == "completed"
    assert order.status == "refunded"


async def test_partial_refund_keeps_order(db, confirmed_payment):
    order, payment = await confirmed_payment(order_status="delivered")
    await payment_workflow.refund(db, payment, ADMIN, 10, "quality_issue")
    steps = await WorkflowCoordinator(db, ADMIN).payment_refunded(payment)
    assert steps[0].status == "skipped"
    assert order.status == "delivered"


async def test_revision_lifecycle_drives_order(db, make_order, settings):
    order = await make_order(status="client_review")
    coordinator = WorkflowCoordinator(db, ADMIN)
    revision = await revision_workflow.create_revision(
        db, order, actor_id=CLIENT, revision_type="formatting_change", description="Fix spacing", settings=settings,
    )
    await coordinator.revision_requested(revision)
    assert order.status == "revision_requested"

    await revision_workflow.transition(db, revision, "acknowledged", ADMIN)
    assert await coordinator.revision_status_changed(revision) == []
    await revision_workflow.transition(db, revision, "in_progress", ADMIN)
    await coordinator.revision_status_changed(revision)
    assert order.status == "in_revision"

    await revision_workflow.mark_as_completed(db, revision, ADMIN, "Spacing fixed")
    steps = await coordinator.revision_status_changed(revision)
    assert order.status == "client_review"
    assert "draft_ready -> client_review" in steps[0].detail

    await revision_workflow.transition(db, revision, "delivered", ADMIN)
    await revision_workflow.approve(db, revision, CLIENT, rating=4)
    await coordinator.revision_status_changed(revision)
    assert order.status == "completed"


async def test_revision_on_completed_order_is_skipped(db, make_order, settings):
    order = await make_order(status="completed")
    revision = await revision_workflow.create_revision(
        db, order, actor_id=CLIENT, revision_type="other", description="Typo", settings=settings,
    )
    steps = await WorkflowCoordinator(db, ADMIN).revision_requested(revision)
    assert steps[0].status == "skipped"
    assert order.status == "completed"


async def test_failed_step_is_recorded_and_resumed(db, confirmed_payment, monkeypatch):
    order, payment = await confirmed_payment()

    async def gateway_down(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(order_workflow, "transition", gateway_down)
    coordinator = WorkflowCoordinator(db, ADMIN)
    steps = await coordinator.payment_confirmed(payment)
    assert steps[0].status == "failed"
    assert "database unavailable" in steps[0].detail
    assert order.status == "payment_pending"
    assert payment.status == "completed"

    monkeypatch.undo()
    assert await coordinator.resume_failed() == 1
    assert order.status == "in_progress"
    assert await crud.list_failed_workflow_steps(db) == []
    assert await coordinator.resume_failed() == 0
