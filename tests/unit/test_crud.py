from datetime import timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from resumeops.config import Settings
from resumeops.db import crud
from resumeops.errors import ConcurrencyConflict, NotFound, ValidationFailed
from resumeops.models import Base, Order
from resumeops.models.base import utcnow
from resumeops.services import order_workflow, payment_workflow
from resumeops.states import EntityType

ADMIN = "01ADMIN0000000000000000000"
OTHER_ADMIN = "01OTHERADMIN00000000000000"
CLIENT = "01CLIENT000000000000000000"


async def test_require_order_raises_not_found(db):
    with pytest.raises(NotFound):
        await crud.require_order(db, "01MISSING00000000000000000")
    assert await crud.get_order(db, "01MISSING00000000000000000") is None


async def test_list_orders_filters_and_pages(db, make_order):
    await make_order(urgency_level="urgent", requirements={"target_role": "Data Engineer", "industry": "Fintech"})
    await make_order(client_id="01CLIENTB00000000000000000")
    await make_order(status="in_review", service_type="cover_letter")

    orders, total = await crud.list_orders(db)
    assert total == 3 and len(orders) == 3

    orders, total = await crud.list_orders(db, urgency_level="urgent")
    assert total == 1

    orders, total = await crud.list_orders(db, client_id=CLIENT)
    assert total == 2

    orders, total = await crud.list_orders(db, search="data eng")
    assert total == 1
    assert orders[0].requirements["industry"] == "Fintech"

    orders, total = await crud.list_orders(db, sort="created_at", limit=2, offset=2)
    assert total == 3 and len(orders) == 1


async def test_list_orders_visible_to_admin(db, make_order):
    mine = await make_order()
    theirs = await make_order(actor_id=OTHER_ADMIN)
    unassigned = await make_order()
    unassigned.assigned_admin_id = None
    await db.commit()

    orders, total = await crud.list_orders(db, visible_to_admin=ADMIN)
    assert total == 2
    assert {o.id for o in orders} == {mine.id, unassigned.id}
    assert theirs.id not in {o.id for o in orders}


async def test_list_orders_rejects_unknown_sort(db):
    with pytest.raises(ValidationFailed):
        await crud.list_orders(db, sort="-client_id")


async def test_order_statistics(db, make_order):
    await make_order(base_price=100)
    await make_order(base_price=200, status="completed")
    stats = await crud.order_statistics(db)
    assert stats["total_orders"] == 2
    assert stats["total_revenue"] == 300.0
    assert stats["average_order_value"] == 150.0
    assert stats["status_breakdown"] == {"pending": 1, "completed": 1}


async def test_payment_statistics(db, make_order, settings):
    order = await make_order(base_price=100)
    payment = await payment_workflow.create_payment(
        db, order, actor_id=ADMIN, amount=100, payment_method="paypal", settings=settings,
    )
    await payment_workflow.confirm(db, payment, ADMIN)
    await payment_workflow.refund(db, payment, ADMIN, 25, "client_request")

    stats = await crud.payment_statistics(db)
    assert stats["total_payments"] == 1
    assert stats["total_revenue"] == 100.0
    assert stats["total_refunded"] == 25.0
    assert stats["net_revenue"] == 75.0
    assert stats["method_breakdown"] == {"paypal": 1}


async def test_notes_are_validated(db, make_order):
    order = await make_order()
    with pytest.raises(ValidationFailed):
        await crud.add_internal_note(db, EntityType.ORDER, order.id, ADMIN, "   ")
    with pytest.raises(ValidationFailed):
        await crud.add_internal_note(db, EntityType.ORDER, order.id, ADMIN, "x" * 1001)
    note = await crud.add_internal_note(db, EntityType.ORDER, order.id, ADMIN, "  Called client  ", priority="high")
    assert note.note == "Called client"
    assert note.priority == "high"


async def test_chat_room_is_created_once(db, make_order):
    order = await make_order()
    room = await crud.create_chat_room(db, order)
    again = await crud.create_chat_room(db, order)
    assert again.id == room.id
    room = await crud.add_chat_participant(db, room, OTHER_ADMIN, "admin")
    room = await crud.add_chat_participant(db, room, OTHER_ADMIN, "admin")
    assert [p["user_id"] for p in room.participants] == [CLIENT, ADMIN, OTHER_ADMIN]


async def test_assign_joins_chat_room(db, make_order):
    order = await make_order()
    await crud.create_chat_room(db, order)
    await order_workflow.assign_order(db, order, OTHER_ADMIN, ADMIN)
    room = await crud.get_chat_room_for_order(db, order.id)
    assert OTHER_ADMIN in {p["user_id"] for p in room.participants}


async def test_workflow_step_upsert(db):
    fields = dict(saga="order_created", trigger_type="order", trigger_id="T1", step="chat_room", actor_id=ADMIN)
    await crud.save_workflow_step(db, "order_created:T1:chat_room", status="failed", detail="boom", **fields)
    assert len(await crud.list_failed_workflow_steps(db)) == 1
    row = await crud.save_workflow_step(db, "order_created:T1:chat_room", status="completed", **fields)
    assert row.status == "completed"
    assert await crud.list_failed_workflow_steps(db) == []
    assert len(await crud.list_workflow_steps(db, "T1")) == 1


async def test_stale_write_raises_conflict(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as setup:
        order = await order_workflow.create_order(
            setup, actor_id=ADMIN, client_id=CLIENT, service_type="resume_writing", base_price=100,
            estimated_completion=utcnow() + timedelta(days=5), settings=Settings(),
        )
        order_id = order.id

    async with factory() as first, factory() as second:
        mine = await first.get(Order, order_id)
        theirs = await second.get(Order, order_id)

        theirs.priority = 5
        await crud.commit(second)

        mine.priority = 1
        with pytest.raises(ConcurrencyConflict):
            await crud.commit(first)

    async with factory() as check:
        stored = await check.get(Order, order_id)
        assert stored.priority == 5
        assert stored.version == 2
    await engine.dispose()
