from datetime import datetime, timezone
from enum import Enum

from resumeops.services import audit
from resumeops.states import EntityType, OrderStatus

ADMIN = "01ADMIN0000000000000000000"


class _Thing:
    status = OrderStatus.IN_REVIEW
    when = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    total = 12.5


def test_snapshot_is_json_safe():
    snap = audit.snapshot(_Thing(), ("status", "when", "total", "missing"))
    assert snap == {
        "status": "in_review",
        "when": "2024-03-01T12:00:00+00:00",
        "total": 12.5,
        "missing": None,
    }
    assert not any(isinstance(v, (Enum, datetime)) for v in snap.values())


async def test_sequences_are_per_entity(db):
    await audit.record(db, EntityType.ORDER, "A", "created", ADMIN)
    await audit.record(db, EntityType.ORDER, "A", "updated", ADMIN)
    await audit.record(db, EntityType.ORDER, "B", "created", ADMIN)
    await audit.record(db, EntityType.PAYMENT, "A", "created", ADMIN)
    await db.commit()

    assert [e.sequence for e in await audit.list_entries(db, "order", "A")] == [1, 2]
    assert [e.sequence for e in await audit.list_entries(db, "order", "B")] == [1]
    assert [e.sequence for e in await audit.list_entries(db, "payment", "A")] == [1]


async def test_details_are_truncated(db):
    entry = await audit.record(db, EntityType.ORDER, "A", "updated", ADMIN, details="x" * 500)
    await db.commit()
    assert len(entry.details) == audit.MAX_DETAILS_LENGTH


async def test_pagination_and_count(db):
    for _ in range(7):
        await audit.record(db, EntityType.REVISION, "R", "updated", ADMIN)
    await db.commit()
    page = await audit.list_entries(db, EntityType.REVISION, "R", limit=3, offset=3)
    assert [e.sequence for e in page] == [4, 5, 6]
    assert await audit.count_entries(db, EntityType.REVISION, "R") == 7


async def test_latest_entry_by_action(db):
    await audit.record(db, EntityType.PAYMENT, "P", "created", ADMIN)
    first = await audit.record(db, EntityType.PAYMENT, "P", "refunded", ADMIN)
    await audit.record(db, EntityType.PAYMENT, "P", "updated", ADMIN)
    await db.commit()
    assert (await audit.latest_entry(db, EntityType.PAYMENT, "P")).action == "updated"
    assert (await audit.latest_entry(db, EntityType.PAYMENT, "P", "refunded")).id == first.id
    assert await audit.latest_entry(db, EntityType.PAYMENT, "P", "confirmed") is None


async def test_entries_survive_other_entity_writes(db, make_order):
    order = await make_order()
    await audit.record(db, EntityType.PAYMENT, "unrelated", "created", ADMIN)
    await db.commit()
    entries = await audit.list_entries(db, EntityType.ORDER, order.id)
    assert [e.action for e in entries] == ["created"]
