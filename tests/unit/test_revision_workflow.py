from datetime import timedelta

import pytest

from resumeops.config import RevisionPolicyConfig, Settings
from resumeops.errors import InvalidState, InvalidStatusTransition, ValidationFailed
from resumeops.models.base import as_utc, utcnow
from resumeops.services import audit, revision_workflow
from resumeops.states import EntityType, RevisionStatus, REVISION_TRANSITIONS

ADMIN = "01ADMIN0000000000000000000"
CLIENT = "01CLIENT000000000000000000"


@pytest.fixture
def open_revision(db, settings):
    async def _open(order, **overrides):
        fields = dict(
            actor_id=CLIENT,
            revision_type="content_change",
            description="Tighten the summary section",
            settings=settings,
        )
        fields.update(overrides)
        return await revision_workflow.create_revision(db, order, **fields)
    return _open


def test_transition_table_matches_lifecycle():
    assert REVISION_TRANSITIONS[RevisionStatus.APPROVED] == frozenset()
    assert REVISION_TRANSITIONS[RevisionStatus.CANCELLED] == frozenset()
    assert REVISION_TRANSITIONS[RevisionStatus.REJECTED] == {RevisionStatus.IN_PROGRESS}
    for current, targets in REVISION_TRANSITIONS.items():
        for target in set(RevisionStatus) - targets:
            with pytest.raises(InvalidStatusTransition):
                revision_workflow.check_transition(current.value, target.value)


async def test_revision_requires_reviewed_order(make_order, open_revision):
    order = await make_order(status="in_progress")
    with pytest.raises(InvalidState):
        await open_revision(order)


async def test_numbering_and_free_allowance(make_order, open_revision):
    order = await make_order(status="completed")
    first = await open_revision(order)
    second = await open_revision(order)
    third = await open_revision(order, complexity="complex", urgency_level="urgent")

    assert [r.revision_number for r in (first, second, third)] == [1, 2, 3]
    assert [r.free_revisions_used for r in (first, second, third)] == [0, 1, 2]
    assert first.is_chargeable is False and first.revision_fee == 0
    assert second.is_chargeable is False
    assert third.is_chargeable is True
    assert third.revision_fee == 150.0
    assert third.revision_code.startswith("REV-")


async def test_custom_free_limit(make_order, open_revision):
    order = await make_order(status="delivered")
    strict = Settings(revision_policy=RevisionPolicyConfig(free_revisions_limit=0))
    revision = await open_revision(order, settings=strict)
    assert revision.is_chargeable is True
    assert revision.free_revisions_limit == 0
    assert revision.revision_fee == 50.0


async def test_snapshots_order_ownership(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    assert revision.client_id == order.client_id
    assert revision.assigned_admin_id == ADMIN

    order.assigned_admin_id = "01SOMEONEELSE0000000000000"
    await db.commit()
    await db.refresh(revision)
    assert revision.assigned_admin_id == ADMIN


async def test_deadlines_by_urgency(make_order, open_revision):
    order = await make_order(status="completed")
    now = utcnow()
    standard = await open_revision(order, now=now)
    urgent = await open_revision(order, urgency_level="urgent", now=now)
    express = await open_revision(order, urgency_level="express", now=now)
    assert standard.deadline is None
    assert as_utc(urgent.deadline) == now + timedelta(days=2)
    assert as_utc(express.deadline) == now + timedelta(days=1)


async def test_estimated_hours(make_order, open_revision):
    order = await make_order(status="completed")
    changes = [{"section": "skills", "requested_change": "Add Kubernetes"}] * 2
    heuristic = await open_revision(order, complexity="simple", priority="urgent", specific_changes=changes)
    assert heuristic.estimated_hours == 1.5
    explicit = await open_revision(order, estimated_hours=4.0)
    assert explicit.estimated_hours == 4.0
    assert as_utc(explicit.estimated_completion) == as_utc(explicit.requested_at) + timedelta(hours=4)


async def test_lifecycle_stamps_and_duration(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    start = utcnow() - timedelta(hours=3)
    await revision_workflow.transition(db, revision, "acknowledged", ADMIN)
    await revision_workflow.transition(db, revision, "in_progress", ADMIN, now=start)
    await revision_workflow.mark_as_completed(db, revision, ADMIN, "Rewrote summary", ["file-1"])
    assert revision.status == "completed"
    assert revision.actual_duration == 3.0
    assert revision.changes_summary == "Rewrote summary"
    assert revision.revised_file_ids == ["file-1"]
    assert revision.acknowledged_at is not None

    actions = [e.action for e in await audit.list_entries(db, EntityType.REVISION, revision.id)]
    assert actions == ["created", "status_changed", "status_changed", "completed"]


async def test_mark_as_completed_requires_in_progress(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    with pytest.raises(InvalidStatusTransition):
        await revision_workflow.mark_as_completed(db, revision, ADMIN, "done")


async def _deliver(db, revision):
    for status in ("acknowledged", "in_progress", "completed", "delivered"):
        await revision_workflow.transition(db, revision, status, ADMIN)
    return revision


async def test_approve_records_feedback(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await _deliver(db, await open_revision(order))
    await revision_workflow.approve(db, revision, CLIENT, rating=5, comments="Great")
    assert revision.status == "approved"
    assert revision.client_rating == 5
    assert revision.client_response_at is not None
    assert revision.feedback_submitted_at is not None
    assert revision.progress_percentage == 100


async def test_approve_rejects_bad_rating(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await _deliver(db, await open_revision(order))
    with pytest.raises(ValidationFailed):
        await revision_workflow.approve(db, revision, CLIENT, rating=6)


async def test_reject_requires_comments(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await _deliver(db, await open_revision(order))
    with pytest.raises(ValidationFailed):
        await revision_workflow.reject(db, revision, CLIENT, "   ")
    await revision_workflow.reject(db, revision, CLIENT, "Still too long")
    assert revision.status == "rejected"
    await revision_workflow.transition(db, revision, "in_progress", ADMIN)
    assert revision.status == "in_progress"


async def test_approve_only_when_delivered(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    with pytest.raises(InvalidState):
        await revision_workflow.approve(db, revision, CLIENT)


async def test_raising_urgency_sets_deadline(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    assert revision.deadline is None
    await revision_workflow.update_revision(db, revision, ADMIN, {"urgency_level": "express", "admin_notes": "Rush"})
    assert revision.deadline is not None
    assert revision.admin_notes == "Rush"


async def test_update_revision_rejects_null_priority(db, make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order)
    with pytest.raises(ValidationFailed, match="priority"):
        await revision_workflow.update_revision(db, revision, ADMIN, {"priority": None, "estimated_hours": None})
    await revision_workflow.update_revision(db, revision, ADMIN, {"estimated_hours": None})
    assert revision.estimated_hours is None


async def test_overdue_is_derived(make_order, open_revision):
    order = await make_order(status="completed")
    revision = await open_revision(order, urgency_level="urgent")
    assert revision.is_overdue() is False
    assert revision.is_overdue(now=utcnow() + timedelta(days=3)) is True
    assert 46 <= revision.hours_until_deadline <= 48
