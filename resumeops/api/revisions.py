from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.api.orders import can_see_order, get_visible_order
from resumeops.config import Settings
from resumeops.db import crud
from resumeops.db.engine import get_db
from resumeops.dependencies import ActorContext, get_settings_dep, require_actor, require_staff
from resumeops.models import Revision
from resumeops.schemas import (
    AuditEntryRead, AuditPage, InternalNoteRead, RevisionApprove, RevisionComplete, RevisionCreate,
    RevisionNoteCreate, RevisionPage, RevisionRead, RevisionReject, RevisionStatistics,
    RevisionStatusUpdate, RevisionUpdate, WorkflowStepRead,
)
from resumeops.services import audit, revision_workflow
from resumeops.services.coordinator import WorkflowCoordinator
from resumeops.states import EntityType, RevisionPriority, RevisionStatus, RevisionType

router = APIRouter(prefix="/api/revisions", tags=["revisions"])


async def get_visible_revision(db: AsyncSession, revision_id: str, actor: ActorContext) -> Revision:
    revision = await crud.get_revision(db, revision_id)
    if not revision:
        raise HTTPException(404, "Revision not found")
    order = await crud.get_order(db, revision.order_id)
    if order is None or not can_see_order(order, actor):
        raise HTTPException(403, "Access denied")
    return revision


@router.post("", response_model=RevisionRead, status_code=201)
async def create_revision(
    body: RevisionCreate,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    order = await get_visible_order(db, body.order_id, actor)
    data = body.model_dump(exclude={"order_id", "type", "specific_changes"})
    revision = await revision_workflow.create_revision(
        db, order,
        actor_id=actor.actor_id,
        revision_type=body.type,
        specific_changes=[c.model_dump() for c in body.specific_changes],
        settings=settings,
        **data,
    )
    await WorkflowCoordinator(db, actor.actor_id).revision_requested(revision)
    return revision


@router.get("", response_model=RevisionPage)
async def list_revisions(
    status: RevisionStatus | None = None,
    priority: RevisionPriority | None = None,
    type: RevisionType | None = None,
    order_id: str | None = None,
    assigned_admin_id: str | None = None,
    sort: str = "-requested_at",
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    items, total = await crud.list_revisions(
        db,
        status=status.value if status else None,
        priority=priority.value if priority else None,
        revision_type=type.value if type else None,
        order_id=order_id,
        client_id=None if actor.is_staff else actor.actor_id,
        assigned_admin_id=assigned_admin_id,
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return RevisionPage(items=[RevisionRead.model_validate(r) for r in items], total=total, limit=limit, offset=offset)


@router.get("/statistics", response_model=RevisionStatistics)
async def revision_statistics(
    order_id: str | None = None,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    return await crud.revision_statistics(db, order_id=order_id)


@router.get("/{revision_id}", response_model=RevisionRead)
async def get_revision(
    revision_id: str,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    return await get_visible_revision(db, revision_id, actor)


@router.patch("/{revision_id}", response_model=RevisionRead)
async def update_revision(
    revision_id: str,
    body: RevisionUpdate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
):
    revision = await get_visible_revision(db, revision_id, actor)
    changes = body.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(400, "No fields to update")
    return await revision_workflow.update_revision(db, revision, actor.actor_id, changes, settings=settings)


@router.put("/{revision_id}/status", response_model=RevisionRead)
async def update_revision_status(
    revision_id: str,
    body: RevisionStatusUpdate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    revision = await revision_workflow.transition(db, revision, body.status, actor.actor_id, note=body.note)
    await WorkflowCoordinator(db, actor.actor_id).revision_status_changed(revision)
    return revision


@router.post("/{revision_id}/complete", response_model=RevisionRead)
async def complete_revision(
    revision_id: str,
    body: RevisionComplete,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    revision = await revision_workflow.mark_as_completed(
        db, revision, actor.actor_id, body.summary, body.revised_file_ids,
    )
    await WorkflowCoordinator(db, actor.actor_id).revision_status_changed(revision)
    return revision


@router.post("/{revision_id}/approve", response_model=RevisionRead)
async def approve_revision(
    revision_id: str,
    body: RevisionApprove,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    revision = await revision_workflow.approve(db, revision, actor.actor_id, rating=body.rating, comments=body.comments)
    await WorkflowCoordinator(db, actor.actor_id).revision_status_changed(revision)
    return revision


@router.post("/{revision_id}/reject", response_model=RevisionRead)
async def reject_revision(
    revision_id: str,
    body: RevisionReject,
    actor: ActorContext = Depends(require_actor),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    revision = await revision_workflow.reject(db, revision, actor.actor_id, body.comments)
    await WorkflowCoordinator(db, actor.actor_id).revision_status_changed(revision)
    return revision


@router.post("/{revision_id}/notes", response_model=InternalNoteRead, status_code=201)
async def add_revision_note(
    revision_id: str,
    body: RevisionNoteCreate,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    return await crud.add_internal_note(
        db, EntityType.REVISION, revision.id, actor.actor_id, body.note, note_type=body.note_type,
    )


@router.get("/{revision_id}/notes", response_model=list[InternalNoteRead])
async def list_revision_notes(
    revision_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    return await crud.list_internal_notes(db, EntityType.REVISION, revision.id, limit=limit, offset=offset)


@router.get("/{revision_id}/audit", response_model=AuditPage)
async def revision_audit_trail(
    revision_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    revision = await get_visible_revision(db, revision_id, actor)
    items = await audit.list_entries(db, EntityType.REVISION, revision.id, limit=limit, offset=offset)
    total = await audit.count_entries(db, EntityType.REVISION, revision.id)
    return AuditPage(
        entity_type=EntityType.REVISION.value, entity_id=revision.id,
        items=[AuditEntryRead.model_validate(e) for e in items], total=total, limit=limit, offset=offset,
    )


@router.get("/{revision_id}/workflow", response_model=list[WorkflowStepRead])
async def revision_workflow_steps(
    revision_id: str,
    actor: ActorContext = Depends(require_staff),
    db: AsyncSession = Depends(get_db),
):
    """Saga steps triggered by this revision's events."""
    revision = await get_visible_revision(db, revision_id, actor)
    entries = await audit.list_entries(db, EntityType.REVISION, revision.id, limit=1000)
    steps = []
    for entry in entries:
        steps.extend(await crud.list_workflow_steps(db, entry.id))
    return steps
