"""Audit trail recorder: append-only history per (entity_type, entity_id).

Recording only stages the row on the session; the caller's commit writes it
together with the mutation it describes, so an entity change and its audit
entry land in the same transaction.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Iterable

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from resumeops.models import AuditEntry
from resumeops.models.base import utcnow
from resumeops.states import AuditAction, EntityType

MAX_DETAILS_LENGTH = 300


def snapshot(obj: Any, fields: Iterable[str]) -> dict:
    """JSON-safe copy of selected attributes, used for previous/new state."""
    out = {}
    for name in fields:
        value = getattr(obj, name, None)
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        out[name] = value
    return out


async def _next_sequence(db: AsyncSession, entity_type: str, entity_id: str) -> int:
    result = await db.execute(
        select(func.max(AuditEntry.sequence)).where(
            AuditEntry.entity_type == entity_type,
            AuditEntry.entity_id == entity_id,
        )
    )
    current = result.scalar()
    return (current or 0) + 1


async def record(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    action: AuditAction | str,
    performed_by: str,
    details: str = "",
    previous_state: dict | None = None,
    new_state: dict | None = None,
    timestamp: datetime | None = None,
) -> AuditEntry:
    entity_type = EntityType(entity_type).value
    entry = AuditEntry(
        entity_type=entity_type,
        entity_id=entity_id,
        sequence=await _next_sequence(db, entity_type, entity_id),
        action=AuditAction(action).value,
        performed_by=performed_by,
        timestamp=timestamp or utcnow(),
        details=(details or "")[:MAX_DETAILS_LENGTH],
        previous_state=previous_state,
        new_state=new_state,
    )
    db.add(entry)
    return entry


async def has_entries(db: AsyncSession, entity_type: EntityType | str, entity_id: str) -> bool:
    result = await db.execute(
        select(AuditEntry.id).where(
            AuditEntry.entity_type == EntityType(entity_type).value,
            AuditEntry.entity_id == entity_id,
        ).limit(1)
    )
    return result.first() is not None


async def ensure_created_entry(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    performed_by: str,
    details: str,
    timestamp: datetime | None = None,
    new_state: dict | None = None,
) -> AuditEntry | None:
    """Stage a `created` entry only when the entity has no history yet."""
    if await has_entries(db, entity_type, entity_id):
        return None
    return await record(
        db, entity_type, entity_id, AuditAction.CREATED, performed_by,
        details=details, new_state=new_state, timestamp=timestamp,
    )


async def latest_entry(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    action: AuditAction | str | None = None,
) -> AuditEntry | None:
    query = select(AuditEntry).where(
        AuditEntry.entity_type == EntityType(entity_type).value,
        AuditEntry.entity_id == entity_id,
    )
    if action is not None:
        query = query.where(AuditEntry.action == AuditAction(action).value)
    result = await db.execute(query.order_by(AuditEntry.sequence.desc()).limit(1))
    return result.scalars().first()


async def list_entries(
    db: AsyncSession,
    entity_type: EntityType | str,
    entity_id: str,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditEntry]:
    result = await db.execute(
        select(AuditEntry)
        .where(
            AuditEntry.entity_type == EntityType(entity_type).value,
            AuditEntry.entity_id == entity_id,
        )
        .order_by(AuditEntry.sequence)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def count_entries(db: AsyncSession, entity_type: EntityType | str, entity_id: str) -> int:
    result = await db.execute(
        select(func.count(AuditEntry.id)).where(
            AuditEntry.entity_type == EntityType(entity_type).value,
            AuditEntry.entity_id == entity_id,
        )
    )
    return result.scalar() or 0
