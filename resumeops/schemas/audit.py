from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class AuditEntryRead(BaseModel):
    sequence: int
    action: str
    performed_by: str
    timestamp: datetime
    details: str = ""
    previous_state: dict | None = None
    new_state: dict | None = None

    model_config = {"from_attributes": True}


class AuditPage(BaseModel):
    entity_type: str
    entity_id: str
    items: list[AuditEntryRead]
    total: int
    limit: int
    offset: int


class InternalNoteRead(BaseModel):
    id: str
    author_id: str
    note: str
    priority: str | None = None
    note_type: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class WorkflowStepRead(BaseModel):
    saga: str
    step: str
    status: str
    detail: str = ""

    model_config = {"from_attributes": True}
