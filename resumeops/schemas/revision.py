from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from resumeops.states import (
    Complexity, NoteType, ResumeSection, RevisionPriority, RevisionStatus, RevisionType, UrgencyLevel,
)


class SpecificChange(BaseModel):
    section: ResumeSection
    current_content: str = Field(default="", max_length=2000)
    requested_change: str = Field(min_length=1, max_length=2000)
    reason: str = Field(default="", max_length=500)

    model_config = {"use_enum_values": True}


class RevisionCreate(BaseModel):
    order_id: str
    type: RevisionType
    description: str = Field(min_length=1, max_length=2000)
    priority: RevisionPriority = RevisionPriority.MEDIUM
    urgency_level: UrgencyLevel = UrgencyLevel.STANDARD
    complexity: Complexity = Complexity.MODERATE
    specific_changes: list[SpecificChange] = []
    attachment_ids: list[str] = []
    reference_file_ids: list[str] = []
    estimated_hours: float | None = Field(default=None, gt=0)

    model_config = {"use_enum_values": True}


class RevisionUpdate(BaseModel):
    priority: RevisionPriority | None = None
    urgency_level: UrgencyLevel | None = None
    complexity: Complexity | None = None
    estimated_hours: float | None = Field(default=None, gt=0)
    actual_hours: float | None = Field(default=None, ge=0)
    difficulty_rating: int | None = Field(default=None, ge=1, le=10)
    estimated_completion: datetime | None = None
    admin_notes: str | None = Field(default=None, max_length=2000)
    quality_score: int | None = Field(default=None, ge=1, le=10)

    model_config = {"use_enum_values": True}


class RevisionStatusUpdate(BaseModel):
    status: RevisionStatus
    note: str | None = Field(default=None, max_length=1000)

    model_config = {"use_enum_values": True}


class RevisionComplete(BaseModel):
    summary: str = Field(default="", max_length=2000)
    revised_file_ids: list[str] = []


class RevisionApprove(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    comments: str | None = Field(default=None, max_length=2000)


class RevisionReject(BaseModel):
    comments: str = Field(min_length=1, max_length=2000)


class RevisionNoteCreate(BaseModel):
    note: str = Field(min_length=1, max_length=1000)
    note_type: NoteType = NoteType.GENERAL

    model_config = {"use_enum_values": True}


class RevisionRead(BaseModel):
    id: str
    revision_code: str
    order_id: str
    client_id: str
    assigned_admin_id: str | None = None
    revision_number: int
    type: str
    priority: str
    status: str
    urgency_level: str
    description: str
    specific_changes: list[dict] = []
    requested_at: datetime
    acknowledged_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    delivered_at: datetime | None = None
    client_response_at: datetime | None = None
    estimated_completion: datetime | None = None
    deadline: datetime | None = None
    actual_duration: float | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    complexity: str
    difficulty_rating: int
    revised_file_ids: list[str] = []
    changes_summary: str = ""
    client_rating: int | None = None
    client_comments: str = ""
    admin_notes: str = ""
    is_chargeable: bool
    revision_fee: float
    free_revisions_used: int
    free_revisions_limit: int
    version: int
    is_overdue: bool = Field(validation_alias="overdue")
    hours_until_deadline: int | None = None
    progress_percentage: int
    created_at: datetime

    model_config = {"from_attributes": True}


class RevisionPage(BaseModel):
    items: list[RevisionRead]
    total: int
    limit: int
    offset: int


class RevisionStatistics(BaseModel):
    total_revisions: int
    average_duration: float
    total_revision_fees: float
    status_breakdown: dict[str, int]
    priority_breakdown: dict[str, int]
    type_breakdown: dict[str, int]
    complexity_breakdown: dict[str, int]
