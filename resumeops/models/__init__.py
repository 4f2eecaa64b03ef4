"""SQLAlchemy ORM models."""

from resumeops.models.base import Base
from resumeops.models.order import Order
from resumeops.models.payment import Payment
from resumeops.models.revision import Revision
from resumeops.models.audit_entry import AuditEntry
from resumeops.models.internal_note import InternalNote
from resumeops.models.chat_room import ChatRoom
from resumeops.models.workflow_step import WorkflowStep

__all__ = [
    "Base", "Order", "Payment", "Revision",
    "AuditEntry", "InternalNote", "ChatRoom", "WorkflowStep",
]
