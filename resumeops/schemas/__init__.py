"""Pydantic request/response schemas."""

from resumeops.schemas.order import (
    OrderCreate, OrderUpdate, OrderStatusUpdate, OrderAssign, OrderNoteCreate,
    OrderRead, OrderPage, OrderStatistics,
)
from resumeops.schemas.payment import (
    PaymentCreate, PaymentConfirm, PaymentRefund, PaymentReason, PaymentDetailsUpdate,
    PaymentRead, PaymentPage, PaymentStatistics,
)
from resumeops.schemas.revision import (
    RevisionCreate, RevisionUpdate, RevisionStatusUpdate, RevisionComplete,
    RevisionApprove, RevisionReject, RevisionNoteCreate,
    RevisionRead, RevisionPage, RevisionStatistics,
)
from resumeops.schemas.audit import AuditEntryRead, AuditPage, InternalNoteRead, WorkflowStepRead

__all__ = [
    "OrderCreate", "OrderUpdate", "OrderStatusUpdate", "OrderAssign", "OrderNoteCreate",
    "OrderRead", "OrderPage", "OrderStatistics",
    "PaymentCreate", "PaymentConfirm", "PaymentRefund", "PaymentReason", "PaymentDetailsUpdate",
    "PaymentRead", "PaymentPage", "PaymentStatistics",
    "RevisionCreate", "RevisionUpdate", "RevisionStatusUpdate", "RevisionComplete",
    "RevisionApprove", "RevisionReject", "RevisionNoteCreate",
    "RevisionRead", "RevisionPage", "RevisionStatistics",
    "AuditEntryRead", "AuditPage", "InternalNoteRead", "WorkflowStepRead",
]
