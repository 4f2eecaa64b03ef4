"""Closed enums and status transition tables for orders, payments and revisions.

Each table is checked against its enum at import time, so adding a status
without deciding its outgoing transitions fails loudly on startup.
"""

from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    PAYMENT_PENDING = "payment_pending"
    IN_PROGRESS = "in_progress"
    DRAFT_READY = "draft_ready"
    CLIENT_REVIEW = "client_review"
    REVISION_REQUESTED = "revision_requested"
    IN_REVISION = "in_revision"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"
    DISPUTED = "disputed"
    EXPIRED = "expired"


class RevisionStatus(str, Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ON_HOLD = "on_hold"


class PaymentAction(str, Enum):
    CONFIRM = "confirm"
    REFUND = "refund"
    PROCESS = "process"
    FAIL = "fail"
    CANCEL = "cancel"
    DISPUTE = "dispute"


class ServiceType(str, Enum):
    RESUME_WRITING = "resume_writing"
    CV_WRITING = "cv_writing"
    COVER_LETTER = "cover_letter"
    LINKEDIN_OPTIMIZATION = "linkedin_optimization"
    RESUME_REVIEW = "resume_review"
    CAREER_CONSULTATION = "career_consultation"
    PACKAGE_DEAL = "package_deal"


class UrgencyLevel(str, Enum):
    STANDARD = "standard"
    URGENT = "urgent"
    EXPRESS = "express"


class ExperienceLevel(str, Enum):
    ENTRY_LEVEL = "entry_level"
    MID_LEVEL = "mid_level"
    SENIOR_LEVEL = "senior_level"
    EXECUTIVE = "executive"


class Currency(str, Enum):
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    AUD = "AUD"


class OrderSource(str, Enum):
    WEBSITE = "website"
    MOBILE_APP = "mobile_app"
    PHONE = "phone"
    EMAIL = "email"
    REFERRAL = "referral"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PAYPAL = "paypal"
    STRIPE = "stripe"
    BANK_TRANSFER = "bank_transfer"
    WIRE_TRANSFER = "wire_transfer"
    CRYPTOCURRENCY = "cryptocurrency"
    CASH = "cash"
    CHECK = "check"
    OTHER = "other"


class GatewayProvider(str, Enum):
    STRIPE = "stripe"
    PAYPAL = "paypal"
    SQUARE = "square"
    RAZORPAY = "razorpay"
    MANUAL = "manual"
    OTHER = "other"


class RefundReason(str, Enum):
    CLIENT_REQUEST = "client_request"
    SERVICE_CANCELLATION = "service_cancellation"
    QUALITY_ISSUE = "quality_issue"
    TECHNICAL_ERROR = "technical_error"
    DUPLICATE_PAYMENT = "duplicate_payment"
    FRAUD_PREVENTION = "fraud_prevention"
    OTHER = "other"


class RevisionType(str, Enum):
    CONTENT_CHANGE = "content_change"
    FORMATTING_CHANGE = "formatting_change"
    DESIGN_CHANGE = "design_change"
    STRUCTURE_CHANGE = "structure_change"
    INFORMATION_ADDITION = "information_addition"
    INFORMATION_REMOVAL = "information_removal"
    TECHNICAL_ISSUE = "technical_issue"
    QUALITY_IMPROVEMENT = "quality_improvement"
    CLIENT_PREFERENCE = "client_preference"
    OTHER = "other"


class RevisionPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Complexity(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    VERY_COMPLEX = "very_complex"


class ResumeSection(str, Enum):
    CONTACT_INFORMATION = "contact_information"
    PROFESSIONAL_SUMMARY = "professional_summary"
    WORK_EXPERIENCE = "work_experience"
    EDUCATION = "education"
    SKILLS = "skills"
    CERTIFICATIONS = "certifications"
    PROJECTS = "projects"
    AWARDS = "awards"
    LANGUAGES = "languages"
    REFERENCES = "references"
    FORMATTING = "formatting"
    OVERALL_DESIGN = "overall_design"
    OTHER = "other"


class NotePriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NoteType(str, Enum):
    GENERAL = "general"
    TECHNICAL = "technical"
    CLIENT_COMMUNICATION = "client_communication"
    QUALITY_CONCERN = "quality_concern"
    URGENT = "urgent"


class AuditAction(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    FAILED = "failed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    DISPUTED = "disputed"
    COMPLETED = "completed"
    APPROVED = "approved"
    REJECTED = "rejected"


class EntityType(str, Enum):
    ORDER = "order"
    PAYMENT = "payment"
    REVISION = "revision"


class ActorRole(str, Enum):
    CLIENT = "client"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.IN_REVIEW, OrderStatus.CANCELLED}),
    OrderStatus.IN_REVIEW: frozenset({
        OrderStatus.PAYMENT_PENDING, OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED,
    }),
    OrderStatus.PAYMENT_PENDING: frozenset({OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED}),
    OrderStatus.IN_PROGRESS: frozenset({OrderStatus.DRAFT_READY, OrderStatus.CANCELLED}),
    OrderStatus.DRAFT_READY: frozenset({OrderStatus.CLIENT_REVIEW, OrderStatus.IN_REVISION}),
    OrderStatus.CLIENT_REVIEW: frozenset({OrderStatus.REVISION_REQUESTED, OrderStatus.COMPLETED}),
    OrderStatus.REVISION_REQUESTED: frozenset({OrderStatus.IN_REVISION}),
    OrderStatus.IN_REVISION: frozenset({OrderStatus.DRAFT_READY, OrderStatus.COMPLETED}),
    OrderStatus.COMPLETED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REFUNDED: frozenset(),
}

REVISION_TRANSITIONS: dict[RevisionStatus, frozenset[RevisionStatus]] = {
    RevisionStatus.PENDING: frozenset({RevisionStatus.ACKNOWLEDGED, RevisionStatus.CANCELLED}),
    RevisionStatus.ACKNOWLEDGED: frozenset({
        RevisionStatus.IN_PROGRESS, RevisionStatus.ON_HOLD, RevisionStatus.CANCELLED,
    }),
    RevisionStatus.IN_PROGRESS: frozenset({
        RevisionStatus.COMPLETED, RevisionStatus.ON_HOLD, RevisionStatus.CANCELLED,
    }),
    RevisionStatus.COMPLETED: frozenset({RevisionStatus.DELIVERED}),
    RevisionStatus.DELIVERED: frozenset({RevisionStatus.APPROVED, RevisionStatus.REJECTED}),
    RevisionStatus.APPROVED: frozenset(),
    RevisionStatus.REJECTED: frozenset({RevisionStatus.IN_PROGRESS}),
    RevisionStatus.CANCELLED: frozenset(),
    RevisionStatus.ON_HOLD: frozenset({RevisionStatus.IN_PROGRESS, RevisionStatus.CANCELLED}),
}

# Payments move by operation rather than by free target status.
PAYMENT_OPERATIONS: dict[PaymentStatus, frozenset[PaymentAction]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentAction.CONFIRM, PaymentAction.PROCESS, PaymentAction.FAIL, PaymentAction.CANCEL,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentAction.CONFIRM, PaymentAction.FAIL, PaymentAction.CANCEL,
    }),
    PaymentStatus.COMPLETED: frozenset({PaymentAction.REFUND, PaymentAction.DISPUTE}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset({PaymentAction.REFUND}),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentAction.REFUND, PaymentAction.DISPUTE}),
    PaymentStatus.DISPUTED: frozenset(),
    PaymentStatus.EXPIRED: frozenset(),
}

ORDER_PROGRESS: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 5,
    OrderStatus.IN_REVIEW: 10,
    OrderStatus.PAYMENT_PENDING: 15,
    OrderStatus.IN_PROGRESS: 30,
    OrderStatus.DRAFT_READY: 60,
    OrderStatus.CLIENT_REVIEW: 70,
    OrderStatus.REVISION_REQUESTED: 75,
    OrderStatus.IN_REVISION: 80,
    OrderStatus.COMPLETED: 95,
    OrderStatus.DELIVERED: 100,
    OrderStatus.CANCELLED: 0,
    OrderStatus.REFUNDED: 0,
}

REVISION_PROGRESS: dict[RevisionStatus, int] = {
    RevisionStatus.PENDING: 5,
    RevisionStatus.ACKNOWLEDGED: 15,
    RevisionStatus.IN_PROGRESS: 50,
    RevisionStatus.COMPLETED: 80,
    RevisionStatus.DELIVERED: 90,
    RevisionStatus.APPROVED: 100,
    RevisionStatus.REJECTED: 0,
    RevisionStatus.CANCELLED: 0,
    RevisionStatus.ON_HOLD: 25,
}


def _require_exhaustive(table: dict, enum_cls: type[Enum]) -> None:
    missing = set(enum_cls) - set(table)
    if missing:
        names = ", ".join(sorted(m.value for m in missing))
        raise RuntimeError(f"{enum_cls.__name__} table is missing: {names}")


for _table, _enum in (
    (ORDER_TRANSITIONS, OrderStatus),
    (REVISION_TRANSITIONS, RevisionStatus),
    (PAYMENT_OPERATIONS, PaymentStatus),
    (ORDER_PROGRESS, OrderStatus),
    (REVISION_PROGRESS, RevisionStatus),
):
    _require_exhaustive(_table, _enum)
