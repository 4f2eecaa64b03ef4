from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from resumeops.states import (
    Currency, ExperienceLevel, NotePriority, OrderSource, OrderStatus, ServiceType, UrgencyLevel,
)


class AdditionalService(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    price: float = Field(ge=0)


class Requirements(BaseModel):
    experience_level: ExperienceLevel | None = None
    target_role: str = Field(default="", max_length=200)
    industry: str = Field(default="", max_length=100)
    special_instructions: str = Field(default="", max_length=2000)
    deadline: datetime | None = None

    model_config = {"use_enum_values": True}


class SourceInfo(BaseModel):
    source: OrderSource = OrderSource.WEBSITE
    referral_code: str | None = None
    campaign_id: str | None = None

    model_config = {"use_enum_values": True}


class OrderCreate(BaseModel):
    client_id: str
    service_type: ServiceType
    urgency_level: UrgencyLevel = UrgencyLevel.STANDARD
    priority: int = Field(default=3, ge=1, le=5)
    requirements: Requirements = Field(default_factory=Requirements)
    base_price: float = Field(ge=0)
    urgency_fee: float = Field(default=0.0, ge=0)
    additional_services: list[AdditionalService] = []
    discount: float = Field(default=0.0, ge=0, le=100)
    currency: Currency | None = None
    estimated_completion: datetime
    milestones: list[dict] = []
    source_info: SourceInfo = Field(default_factory=SourceInfo)

    model_config = {"use_enum_values": True}


class OrderUpdate(BaseModel):
    assigned_admin_id: str | None = None
    priority: int | None = Field(default=None, ge=1, le=5)
    urgency_level: UrgencyLevel | None = None
    requirements: Requirements | None = None
    base_price: float | None = Field(default=None, ge=0)
    urgency_fee: float | None = Field(default=None, ge=0)
    additional_services: list[AdditionalService] | None = None
    discount: float | None = Field(default=None, ge=0, le=100)
    estimated_completion: datetime | None = None
    quality_score: int | None = Field(default=None, ge=1, le=10)

    model_config = {"use_enum_values": True}


class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: str | None = Field(default=None, max_length=1000)

    model_config = {"use_enum_values": True}


class OrderAssign(BaseModel):
    admin_id: str


class OrderNoteCreate(BaseModel):
    note: str = Field(min_length=1, max_length=1000)
    priority: NotePriority = NotePriority.MEDIUM

    model_config = {"use_enum_values": True}


class OrderRead(BaseModel):
    id: str
    order_number: str
    client_id: str
    assigned_admin_id: str | None = None
    service_type: str
    urgency_level: str
    status: str
    priority: int
    requirements: dict = {}
    base_price: float
    urgency_fee: float
    additional_services: list[dict] = []
    discount: float
    total_amount: float
    currency: str
    estimated_completion: datetime
    actual_start_date: datetime | None = None
    actual_completion_date: datetime | None = None
    last_activity: datetime
    milestones: list = []
    file_ids: list[str] = []
    quality_score: int | None = None
    source_info: dict = {}
    version: int
    age_in_days: int
    progress_percentage: int
    created_at: datetime

    model_config = {"from_attributes": True}


class OrderPage(BaseModel):
    items: list[OrderRead]
    total: int
    limit: int
    offset: int


class OrderStatistics(BaseModel):
    total_orders: int
    total_revenue: float
    average_order_value: float
    status_breakdown: dict[str, int]
