from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from resumeops.states import Currency, GatewayProvider, PaymentMethod, RefundReason


class PaymentCreate(BaseModel):
    order_id: str
    amount: float = Field(gt=0)
    currency: Currency | None = None
    payment_method: PaymentMethod
    gateway_provider: GatewayProvider = GatewayProvider.MANUAL
    external_transaction_id: str | None = Field(default=None, max_length=100)
    payment_proof: str | None = Field(default=None, max_length=500)
    reference_number: str | None = Field(default=None, max_length=100)
    bank_details: dict | None = None
    processing_fee: float = Field(default=0.0, ge=0)
    platform_fee: float = Field(default=0.0, ge=0)

    model_config = {"use_enum_values": True}


class PaymentConfirm(BaseModel):
    notes: str | None = Field(default=None, max_length=1000)


class PaymentRefund(BaseModel):
    amount: float = Field(gt=0)
    reason: RefundReason
    notes: str | None = Field(default=None, max_length=1000)
    refund_transaction_id: str | None = Field(default=None, max_length=100)

    model_config = {"use_enum_values": True}


class PaymentReason(BaseModel):
    """Body for fail, cancel, dispute and processing moves."""

    reason: str | None = Field(default=None, max_length=300)


class PaymentDetailsUpdate(BaseModel):
    external_transaction_id: str | None = Field(default=None, max_length=100)
    gateway_provider: GatewayProvider | None = None
    payment_proof: str | None = Field(default=None, max_length=500)
    reference_number: str | None = Field(default=None, max_length=100)
    bank_details: dict | None = None
    processing_fee: float | None = Field(default=None, ge=0)
    platform_fee: float | None = Field(default=None, ge=0)

    model_config = {"use_enum_values": True}


class PaymentRead(BaseModel):
    id: str
    payment_number: str
    order_id: str
    client_id: str
    amount: float
    currency: str
    payment_method: str
    status: str
    external_transaction_id: str | None = None
    gateway_provider: str
    reference_number: str | None = None
    initiated_at: datetime
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    refunded_at: datetime | None = None
    expires_at: datetime | None = None
    confirmed_by: str | None = None
    confirmation_notes: str = ""
    refund_amount: float
    remaining_refundable: float
    refund_reason: str | None = None
    last_refunded_at: datetime | None = None
    processing_fee: float
    platform_fee: float
    net_amount: float
    version: int
    is_expired: bool = Field(validation_alias="expired")
    hours_until_expiry: int | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class PaymentPage(BaseModel):
    items: list[PaymentRead]
    total: int
    limit: int
    offset: int


class PaymentStatistics(BaseModel):
    total_payments: int
    total_revenue: float
    total_refunded: float
    net_revenue: float
    average_payment: float
    status_breakdown: dict[str, int]
    method_breakdown: dict[str, int]
