"""Payment model: a monetary transaction tied to an order."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Float, Boolean, ForeignKey, JSON, DateTime, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin, as_utc, utcnow
from resumeops.services.pricing import calculate_net_amount, to_decimal
from resumeops.states import PaymentStatus


class Payment(Base, ULIDMixin):
    __tablename__ = "payments"

    payment_number: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), index=True)
    client_id: Mapped[str] = mapped_column(String(26), index=True)
    amount: Mapped[float] = mapped_column(Float)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    payment_method: Mapped[str] = mapped_column(String(30))
    status: Mapped[str] = mapped_column(String(30), default=PaymentStatus.PENDING.value, index=True)

    # Transaction details
    external_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    gateway_provider: Mapped[str] = mapped_column(String(20), default="manual")
    payment_proof: Mapped[str | None] = mapped_column(String(500), nullable=True, default=None)
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    bank_details: Mapped[dict | None] = mapped_column(JSON, nullable=True, default=None)

    # Timeline; each stamp is written at most once
    initiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    # Confirmation
    confirmed_by: Mapped[str | None] = mapped_column(String(26), nullable=True, default=None)
    confirmation_notes: Mapped[str] = mapped_column(Text, default="")
    auto_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)

    # Refund (cumulative)
    refund_amount: Mapped[float] = mapped_column(Float, default=0.0)
    refund_reason: Mapped[str | None] = mapped_column(String(30), nullable=True, default=None)
    refunded_by: Mapped[str | None] = mapped_column(String(26), nullable=True, default=None)
    last_refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    refund_transaction_id: Mapped[str | None] = mapped_column(String(100), nullable=True, default=None)
    refund_notes: Mapped[str] = mapped_column(Text, default="")

    # Fees; net_amount is derived in the flush listeners below
    processing_fee: Mapped[float] = mapped_column(Float, default=0.0)
    platform_fee: Mapped[float] = mapped_column(Float, default=0.0)
    net_amount: Mapped[float] = mapped_column(Float, default=0.0)

    source_info: Mapped[dict] = mapped_column(JSON, default=dict)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def recalculate_net_amount(self) -> float:
        self.net_amount = calculate_net_amount(self.amount, self.processing_fee or 0.0, self.platform_fee or 0.0)
        return self.net_amount

    @property
    def remaining_refundable(self) -> float:
        return float(to_decimal(self.amount) - to_decimal(self.refund_amount))

    def is_expired(self, now: datetime | None = None) -> bool:
        """Expiry is derived from the clock; nothing sweeps pending payments."""
        if self.status != PaymentStatus.PENDING.value or self.expires_at is None:
            return False
        return as_utc(self.expires_at) < (now or utcnow())

    @property
    def expired(self) -> bool:
        return self.is_expired()

    @property
    def hours_until_expiry(self) -> int | None:
        if self.status != PaymentStatus.PENDING.value or self.expires_at is None:
            return None
        hours = int((as_utc(self.expires_at) - utcnow()).total_seconds() // 3600)
        return max(0, hours)


@event.listens_for(Payment, "before_insert")
@event.listens_for(Payment, "before_update")
def _derive_payment_fields(mapper, connection, target: Payment) -> None:
    target.recalculate_net_amount()
