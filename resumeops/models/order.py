"""Order model: the root workflow entity for a paid resume engagement."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import String, Integer, Float, JSON, DateTime, event
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin, as_utc, utcnow
from resumeops.services.pricing import calculate_order_total
from resumeops.states import OrderStatus, ORDER_PROGRESS


class Order(Base, ULIDMixin):
    __tablename__ = "orders"

    order_number: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    client_id: Mapped[str] = mapped_column(String(26), index=True)
    assigned_admin_id: Mapped[str | None] = mapped_column(String(26), nullable=True, index=True)
    service_type: Mapped[str] = mapped_column(String(40))
    urgency_level: Mapped[str] = mapped_column(String(20), default="standard")
    status: Mapped[str] = mapped_column(String(30), default=OrderStatus.PENDING.value, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=3)  # 1 = low, 5 = high
    requirements: Mapped[dict] = mapped_column(JSON, default=dict)

    # Pricing block; total_amount is derived in the flush listeners below
    base_price: Mapped[float] = mapped_column(Float)
    urgency_fee: Mapped[float] = mapped_column(Float, default=0.0)
    additional_services: Mapped[list] = mapped_column(JSON, default=list)  # [{name, price}]
    discount: Mapped[float] = mapped_column(Float, default=0.0)  # percentage
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    estimated_completion: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    actual_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    actual_completion_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)
    last_activity: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    milestones: Mapped[list] = mapped_column(JSON, default=list)

    file_ids: Mapped[list] = mapped_column(JSON, default=list)
    quality_score: Mapped[int | None] = mapped_column(Integer, nullable=True, default=None)
    source_info: Mapped[dict] = mapped_column(JSON, default=dict)  # source, referral_code, campaign_id, ...

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def recalculate_total(self) -> float:
        self.total_amount = calculate_order_total(
            self.base_price,
            self.urgency_fee or 0.0,
            [s.get("price", 0) for s in (self.additional_services or [])],
            self.discount or 0.0,
        )
        return self.total_amount

    @property
    def age_in_days(self) -> int:
        return (utcnow() - as_utc(self.created_at)).days

    @property
    def progress_percentage(self) -> int:
        return ORDER_PROGRESS[OrderStatus(self.status)]


@event.listens_for(Order, "before_insert")
@event.listens_for(Order, "before_update")
def _derive_order_fields(mapper, connection, target: Order) -> None:
    target.recalculate_total()
    target.last_activity = utcnow()
