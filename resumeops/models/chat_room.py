"""Chat room record created alongside each order. Message transport lives elsewhere."""

from __future__ import annotations

from sqlalchemy import String, ForeignKey, JSON
from sqlalchemy.orm import Mapped, mapped_column

from resumeops.models.base import Base, ULIDMixin


class ChatRoom(Base, ULIDMixin):
    __tablename__ = "chat_rooms"

    room_code: Mapped[str] = mapped_column(String(30), unique=True, index=True)
    order_id: Mapped[str] = mapped_column(String(26), ForeignKey("orders.id"), unique=True)
    participants: Mapped[list] = mapped_column(JSON, default=list)  # [{user_id, role, joined_at, is_active}]
    status: Mapped[str] = mapped_column(String(20), default="active")  # active | archived | closed | suspended
