"""Order model: the portal's order record; each order scopes one conversation."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String
from sqlalchemy.orm import relationship

from app.db import Base
from app.models.mixins import TimestampMixin


class Order(Base, TimestampMixin):
    """Order between a customer and (once assigned) an expert."""

    __tablename__ = "orders"

    id = Column(String(64), primary_key=True)
    title = Column(String(512), nullable=False)
    task_code = Column(String(64), nullable=True, index=True)
    status = Column(String(32), nullable=False, default="Pending")
    customer_id = Column(String(255), nullable=True, index=True)
    customer_email = Column(String(320), nullable=True, index=True)
    customer_name = Column(String(256), nullable=True)
    expert_id = Column(String(255), nullable=True, index=True)
    expert_email = Column(String(320), nullable=True)
    expert_name = Column(String(256), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship(
        "ChatMessage",
        back_populates="order",
        order_by="ChatMessage.created_at",
    )
