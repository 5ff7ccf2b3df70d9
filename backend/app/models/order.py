"""Order model and lifecycle status classification."""
import uuid
from enum import Enum

from sqlalchemy import CheckConstraint, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base
from app.timestamps import utcnow_iso


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DELIVERED = "delivered"
    CANT_REACH = "cant_reach"
    CANCELLED = "cancelled"


class StatusClass(str, Enum):
    """Whether an order in a given status counts toward the referrer's ledger."""

    ACTIVE = "active"
    INACTIVE = "inactive"


ACTIVE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.DELIVERED})
INACTIVE_STATUSES = frozenset({OrderStatus.CANT_REACH, OrderStatus.CANCELLED})


def classify(status: OrderStatus | str | None) -> StatusClass:
    """Classify a status; a missing previous status counts as inactive."""
    if status is None:
        return StatusClass.INACTIVE
    if OrderStatus(status) in ACTIVE_STATUSES:
        return StatusClass.ACTIVE
    return StatusClass.INACTIVE


def is_credited(status: OrderStatus | str | None) -> bool:
    """Whether an order in this status has its quantity on the referrer's ledger.

    ``pending`` is active but not yet credited.
    """
    if status is None or OrderStatus(status) is OrderStatus.PENDING:
        return False
    return classify(status) is StatusClass.ACTIVE


class Order(Base):
    """Customer order, optionally referred and/or delivered by a volunteer."""

    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),
        Index("ix_orders_status", "status"),
        Index("ix_orders_referral_volunteer", "referral_volunteer_id", "status"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    customer_id = Column(String(36), ForeignKey("customers.id", ondelete="SET NULL"))
    referral_volunteer_id = Column(String(36), ForeignKey("volunteers.id", ondelete="SET NULL"))
    delivery_volunteer_id = Column(String(36), ForeignKey("volunteers.id", ondelete="SET NULL"))

    quantity = Column(Integer, nullable=False)  # Units (bottles) counted toward the challenge
    status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)

    # Checkout details
    customer_name = Column(String(100))
    customer_phone = Column(String(20))
    delivery_address = Column(Text)
    total_price = Column(Float, default=0.0)
    notes = Column(Text)

    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)

    customer = relationship("Customer", back_populates="orders")
    referral_volunteer = relationship("Volunteer", foreign_keys=[referral_volunteer_id])
    delivery_volunteer = relationship("Volunteer", foreign_keys=[delivery_volunteer_id])
