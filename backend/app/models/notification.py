"""Notification and scheduled notification models."""
import uuid
from enum import Enum

from sqlalchemy import Column, ForeignKey, Index, Integer, String, Text

from app.database import Base
from app.timestamps import utcnow_iso


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Recurrence(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Notification(Base):
    """In-app notification delivered to a single customer or volunteer."""

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_unread", "user_id", "is_read"),
        Index("ix_notifications_created", "user_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), nullable=False)  # Customer or volunteer id
    user_role = Column(String(20), nullable=False)

    # Notification type: order_update, challenge_milestone, scheduled, system_announcement
    type = Column(String(50), nullable=False)
    category = Column(String(50))

    # Content
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(255))
    priority = Column(String(10), default="medium")
    extra = Column("metadata", Text, default="{}")  # JSON

    # Status
    is_read = Column(Integer, default=0)  # SQLite boolean
    read_at = Column(String(26))
    delivery_status = Column(String(20), default="sent")

    scheduled_notification_id = Column(
        String(36), ForeignKey("scheduled_notifications.id", ondelete="SET NULL")
    )

    created_at = Column(String(26), default=utcnow_iso)


class ScheduledNotification(Base):
    """Bulk notification template with a due time and optional recurrence."""

    __tablename__ = "scheduled_notifications"
    __table_args__ = (
        Index("ix_scheduled_notifications_due", "status", "scheduled_for"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    # Payload, copied verbatim onto each notification
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    action_url = Column(String(255))
    priority = Column(String(10), default="medium")

    # Audience: JSON tagged variant (all, role, individual, filtered)
    target_filters = Column(Text, nullable=False)

    # Scheduling
    scheduled_for = Column(String(26), nullable=False)
    recurrence = Column(String(10), nullable=False, default=Recurrence.ONCE.value)
    status = Column(String(20), nullable=False, default=ScheduleStatus.PENDING.value)
    last_sent_at = Column(String(26))
    claimed_at = Column(String(26))  # Set while a processor run owns the entry

    created_by = Column(String(36))
    created_at = Column(String(26), default=utcnow_iso)
    updated_at = Column(String(26), default=utcnow_iso, onupdate=utcnow_iso)
