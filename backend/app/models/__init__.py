"""SQLAlchemy models package."""
from app.models.user import Customer, Volunteer
from app.models.order import Order, OrderStatus, StatusClass
from app.models.challenge import ChallengeProgress
from app.models.notification import Notification, Recurrence, ScheduledNotification, ScheduleStatus
from app.models.audit import AuditLog

__all__ = [
    "Customer",
    "Volunteer",
    "Order",
    "OrderStatus",
    "StatusClass",
    "ChallengeProgress",
    "Notification",
    "Recurrence",
    "ScheduledNotification",
    "ScheduleStatus",
    "AuditLog",
]
