"""Notification dispatch for order updates, challenge milestones and bulk sends."""
import json
import logging
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy.orm import Session, sessionmaker

from app.database import get_db_context
from app.models.notification import Notification
from app.models.order import OrderStatus


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderStatusEvent:
    order_id: str
    new_status: str
    customer_id: str | None = None
    volunteer_id: str | None = None


class NotificationSink(Protocol):
    def order_status_changed(self, event: OrderStatusEvent) -> None: ...

    def challenge_milestone(self, volunteer_id: str, milestone: int, confirmed_units: int, goal: int) -> None: ...

    def bulk_create(self, payloads: list[dict]) -> int: ...


def build_order_status_notifications(event: OrderStatusEvent) -> list[dict]:
    """Build the customer (and referring volunteer) notifications for a status change."""
    short_id = event.order_id[:8]
    action_url = f"/order/{event.order_id}"

    if event.new_status == OrderStatus.CONFIRMED.value:
        status_message = f"Your order #{short_id} has been confirmed!"
    elif event.new_status == OrderStatus.DELIVERED.value:
        status_message = f"Your order #{short_id} has been delivered!"
    else:
        status_message = f"Your order #{short_id} status updated to: {event.new_status}"

    notifications = []
    if event.customer_id:
        notifications.append({
            "user_id": event.customer_id,
            "user_role": "customer",
            "type": "order_update",
            "title": "Order Status Update",
            "message": status_message,
            "action_url": action_url,
            "metadata": {"order_id": event.order_id, "new_status": event.new_status},
        })

    if event.new_status == OrderStatus.CONFIRMED.value and event.volunteer_id:
        notifications.append({
            "user_id": event.volunteer_id,
            "user_role": "volunteer",
            "type": "order_update",
            "title": "Order Confirmed!",
            "message": f"An order you referred (#{short_id}) has been confirmed!",
            "action_url": "/volunteer/dashboard",
            "metadata": {"order_id": event.order_id},
        })

    return notifications


def build_milestone_notification(volunteer_id: str, milestone: int, confirmed_units: int, goal: int) -> dict:
    """Build the congratulation message for a challenge milestone."""
    if milestone >= goal:
        title = "Congratulations! Goal Achieved!"
        message = f"You've successfully reached your goal of {goal} bottles!"
    elif milestone == 5:
        title = "First Milestone Reached!"
        message = "Great progress! You've reached 5 bottles!"
    elif milestone * 2 == goal:
        title = "Halfway There!"
        message = f"Amazing work! You're at {milestone} bottles - halfway to your goal!"
    elif goal - milestone <= 5:
        title = "Almost There!"
        message = f"Excellent progress! Just {goal - milestone} more bottles to reach your goal of {goal}!"
    else:
        title = f"Milestone: {milestone} Bottles"
        message = f"You've reached {milestone} bottles!"

    return {
        "user_id": volunteer_id,
        "user_role": "volunteer",
        "type": "challenge_milestone",
        "title": title,
        "message": message,
        "action_url": "/volunteer/dashboard",
        "metadata": {"milestone": milestone, "total_bottles": confirmed_units, "goal": goal},
    }


def create_bulk_notifications(db: Session, payloads: list[dict]) -> list[Notification]:
    """Insert one notification row per payload (flushes, does not commit)."""
    notifications = [
        Notification(
            user_id=p["user_id"],
            user_role=p["user_role"],
            type=p.get("type", "system_announcement"),
            category=p.get("category"),
            title=p["title"],
            message=p["message"],
            action_url=p.get("action_url"),
            priority=p.get("priority") or "medium",
            extra=json.dumps(p.get("metadata") or {}),
            is_read=0,
            delivery_status=p.get("delivery_status", "sent"),
            scheduled_notification_id=p.get("scheduled_notification_id"),
        )
        for p in payloads
    ]
    db.add_all(notifications)
    db.flush()
    return notifications


class DatabaseNotificationSink:
    """Writes notifications in a session of its own.

    A delivery failure therefore cannot roll back the caller's transaction.
    """

    def __init__(self, session_factory: sessionmaker | None = None):
        self.session_factory = session_factory

    def order_status_changed(self, event: OrderStatusEvent) -> None:
        payloads = build_order_status_notifications(event)
        if payloads:
            self.bulk_create(payloads)

    def challenge_milestone(self, volunteer_id: str, milestone: int, confirmed_units: int, goal: int) -> None:
        self.bulk_create([build_milestone_notification(volunteer_id, milestone, confirmed_units, goal)])

    def bulk_create(self, payloads: list[dict]) -> int:
        if not payloads:
            return 0
        with get_db_context(self.session_factory) as db:
            create_bulk_notifications(db, payloads)
        logger.info(f"Created {len(payloads)} notifications")
        return len(payloads)


class NullNotificationSink:
    """Discards everything; used for dry runs and tests."""

    def order_status_changed(self, event: OrderStatusEvent) -> None:
        return None

    def challenge_milestone(self, volunteer_id: str, milestone: int, confirmed_units: int, goal: int) -> None:
        return None

    def bulk_create(self, payloads: list[dict]) -> int:
        return len(payloads)
