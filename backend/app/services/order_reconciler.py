"""Order status reconciliation.

Applies a requested status change to an order and keeps the referring
volunteer's challenge ledger consistent with it. The status write is a
compare-and-set on the previously observed status and runs in the same
transaction as the ledger delta, so two concurrent requests for the same
transition credit (or reverse) the order's quantity only once.
"""
import logging
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.order import Order, OrderStatus, is_credited
from app.services.audit import SYSTEM_ACTOR, AuditActor, AuditEntry, AuditSink, NullAuditSink, record_safely
from app.services.errors import ConflictError, NotFoundError, PersistenceError, ValidationError
from app.services.ledger import ChallengeLedger, LedgerAdjustment, crossed_milestones
from app.services.notifications import NotificationSink, NullNotificationSink, OrderStatusEvent
from app.timestamps import utcnow_iso

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"delivery_volunteer_id", "delivery_address", "customer_phone", "notes"})


@dataclass(frozen=True)
class _Snapshot:
    status: str | None
    quantity: int
    referral_volunteer_id: str | None
    customer_id: str | None


def parse_status(value: str | OrderStatus) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid order status '{value}'. Expected one of: {allowed}") from None


def ledger_delta(previous_status: str | None, new_status: str, quantity: int) -> int:
    """Signed change to the referrer's confirmed units for a transition.

    Depends only on whether the order was credited before and after, so any
    sequence of transitions that returns to a status nets to zero.
    """
    was_credited = is_credited(previous_status)
    now_credited = is_credited(new_status)
    if now_credited and not was_credited:
        return quantity
    if was_credited and not now_credited:
        return -quantity
    return 0


def _read_snapshot(db: Session, order_id: str) -> _Snapshot:
    row = db.execute(
        select(Order.status, Order.quantity, Order.referral_volunteer_id, Order.customer_id)
        .where(Order.id == order_id)
    ).one_or_none()
    if row is None:
        raise NotFoundError(f"Order {order_id} not found")
    return _Snapshot(
        status=row.status,
        quantity=row.quantity,
        referral_volunteer_id=row.referral_volunteer_id,
        customer_id=row.customer_id,
    )


def _compare_and_set(db: Session, order_id: str, expected_status: str | None, values: dict) -> bool:
    """Write ``values`` only if the order still has ``expected_status``."""
    status_matches = Order.status.is_(None) if expected_status is None else Order.status == expected_status
    result = db.execute(
        update(Order)
        .where(Order.id == order_id, status_matches)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def reconcile_order(
    db: Session,
    order_id: str,
    new_status: str | OrderStatus | None = None,
    volunteer_id: str | None = None,
    field_updates: dict | None = None,
    actor: AuditActor | None = None,
    ip_address: str | None = None,
    notifier: NotificationSink | None = None,
    auditor: AuditSink | None = None,
    ledger: ChallengeLedger | None = None,
) -> Order:
    """Apply a status change (and any field edits) to an order.

    Order of effects: status write, ledger delta (same transaction), then the
    best-effort notification and audit side effects.
    """
    settings = get_settings()
    notifier = notifier or NullNotificationSink()
    auditor = auditor or NullAuditSink()
    ledger = ledger or ChallengeLedger()
    field_updates = dict(field_updates or {})

    unknown = set(field_updates) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
    requested = parse_status(new_status) if new_status is not None else None
    if requested is None and volunteer_id is None and not field_updates:
        raise ValidationError("No updatable field supplied")

    for attempt in range(1, settings.reconcile_max_attempts + 1):
        snapshot = _read_snapshot(db, order_id)
        target_status = requested.value if requested is not None else snapshot.status
        target_volunteer_id = volunteer_id or snapshot.referral_volunteer_id

        values = dict(field_updates)
        values["status"] = target_status
        values["updated_at"] = utcnow_iso()
        if volunteer_id is not None:
            values["referral_volunteer_id"] = volunteer_id

        try:
            matched = _compare_and_set(db, order_id, snapshot.status, values)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Order update failed for {order_id}: {exc}")
            raise PersistenceError(f"Failed to update order {order_id}") from exc

        if not matched:
            db.rollback()
            logger.warning(
                f"Order {order_id} changed concurrently (expected status {snapshot.status}); "
                f"attempt {attempt}/{settings.reconcile_max_attempts}"
            )
            continue

        delta = ledger_delta(snapshot.status, target_status, snapshot.quantity)
        try:
            adjustment = ledger.adjust(db, target_volunteer_id, delta)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(f"Order {order_id} status write rolled back; ledger update failed: {exc}")
            raise PersistenceError(f"Failed to apply ledger change for order {order_id}") from exc
        break
    else:
        raise ConflictError(f"Order {order_id} is being updated concurrently; try again")

    logger.info(
        f"Order {order_id}: {snapshot.status} -> {target_status} "
        f"(volunteer {target_volunteer_id}, ledger delta {delta:+d})"
    )

    status_changed = target_status != snapshot.status
    if status_changed:
        _notify_status_change(notifier, OrderStatusEvent(
            order_id=order_id,
            new_status=target_status,
            customer_id=snapshot.customer_id,
            volunteer_id=target_volunteer_id,
        ))
        _notify_milestones(notifier, adjustment, settings.challenge_milestones)

    changes = {k: v for k, v in values.items() if k != "updated_at"}
    record_safely(auditor, AuditEntry(
        actor=actor or SYSTEM_ACTOR,
        action="order.status_updated" if status_changed else "order.updated",
        entity_type="order",
        entity_id=order_id,
        details={
            "changes": changes,
            "previous_status": snapshot.status,
            "ledger_volunteer_id": target_volunteer_id,
            "ledger_delta": adjustment.applied_delta if adjustment else 0,
        },
        ip_address=ip_address,
    ))

    return db.get(Order, order_id, populate_existing=True)


def _notify_status_change(notifier: NotificationSink, event: OrderStatusEvent) -> None:
    try:
        notifier.order_status_changed(event)
    except Exception:
        logger.exception(f"Failed to send status notification for order {event.order_id}")


def _notify_milestones(notifier: NotificationSink, adjustment: LedgerAdjustment | None, milestones: list[int]) -> None:
    for milestone in crossed_milestones(adjustment, milestones):
        try:
            notifier.challenge_milestone(adjustment.volunteer_id, milestone, adjustment.after, adjustment.goal)
        except Exception:
            logger.exception(f"Failed to send milestone {milestone} notification to volunteer {adjustment.volunteer_id}")
