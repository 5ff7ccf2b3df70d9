"""Scheduled notification processing and administration.

``process_due_notifications`` is meant to be triggered by an external cron
(see ``POST /api/scheduled-notifications/process``). Each due entry is
claimed with a conditional ``pending -> processing`` update before any
recipients are resolved, so overlapping runs never dispatch the same entry
twice. Entries are processed one at a time; a failure marks only that entry
as ``failed``.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from dateutil.relativedelta import relativedelta
from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models.notification import Recurrence, ScheduledNotification, ScheduleStatus
from app.schemas.notification import (
    IndividualTarget,
    ScheduledNotificationCreate,
    ScheduledNotificationUpdate,
)
from app.services.audience import Recipient, dump_target_filters, resolve_recipients
from app.services.errors import NotFoundError, PersistenceError, ValidationError
from app.services.notifications import DatabaseNotificationSink, NotificationSink
from app.timestamps import parse_timestamp, to_timestamp, utcnow

logger = logging.getLogger(__name__)

NULLABLE_UPDATE_FIELDS = frozenset({"action_url"})

RECURRENCE_STEPS = {
    Recurrence.DAILY: relativedelta(days=1),
    Recurrence.WEEKLY: relativedelta(weeks=1),
    Recurrence.MONTHLY: relativedelta(months=1),
}


@dataclass(frozen=True)
class ProcessResult:
    processed_count: int = 0
    error_count: int = 0


def next_run(scheduled_for: datetime, recurrence: Recurrence | str) -> tuple[ScheduleStatus, datetime]:
    """Status and due time after a successful send.

    Recurring entries advance from their previous due time, not from the
    time they were processed, so the cadence does not drift.
    """
    recurrence = Recurrence(recurrence)
    if recurrence is Recurrence.ONCE:
        return ScheduleStatus.SENT, scheduled_for
    return ScheduleStatus.PENDING, scheduled_for + RECURRENCE_STEPS[recurrence]


def build_payloads(entry: ScheduledNotification, recipients: list[Recipient]) -> list[dict]:
    return [
        {
            "user_id": recipient.user_id,
            "user_role": recipient.role,
            "type": "scheduled",
            "category": "manual",
            "title": entry.title,
            "message": entry.message,
            "action_url": entry.action_url,
            "priority": entry.priority,
            "is_read": False,
            "delivery_status": "sent",
            "scheduled_notification_id": entry.id,
        }
        for recipient in recipients
    ]


def _due_candidates(db: Session, now: datetime) -> list:
    settings = get_settings()
    stale_before = now - timedelta(minutes=settings.scheduler_claim_timeout_minutes)
    return db.execute(
        select(ScheduledNotification.id, ScheduledNotification.status, ScheduledNotification.claimed_at)
        .where(or_(
            and_(
                ScheduledNotification.status == ScheduleStatus.PENDING.value,
                ScheduledNotification.scheduled_for <= to_timestamp(now),
            ),
            and_(
                ScheduledNotification.status == ScheduleStatus.PROCESSING.value,
                ScheduledNotification.claimed_at <= to_timestamp(stale_before),
            ),
        ))
        .order_by(ScheduledNotification.scheduled_for)
    ).all()


def _claim(db: Session, candidate, now: datetime) -> bool:
    """Atomically take ownership of a due entry."""
    conditions = [
        ScheduledNotification.id == candidate.id,
        ScheduledNotification.status == candidate.status,
    ]
    if candidate.status == ScheduleStatus.PROCESSING.value:
        # Reclaiming an abandoned run: only if nobody reclaimed it first
        conditions.append(ScheduledNotification.claimed_at == candidate.claimed_at)

    try:
        result = db.execute(
            update(ScheduledNotification)
            .where(*conditions)
            .values(status=ScheduleStatus.PROCESSING.value, claimed_at=to_timestamp(now))
            .execution_options(synchronize_session=False)
        )
        claimed = result.rowcount == 1
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to claim scheduled notification {candidate.id}") from exc
    return claimed


def _send(db: Session, entry_id: str, notifier: NotificationSink, now: datetime) -> int:
    entry = db.get(ScheduledNotification, entry_id, populate_existing=True)
    recipients = resolve_recipients(db, entry.target_filters)
    payloads = build_payloads(entry, recipients)
    if payloads:
        notifier.bulk_create(payloads)

    status, next_scheduled_for = next_run(parse_timestamp(entry.scheduled_for), entry.recurrence)
    entry.status = status.value
    entry.scheduled_for = to_timestamp(next_scheduled_for)
    entry.last_sent_at = to_timestamp(now)
    entry.claimed_at = None
    db.commit()
    return len(recipients)


def _mark_failed(db: Session, entry_id: str) -> None:
    try:
        db.execute(
            update(ScheduledNotification)
            .where(ScheduledNotification.id == entry_id)
            .values(status=ScheduleStatus.FAILED.value, claimed_at=None)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        # Left in processing; the stale-claim sweep will pick it up again
        logger.exception(f"Failed to mark scheduled notification {entry_id} as failed")


def process_due_notifications(
    db: Session,
    notifier: NotificationSink | None = None,
    now: datetime | None = None,
) -> ProcessResult:
    """Send every due scheduled notification and reschedule recurring ones."""
    notifier = notifier or DatabaseNotificationSink()
    now = now or utcnow()

    candidates = _due_candidates(db, now)
    if not candidates:
        return ProcessResult()

    logger.info(f"Processing {len(candidates)} scheduled notifications")

    processed = 0
    errors = 0
    for candidate in candidates:
        if not _claim(db, candidate, now):
            logger.info(f"Scheduled notification {candidate.id} already claimed by another run; skipping")
            continue

        try:
            recipient_count = _send(db, candidate.id, notifier, now)
        except Exception:
            db.rollback()
            logger.exception(f"Error processing scheduled notification {candidate.id}")
            errors += 1
            _mark_failed(db, candidate.id)
            continue

        logger.info(f"Sent scheduled notification {candidate.id} to {recipient_count} recipients")
        processed += 1

    logger.info(f"Processed {processed} scheduled notifications, {errors} errors")
    return ProcessResult(processed_count=processed, error_count=errors)


def _validate_target(target) -> None:
    if isinstance(target, IndividualTarget) and not target.user_ids:
        raise ValidationError("Individual targets need at least one user id")


def _validate_future(scheduled_for: datetime, now: datetime) -> None:
    if parse_timestamp(to_timestamp(scheduled_for)) <= now:
        raise ValidationError("Scheduled time must be in the future")


def create_scheduled_notification(
    db: Session,
    data: ScheduledNotificationCreate,
    created_by: str | None = None,
    now: datetime | None = None,
) -> ScheduledNotification:
    """Schedule a bulk notification."""
    _validate_future(data.scheduled_for, now or utcnow())
    _validate_target(data.target_filters)

    entry = ScheduledNotification(
        title=data.title,
        message=data.message,
        action_url=data.action_url,
        priority=data.priority,
        target_filters=dump_target_filters(data.target_filters),
        scheduled_for=to_timestamp(data.scheduled_for),
        recurrence=data.recurrence.value,
        status=ScheduleStatus.PENDING.value,
        created_by=created_by,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info(f"Scheduled notification {entry.id} for {entry.scheduled_for} ({entry.recurrence})")
    return entry


def list_scheduled_notifications(db: Session, status: str = "pending") -> list[ScheduledNotification]:
    query = select(ScheduledNotification).order_by(ScheduledNotification.scheduled_for)
    if status and status != "all":
        try:
            status = ScheduleStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown status filter '{status}'") from None
        query = query.where(ScheduledNotification.status == status)
    return list(db.scalars(query))


def get_scheduled_notification(db: Session, entry_id: str) -> ScheduledNotification:
    entry = db.get(ScheduledNotification, entry_id)
    if entry is None:
        raise NotFoundError(f"Scheduled notification {entry_id} not found")
    return entry


def _update_if_pending(db: Session, entry_id: str, values: dict, verb: str) -> ScheduledNotification:
    entry = get_scheduled_notification(db, entry_id)
    if entry.status != ScheduleStatus.PENDING.value:
        raise ValidationError(f"Can only {verb} pending notifications")

    try:
        result = db.execute(
            update(ScheduledNotification)
            .where(
                ScheduledNotification.id == entry_id,
                ScheduledNotification.status == ScheduleStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:  # Claimed by a processor run since the read above
            db.rollback()
            raise ValidationError(f"Can only {verb} pending notifications")
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"Failed to {verb} scheduled notification {entry_id}") from exc
    return db.get(ScheduledNotification, entry_id, populate_existing=True)


def update_scheduled_notification(
    db: Session,
    entry_id: str,
    changes: ScheduledNotificationUpdate,
    now: datetime | None = None,
) -> ScheduledNotification:
    """Edit a scheduled notification that has not been picked up yet.

    Only ``action_url`` may be cleared; an explicit null for any other field
    is rejected.
    """
    cleared = sorted(
        name for name in changes.model_fields_set - NULLABLE_UPDATE_FIELDS
        if getattr(changes, name) is None
    )
    if cleared:
        raise ValidationError(f"Fields cannot be null: {', '.join(cleared)}")

    values = changes.model_dump(exclude_unset=True, exclude={"target_filters", "scheduled_for", "recurrence"})
    if changes.target_filters is not None:
        _validate_target(changes.target_filters)
        values["target_filters"] = dump_target_filters(changes.target_filters)
    if changes.scheduled_for is not None:
        _validate_future(changes.scheduled_for, now or utcnow())
        values["scheduled_for"] = to_timestamp(changes.scheduled_for)
    if changes.recurrence is not None:
        values["recurrence"] = changes.recurrence.value
    if not values:
        raise ValidationError("No updatable field supplied")

    return _update_if_pending(db, entry_id, values, "update")


def cancel_scheduled_notification(db: Session, entry_id: str) -> ScheduledNotification:
    entry = _update_if_pending(db, entry_id, {"status": ScheduleStatus.CANCELLED.value}, "cancel")
    logger.info(f"Cancelled scheduled notification {entry_id}")
    return entry


def to_response(entry: ScheduledNotification) -> dict:
    return {
        "id": entry.id,
        "title": entry.title,
        "message": entry.message,
        "action_url": entry.action_url,
        "priority": entry.priority,
        "target_filters": json.loads(entry.target_filters),
        "scheduled_for": entry.scheduled_for,
        "recurrence": entry.recurrence,
        "status": entry.status,
        "last_sent_at": entry.last_sent_at,
        "created_by": entry.created_by,
        "created_at": entry.created_at,
    }
