"""Scheduled notification API endpoints."""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_actor, get_auditor, get_db, get_ip_address, get_notifier, require_cron_secret
from app.api.errors import http_error
from app.schemas.notification import (
    ProcessResponse,
    ScheduledNotificationCreate,
    ScheduledNotificationResponse,
    ScheduledNotificationUpdate,
)
from app.services.audit import SYSTEM_ACTOR, AuditActor, AuditEntry, AuditSink, record_safely
from app.services.errors import LifecycleError
from app.services.notifications import NotificationSink
from app.services import scheduled_notifications as service

router = APIRouter(prefix="/scheduled-notifications", tags=["scheduled-notifications"])


@router.get("", response_model=list[ScheduledNotificationResponse])
def list_scheduled(
    status_filter: str = Query(default="pending", alias="status"),
    db: Session = Depends(get_db),
):
    """List scheduled notifications (``status=all`` for every status)."""
    try:
        entries = service.list_scheduled_notifications(db, status_filter)
    except LifecycleError as e:
        raise http_error(e)
    return [service.to_response(entry) for entry in entries]


@router.post("", response_model=ScheduledNotificationResponse, status_code=status.HTTP_201_CREATED)
def create_scheduled(
    request: ScheduledNotificationCreate,
    db: Session = Depends(get_db),
    actor: AuditActor = Depends(get_actor),
    ip_address: str = Depends(get_ip_address),
    auditor: AuditSink = Depends(get_auditor),
):
    """Schedule a bulk notification."""
    try:
        entry = service.create_scheduled_notification(db, request, created_by=actor.id)
    except LifecycleError as e:
        raise http_error(e)

    record_safely(auditor, AuditEntry(
        actor=actor,
        action="scheduled_notification.created",
        entity_type="scheduled_notification",
        entity_id=entry.id,
        details={"scheduled_for": entry.scheduled_for, "recurrence": entry.recurrence},
        ip_address=ip_address,
    ))
    return service.to_response(entry)


@router.post("/process", response_model=ProcessResponse, dependencies=[Depends(require_cron_secret)])
def process_scheduled(
    db: Session = Depends(get_db),
    notifier: NotificationSink = Depends(get_notifier),
    auditor: AuditSink = Depends(get_auditor),
):
    """Send all due scheduled notifications (called by cron or a manual trigger)."""
    try:
        result = service.process_due_notifications(db, notifier)
    except LifecycleError as e:
        raise http_error(e)

    if result.processed_count or result.error_count:
        record_safely(auditor, AuditEntry(
            actor=SYSTEM_ACTOR,
            action="scheduled_notification.processed",
            entity_type="scheduled_notification",
            details={"processed": result.processed_count, "errors": result.error_count},
        ))

    if not result.processed_count and not result.error_count:
        message = "No notifications due"
    else:
        message = f"Processed {result.processed_count} notifications, {result.error_count} errors"
    return ProcessResponse(processed=result.processed_count, errors=result.error_count, message=message)


@router.patch("/{entry_id}", response_model=ScheduledNotificationResponse)
def update_scheduled(
    entry_id: str,
    request: ScheduledNotificationUpdate,
    db: Session = Depends(get_db),
    actor: AuditActor = Depends(get_actor),
    ip_address: str = Depends(get_ip_address),
    auditor: AuditSink = Depends(get_auditor),
):
    """Edit a scheduled notification that is still pending."""
    try:
        entry = service.update_scheduled_notification(db, entry_id, request)
    except LifecycleError as e:
        raise http_error(e)

    record_safely(auditor, AuditEntry(
        actor=actor,
        action="scheduled_notification.updated",
        entity_type="scheduled_notification",
        entity_id=entry_id,
        details=request.model_dump(mode="json", exclude_unset=True),
        ip_address=ip_address,
    ))
    return service.to_response(entry)


@router.delete("/{entry_id}", response_model=ScheduledNotificationResponse)
def cancel_scheduled(
    entry_id: str,
    db: Session = Depends(get_db),
    actor: AuditActor = Depends(get_actor),
    ip_address: str = Depends(get_ip_address),
    auditor: AuditSink = Depends(get_auditor),
):
    """Cancel a pending scheduled notification (kept for history, never sent)."""
    try:
        entry = service.cancel_scheduled_notification(db, entry_id)
    except LifecycleError as e:
        raise http_error(e)

    record_safely(auditor, AuditEntry(
        actor=actor,
        action="scheduled_notification.cancelled",
        entity_type="scheduled_notification",
        entity_id=entry_id,
        ip_address=ip_address,
    ))
    return service.to_response(entry)
