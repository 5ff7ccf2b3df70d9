import json
from datetime import datetime, timedelta

import pytest

from app.models.notification import Notification, ScheduledNotification
from app.models.order import Order
from app.models.user import Customer, Volunteer
from app.schemas.notification import ScheduledNotificationCreate, ScheduledNotificationUpdate
from app.services import scheduled_notifications as service
from app.services.errors import NotFoundError, ValidationError
from app.services.notifications import DatabaseNotificationSink
from app.timestamps import to_timestamp

NOW = datetime(2024, 1, 10, 9, 5)


def _entry(db, target_filters, scheduled_for=datetime(2024, 1, 10, 9, 0), recurrence="once", **columns):
    entry = ScheduledNotification(
        title="Refill reminder",
        message="Time to order your next refill",
        action_url="/order",
        priority="high",
        target_filters=target_filters if isinstance(target_filters, str) else json.dumps(target_filters),
        scheduled_for=to_timestamp(scheduled_for),
        recurrence=recurrence,
        **columns,
    )
    db.add(entry)
    db.commit()
    return entry.id


def _process(db, session_factory, now=NOW):
    return service.process_due_notifications(db, DatabaseNotificationSink(session_factory), now=now)


def _reload(db, entry_id):
    db.expire_all()
    return db.get(ScheduledNotification, entry_id)


def test_daily_entry_advances_from_previous_due_time(db, session_factory):
    entry_id = _entry(db, {"type": "individual", "userIds": ["c1"], "role": "customer"}, recurrence="daily")

    result = _process(db, session_factory)

    assert (result.processed_count, result.error_count) == (1, 0)
    entry = _reload(db, entry_id)
    assert entry.status == "pending"
    assert entry.scheduled_for == "2024-01-11T09:00:00.000000"
    assert entry.last_sent_at == "2024-01-10T09:05:00.000000"
    assert entry.claimed_at is None


def test_once_entry_to_two_individuals(db, session_factory):
    entry_id = _entry(db, {"type": "individual", "userIds": ["u1", "u2"], "role": "volunteer"})

    _process(db, session_factory)

    entry = _reload(db, entry_id)
    assert entry.status == "sent"
    assert entry.scheduled_for == "2024-01-10T09:00:00.000000"

    rows = db.query(Notification).order_by(Notification.user_id).all()
    assert [row.user_id for row in rows] == ["u1", "u2"]
    for row in rows:
        assert row.user_role == "volunteer"
        assert row.title == "Refill reminder"
        assert row.message == "Time to order your next refill"
        assert row.action_url == "/order"
        assert row.priority == "high"
        assert row.is_read == 0
        assert row.delivery_status == "sent"
        assert row.scheduled_notification_id == entry_id


def test_filtered_with_no_matches_still_reschedules(db, session_factory):
    volunteer = Volunteer(volunteer_code="V1", name="Volunteer One")
    db.add(volunteer)
    db.flush()
    db.add(Order(referral_volunteer_id=volunteer.id, quantity=1, status="pending"))
    db.commit()
    entry_id = _entry(
        db,
        {"type": "filtered", "filters": {"orderStatus": "delivered"}},
        recurrence="weekly",
    )

    result = _process(db, session_factory)

    assert result.processed_count == 1
    assert db.query(Notification).count() == 0
    entry = _reload(db, entry_id)
    assert entry.status == "pending"
    assert entry.scheduled_for == "2024-01-17T09:00:00.000000"
    assert entry.last_sent_at == "2024-01-10T09:05:00.000000"


def test_broken_entry_fails_alone(db, session_factory):
    db.add(Customer(name="Customer A"))
    db.commit()
    broken_id = _entry(db, "{not valid json", scheduled_for=datetime(2024, 1, 10, 8, 0))
    good_id = _entry(db, {"type": "role", "role": "customer"})

    result = _process(db, session_factory)

    assert (result.processed_count, result.error_count) == (1, 1)
    assert _reload(db, broken_id).status == "failed"
    assert _reload(db, good_id).status == "sent"
    assert db.query(Notification).count() == 1


def test_nothing_due_returns_zero(db, session_factory):
    _entry(db, {"type": "all"}, scheduled_for=datetime(2024, 1, 10, 10, 0))

    result = _process(db, session_factory)

    assert (result.processed_count, result.error_count) == (0, 0)


def test_second_pass_does_not_resend(db, session_factory):
    _entry(db, {"type": "individual", "userIds": ["u1"], "role": "customer"})
    cancelled_id = _entry(db, {"type": "individual", "userIds": ["u2"], "role": "customer"}, status="cancelled")

    _process(db, session_factory)
    second = _process(db, session_factory, now=NOW + timedelta(minutes=5))

    assert second.processed_count == 0
    assert [n.user_id for n in db.query(Notification).all()] == ["u1"]
    assert _reload(db, cancelled_id).status == "cancelled"


def test_claim_is_taken_only_once(db):
    _entry(db, {"type": "all"})
    candidate = service._due_candidates(db, NOW)[0]

    assert service._claim(db, candidate, NOW) is True
    assert service._claim(db, candidate, NOW) is False


def test_fresh_processing_claim_is_left_alone(db, session_factory):
    entry_id = _entry(
        db,
        {"type": "individual", "userIds": ["u1"], "role": "customer"},
        status="processing",
        claimed_at=to_timestamp(NOW - timedelta(minutes=5)),
    )

    result = _process(db, session_factory)

    assert result.processed_count == 0
    assert _reload(db, entry_id).status == "processing"


def test_stale_processing_claim_is_recovered(db, session_factory):
    entry_id = _entry(
        db,
        {"type": "individual", "userIds": ["u1"], "role": "customer"},
        status="processing",
        claimed_at=to_timestamp(NOW - timedelta(minutes=20)),
    )

    result = _process(db, session_factory)

    assert result.processed_count == 1
    assert _reload(db, entry_id).status == "sent"
    assert db.query(Notification).count() == 1


def test_monthly_recurrence_uses_calendar_months():
    status, next_due = service.next_run(datetime(2024, 1, 31, 9, 0), "monthly")

    assert status.value == "pending"
    assert next_due == datetime(2024, 2, 29, 9, 0)


def test_create_requires_future_time(db):
    data = ScheduledNotificationCreate(
        title="Weekly promo",
        message="Two for one this weekend",
        target_filters={"type": "role", "role": "customer"},
        scheduled_for=datetime(2024, 1, 10, 9, 0),
    )

    with pytest.raises(ValidationError, match="future"):
        service.create_scheduled_notification(db, data, now=NOW)


def test_create_rejects_empty_individual_target(db):
    data = ScheduledNotificationCreate(
        title="Hello",
        message="Hi there",
        target_filters={"type": "individual", "userIds": [], "role": "customer"},
        scheduled_for=datetime(2024, 2, 1, 9, 0),
    )

    with pytest.raises(ValidationError, match="at least one user id"):
        service.create_scheduled_notification(db, data, now=NOW)


def test_create_list_update_cancel(db):
    data = ScheduledNotificationCreate(
        title="Weekly promo",
        message="Two for one this weekend",
        target_filters={"type": "filtered", "filters": {"zone": "north"}},
        scheduled_for=datetime(2024, 2, 1, 9, 0),
        recurrence="weekly",
    )
    entry = service.create_scheduled_notification(db, data, created_by="admin-1", now=NOW)

    assert entry.status == "pending"
    assert entry.created_by == "admin-1"
    assert [e.id for e in service.list_scheduled_notifications(db)] == [entry.id]

    updated = service.update_scheduled_notification(
        db,
        entry.id,
        ScheduledNotificationUpdate(title="Weekend promo", scheduled_for=datetime(2024, 2, 2, 9, 0)),
        now=NOW,
    )
    assert updated.title == "Weekend promo"
    assert updated.scheduled_for == "2024-02-02T09:00:00.000000"
    assert updated.message == "Two for one this weekend"

    cancelled = service.cancel_scheduled_notification(db, entry.id)
    assert cancelled.status == "cancelled"
    assert service.list_scheduled_notifications(db) == []
    assert [e.id for e in service.list_scheduled_notifications(db, "all")] == [entry.id]

    with pytest.raises(ValidationError, match="pending"):
        service.update_scheduled_notification(db, entry.id, ScheduledNotificationUpdate(title="Too late"))
    with pytest.raises(ValidationError, match="pending"):
        service.cancel_scheduled_notification(db, entry.id)


def test_update_requires_a_field(db):
    entry_id = _entry(db, {"type": "all"}, scheduled_for=datetime(2030, 1, 1))

    with pytest.raises(ValidationError, match="No updatable field"):
        service.update_scheduled_notification(db, entry_id, ScheduledNotificationUpdate())


def test_unknown_entry_and_status_filter(db):
    with pytest.raises(NotFoundError):
        service.get_scheduled_notification(db, "missing")
    with pytest.raises(NotFoundError):
        service.cancel_scheduled_notification(db, "missing")
    with pytest.raises(ValidationError, match="Unknown status filter"):
        service.list_scheduled_notifications(db, "archived")


def test_update_rejects_null_for_required_fields(db):
    entry_id = _entry(db, {"type": "all"}, scheduled_for=datetime(2030, 1, 1))

    for field in ["title", "message", "priority", "target_filters", "scheduled_for", "recurrence"]:
        with pytest.raises(ValidationError, match=f"cannot be null: {field}"):
            service.update_scheduled_notification(db, entry_id, ScheduledNotificationUpdate(**{field: None}))

    entry = _reload(db, entry_id)
    assert entry.title == "Refill reminder"
    assert entry.status == "pending"


def test_update_can_clear_action_url(db):
    entry_id = _entry(db, {"type": "all"}, scheduled_for=datetime(2030, 1, 1))

    updated = service.update_scheduled_notification(db, entry_id, ScheduledNotificationUpdate(action_url=None))

    assert updated.action_url is None
    assert updated.title == "Refill reminder"
