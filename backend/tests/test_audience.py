import pytest

from app.models.order import Order
from app.models.user import Customer, Volunteer
from app.schemas.notification import FilteredTarget, IndividualTarget
from app.services.audience import Recipient, dump_target_filters, parse_target_filters, resolve_recipients
from app.services.errors import ValidationError


def _seed(db):
    customers = [Customer(name="Customer A"), Customer(name="Customer B")]
    north = Volunteer(volunteer_code="N1", name="North One", zone_id="north")
    south = Volunteer(volunteer_code="S1", name="South One", zone_id="south")
    db.add_all([*customers, north, south])
    db.flush()
    db.add(Order(customer_id=customers[0].id, referral_volunteer_id=north.id, quantity=2, status="confirmed"))
    db.add(Order(customer_id=customers[1].id, referral_volunteer_id=north.id, quantity=1, status="confirmed"))
    db.commit()
    return [c.id for c in customers], north.id, south.id


def test_all_target_covers_every_customer_and_volunteer(db):
    customer_ids, north_id, south_id = _seed(db)

    recipients = resolve_recipients(db, {"type": "all"})

    assert set(recipients) == {
        *(Recipient(cid, "customer") for cid in customer_ids),
        Recipient(north_id, "volunteer"),
        Recipient(south_id, "volunteer"),
    }


def test_role_target(db):
    customer_ids, _, _ = _seed(db)

    recipients = resolve_recipients(db, '{"type": "role", "role": "customer"}')

    assert {r.user_id for r in recipients} == set(customer_ids)
    assert {r.role for r in recipients} == {"customer"}


def test_individual_target_uses_given_ids_once(db):
    recipients = resolve_recipients(
        db, {"type": "individual", "userIds": ["u1", "u2", "u1"], "role": "volunteer"}
    )

    assert recipients == [Recipient("u1", "volunteer"), Recipient("u2", "volunteer")]


def test_filtered_by_zone(db):
    _, north_id, _ = _seed(db)

    recipients = resolve_recipients(db, {"type": "filtered", "filters": {"zone": "north"}})

    assert recipients == [Recipient(north_id, "volunteer")]


def test_filtered_by_order_status_deduplicates(db):
    _, north_id, _ = _seed(db)

    recipients = resolve_recipients(db, {"type": "filtered", "filters": {"orderStatus": "confirmed"}})

    assert recipients == [Recipient(north_id, "volunteer")]


def test_filtered_with_no_matching_orders_is_empty(db):
    _seed(db)

    assert resolve_recipients(db, {"type": "filtered", "filters": {"orderStatus": "delivered"}}) == []
    assert resolve_recipients(
        db, {"type": "filtered", "filters": {"zone": "south", "orderStatus": "confirmed"}}
    ) == []


def test_filtered_without_filters_is_every_volunteer(db):
    _, north_id, south_id = _seed(db)

    recipients = resolve_recipients(db, {"type": "filtered"})

    assert {r.user_id for r in recipients} == {north_id, south_id}


def test_parse_rejects_malformed_filters():
    with pytest.raises(ValidationError):
        parse_target_filters("{not json")
    with pytest.raises(ValidationError):
        parse_target_filters({"type": "everyone"})
    with pytest.raises(ValidationError):
        parse_target_filters({"type": "role", "role": "admin"})


def test_dump_uses_wire_aliases():
    individual = IndividualTarget(user_ids=["u1"], role="customer")
    filtered = FilteredTarget.model_validate({"type": "filtered", "filters": {"orderStatus": "pending"}})

    assert '"userIds": ["u1"]' in dump_target_filters(individual)
    assert '"orderStatus": "pending"' in dump_target_filters(filtered)
    assert parse_target_filters(dump_target_filters(individual)) == individual
