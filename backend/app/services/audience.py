"""Recipient resolution for bulk notifications."""
import json
import logging
from dataclasses import dataclass

import pydantic
from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.order import Order
from app.models.user import Customer, Volunteer
from app.schemas.notification import (
    AllTarget,
    FilteredTarget,
    IndividualTarget,
    RoleTarget,
    TargetFilters,
)
from app.services.errors import ValidationError

logger = logging.getLogger(__name__)

_target_adapter = TypeAdapter(TargetFilters)

ROLE_MODELS = {
    "customer": Customer,
    "volunteer": Volunteer,
}


@dataclass(frozen=True)
class Recipient:
    user_id: str
    role: str


def parse_target_filters(raw: str | dict) -> AllTarget | RoleTarget | IndividualTarget | FilteredTarget:
    """Validate a stored or submitted target filter."""
    try:
        data = json.loads(raw) if isinstance(raw, str) else raw
        return _target_adapter.validate_python(data)
    except (json.JSONDecodeError, pydantic.ValidationError) as exc:
        raise ValidationError(f"Invalid target filters: {exc}") from exc


def dump_target_filters(target) -> str:
    return json.dumps(_target_adapter.dump_python(target, mode="json", by_alias=True))


def _ids_for_role(db: Session, role: str) -> list[str]:
    model = ROLE_MODELS[role]
    return list(db.scalars(select(model.id).order_by(model.created_at, model.id)))


def resolve_recipients(db: Session, target_filters: str | dict) -> list[Recipient]:
    """Expand a target filter into the concrete (user, role) recipients."""
    target = parse_target_filters(target_filters)

    if isinstance(target, AllTarget):
        return [
            *(Recipient(user_id, "customer") for user_id in _ids_for_role(db, "customer")),
            *(Recipient(user_id, "volunteer") for user_id in _ids_for_role(db, "volunteer")),
        ]

    if isinstance(target, RoleTarget):
        return [Recipient(user_id, target.role) for user_id in _ids_for_role(db, target.role)]

    if isinstance(target, IndividualTarget):
        return [Recipient(user_id, target.role) for user_id in dict.fromkeys(target.user_ids)]

    return _resolve_filtered(db, target)


def _resolve_filtered(db: Session, target: FilteredTarget) -> list[Recipient]:
    filters = target.filters
    query = select(Volunteer.id)

    if filters.zone:
        query = query.where(Volunteer.zone_id == filters.zone)

    if filters.order_status:
        volunteer_ids = set(db.scalars(
            select(Order.referral_volunteer_id)
            .where(
                Order.status == filters.order_status.value,
                Order.referral_volunteer_id.is_not(None),
            )
            .distinct()
        ))
        if not volunteer_ids:
            logger.info(f"No volunteers have orders in status {filters.order_status.value}")
            return []
        query = query.where(Volunteer.id.in_(volunteer_ids))

    user_ids = db.scalars(query.order_by(Volunteer.created_at, Volunteer.id))
    return [Recipient(user_id, "volunteer") for user_id in user_ids]
