"""Scheduled notification schemas."""
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from app.models.notification import Recurrence
from app.models.order import OrderStatus

Role = Literal["customer", "volunteer"]
Priority = Literal["low", "medium", "high"]


class AllTarget(BaseModel):
    type: Literal["all"] = "all"


class RoleTarget(BaseModel):
    type: Literal["role"] = "role"
    role: Role


class IndividualTarget(BaseModel):
    type: Literal["individual"] = "individual"
    user_ids: list[str] = Field(default_factory=list, alias="userIds")
    role: Role

    model_config = ConfigDict(populate_by_name=True)


class AudienceFilters(BaseModel):
    zone: str | None = None
    order_status: OrderStatus | None = Field(default=None, alias="orderStatus")

    model_config = ConfigDict(populate_by_name=True)


class FilteredTarget(BaseModel):
    type: Literal["filtered"] = "filtered"
    filters: AudienceFilters = Field(default_factory=AudienceFilters)


TargetFilters = Annotated[
    Union[AllTarget, RoleTarget, IndividualTarget, FilteredTarget],
    Field(discriminator="type"),
]


class ScheduledNotificationCreate(BaseModel):
    """Request to schedule a bulk notification."""

    title: str = Field(..., min_length=1, max_length=255)
    message: str = Field(..., min_length=1)
    action_url: str | None = None
    priority: Priority = "medium"
    target_filters: TargetFilters
    scheduled_for: datetime
    recurrence: Recurrence = Recurrence.ONCE


class ScheduledNotificationUpdate(BaseModel):
    """Partial update of a pending scheduled notification."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    message: str | None = Field(default=None, min_length=1)
    action_url: str | None = None
    priority: Priority | None = None
    target_filters: TargetFilters | None = None
    scheduled_for: datetime | None = None
    recurrence: Recurrence | None = None


class ScheduledNotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    action_url: str | None
    priority: str | None
    target_filters: dict
    scheduled_for: str
    recurrence: str
    status: str
    last_sent_at: str | None
    created_by: str | None
    created_at: str | None


class ProcessResponse(BaseModel):
    processed: int
    errors: int
    message: str
