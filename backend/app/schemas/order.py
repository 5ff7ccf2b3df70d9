"""Order and challenge progress schemas."""
from typing import Literal

from pydantic import BaseModel, ConfigDict

from app.models.order import OrderStatus


class OrderResponse(BaseModel):
    id: str
    customer_id: str | None
    referral_volunteer_id: str | None
    delivery_volunteer_id: str | None
    quantity: int
    status: OrderStatus
    customer_name: str | None = None
    customer_phone: str | None = None
    delivery_address: str | None = None
    total_price: float | None = None
    notes: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    model_config = ConfigDict(from_attributes=True)


class OrderStatusUpdate(BaseModel):
    """Admin request to change an order's status and/or editable fields."""

    status: str | None = None
    volunteer_id: str | None = None
    delivery_volunteer_id: str | None = None
    delivery_address: str | None = None
    customer_phone: str | None = None
    notes: str | None = None

    def field_updates(self) -> dict:
        return self.model_dump(
            exclude_unset=True,
            include={"delivery_volunteer_id", "delivery_address", "customer_phone", "notes"},
        )


class VolunteerStatusUpdate(BaseModel):
    """Delivery volunteer reporting the outcome of a delivery."""

    volunteer_id: str
    status: Literal["delivered", "cant_reach"]


class OrderUpdateResponse(BaseModel):
    order: OrderResponse


class ChallengeProgressResponse(BaseModel):
    volunteer_id: str
    confirmed_units: int
    goal: int
    remaining: int
    completed: bool
