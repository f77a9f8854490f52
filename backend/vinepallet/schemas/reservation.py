"""Pydantic schemas for reserving a cart on a pallet."""

from datetime import datetime

from pydantic import BaseModel

from vinepallet.schemas.pallet import CompletionResult


class ReservationCreate(BaseModel):
    """Payload for POST /api/reservations."""
    pallet_id: str


class ReservationItemOut(BaseModel):
    id: str
    wine_id: str
    quantity: int

    model_config = {"from_attributes": True}


class ReservationOut(BaseModel):
    id: str
    cart_id: str | None
    pallet_id: str | None
    pickup_zone_id: str | None
    delivery_zone_id: str | None
    status: str
    payment_deadline: datetime | None
    created_at: datetime
    items: list[ReservationItemOut] = []

    model_config = {"from_attributes": True}


class ReservationResult(BaseModel):
    reservation: ReservationOut
    pallet: CompletionResult
