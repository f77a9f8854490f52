"""Pydantic schemas for pallet administration."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

PalletStatus = Literal["open", "consolidating", "shipped", "delivered"]


class PalletCreate(BaseModel):
    """Payload for POST /api/pallets/."""
    name: str = Field(..., min_length=1, max_length=255)
    pickup_zone_id: str
    delivery_zone_id: str
    bottle_capacity: int = Field(..., ge=1)
    cost_cents: int = Field(0, ge=0)
    notes: str | None = None


class PalletUpdate(BaseModel):
    """Payload for PATCH /api/pallets/{pallet_id}.

    Completion is not editable here; use the reopen endpoint.
    """
    name: str | None = Field(None, min_length=1, max_length=255)
    bottle_capacity: int | None = Field(None, ge=1)
    cost_cents: int | None = Field(None, ge=0)
    status: PalletStatus | None = None
    notes: str | None = None


class PalletSummary(BaseModel):
    id: str
    name: str
    pickup_zone_id: str
    delivery_zone_id: str
    pickup_zone_name: str | None = None
    delivery_zone_name: str | None = None
    bottle_capacity: int
    cost_cents: int
    status: str
    is_complete: bool
    completed_at: datetime | None
    payment_deadline: datetime | None
    reserved_bottles: int
    remaining_bottles: int
    # None when dispatched or without capacity; never shown as 0%
    percent_filled: int | None
    created_at: datetime


class PalletDetail(PalletSummary):
    notes: str | None = None
    updated_at: datetime
    pending_payment_bottles: int = 0
    confirmed_bottles: int = 0
    placed_bottles: int = 0
    needs_payment: bool = False


class CompletionResult(BaseModel):
    pallet_id: str
    pallet_name: str
    capacity: int
    reserved: int
    percent_filled: int | None
    was_completed: bool
    already_complete: bool
    reservations_updated: int
    error: str | None = None

    model_config = {"from_attributes": True}


class CompletionSweepResult(BaseModel):
    checked: int
    completed: int
    results: list[CompletionResult]


class ShippingCostOut(BaseModel):
    pallet_id: str
    pallet_cost_cents: int
    cost_per_bottle_cents: int
    bottles: int
    total_shipping_cost_cents: int
    formatted_total: str
