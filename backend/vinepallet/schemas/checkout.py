"""Pydantic schemas for checkout zone matching."""

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


# ── Request ──────────────────────────────────────────────────

class DeliveryAddress(BaseModel):
    """Delivery address as entered at checkout.

    `lat`/`lon` are optional; without them the address is geocoded, and
    failing that matched by country/postcode.  `delivery_zone_id` pins the
    customer's choice among several covering zones.
    """
    street: str | None = None
    postcode: str | None = None
    city: str | None = None
    country_code: str | None = Field(
        None,
        min_length=2,
        max_length=2,
        validation_alias=AliasChoices("country_code", "countryCode"),
    )
    lat: float | None = Field(None, ge=-90, le=90)
    lon: float | None = Field(None, ge=-180, le=180)
    delivery_zone_id: str | None = Field(
        None, validation_alias=AliasChoices("delivery_zone_id", "deliveryZoneId")
    )


class CheckoutCartItem(BaseModel):
    id: str | None = None  # cart line id
    wine_id: str = Field(..., validation_alias=AliasChoices("wine_id", "wineId"))
    quantity: int = Field(..., ge=1)


class ZonesRequest(BaseModel):
    """Payload for POST /api/checkout/zones."""
    cart_items: list[CheckoutCartItem] = Field(
        default_factory=list, validation_alias=AliasChoices("cart_items", "cartItems")
    )
    delivery_address: DeliveryAddress = Field(
        ..., validation_alias=AliasChoices("delivery_address", "deliveryAddress")
    )


# ── Response ─────────────────────────────────────────────────

class DeliveryZoneOptionOut(BaseModel):
    id: str
    name: str
    center_lat: float | None
    center_lon: float | None
    radius_km: float | None
    distance_km: float | None = None

    model_config = {"from_attributes": True}


class PalletCandidateOut(BaseModel):
    id: str
    name: str
    current_bottles: int
    max_bottles: int
    remaining_bottles: int
    percent_filled: int | None
    status: str
    created_at: datetime
    pickup_zone_name: str
    delivery_zone_name: str

    model_config = {"from_attributes": True}


class MatchItemOut(BaseModel):
    wine_id: str
    quantity: int
    line_id: str | None = None

    model_config = {"from_attributes": True}


class UnassignableItemOut(MatchItemOut):
    reason: str
    producer_id: str | None = None


class PickupGroupOut(BaseModel):
    pickup_zone_id: str
    pickup_zone_name: str
    delivery_zone_id: str | None
    delivery_zone_name: str | None
    bottles: int
    status: str
    items: list[MatchItemOut] = []
    pallets: list[PalletCandidateOut] = []

    model_config = {"from_attributes": True}


class ZoneMatchOut(BaseModel):
    status: str
    can_checkout: bool
    pickup_zone_id: str | None
    delivery_zone_id: str | None
    pickup_zone_name: str | None
    delivery_zone_name: str | None
    available_delivery_zones: list[DeliveryZoneOptionOut] = []
    pallets: list[PalletCandidateOut] = []
    groups: list[PickupGroupOut] = []
    unassignable_items: list[UnassignableItemOut] = []
    errors: list[str] = []

    model_config = {"from_attributes": True}
