"""Pydantic schemas for zone CRUD."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, model_validator

ZoneType = Literal["pickup", "delivery"]


class ZoneCreate(BaseModel):
    """Payload for POST /api/zones/."""
    name: str = Field(..., min_length=1, max_length=255)
    zone_type: ZoneType
    center_lat: float | None = Field(None, ge=-90, le=90)
    center_lon: float | None = Field(None, ge=-180, le=180)
    radius_km: float | None = Field(None, ge=0)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    postcode_prefixes: list[str] | None = None

    @model_validator(mode="after")
    def _center_pair(self):
        if (self.center_lat is None) != (self.center_lon is None):
            raise ValueError("center_lat and center_lon must be set together")
        if self.country_code:
            self.country_code = self.country_code.upper()
        return self


class ZoneUpdate(BaseModel):
    """Payload for PATCH /api/zones/{zone_id}."""
    name: str | None = Field(None, min_length=1, max_length=255)
    center_lat: float | None = Field(None, ge=-90, le=90)
    center_lon: float | None = Field(None, ge=-180, le=180)
    radius_km: float | None = Field(None, ge=0)
    country_code: str | None = Field(None, min_length=2, max_length=2)
    postcode_prefixes: list[str] | None = None


class ZoneOut(BaseModel):
    id: str
    name: str
    zone_type: str
    center_lat: float | None
    center_lon: float | None
    radius_km: float | None
    country_code: str | None
    postcode_prefixes: list[str] | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ProducerZonesOut(BaseModel):
    """Response for GET /api/zones/for-producer/{producer_id}."""
    producer_id: str
    pickup_zone: ZoneOut | None
    delivery_zones: list[ZoneOut] = []
