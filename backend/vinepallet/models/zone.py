"""Zone — a geographic catchment area for pickup or delivery.

Pickup zones group producers whose wine is collected together; delivery
zones are the customer areas a pallet is shipped to.  Membership is tested
either by radius around a center point, or (when an address has no
coordinates) by country code and optional postcode prefixes.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from vinepallet.database import Base

ZONE_TYPES = ("pickup", "delivery")


class Zone(Base):
    __tablename__ = "pallet_zones"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # pickup | delivery
    zone_type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # ── Geometry ─────────────────────────────────────────────
    center_lat: Mapped[float | None] = mapped_column(Float)
    center_lon: Mapped[float | None] = mapped_column(Float)
    radius_km: Mapped[float | None] = mapped_column(Float)

    # ── Region fallback ──────────────────────────────────────
    country_code: Mapped[str | None] = mapped_column(String(2), index=True)
    # e.g. ["11", "12"]; empty/None means the whole country
    postcode_prefixes: Mapped[list | None] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
