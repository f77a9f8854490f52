"""Pallet — a shared shipping unit with a fixed bottle capacity.

Each pallet is bound to one pickup zone and one delivery zone.  Several
pallets may exist for the same pair over time (one fills, ships, and the
next one opens).

Lifecycle:  open → consolidating → shipped → delivered

`is_complete` flips to True when reserved bottles reach capacity and only
goes back through an explicit admin reopen.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vinepallet.database import Base

PALLET_STATUSES = ("open", "consolidating", "shipped", "delivered")
DISPATCHED_STATUSES = ("shipped", "delivered")


class Pallet(Base):
    __tablename__ = "pallets"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # ── Route ────────────────────────────────────────────────
    pickup_zone_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pallet_zones.id"), nullable=False, index=True
    )
    delivery_zone_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("pallet_zones.id"), nullable=False, index=True
    )

    # ── Capacity & cost ──────────────────────────────────────
    bottle_capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_cents: Mapped[int] = mapped_column(Integer, default=0)

    # ── Status ───────────────────────────────────────────────
    # open | consolidating | shipped | delivered
    status: Mapped[str] = mapped_column(String(30), default="open", index=True)
    is_complete: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    payment_deadline: Mapped[datetime | None] = mapped_column(DateTime)

    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    pickup_zone = relationship("Zone", foreign_keys=[pickup_zone_id], lazy="selectin")
    delivery_zone = relationship("Zone", foreign_keys=[delivery_zone_id], lazy="selectin")
