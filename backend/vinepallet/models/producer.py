"""Producer, producer groups, and wines.

A producer's wines can only travel on pallets whose pickup zone matches the
producer's `pickup_zone_id`.  Each producer carries its purchase rule
(`order_rule` + `order_quantity`, default: multiples of 6 bottles).
Producers in the same group pool their bottles for that rule.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vinepallet.database import Base

ORDER_RULES = ("multiple", "minimum", "none")


class Producer(Base):
    __tablename__ = "producers"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    region: Mapped[str | None] = mapped_column(String(255))
    country_code: Mapped[str | None] = mapped_column(String(2))
    lat: Mapped[float | None] = mapped_column(Float)
    lon: Mapped[float | None] = mapped_column(Float)

    pickup_zone_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("pallet_zones.id"), index=True
    )

    # ── Purchase rule ────────────────────────────────────────
    # multiple | minimum | none
    order_rule: Mapped[str] = mapped_column(String(20), default="multiple")
    order_quantity: Mapped[int] = mapped_column(Integer, default=6)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    # ── Relationships ────────────────────────────────────────
    pickup_zone = relationship("Zone", lazy="selectin")


class ProducerGroup(Base):
    """Producers that may combine bottles towards the six-bottle rule."""
    __tablename__ = "producer_groups"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    members = relationship(
        "ProducerGroupMember", back_populates="group", lazy="selectin"
    )


class ProducerGroupMember(Base):
    __tablename__ = "producer_group_members"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    group_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("producer_groups.id"), nullable=False, index=True
    )
    # A producer belongs to at most one group
    producer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("producers.id"), nullable=False, unique=True
    )

    group = relationship("ProducerGroup", back_populates="members")


class Wine(Base):
    __tablename__ = "wines"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    producer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("producers.id"), nullable=False, index=True
    )
    wine_name: Mapped[str] = mapped_column(String(255), nullable=False)
    vintage: Mapped[str | None] = mapped_column(String(10))
    base_price_cents: Mapped[int | None] = mapped_column(Integer)

    producer = relationship("Producer", lazy="selectin")
