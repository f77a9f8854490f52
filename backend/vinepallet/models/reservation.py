"""Order reservations — bottles booked onto a pallet.

A reservation belongs to one cart checkout and one pallet; its items hold
the per-wine quantities.  Reservations in an ACTIVE status count towards
the pallet's reserved bottles.

Lifecycle:  placed → pending_payment → confirmed
            (any) → cancelled
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from vinepallet.database import Base

ACTIVE_RESERVATION_STATUSES = ("placed", "pending_payment", "confirmed")


class OrderReservation(Base):
    __tablename__ = "order_reservations"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    cart_id: Mapped[str | None] = mapped_column(String(64), index=True)
    pallet_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("pallets.id"), index=True
    )
    pickup_zone_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("pallet_zones.id")
    )
    delivery_zone_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("pallet_zones.id")
    )

    # placed | pending_payment | confirmed | cancelled
    status: Mapped[str] = mapped_column(String(30), default="placed", index=True)
    payment_deadline: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    items = relationship(
        "OrderReservationItem", back_populates="reservation", lazy="selectin"
    )


class OrderReservationItem(Base):
    __tablename__ = "order_reservation_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    reservation_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("order_reservations.id"), nullable=False, index=True
    )
    wine_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("wines.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    reservation = relationship("OrderReservation", back_populates="items")
