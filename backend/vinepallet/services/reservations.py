"""Reservation service — books a cart onto a pallet.

Handles:
  - the six-bottle gate (fail-open, shared with GET /api/cart/validate)
  - pickup-zone and capacity checks against the chosen pallet
  - creating the reservation + items and emptying the cart
  - running the completion check, so the booking that fills a pallet
    also starts its payment window
"""

from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from vinepallet.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from vinepallet.models.cart import CartItem
from vinepallet.models.pallet import Pallet
from vinepallet.models.reservation import OrderReservation, OrderReservationItem
from vinepallet.services.cart_validation import CartLine, validate_cart
from vinepallet.services.pallet_capacity import (
    CompletionOutcome,
    check_pallet_completion,
    remaining_capacity,
    reserved_bottles,
)
from vinepallet.services.zone_matching import is_eligible_pallet
from vinepallet.utils.validation_cache import ValidationCache


@dataclass
class ReservationOutcome:
    reservation: OrderReservation
    completion: CompletionOutcome


async def load_cart_items(db: AsyncSession, cart_id: str) -> list[CartItem]:
    result = await db.execute(
        select(CartItem)
        .where(CartItem.cart_id == cart_id)
        .order_by(CartItem.created_at)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


def cart_lines(items: list[CartItem]) -> list[CartLine]:
    return [CartLine(line_id=i.id, wine_id=i.wine_id, quantity=i.quantity) for i in items]


async def reserve_cart(
    db: AsyncSession,
    cart_id: str,
    pallet_id: str,
    cache: ValidationCache | None = None,
) -> ReservationOutcome:
    """Reserve every bottle in the cart on `pallet_id`.

    Raises:
        ResourceNotFoundError if the pallet does not exist.
        BusinessLogicError for an empty cart, a closed pallet, a wine from
        another pickup zone, a six-bottle violation, or too few free bottles.
    """
    items = await load_cart_items(db, cart_id)
    if not items:
        raise BusinessLogicError("Cart is empty", error_code="CART_EMPTY")

    pallet = (
        await db.execute(select(Pallet).where(Pallet.id == pallet_id))
    ).scalar_one_or_none()
    if not pallet:
        raise ResourceNotFoundError("Pallet", pallet_id)
    if not is_eligible_pallet(pallet):
        raise BusinessLogicError(
            f"Pallet {pallet.name} is no longer taking reservations",
            error_code="PALLET_CLOSED",
        )

    # ── Pickup zone must match for every line ────────────────
    mismatched = [
        item.wine_id for item in items
        if item.wine is None
        or item.wine.producer is None
        or item.wine.producer.pickup_zone_id != pallet.pickup_zone_id
    ]
    if mismatched:
        raise BusinessLogicError(
            f"{len(mismatched)} wine(s) cannot ship on pallet {pallet.name}",
            error_code="PICKUP_ZONE_MISMATCH",
            details={"wine_ids": mismatched},
        )

    # ── Six-bottle rule ──────────────────────────────────────
    validation = await validate_cart(db, cart_lines(items), cache)
    if not validation.is_valid:
        raise BusinessLogicError(
            "Cart does not meet the six-bottle rule",
            error_code="SIX_BOTTLE_RULE",
            details={"errors": validation.errors},
        )

    # ── Capacity ─────────────────────────────────────────────
    bottles = sum(item.quantity for item in items)
    reserved = await reserved_bottles(db, pallet.id)
    available = remaining_capacity(reserved, pallet.bottle_capacity)
    if bottles > available:
        raise BusinessLogicError(
            f"Pallet {pallet.name} has only {available} bottle(s) left, "
            f"cannot reserve {bottles}",
            error_code="PALLET_CAPACITY_EXCEEDED",
        )

    reservation = OrderReservation(
        cart_id=cart_id,
        pallet_id=pallet.id,
        pickup_zone_id=pallet.pickup_zone_id,
        delivery_zone_id=pallet.delivery_zone_id,
        status="placed",
    )
    db.add(reservation)
    await db.flush()  # populate reservation.id

    for item in items:
        db.add(OrderReservationItem(
            reservation_id=reservation.id,
            wine_id=item.wine_id,
            quantity=item.quantity,
        ))
    await db.execute(delete(CartItem).where(CartItem.cart_id == cart_id))
    await db.flush()

    completion = await check_pallet_completion(db, pallet.id)
    # Reload with items and the status completion may have changed
    reservation = (
        await db.execute(
            select(OrderReservation)
            .where(OrderReservation.id == reservation.id)
            .options(selectinload(OrderReservation.items))
            .execution_options(populate_existing=True)
        )
    ).scalar_one()
    return ReservationOutcome(reservation=reservation, completion=completion)
