"""Reservation router — books the current cart onto a pallet.

Endpoints:
    POST   /api/reservations/   Reserve the cart on a pallet
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.auth.deps import get_cart_id
from vinepallet.database import get_db
from vinepallet.schemas.pallet import CompletionResult
from vinepallet.schemas.reservation import ReservationCreate, ReservationOut, ReservationResult
from vinepallet.services.reservations import reserve_cart
from vinepallet.utils.validation_cache import ValidationCache, get_validation_cache

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/", response_model=ReservationResult, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    body: ReservationCreate,
    db: AsyncSession = Depends(get_db),
    cart_id: str = Depends(get_cart_id),
    cache: ValidationCache = Depends(get_validation_cache),
):
    """Reserve every cart line on the chosen pallet.

    The response carries the pallet's fill state after the booking; when
    this reservation filled the pallet, `pallet.was_completed` is true and
    the reservation is already `pending_payment`.
    """
    outcome = await reserve_cart(db, cart_id, body.pallet_id, cache)
    logger.info(
        "Reservation %s: %d bottle(s) on pallet %s (%s%% full)",
        outcome.reservation.id,
        sum(i.quantity for i in outcome.reservation.items),
        body.pallet_id,
        outcome.completion.percent_filled,
    )
    return ReservationResult(
        reservation=ReservationOut.model_validate(outcome.reservation),
        pallet=CompletionResult.model_validate(outcome.completion),
    )
