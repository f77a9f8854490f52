"""Checkout router — zone determination for the storefront.

Endpoints:
    POST   /api/checkout/zones   Pickup groups, delivery zone, and pallets for a cart
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.database import get_db
from vinepallet.schemas.checkout import ZoneMatchOut, ZonesRequest
from vinepallet.services.geo import Geocoder, get_geocoder
from vinepallet.services.policy import ErrorPolicy, run_with_policy
from vinepallet.services.zone_matching import MatchItem, determine_zones

router = APIRouter()


@router.post("/zones", response_model=ZoneMatchOut)
async def checkout_zones(
    body: ZonesRequest,
    db: AsyncSession = Depends(get_db),
    geocoder: Geocoder = Depends(get_geocoder),
):
    """Determine where the cart ships from and to.

    Business outcomes (no covering zone, no open pallet) come back as a
    200 with a status and human-readable errors.  An unexpected failure
    blocks checkout with 503.
    """
    items = [
        MatchItem(wine_id=line.wine_id, quantity=line.quantity, line_id=line.id)
        for line in body.cart_items
    ]
    result = await run_with_policy(
        lambda: determine_zones(db, items, body.delivery_address, geocoder),
        ErrorPolicy.FAIL_CLOSED,
        label="zone determination",
    )
    return ZoneMatchOut.model_validate(result)
