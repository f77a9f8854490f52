"""Zone router — pickup/delivery zone administration.

Endpoints:
    GET    /api/zones/                             List zones (filter by type/country)
    POST   /api/zones/                             Create zone
    GET    /api/zones/for-producer/{producer_id}   Producer's pickup zone + reachable delivery zones
    GET    /api/zones/{zone_id}                    Single zone
    PATCH  /api/zones/{zone_id}                    Update zone
    DELETE /api/zones/{zone_id}                    Delete an unused zone
"""

import logging

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.auth.deps import require_admin
from vinepallet.database import get_db
from vinepallet.middleware.exceptions import BusinessLogicError, ResourceNotFoundError
from vinepallet.models.pallet import Pallet
from vinepallet.models.producer import Producer
from vinepallet.models.zone import Zone
from vinepallet.schemas.zone import ProducerZonesOut, ZoneCreate, ZoneOut, ZoneUpdate

logger = logging.getLogger(__name__)

router = APIRouter()


async def _get_zone(db: AsyncSession, zone_id: str) -> Zone:
    zone = (await db.execute(select(Zone).where(Zone.id == zone_id))).scalar_one_or_none()
    if not zone:
        raise ResourceNotFoundError("Zone", zone_id)
    return zone


@router.get("/", response_model=list[ZoneOut])
async def list_zones(
    zone_type: str | None = Query(None),
    country_code: str | None = Query(None, min_length=2, max_length=2),
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    stmt = select(Zone)
    if zone_type:
        stmt = stmt.where(Zone.zone_type == zone_type)
    if country_code:
        stmt = stmt.where(Zone.country_code == country_code.upper())
    result = await db.execute(stmt.order_by(Zone.zone_type, Zone.name))
    return [ZoneOut.model_validate(z) for z in result.scalars().all()]


@router.post("/", response_model=ZoneOut, status_code=status.HTTP_201_CREATED)
async def create_zone(
    body: ZoneCreate,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    zone = Zone(**body.model_dump())
    db.add(zone)
    await db.flush()
    logger.info("Created %s zone %s (%s)", zone.zone_type, zone.name, zone.id)
    return ZoneOut.model_validate(zone)


@router.get("/for-producer/{producer_id}", response_model=ProducerZonesOut)
async def zones_for_producer(
    producer_id: str,
    db: AsyncSession = Depends(get_db),
):
    """The producer's pickup zone and the delivery zones its pallets serve.

    Delivery zones come from pallets on the pickup zone that still take
    bookings, so the list shows where the producer's wine can ship today.
    """
    producer = (
        await db.execute(select(Producer).where(Producer.id == producer_id))
    ).scalar_one_or_none()
    if not producer:
        raise ResourceNotFoundError("Producer", producer_id)

    if not producer.pickup_zone_id:
        return ProducerZonesOut(producer_id=producer.id, pickup_zone=None, delivery_zones=[])

    result = await db.execute(
        select(Zone)
        .where(
            Zone.id.in_(
                select(Pallet.delivery_zone_id).where(
                    Pallet.pickup_zone_id == producer.pickup_zone_id,
                    Pallet.is_complete == False,  # noqa: E712
                    Pallet.status == "open",
                )
            )
        )
        .order_by(Zone.name)
    )
    return ProducerZonesOut(
        producer_id=producer.id,
        pickup_zone=ZoneOut.model_validate(producer.pickup_zone) if producer.pickup_zone else None,
        delivery_zones=[ZoneOut.model_validate(z) for z in result.scalars().all()],
    )


@router.get("/{zone_id}", response_model=ZoneOut)
async def get_zone(
    zone_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    return ZoneOut.model_validate(await _get_zone(db, zone_id))


@router.patch("/{zone_id}", response_model=ZoneOut)
async def update_zone(
    zone_id: str,
    body: ZoneUpdate,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    zone = await _get_zone(db, zone_id)
    for field, value in body.model_dump(exclude_unset=True).items():
        if field == "country_code" and value:
            value = value.upper()
        setattr(zone, field, value)

    if (zone.center_lat is None) != (zone.center_lon is None):
        raise BusinessLogicError(
            "center_lat and center_lon must be set together",
            error_code="ZONE_CENTER_INCOMPLETE",
        )
    await db.flush()
    return ZoneOut.model_validate(zone)


@router.delete("/{zone_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_zone(
    zone_id: str,
    db: AsyncSession = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    """Delete a zone no pallet or producer refers to."""
    zone = await _get_zone(db, zone_id)

    pallet_ref = await db.scalar(
        select(Pallet.id).where(
            or_(Pallet.pickup_zone_id == zone.id, Pallet.delivery_zone_id == zone.id)
        ).limit(1)
    )
    producer_ref = await db.scalar(
        select(Producer.id).where(Producer.pickup_zone_id == zone.id).limit(1)
    )
    if pallet_ref or producer_ref:
        raise BusinessLogicError(
            f"Zone {zone.name} is still used by pallets or producers",
            error_code="ZONE_IN_USE",
        )

    await db.delete(zone)
    await db.flush()
    logger.info("Deleted zone %s (%s)", zone.name, zone.id)
