"""Zone matcher — maps a cart and a delivery address onto zones and pallets.

Algorithm:
    1. Each cart item resolves to its producer's pickup zone.  Unknown
       wines and producers without a pickup zone are reported as
       unassignable, never dropped.
    2. Items are grouped by pickup zone.  A pallet carries exactly one
       pickup zone, so every group is matched on its own.
    3. The address resolves to a point (client coordinates, geocoder, city
       table).  Delivery zones match by inclusive haversine radius; without
       a point, by country code and postcode prefix.
    4. For each group, matching delivery zones are tried nearest first;
       the first one with eligible pallets wins.  Eligible pallets are
       incomplete, undispatched, and ordered by `pallet_candidate_sort_key`.
    5. A group with no eligible pallet is a configuration gap
       (status "no_pallet"), not a user error.

Result statuses:
    matched        every item has a pallet
    partial        some groups/items cannot be fulfilled
    unfulfillable  zones are known but no group has a pallet
    undeterminable no delivery zone covers the address (or empty cart)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from vinepallet.models.pallet import DISPATCHED_STATUSES, Pallet
from vinepallet.models.producer import Wine
from vinepallet.models.zone import Zone
from vinepallet.schemas.checkout import DeliveryAddress
from vinepallet.services.geo import (
    GeoPoint,
    Geocoder,
    haversine_km,
    known_city_point,
    within_radius,
)
from vinepallet.services.pallet_capacity import (
    compute_fill_percentage,
    remaining_capacity,
    reserved_bottles_by_pallet,
)

logger = logging.getLogger(__name__)


# ── Result structures ────────────────────────────────────────

@dataclass
class MatchItem:
    wine_id: str
    quantity: int
    line_id: str | None = None


@dataclass
class DeliveryZoneOption:
    id: str
    name: str
    center_lat: float | None
    center_lon: float | None
    radius_km: float | None
    distance_km: float | None = None


@dataclass
class PalletCandidate:
    id: str
    name: str
    current_bottles: int
    max_bottles: int
    remaining_bottles: int
    percent_filled: int | None
    status: str
    created_at: datetime
    pickup_zone_name: str = ""
    delivery_zone_name: str = ""


@dataclass
class UnassignableItem:
    wine_id: str
    quantity: int
    reason: str  # unknown_wine | no_pickup_zone
    line_id: str | None = None
    producer_id: str | None = None


@dataclass
class PickupGroupMatch:
    pickup_zone_id: str
    pickup_zone_name: str
    items: list[MatchItem] = field(default_factory=list)
    delivery_zone_id: str | None = None
    delivery_zone_name: str | None = None
    pallets: list[PalletCandidate] = field(default_factory=list)
    status: str = "no_pallet"  # matched | no_pallet

    @property
    def bottles(self) -> int:
        return sum(item.quantity for item in self.items)


@dataclass
class ZoneMatchResult:
    status: str
    pickup_zone_id: str | None = None
    delivery_zone_id: str | None = None
    pickup_zone_name: str | None = None
    delivery_zone_name: str | None = None
    available_delivery_zones: list[DeliveryZoneOption] = field(default_factory=list)
    pallets: list[PalletCandidate] = field(default_factory=list)
    groups: list[PickupGroupMatch] = field(default_factory=list)
    unassignable_items: list[UnassignableItem] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def can_checkout(self) -> bool:
        return self.status == "matched"


# ── Pure matching rules ──────────────────────────────────────

def pallet_candidate_sort_key(candidate: PalletCandidate) -> tuple:
    """Fullest pallet first, then oldest, then id.

    Filling an existing pallet before starting another keeps the number of
    open pallets per route low.
    """
    pct = candidate.percent_filled if candidate.percent_filled is not None else -1
    return (-pct, candidate.created_at, candidate.id)


def is_eligible_pallet(pallet: Pallet) -> bool:
    return (
        not pallet.is_complete
        and pallet.status not in DISPATCHED_STATUSES
        and (pallet.bottle_capacity or 0) > 0
    )


def postal_match(zone: Zone, address: DeliveryAddress) -> bool:
    """Country code (and optional postcode prefix) fallback test."""
    if not zone.country_code or not address.country_code:
        return False
    if zone.country_code.upper() != address.country_code.upper():
        return False
    prefixes = zone.postcode_prefixes or []
    if not prefixes:
        return True
    postcode = (address.postcode or "").replace(" ", "")
    return any(postcode.startswith(str(p).replace(" ", "")) for p in prefixes)


def match_delivery_zones(
    zones: Iterable[Zone],
    point: GeoPoint | None,
    address: DeliveryAddress,
) -> list[DeliveryZoneOption]:
    """Return delivery zones covering the address, nearest first."""
    matches: list[DeliveryZoneOption] = []
    for zone in zones:
        if zone.zone_type != "delivery":
            continue
        distance: float | None = None
        if point is not None:
            if zone.center_lat is None or zone.center_lon is None or zone.radius_km is None:
                continue
            center = GeoPoint(zone.center_lat, zone.center_lon)
            if not within_radius(point, center, zone.radius_km):
                continue
            distance = haversine_km(point, center)
        elif not postal_match(zone, address):
            continue
        matches.append(DeliveryZoneOption(
            id=zone.id,
            name=zone.name,
            center_lat=zone.center_lat,
            center_lon=zone.center_lon,
            radius_km=zone.radius_km,
            distance_km=round(distance, 3) if distance is not None else None,
        ))

    matches.sort(key=lambda z: (z.distance_km if z.distance_km is not None else 0.0, z.name))
    return matches


def build_candidates(
    pallets: Iterable[Pallet],
    reserved: dict[str, int],
    pickup_zone_name: str = "",
    delivery_zone_name: str = "",
) -> list[PalletCandidate]:
    """Eligible pallets as candidates, best first."""
    candidates = []
    for pallet in pallets:
        if not is_eligible_pallet(pallet):
            continue
        current = reserved.get(pallet.id, 0)
        candidates.append(PalletCandidate(
            id=pallet.id,
            name=pallet.name,
            current_bottles=current,
            max_bottles=pallet.bottle_capacity,
            remaining_bottles=remaining_capacity(current, pallet.bottle_capacity),
            percent_filled=compute_fill_percentage(current, pallet.bottle_capacity, pallet.status),
            status=pallet.status,
            created_at=pallet.created_at,
            pickup_zone_name=pickup_zone_name,
            delivery_zone_name=delivery_zone_name,
        ))
    candidates.sort(key=pallet_candidate_sort_key)
    return candidates


# ── Address resolution ───────────────────────────────────────

async def resolve_address_point(
    address: DeliveryAddress,
    geocoder: Geocoder | None = None,
) -> GeoPoint | None:
    if address.lat is not None and address.lon is not None:
        return GeoPoint(address.lat, address.lon)

    if geocoder is not None:
        parts = [address.street, f"{address.postcode or ''} {address.city or ''}".strip(), address.country_code]
        query = ", ".join(p for p in parts if p)
        point = await geocoder.geocode(query)
        if point is not None:
            return point

    return known_city_point(address.city, address.country_code)


# ── Orchestration ────────────────────────────────────────────

async def _load_wines(db: AsyncSession, wine_ids: list[str]) -> dict[str, Wine]:
    if not wine_ids:
        return {}
    result = await db.execute(select(Wine).where(Wine.id.in_(wine_ids)))
    return {wine.id: wine for wine in result.scalars().all()}


async def _load_delivery_zones(db: AsyncSession, country_code: str | None) -> list[Zone]:
    query = select(Zone).where(Zone.zone_type == "delivery")
    if country_code:
        query = query.where(
            (Zone.country_code == country_code.upper()) | (Zone.country_code.is_(None))
        )
    result = await db.execute(query.order_by(Zone.name))
    return list(result.scalars().all())


def group_by_pickup_zone(
    items: list[MatchItem],
    wines: dict[str, Wine],
) -> tuple[dict[str, PickupGroupMatch], list[UnassignableItem]]:
    """Split items into pickup-zone groups (cart order kept) and unassignables."""
    groups: dict[str, PickupGroupMatch] = {}
    unassignable: list[UnassignableItem] = []

    for item in items:
        wine = wines.get(item.wine_id)
        if wine is None:
            unassignable.append(UnassignableItem(
                wine_id=item.wine_id, quantity=item.quantity,
                reason="unknown_wine", line_id=item.line_id,
            ))
            continue
        producer = wine.producer
        if producer is None or not producer.pickup_zone_id:
            unassignable.append(UnassignableItem(
                wine_id=item.wine_id, quantity=item.quantity,
                reason="no_pickup_zone", line_id=item.line_id,
                producer_id=wine.producer_id,
            ))
            continue

        group = groups.get(producer.pickup_zone_id)
        if group is None:
            zone = producer.pickup_zone
            group = PickupGroupMatch(
                pickup_zone_id=producer.pickup_zone_id,
                pickup_zone_name=zone.name if zone else "",
            )
            groups[producer.pickup_zone_id] = group
        group.items.append(item)

    return groups, unassignable


async def determine_zones(
    db: AsyncSession,
    items: list[MatchItem],
    address: DeliveryAddress,
    geocoder: Geocoder | None = None,
) -> ZoneMatchResult:
    """Determine pickup groups, delivery zone, and candidate pallets for a cart."""
    if not items:
        return ZoneMatchResult(status="undeterminable", errors=["Cart is empty"])

    wines = await _load_wines(db, list({item.wine_id for item in items}))
    groups, unassignable = group_by_pickup_zone(items, wines)

    errors: list[str] = []
    for item in unassignable:
        if item.reason == "unknown_wine":
            errors.append(f"Wine {item.wine_id} is not available")
        else:
            errors.append(f"Wine {item.wine_id} has no pickup zone configured")

    point = await resolve_address_point(address, geocoder)
    # Radius zones may cross borders; country narrows the postal fallback only
    zones = await _load_delivery_zones(db, address.country_code if point is None else None)
    matching = match_delivery_zones(zones, point, address)

    if address.delivery_zone_id:
        selected = [z for z in matching if z.id == address.delivery_zone_id]
        if not selected:
            errors.append("Selected delivery zone does not cover this address")
        matching_for_pallets = selected
    else:
        matching_for_pallets = matching

    if not matching_for_pallets:
        if point is None:
            logger.info(
                "Zones undeterminable for %s %s (%s): no coordinates and no postal match",
                address.postcode, address.city, address.country_code,
            )
        errors.append("No delivery zone covers this address")
        first = next(iter(groups.values()), None)
        return ZoneMatchResult(
            status="undeterminable",
            pickup_zone_id=first.pickup_zone_id if first else None,
            pickup_zone_name=first.pickup_zone_name if first else None,
            available_delivery_zones=matching,
            groups=list(groups.values()),
            unassignable_items=unassignable,
            errors=errors,
        )

    # One query for every (pickup, delivery) pair we may need
    pallets: list[Pallet] = []
    if groups:
        pallet_result = await db.execute(
            select(Pallet).where(
                Pallet.pickup_zone_id.in_(list(groups.keys())),
                Pallet.delivery_zone_id.in_([z.id for z in matching_for_pallets]),
                Pallet.is_complete == False,  # noqa: E712
                Pallet.status.not_in(DISPATCHED_STATUSES),
            )
        )
        pallets = list(pallet_result.scalars().all())
    reserved = await reserved_bottles_by_pallet(db, [p.id for p in pallets])

    for group in groups.values():
        for zone in matching_for_pallets:
            route = [
                p for p in pallets
                if p.pickup_zone_id == group.pickup_zone_id and p.delivery_zone_id == zone.id
            ]
            candidates = build_candidates(route, reserved, group.pickup_zone_name, zone.name)
            if candidates:
                group.delivery_zone_id = zone.id
                group.delivery_zone_name = zone.name
                group.pallets = candidates
                group.status = "matched"
                break
        else:
            nearest = matching_for_pallets[0]
            group.delivery_zone_id = nearest.id
            group.delivery_zone_name = nearest.name
            logger.warning(
                "No open pallet for route %s → %s",
                group.pickup_zone_name or group.pickup_zone_id, nearest.name,
            )
            errors.append(
                f"No open pallet from {group.pickup_zone_name or group.pickup_zone_id} "
                f"to {nearest.name}"
            )

    matched_groups = [g for g in groups.values() if g.status == "matched"]
    if matched_groups and len(matched_groups) == len(groups) and not unassignable:
        status = "matched"
    elif matched_groups:
        status = "partial"
    else:
        status = "unfulfillable"

    first = next(iter(groups.values()), None)
    return ZoneMatchResult(
        status=status,
        pickup_zone_id=first.pickup_zone_id if first else None,
        pickup_zone_name=first.pickup_zone_name if first else None,
        delivery_zone_id=first.delivery_zone_id if first else matching_for_pallets[0].id,
        delivery_zone_name=first.delivery_zone_name if first else matching_for_pallets[0].name,
        available_delivery_zones=matching,
        pallets=first.pallets if first else [],
        groups=list(groups.values()),
        unassignable_items=unassignable,
        errors=errors,
    )
