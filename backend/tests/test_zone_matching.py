"""Zone matcher tests: delivery zone lookup, pallet ranking, checkout API."""

from datetime import datetime, timedelta

import pytest
from httpx import AsyncClient

from vinepallet.models.pallet import Pallet
from vinepallet.models.zone import Zone
from vinepallet.schemas.checkout import DeliveryAddress
from vinepallet.services import zone_matching
from vinepallet.services.geo import GeoPoint
from vinepallet.services.zone_matching import (
    MatchItem,
    PalletCandidate,
    determine_zones,
    match_delivery_zones,
    pallet_candidate_sort_key,
    postal_match,
)

from conftest import STOCKHOLM, add_reservation

STOCKHOLM_ADDRESS = {
    "street": "Drottninggatan 1",
    "postcode": "111 51",
    "city": "Stockholm",
    "country_code": "SE",
}


def _candidate(id: str, pct: int | None, age_days: int) -> PalletCandidate:
    return PalletCandidate(
        id=id, name=id, current_bottles=0, max_bottles=24, remaining_bottles=24,
        percent_filled=pct, status="open",
        created_at=datetime(2026, 1, 1) - timedelta(days=age_days),
    )


@pytest.mark.unit
class TestPureRules:

    def test_fullest_pallet_first(self):
        ranked = sorted(
            [_candidate("a", 10, 0), _candidate("b", 80, 0), _candidate("c", 50, 0)],
            key=pallet_candidate_sort_key,
        )
        assert [c.id for c in ranked] == ["b", "c", "a"]

    def test_ties_go_to_oldest_then_id(self):
        ranked = sorted(
            [_candidate("z", 50, 1), _candidate("y", 50, 5), _candidate("x", 50, 1)],
            key=pallet_candidate_sort_key,
        )
        assert [c.id for c in ranked] == ["y", "x", "z"]

    def test_unknown_fill_sorts_last(self):
        ranked = sorted(
            [_candidate("none", None, 9), _candidate("empty", 0, 0)],
            key=pallet_candidate_sort_key,
        )
        assert [c.id for c in ranked] == ["empty", "none"]

    def test_postal_match_by_prefix(self):
        zone = Zone(name="Stockholm", zone_type="delivery", country_code="SE",
                    postcode_prefixes=["11", "12"])
        assert postal_match(zone, DeliveryAddress(postcode="111 51", country_code="SE"))
        assert not postal_match(zone, DeliveryAddress(postcode="411 01", country_code="SE"))
        assert not postal_match(zone, DeliveryAddress(postcode="111 51", country_code="NO"))

    def test_postal_match_whole_country(self):
        zone = Zone(name="Sweden", zone_type="delivery", country_code="SE")
        assert postal_match(zone, DeliveryAddress(postcode="981 00", country_code="se"))

    def test_nearest_zone_first(self):
        wide = Zone(id="wide", name="Svealand", zone_type="delivery",
                    center_lat=59.6, center_lon=16.5, radius_km=300)
        city = Zone(id="city", name="Stockholm", zone_type="delivery",
                    center_lat=STOCKHOLM.lat, center_lon=STOCKHOLM.lon, radius_km=50)
        far = Zone(id="far", name="Malmö", zone_type="delivery",
                   center_lat=55.605, center_lon=13.0038, radius_km=50)
        matches = match_delivery_zones([wide, city, far], STOCKHOLM, DeliveryAddress())
        assert [m.id for m in matches] == ["city", "wide"]
        assert matches[0].distance_km == 0


@pytest.mark.asyncio
class TestDetermineZones:

    async def test_single_pickup_zone_matched(self, db_session, world):
        await add_reservation(db_session, world.pallet, world.red, 12)
        address = DeliveryAddress(**STOCKHOLM_ADDRESS, lat=59.33, lon=18.06)

        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)

        assert result.status == "matched"
        assert result.can_checkout is True
        assert result.pickup_zone_id == world.languedoc.id
        assert result.delivery_zone_id == world.stockholm.id
        [pallet] = result.pallets
        assert pallet.id == world.pallet.id
        assert pallet.current_bottles == 12
        assert pallet.remaining_bottles == 12
        assert pallet.percent_filled == 50

    async def test_city_table_when_no_coordinates(self, db_session, world):
        result = await determine_zones(
            db_session, [MatchItem(world.red.id, 6)], DeliveryAddress(**STOCKHOLM_ADDRESS)
        )
        assert result.status == "matched"
        assert result.available_delivery_zones[0].id == world.stockholm.id

    async def test_geocoder_is_consulted(self, db_session, world, geocoder):
        geocoder.points["vasagatan 2, 111 20 somewhere, se"] = STOCKHOLM
        address = DeliveryAddress(street="Vasagatan 2", postcode="111 20",
                                  city="Somewhere", country_code="SE")
        result = await determine_zones(
            db_session, [MatchItem(world.red.id, 6)], address, geocoder
        )
        assert geocoder.queries == ["Vasagatan 2, 111 20 Somewhere, SE"]
        assert result.status == "matched"

    async def test_postcode_fallback_without_any_point(self, db_session, world):
        address = DeliveryAddress(postcode="413 01", city="Unknown Town", country_code="SE")
        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)
        # Gothenburg covers postcode prefix 4 but has no pallet
        assert [z.id for z in result.available_delivery_zones] == [world.gothenburg.id]
        assert result.status == "unfulfillable"
        assert result.errors == ["No open pallet from Languedoc to Gothenburg"]

    async def test_no_zone_covers_address(self, db_session, world):
        address = DeliveryAddress(city="Tromsø", country_code="NO", lat=69.65, lon=18.96)
        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)
        assert result.status == "undeterminable"
        assert result.pickup_zone_id == world.languedoc.id
        assert "No delivery zone covers this address" in result.errors

    async def test_radius_zone_crosses_border(self, db_session, world):
        oresund = Zone(name="Øresund", zone_type="delivery",
                       center_lat=55.6761, center_lon=12.5683, radius_km=40,
                       country_code="DK")
        db_session.add(oresund)
        await db_session.flush()

        # Malmö is in Sweden, about 28 km from central Copenhagen
        address = DeliveryAddress(city="Malmö", country_code="SE", lat=55.605, lon=13.0038)
        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)
        assert [z.id for z in result.available_delivery_zones] == [oresund.id]

    async def test_postal_fallback_stays_in_country(self, db_session, world):
        db_session.add(Zone(name="Oslo", zone_type="delivery", center_lat=59.91,
                            center_lon=10.75, radius_km=30, country_code="NO",
                            postcode_prefixes=["4"]))
        await db_session.flush()

        address = DeliveryAddress(postcode="413 01", city="Unknown Town", country_code="SE")
        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)
        assert [z.id for z in result.available_delivery_zones] == [world.gothenburg.id]

    async def test_empty_cart(self, db_session, world):
        result = await determine_zones(db_session, [], DeliveryAddress(**STOCKHOLM_ADDRESS))
        assert result.status == "undeterminable"
        assert result.errors == ["Cart is empty"]

    async def test_multiple_pickup_zones_partial(self, db_session, world):
        items = [MatchItem(world.red.id, 6), MatchItem(world.tempranillo.id, 6)]
        result = await determine_zones(db_session, items, DeliveryAddress(**STOCKHOLM_ADDRESS))

        assert result.status == "partial"
        assert result.can_checkout is False
        by_zone = {g.pickup_zone_id: g for g in result.groups}
        assert by_zone[world.languedoc.id].status == "matched"
        assert by_zone[world.rioja.id].status == "no_pallet"
        assert by_zone[world.rioja.id].bottles == 6
        assert "No open pallet from Rioja to Stockholm" in result.errors

    async def test_unassignable_items_reported(self, db_session, world):
        items = [
            MatchItem(world.red.id, 6),
            MatchItem(world.lost.id, 6, line_id="l2"),
            MatchItem("no-such-wine", 1),
        ]
        result = await determine_zones(db_session, items, DeliveryAddress(**STOCKHOLM_ADDRESS))

        assert result.status == "partial"
        reasons = {u.wine_id: u.reason for u in result.unassignable_items}
        assert reasons == {world.lost.id: "no_pickup_zone", "no-such-wine": "unknown_wine"}

    async def test_complete_and_shipped_pallets_are_not_candidates(self, db_session, world):
        db_session.add_all([
            Pallet(name="Full", pickup_zone_id=world.languedoc.id,
                   delivery_zone_id=world.stockholm.id, bottle_capacity=24, is_complete=True),
            Pallet(name="Gone", pickup_zone_id=world.languedoc.id,
                   delivery_zone_id=world.stockholm.id, bottle_capacity=24, status="shipped"),
        ])
        await db_session.flush()

        result = await determine_zones(
            db_session, [MatchItem(world.red.id, 6)], DeliveryAddress(**STOCKHOLM_ADDRESS)
        )
        assert [p.id for p in result.pallets] == [world.pallet.id]

    async def test_fuller_pallet_ranked_first(self, db_session, world):
        newer = Pallet(name="Languedoc → Stockholm #2", pickup_zone_id=world.languedoc.id,
                       delivery_zone_id=world.stockholm.id, bottle_capacity=24)
        db_session.add(newer)
        await db_session.flush()
        await add_reservation(db_session, newer, world.red, 18)

        result = await determine_zones(
            db_session, [MatchItem(world.red.id, 6)], DeliveryAddress(**STOCKHOLM_ADDRESS)
        )
        assert [p.id for p in result.pallets] == [newer.id, world.pallet.id]

    async def test_selected_zone_must_cover_address(self, db_session, world):
        address = DeliveryAddress(**STOCKHOLM_ADDRESS, delivery_zone_id=world.gothenburg.id)
        result = await determine_zones(db_session, [MatchItem(world.red.id, 6)], address)
        assert result.status == "undeterminable"
        assert "Selected delivery zone does not cover this address" in result.errors


@pytest.mark.api
@pytest.mark.asyncio
class TestCheckoutZonesAPI:

    async def test_zones_endpoint(self, client: AsyncClient, world):
        resp = await client.post("/api/checkout/zones", json={
            "cartItems": [{"id": "l1", "wineId": world.red.id, "quantity": 6}],
            "deliveryAddress": {**STOCKHOLM_ADDRESS, "countryCode": "SE"},
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "matched"
        assert data["can_checkout"] is True
        assert data["pallets"][0]["id"] == world.pallet.id
        assert data["groups"][0]["items"][0]["line_id"] == "l1"
        assert resp.headers["cache-control"] == "no-store"

    async def test_business_outcome_is_200(self, client: AsyncClient, world):
        resp = await client.post("/api/checkout/zones", json={
            "cart_items": [{"wine_id": world.tempranillo.id, "quantity": 6}],
            "delivery_address": STOCKHOLM_ADDRESS,
        })
        assert resp.status_code == 200
        assert resp.json()["status"] == "unfulfillable"

    async def test_unexpected_failure_fails_closed(self, client: AsyncClient, world, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr("vinepallet.routers.checkout.determine_zones", broken)
        resp = await client.post("/api/checkout/zones", json={
            "cart_items": [{"wine_id": world.red.id, "quantity": 6}],
            "delivery_address": STOCKHOLM_ADDRESS,
        })
        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "ZONE_DETERMINATION_UNAVAILABLE"

    async def test_invalid_quantity_rejected(self, client: AsyncClient, world):
        resp = await client.post("/api/checkout/zones", json={
            "cart_items": [{"wine_id": world.red.id, "quantity": 0}],
            "delivery_address": STOCKHOLM_ADDRESS,
        })
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "VALIDATION_ERROR"
