"""Reservation flow tests, including the pallet-filling checkout."""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from vinepallet.models.cart import CartItem
from vinepallet.models.reservation import OrderReservation

from conftest import add_cart_line, add_reservation

CART = "cart-test-1"


@pytest.mark.integration
@pytest.mark.asyncio
class TestLanguedocToStockholm:
    """A 24-bottle Languedoc → Stockholm pallet receiving a 6-bottle order."""

    async def test_order_that_fills_pallet_completes_it(
        self, client: AsyncClient, db_session, world, cart_headers
    ):
        earlier = await add_reservation(db_session, world.pallet, world.white, 18)
        await add_cart_line(db_session, CART, world.red, 6)

        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 201
        data = resp.json()

        assert data["pallet"]["reserved"] == 24
        assert data["pallet"]["percent_filled"] == 100
        assert data["pallet"]["was_completed"] is True
        assert data["pallet"]["reservations_updated"] == 2
        assert data["reservation"]["status"] == "pending_payment"
        assert data["reservation"]["payment_deadline"] is not None
        assert [i["quantity"] for i in data["reservation"]["items"]] == [6]

        assert world.pallet.is_complete is True
        assert world.pallet.status == "consolidating"
        status = await db_session.scalar(
            select(OrderReservation.status).where(OrderReservation.id == earlier.id)
        )
        assert status == "pending_payment"

    async def test_order_below_capacity_leaves_pallet_open(
        self, client: AsyncClient, db_session, world, cart_headers
    ):
        await add_reservation(db_session, world.pallet, world.white, 10)
        await add_cart_line(db_session, CART, world.red, 6)

        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 201
        data = resp.json()

        assert data["pallet"]["reserved"] == 16
        assert data["pallet"]["percent_filled"] == 67
        assert data["pallet"]["was_completed"] is False
        assert data["reservation"]["status"] == "placed"
        assert data["reservation"]["payment_deadline"] is None
        assert world.pallet.is_complete is False

    async def test_cart_is_emptied(self, client: AsyncClient, db_session, world, cart_headers):
        await add_cart_line(db_session, CART, world.red, 6)
        await client.post("/api/reservations/", headers=cart_headers,
                          json={"pallet_id": world.pallet.id})

        remaining = await db_session.scalar(
            select(CartItem.id).where(CartItem.cart_id == CART)
        )
        assert remaining is None


@pytest.mark.api
@pytest.mark.asyncio
class TestReservationRejections:

    async def test_empty_cart(self, client: AsyncClient, world, cart_headers):
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "CART_EMPTY"

    async def test_unknown_pallet(self, client: AsyncClient, db_session, world, cart_headers):
        await add_cart_line(db_session, CART, world.red, 6)
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": "missing"})
        assert resp.status_code == 404

    async def test_wrong_pickup_zone(self, client: AsyncClient, db_session, world, cart_headers):
        await add_cart_line(db_session, CART, world.tempranillo, 6)
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "PICKUP_ZONE_MISMATCH"
        assert error["details"]["wine_ids"] == [world.tempranillo.id]

    async def test_six_bottle_rule_enforced(self, client: AsyncClient, db_session, world, cart_headers):
        await add_cart_line(db_session, CART, world.red, 5)
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "SIX_BOTTLE_RULE"
        assert error["details"]["errors"] == ["Domaine Alpha: 5 bottles. Add 1 more for 6 total."]

    async def test_capacity_exceeded(self, client: AsyncClient, db_session, world, cart_headers):
        await add_reservation(db_session, world.pallet, world.white, 18)
        await add_cart_line(db_session, CART, world.red, 12)
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "PALLET_CAPACITY_EXCEEDED"

    async def test_complete_pallet_takes_no_bookings(
        self, client: AsyncClient, db_session, world, cart_headers
    ):
        world.pallet.is_complete = True
        await db_session.flush()
        await add_cart_line(db_session, CART, world.red, 6)
        resp = await client.post("/api/reservations/", headers=cart_headers,
                                 json={"pallet_id": world.pallet.id})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "PALLET_CLOSED"
