"""Pytest configuration and fixtures for VinePallet tests.

The app runs against an in-memory SQLite database (aiosqlite) with one
shared session: fixtures seed through `db_session` and requests see the
same data through the overridden `get_db`.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("COMPLETION_SWEEP_ENABLED", "false")
os.environ.setdefault("DEBUG", "false")

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from vinepallet.auth.jwt import create_access_token
from vinepallet.database import Base, get_db
from vinepallet.main import app
from vinepallet.models.cart import CartItem
from vinepallet.models.pallet import Pallet
from vinepallet.models.producer import Producer, ProducerGroup, ProducerGroupMember, Wine
from vinepallet.models.reservation import OrderReservation, OrderReservationItem
from vinepallet.models.zone import Zone
from vinepallet.services.geo import GeoPoint, get_geocoder
from vinepallet.utils.validation_cache import ValidationCache


# ── Test Database Setup ──────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
        await session.rollback()


class FakeGeocoder:
    """Geocoder stand-in: returns points from a dict keyed by lower-cased query."""

    def __init__(self, points: dict[str, GeoPoint] | None = None, error: Exception | None = None):
        self.points = points or {}
        self.error = error
        self.queries: list[str] = []

    async def geocode(self, query: str) -> GeoPoint | None:
        self.queries.append(query)
        if self.error:
            raise self.error
        return self.points.get(query.lower())

    async def aclose(self) -> None:
        pass


@pytest.fixture
def geocoder() -> FakeGeocoder:
    return FakeGeocoder()


@pytest.fixture
def validation_cache() -> ValidationCache:
    return ValidationCache(ttl_seconds=5.0, max_entries=100)


@pytest_asyncio.fixture
async def client(db_session, geocoder, validation_cache) -> AsyncGenerator[AsyncClient, None]:
    """Test client with overridden database and geocoder dependencies.

    ASGITransport does not run the lifespan, so app.state is set here.
    """

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.state.validation_cache = validation_cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# ── Auth ─────────────────────────────────────────────────────────

@pytest.fixture
def admin_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id='admin-1', role='admin')}"}


@pytest.fixture
def customer_headers() -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id='cust-1', role='customer')}"}


@pytest.fixture
def cart_headers() -> dict:
    return {"X-Cart-Id": "cart-test-1"}


# ── Test Data ────────────────────────────────────────────────────

STOCKHOLM = GeoPoint(59.3293, 18.0686)


@pytest_asyncio.fixture
async def world(db_session: AsyncSession) -> SimpleNamespace:
    """Languedoc and Rioja pickup zones, Stockholm and Gothenburg delivery zones.

    One open Languedoc → Stockholm pallet with 24 bottles of capacity.
    """
    languedoc = Zone(name="Languedoc", zone_type="pickup",
                     center_lat=43.61, center_lon=3.88, radius_km=150, country_code="FR")
    rioja = Zone(name="Rioja", zone_type="pickup",
                 center_lat=42.47, center_lon=-2.45, radius_km=100, country_code="ES")
    stockholm = Zone(name="Stockholm", zone_type="delivery",
                     center_lat=STOCKHOLM.lat, center_lon=STOCKHOLM.lon, radius_km=50,
                     country_code="SE", postcode_prefixes=["1"])
    gothenburg = Zone(name="Gothenburg", zone_type="delivery",
                      center_lat=57.7089, center_lon=11.9746, radius_km=40,
                      country_code="SE", postcode_prefixes=["4"])
    db_session.add_all([languedoc, rioja, stockholm, gothenburg])
    await db_session.flush()

    domaine_a = Producer(name="Domaine Alpha", pickup_zone_id=languedoc.id)
    domaine_b = Producer(name="Domaine Beta", pickup_zone_id=languedoc.id,
                         order_rule="minimum", order_quantity=12)
    bodega = Producer(name="Bodega Gamma", pickup_zone_id=rioja.id)
    orphan = Producer(name="Clos Orphelin", pickup_zone_id=None)
    db_session.add_all([domaine_a, domaine_b, bodega, orphan])
    await db_session.flush()

    red = Wine(producer_id=domaine_a.id, wine_name="Alpha Rouge")
    white = Wine(producer_id=domaine_a.id, wine_name="Alpha Blanc")
    beta = Wine(producer_id=domaine_b.id, wine_name="Beta Cuvée")
    tempranillo = Wine(producer_id=bodega.id, wine_name="Gamma Tempranillo")
    lost = Wine(producer_id=orphan.id, wine_name="Orphelin Rosé")
    db_session.add_all([red, white, beta, tempranillo, lost])

    pallet = Pallet(
        name="Languedoc → Stockholm #1",
        pickup_zone_id=languedoc.id,
        delivery_zone_id=stockholm.id,
        bottle_capacity=24,
        cost_cents=480_00,
        created_at=datetime.utcnow() - timedelta(days=3),
    )
    db_session.add(pallet)
    await db_session.flush()

    return SimpleNamespace(
        languedoc=languedoc, rioja=rioja, stockholm=stockholm, gothenburg=gothenburg,
        domaine_a=domaine_a, domaine_b=domaine_b, bodega=bodega, orphan=orphan,
        red=red, white=white, beta=beta, tempranillo=tempranillo, lost=lost,
        pallet=pallet,
    )


async def add_reservation(
    db: AsyncSession,
    pallet: Pallet,
    wine: Wine,
    quantity: int,
    status: str = "placed",
) -> OrderReservation:
    """Book `quantity` bottles of `wine` on `pallet` directly in the database."""
    reservation = OrderReservation(
        cart_id=f"seed-{quantity}-{status}",
        pallet_id=pallet.id,
        pickup_zone_id=pallet.pickup_zone_id,
        delivery_zone_id=pallet.delivery_zone_id,
        status=status,
    )
    db.add(reservation)
    await db.flush()
    db.add(OrderReservationItem(reservation_id=reservation.id, wine_id=wine.id, quantity=quantity))
    await db.flush()
    return reservation


async def add_cart_line(db: AsyncSession, cart_id: str, wine: Wine, quantity: int) -> CartItem:
    item = CartItem(cart_id=cart_id, wine_id=wine.id, quantity=quantity)
    db.add(item)
    await db.flush()
    return item


async def add_group(db: AsyncSession, name: str, *producers: Producer) -> ProducerGroup:
    group = ProducerGroup(name=name)
    db.add(group)
    await db.flush()
    for producer in producers:
        db.add(ProducerGroupMember(group_id=group.id, producer_id=producer.id))
    await db.flush()
    return group
