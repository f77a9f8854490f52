"""Geographic helpers — distances, zone membership, and geocoding.

Address resolution order:
    1. coordinates sent by the client
    2. the Nominatim-compatible geocoder (results cached in Redis)
    3. a small table of Swedish delivery cities
If none yields a point, zone matching falls back to country/postcode rules.
"""

import logging
import math
from dataclasses import dataclass

import httpx
from fastapi import Request

from vinepallet.config import settings
from vinepallet.utils.cache import cache_get_json, cache_key, cache_set_json

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0

# (country, lower-cased city) → (lat, lon)
KNOWN_CITIES: dict[tuple[str, str], tuple[float, float]] = {
    ("SE", "stockholm"): (59.3293, 18.0686),
    ("SE", "karlstad"): (59.3793, 13.5036),
    ("SE", "gothenburg"): (57.7089, 11.9746),
    ("SE", "göteborg"): (57.7089, 11.9746),
    ("SE", "malmö"): (55.6050, 13.0038),
    ("SE", "uppsala"): (59.8586, 17.6389),
    ("SE", "västerås"): (59.6162, 16.5528),
    ("SE", "örebro"): (59.2741, 15.2066),
    ("SE", "linköping"): (58.4108, 15.6214),
    ("SE", "helsingborg"): (56.0465, 12.6945),
    ("SE", "jönköping"): (57.7826, 14.1618),
}


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance between two points in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat))
        * math.sin(d_lon / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def within_radius(point: GeoPoint, center: GeoPoint, radius_km: float) -> bool:
    """Inclusive radius test: a point exactly on the boundary is inside."""
    if radius_km is None or radius_km < 0:
        return False
    return haversine_km(point, center) <= radius_km


def known_city_point(city: str | None, country_code: str | None) -> GeoPoint | None:
    if not city or not country_code:
        return None
    coords = KNOWN_CITIES.get((country_code.upper(), city.strip().lower()))
    return GeoPoint(*coords) if coords else None


# ── Geocoder ─────────────────────────────────────────────────

class Geocoder:
    """Async client for a Nominatim-style `/search?format=json` endpoint.

    Returns None (never raises) when the provider fails or finds nothing,
    so callers can fall back to postal matching.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        base_url: str | None = None,
        countries: str | None = None,
        user_agent: str | None = None,
        cache_ttl: int | None = None,
    ):
        self._client = client or httpx.AsyncClient(
            timeout=settings.geocoder_timeout_seconds
        )
        self.base_url = base_url or settings.geocoder_url
        self.countries = countries if countries is not None else settings.geocoder_countries
        self.user_agent = user_agent or settings.geocoder_user_agent
        self.cache_ttl = settings.geocode_cache_ttl if cache_ttl is None else cache_ttl

    async def geocode(self, query: str) -> GeoPoint | None:
        query = " ".join(query.split())
        if not query:
            return None

        key = f"geocode:{cache_key(query.lower())}"
        if self.cache_ttl:
            cached = await cache_get_json(key)
            if cached:
                return GeoPoint(cached["lat"], cached["lon"])

        params = {
            "format": "json",
            "q": query,
            "limit": 1,
            "addressdetails": 1,
            "accept-language": "en",
        }
        if self.countries:
            params["countrycodes"] = self.countries

        try:
            response = await self._client.get(
                self.base_url,
                params=params,
                headers={"User-Agent": self.user_agent, "Accept": "application/json"},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Geocoding failed for %r: %s", query, e)
            return None

        if not data:
            logger.info("No geocoding results for %r", query)
            return None

        try:
            point = GeoPoint(float(data[0]["lat"]), float(data[0]["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed geocoding result for %r", query)
            return None

        if self.cache_ttl:
            await cache_set_json(key, {"lat": point.lat, "lon": point.lon}, self.cache_ttl)
        return point

    async def aclose(self) -> None:
        await self._client.aclose()


def get_geocoder(request: Request) -> Geocoder:
    """FastAPI dependency: the app-owned geocoder."""
    return request.app.state.geocoder
