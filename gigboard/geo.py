"""Locations and the distance estimator collaborator.

Road distances come from OpenRouteService when an API key is configured. Any
failure (timeout, HTTP error, malformed payload) falls back to the
great-circle distance, so :meth:`DistanceEstimator.distance_km` always
returns a number. Results are memoised per coordinate pair for the lifetime
of the process.
"""

import logging
import math
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import httpx

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
ORS_DIRECTIONS_URL = "https://api.openrouteservice.org/v2/directions/driving-car"
DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_CACHE_SIZE = 10_000


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(result) else result


@dataclass(frozen=True)
class GeoPoint:
    """A WGS84 coordinate."""

    lat: float
    lon: float

    def is_valid(self) -> bool:
        return -90 <= self.lat <= 90 and -180 <= self.lon <= 180

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["GeoPoint"]:
        """Build a point, or None when the payload has no usable coordinates."""
        if not data:
            return None
        lat = _as_float(data.get("lat"))
        lon = _as_float(data.get("lon"))
        if lat is None or lon is None:
            return None
        point = cls(lat=lat, lon=lon)
        return point if point.is_valid() else None


@dataclass(frozen=True)
class Address:
    """City and/or coordinates. Jobs need at least one of the two."""

    city: Optional[str] = None
    location: Optional[GeoPoint] = None

    def is_empty(self) -> bool:
        return not (self.city and self.city.strip()) and self.location is None

    def to_dict(self) -> dict:
        return {
            "city": self.city,
            "location": self.location.to_dict() if self.location else None,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Address":
        if not data:
            return cls()
        city = data.get("city")
        city = city.strip() if isinstance(city, str) and city.strip() else None
        return cls(city=city, location=GeoPoint.from_dict(data.get("location")))


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in kilometres."""
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


class DistanceEstimator:
    """Travel distance between two points with a deterministic fallback."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        cache_size: int = DEFAULT_CACHE_SIZE,
        base_url: str = ORS_DIRECTIONS_URL,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.base_url = base_url
        self._client = client
        self._cache: OrderedDict[tuple, float] = OrderedDict()
        self._cache_size = max(1, cache_size)
        self._cache_lock = threading.Lock()

    # === Cache ===

    @staticmethod
    def _cache_key(a: GeoPoint, b: GeoPoint) -> tuple:
        return (a.lat, a.lon, b.lat, b.lon)

    def _cache_get(self, key: tuple) -> Optional[float]:
        with self._cache_lock:
            if key not in self._cache:
                return None
            self._cache.move_to_end(key)
            return self._cache[key]

    def _cache_set(self, key: tuple, value: float) -> None:
        with self._cache_lock:
            self._cache[key] = value
            self._cache.move_to_end(key)
            while len(self._cache) > self._cache_size:
                self._cache.popitem(last=False)

    def cache_size(self) -> int:
        with self._cache_lock:
            return len(self._cache)

    def clear_cache(self) -> None:
        with self._cache_lock:
            self._cache.clear()

    # === Lookups ===

    def _road_distance_km(self, a: GeoPoint, b: GeoPoint) -> Optional[float]:
        """Ask OpenRouteService for a driving distance. None on any failure."""
        if not self.api_key:
            return None
        params = {
            "api_key": self.api_key,
            "start": f"{a.lon},{a.lat}",
            "end": f"{b.lon},{b.lat}",
        }
        try:
            if self._client is not None:
                response = self._client.get(self.base_url, params=params, timeout=self.timeout)
            else:
                response = httpx.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
            meters = payload["features"][0]["properties"]["segments"][0]["distance"]
            return float(meters) / 1000
        except (httpx.HTTPError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.info(f"Road distance lookup failed, using great-circle distance: {e}")
            return None

    def distance_km(self, a: GeoPoint, b: GeoPoint) -> float:
        """Distance from ``a`` to ``b`` in kilometres."""
        key = self._cache_key(a, b)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        distance = self._road_distance_km(a, b)
        if distance is None:
            distance = haversine_km(a, b)
        self._cache_set(key, distance)
        return distance

    def distances_from(self, origin: GeoPoint, targets: Iterable[tuple[str, Optional[GeoPoint]]]) -> dict:
        """Map target id -> distance for every target that has coordinates."""
        distances = {}
        for target_id, point in targets:
            if point is None or not point.is_valid():
                continue
            distances[target_id] = self.distance_km(origin, point)
        return distances
