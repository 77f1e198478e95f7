"""Single position fix for the user, from the request or a configured locator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import httpx
import structlog

from coffee_finder.core.config import Settings
from coffee_finder.core.exceptions import LocationUnavailableError
from coffee_finder.utils.geo import is_valid_coordinate

logger = structlog.get_logger(__name__)

LOCATION_ERROR_MESSAGE = "Error getting location. Please enable location services."


@dataclass(frozen=True)
class Position:
    latitude: float
    longitude: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.latitude, self.longitude)


class Geolocator(Protocol):
    async def current_position(self) -> Position: ...


class StaticGeolocator:
    """Returns the fix configured with ``DEFAULT_LAT`` / ``DEFAULT_LON``."""

    def __init__(self, latitude: float | None, longitude: float | None) -> None:
        self._latitude = latitude
        self._longitude = longitude

    async def current_position(self) -> Position:
        if self._latitude is None or self._longitude is None:
            raise LocationUnavailableError("no default position configured")
        return Position(float(self._latitude), float(self._longitude))


class IpGeolocator:
    """Approximate fix from an ip-api.com style JSON endpoint."""

    def __init__(
        self, url: str, *, timeout: float = 5.0, transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._transport = transport

    async def current_position(self) -> Position:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(self._url)
                response.raise_for_status()
                payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("ip_geolocation_failed", url=self._url, error=str(exc))
            raise LocationUnavailableError("ip geolocation lookup failed") from exc

        if not isinstance(payload, dict) or payload.get("status", "success") != "success":
            raise LocationUnavailableError("ip geolocation returned no position")
        lat = payload.get("lat", payload.get("latitude"))
        lon = payload.get("lon", payload.get("longitude"))
        if lat is None or lon is None:
            raise LocationUnavailableError("ip geolocation returned no position")
        return Position(float(lat), float(lon))


def build_geolocator(settings: Settings) -> Geolocator:
    if settings.geolocator == "ip":
        return IpGeolocator(settings.ip_geolocation_url)
    return StaticGeolocator(settings.default_lat, settings.default_lon)


async def resolve_position(
    geolocator: Geolocator, lat: float | None = None, lon: float | None = None
) -> Position:
    """Coordinates supplied by the client win; otherwise ask the geolocator."""
    if lat is not None and lon is not None:
        if not is_valid_coordinate(lat, lon):
            raise LocationUnavailableError("coordinates out of range")
        return Position(float(lat), float(lon))
    return await geolocator.current_position()
