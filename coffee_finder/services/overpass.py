"""Overpass API client and normalization of café nodes into shop records."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from coffee_finder.core.exceptions import ShopQueryError
from coffee_finder.schemas.shop import (
    DEFAULT_CUISINE,
    NO_ADDRESS,
    NO_OPENING_HOURS,
    NO_PHONE,
    NO_WEBSITE,
    UNNAMED_SHOP,
    ShopRecord,
)
from coffee_finder.utils.geo import LatLng, rounded_distance_km

logger = structlog.get_logger(__name__)

DEFAULT_OVERPASS_URL = "https://overpass-api.de/api/interpreter"
DEFAULT_QUERY_TIMEOUT = 25


def build_cafe_query(
    lat: float, lon: float, radius_m: float, *, query_timeout: int = DEFAULT_QUERY_TIMEOUT
) -> str:
    """Overpass QL for café nodes within ``radius_m`` metres of (lat, lon)."""
    return (
        f"[out:json][timeout:{int(query_timeout)}];\n"
        "(\n"
        f'  node["amenity"="cafe"](around:{radius_m:g},{lat},{lon});\n'
        ");\n"
        "out body;\n"
    )


class OverpassClient:
    def __init__(
        self,
        url: str = DEFAULT_OVERPASS_URL,
        *,
        timeout: float = 30.0,
        user_agent: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout
        self._headers = {"User-Agent": user_agent} if user_agent else {}
        self._transport = transport

    async def query(self, ql: str) -> list[dict[str, Any]]:
        """POST ``ql`` as form field ``data`` and return the ``elements`` array.

        No retry: any transport error, non-2xx status or undecodable body raises
        ``ShopQueryError``.
        """
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, headers=self._headers, transport=self._transport
            ) as client:
                response = await client.post(self._url, data={"data": ql})
        except httpx.HTTPError as exc:
            raise ShopQueryError(f"overpass request failed: {exc}") from exc

        if not response.is_success:
            raise ShopQueryError(f"overpass returned status {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise ShopQueryError("overpass returned a non-JSON body") from exc

        elements = payload.get("elements") if isinstance(payload, dict) else None
        if not isinstance(elements, list):
            raise ShopQueryError("overpass response has no elements array")
        return [el for el in elements if isinstance(el, dict)]

    async def cafes_around(
        self,
        lat: float,
        lon: float,
        radius_m: float,
        *,
        query_timeout: int = DEFAULT_QUERY_TIMEOUT,
    ) -> list[dict[str, Any]]:
        elements = await self.query(
            build_cafe_query(lat, lon, radius_m, query_timeout=query_timeout)
        )
        logger.info("overpass_query", lat=lat, lon=lon, radius_m=radius_m, returned=len(elements))
        return elements


def normalize_element(element: dict[str, Any], origin: LatLng) -> ShopRecord | None:
    """Map an Overpass node to a ``ShopRecord``; nodes without coordinates are skipped."""
    try:
        shop_id = int(element["id"])
        lat = float(element["lat"])
        lon = float(element["lon"])
    except (KeyError, TypeError, ValueError):
        return None

    raw_tags = element.get("tags") or {}
    tags = {str(k): str(v) for k, v in raw_tags.items()} if isinstance(raw_tags, dict) else {}
    return ShopRecord(
        id=shop_id,
        name=tags.get("name") or UNNAMED_SHOP,
        lat=lat,
        lon=lon,
        address=tags.get("addr:street") or NO_ADDRESS,
        phone=tags.get("contact:phone") or tags.get("phone") or NO_PHONE,
        website=tags.get("website") or tags.get("contact:website") or NO_WEBSITE,
        opening_hours=tags.get("opening_hours") or NO_OPENING_HOURS,
        cuisine=tags.get("cuisine") or DEFAULT_CUISINE,
        distance_km=rounded_distance_km(origin, (lat, lon)),
        tags=tags,
    )


def sort_by_distance(shops: list[ShopRecord]) -> list[ShopRecord]:
    return sorted(shops, key=lambda s: (s.distance_km, s.id))
