"""Nearby café search composing geolocation, Overpass and the per-shop store."""

from __future__ import annotations

import structlog

from coffee_finder.core.exceptions import LocationUnavailableError, ShopQueryError
from coffee_finder.schemas.shop import (
    LANDING_NO_OPENING_HOURS,
    LANDING_UNNAMED_SHOP,
    LandingResponse,
    LandingShopItem,
    Location,
    MapView,
    MapViewResponse,
    NearbyShopsResponse,
    ShopRecord,
)
from coffee_finder.services.geolocation import (
    LOCATION_ERROR_MESSAGE,
    Geolocator,
    Position,
    resolve_position,
)
from coffee_finder.services.overpass import OverpassClient, normalize_element, sort_by_distance
from coffee_finder.services.shop_store import ShopStore

logger = structlog.get_logger(__name__)

SHOP_QUERY_ERROR_MESSAGE = "Error fetching coffee shops"
DEFAULT_ZOOM = 16


def _landing_card(shop: ShopRecord) -> ShopRecord:
    update: dict[str, str] = {}
    if not shop.tags.get("name"):
        update["name"] = LANDING_UNNAMED_SHOP
    if not shop.tags.get("opening_hours"):
        update["opening_hours"] = LANDING_NO_OPENING_HOURS
    return shop.model_copy(update=update) if update else shop


class NearbyShopService:
    """Use cases behind the landing and map screens."""

    def __init__(
        self,
        overpass: OverpassClient,
        geolocator: Geolocator,
        store: ShopStore | None = None,
        *,
        map_radius_m: float = 3218.69,
        landing_radius_m: float = 3000.0,
        landing_limit: int = 5,
        query_timeout: int = 25,
    ) -> None:
        self._overpass = overpass
        self._geolocator = geolocator
        self._store = store
        self._map_radius_m = map_radius_m
        self._landing_radius_m = landing_radius_m
        self._landing_limit = landing_limit
        self._query_timeout = query_timeout

    async def _locate(self, lat: float | None, lon: float | None) -> Position | None:
        try:
            return await resolve_position(self._geolocator, lat, lon)
        except LocationUnavailableError as exc:
            logger.warning("location_unavailable", reason=str(exc))
            return None

    async def find_shops(self, position: Position, radius_m: float) -> list[ShopRecord]:
        """Shops around ``position`` sorted by distance. Raises ``ShopQueryError`` on failure."""
        try:
            elements = await self._overpass.cafes_around(
                position.latitude,
                position.longitude,
                radius_m,
                query_timeout=self._query_timeout,
            )
        except ShopQueryError as exc:
            logger.error("shop_query_failed", error=str(exc), radius_m=radius_m)
            raise
        shops = [
            shop
            for shop in (normalize_element(el, position.as_tuple()) for el in elements)
            if shop is not None
        ]
        return sort_by_distance(shops)

    async def _with_local_data(self, shops: list[ShopRecord], device_id: str | None) -> None:
        if not device_id or self._store is None or not shops:
            return
        attached = await self._store.attach(device_id, [s.id for s in shops])
        for shop in shops:
            notes, photos = attached.get(shop.id, ([], []))
            shop.notes = notes
            shop.photos = photos

    async def nearby(
        self,
        *,
        lat: float | None = None,
        lon: float | None = None,
        radius_m: float | None = None,
        device_id: str | None = None,
        limit: int | None = None,
    ) -> NearbyShopsResponse:
        radius = float(radius_m or self._map_radius_m)
        position = await self._locate(lat, lon)
        if position is None:
            return NearbyShopsResponse(items=[], radius_m=radius, error=LOCATION_ERROR_MESSAGE)

        location = Location(lat=position.latitude, lon=position.longitude)
        try:
            shops = await self.find_shops(position, radius)
        except ShopQueryError:
            return NearbyShopsResponse(
                items=[], radius_m=radius, location=location, error=SHOP_QUERY_ERROR_MESSAGE
            )

        if limit is not None:
            shops = shops[: max(0, int(limit))]
        await self._with_local_data(shops, device_id)
        return NearbyShopsResponse(
            items=shops, total=len(shops), radius_m=radius, location=location
        )

    async def landing(self, *, lat: float | None = None, lon: float | None = None) -> LandingResponse:
        result = await self.nearby(
            lat=lat, lon=lon, radius_m=self._landing_radius_m, limit=self._landing_limit
        )
        items = [
            LandingShopItem(
                shop=_landing_card(shop),
                view=MapView(center=(shop.lat, shop.lon), zoom=DEFAULT_ZOOM, selected_shop_id=shop.id),
            )
            for shop in result.items
        ]
        return LandingResponse(items=items, location=result.location, error=result.error)

    async def map_view(
        self,
        *,
        shop_id: int | None = None,
        lat: float | None = None,
        lon: float | None = None,
        zoom: int | None = None,
        device_id: str | None = None,
    ) -> MapViewResponse:
        """Initial state of the map screen, optionally centred on a pre-selected shop."""
        position = await self._locate(lat, lon)
        if position is None:
            return MapViewResponse(
                view=MapView(center=(0.0, 0.0), zoom=zoom or DEFAULT_ZOOM),
                error=LOCATION_ERROR_MESSAGE,
            )

        selected: ShopRecord | None = None
        error: str | None = None
        if shop_id is not None:
            result = await self.nearby(
                lat=position.latitude, lon=position.longitude, device_id=device_id
            )
            selected = next((s for s in result.items if s.id == shop_id), None)
            error = result.error

        center = (selected.lat, selected.lon) if selected else position.as_tuple()
        return MapViewResponse(
            view=MapView(
                center=center,
                zoom=zoom or DEFAULT_ZOOM,
                selected_shop_id=selected.id if selected else None,
            ),
            selected_shop=selected,
            error=error,
        )
