"""API dependency helpers and service providers."""

from __future__ import annotations

from fastapi import Depends, Query, Request

from coffee_finder import db
from coffee_finder.core.config import Settings, get_settings
from coffee_finder.core.exceptions import NotFoundError
from coffee_finder.infra.unit_of_work import SqlAlchemyUnitOfWork
from coffee_finder.schemas.shop_data import DEVICE_ID_PATTERN
from coffee_finder.services.geolocation import Geolocator, build_geolocator
from coffee_finder.services.overpass import OverpassClient
from coffee_finder.services.shell_cache import ShellCacheLifecycle
from coffee_finder.services.shop_store import ShopStore
from coffee_finder.services.shops import NearbyShopService

__all__ = [
    "device_id_query",
    "optional_device_id_query",
    "get_geolocator",
    "get_overpass_client",
    "get_shop_store",
    "get_nearby_service",
    "get_shell_cache",
]


def device_id_query(
    device_id: str = Query(
        ...,
        description="Anonymous device id (storage scope)",
        min_length=8,
        max_length=128,
        pattern=DEVICE_ID_PATTERN,
    ),
) -> str:
    return device_id


def optional_device_id_query(
    device_id: str | None = Query(
        None,
        description="Attach stored notes/photos for this device",
        min_length=8,
        max_length=128,
        pattern=DEVICE_ID_PATTERN,
    ),
) -> str | None:
    return device_id


# --- Service providers for DI ---


def _uow_factory() -> SqlAlchemyUnitOfWork:
    # Resolved on every call so a reconfigured engine is picked up
    return SqlAlchemyUnitOfWork(db.SessionLocal)


def get_shop_store() -> ShopStore:
    return ShopStore(_uow_factory)


def get_geolocator(settings: Settings = Depends(get_settings)) -> Geolocator:
    return build_geolocator(settings)


def get_overpass_client(settings: Settings = Depends(get_settings)) -> OverpassClient:
    return OverpassClient(
        settings.overpass_url,
        timeout=settings.overpass_timeout_seconds,
        user_agent=settings.user_agent,
    )


def get_nearby_service(
    settings: Settings = Depends(get_settings),
    overpass: OverpassClient = Depends(get_overpass_client),
    geolocator: Geolocator = Depends(get_geolocator),
    store: ShopStore = Depends(get_shop_store),
) -> NearbyShopService:
    return NearbyShopService(
        overpass,
        geolocator,
        store,
        map_radius_m=settings.map_radius_m,
        landing_radius_m=settings.landing_radius_m,
        landing_limit=settings.landing_limit,
        query_timeout=settings.overpass_query_timeout,
    )


def get_shell_cache(request: Request) -> ShellCacheLifecycle:
    lifecycle = getattr(request.app.state, "shell_cache", None)
    if lifecycle is None:
        raise NotFoundError("offline shell cache is disabled")
    return lifecycle
