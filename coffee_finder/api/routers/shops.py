from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from coffee_finder.api.deps import get_nearby_service, optional_device_id_query
from coffee_finder.schemas.common import ErrorResponse
from coffee_finder.schemas.shop import LandingResponse, MapViewResponse, NearbyShopsResponse
from coffee_finder.services.shops import NearbyShopService

router = APIRouter(tags=["shops"])

_LAT = Query(None, ge=-90.0, le=90.0, description="Latitude; falls back to the geolocator")
_LON = Query(None, ge=-180.0, le=180.0, description="Longitude; falls back to the geolocator")


@router.get(
    "/landing",
    response_model=LandingResponse,
    summary="Nearest cafés for the landing screen",
    description=(
        "Up to `LANDING_LIMIT` cafés within `LANDING_RADIUS_M` metres, nearest first.\n"
        "Each item carries the map view to open when it is selected."
    ),
    responses={422: {"model": ErrorResponse, "description": "validation error"}},
)
async def landing(
    lat: float | None = _LAT,
    lon: float | None = _LON,
    svc: NearbyShopService = Depends(get_nearby_service),
):
    return await svc.landing(lat=lat, lon=lon)


@router.get(
    "/shops/nearby",
    response_model=NearbyShopsResponse,
    summary="Cafés around the user (Overpass + haversine)",
    description=(
        "Queries Overpass for `amenity=cafe` nodes within `radius_m` metres and returns them\n"
        "sorted by distance ascending. Location or query failures yield an empty list with\n"
        "`error` set rather than an error status."
    ),
    responses={422: {"model": ErrorResponse, "description": "validation error"}},
)
async def shops_nearby(
    lat: float | None = _LAT,
    lon: float | None = _LON,
    radius_m: float | None = Query(None, gt=0.0, le=50_000.0, description="Search radius (m)"),
    limit: int | None = Query(None, ge=1, le=500, description="Maximum number of shops"),
    device_id: str | None = Depends(optional_device_id_query),
    svc: NearbyShopService = Depends(get_nearby_service),
):
    return await svc.nearby(lat=lat, lon=lon, radius_m=radius_m, device_id=device_id, limit=limit)


@router.get(
    "/map",
    response_model=MapViewResponse,
    summary="Initial map view (optional pre-selected shop)",
    responses={422: {"model": ErrorResponse, "description": "validation error"}},
)
async def map_view(
    shop_id: int | None = Query(None, description="Shop to pre-select"),
    lat: float | None = _LAT,
    lon: float | None = _LON,
    zoom: int | None = Query(None, ge=1, le=20),
    device_id: str | None = Depends(optional_device_id_query),
    svc: NearbyShopService = Depends(get_nearby_service),
):
    return await svc.map_view(shop_id=shop_id, lat=lat, lon=lon, zoom=zoom, device_id=device_id)
