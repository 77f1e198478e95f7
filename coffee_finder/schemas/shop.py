from __future__ import annotations

from pydantic import BaseModel, Field

from coffee_finder.schemas.shop_data import Note, Photo

UNNAMED_SHOP = "Unnamed Coffee Shop"
NO_ADDRESS = "Address not available"
NO_PHONE = "Phone number not available"
NO_WEBSITE = "Website not available"
NO_OPENING_HOURS = "Opening hours not available"
DEFAULT_CUISINE = "coffee_shop"
# Landing cards use shorter labels than the map screen
LANDING_UNNAMED_SHOP = "Unnamed Cafe"
LANDING_NO_OPENING_HOURS = "Hours not available"


class ShopRecord(BaseModel):
    id: int = Field(description="Overpass node id")
    name: str = Field(default=UNNAMED_SHOP, description="Display name")
    lat: float = Field(description="Latitude")
    lon: float = Field(description="Longitude")
    address: str = Field(default=NO_ADDRESS)
    phone: str = Field(default=NO_PHONE)
    website: str = Field(default=NO_WEBSITE)
    opening_hours: str = Field(default=NO_OPENING_HOURS)
    cuisine: str = Field(default=DEFAULT_CUISINE)
    distance_km: float = Field(description="Distance from the user (km, one decimal)")
    tags: dict[str, str] = Field(default_factory=dict, description="Raw OSM tags")
    notes: list[Note] = Field(default_factory=list)
    photos: list[Photo] = Field(default_factory=list)


class Location(BaseModel):
    lat: float
    lon: float


class MapView(BaseModel):
    center: tuple[float, float] = Field(description="Initial map center (lat, lon)")
    zoom: int = Field(default=16, ge=1, le=20, description="Initial zoom level")
    selected_shop_id: int | None = Field(default=None, description="Pre-selected shop")


class NearbyShopsResponse(BaseModel):
    items: list[ShopRecord] = Field(description="Shops sorted by distance ascending")
    total: int = Field(default=0)
    radius_m: float
    location: Location | None = Field(default=None, description="Fix used for the query")
    error: str | None = Field(default=None, description="User-facing error, items empty")


class LandingShopItem(BaseModel):
    shop: ShopRecord
    view: MapView = Field(description="Navigation target for the map screen")


class LandingResponse(BaseModel):
    items: list[LandingShopItem]
    location: Location | None = None
    error: str | None = None


class MapViewResponse(BaseModel):
    view: MapView
    selected_shop: ShopRecord | None = None
    error: str | None = None
