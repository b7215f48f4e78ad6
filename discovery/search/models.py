from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .config import DEFAULT_SEARCH_CONFIG

MAX_PASSWORD_BYTES = 72


class EntityKind(str, Enum):
    service = "service"
    listing = "listing"
    event = "event"


class DistanceUnit(str, Enum):
    km = "km"
    mi = "mi"


class SearchSort(str, Enum):
    rating = "rating"
    distance = "distance"
    review_count = "reviewCount"
    newest = "newest"


class MarketplaceSort(str, Enum):
    newest = "newest"
    price_low_high = "price-low-high"
    price_high_low = "price-high-low"
    top_rated = "top-rated"
    nearest = "nearest"


# ── Entity ───────────────────────────────────────────────────────────────


class PriceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    tier: int | None = Field(default=None, ge=1, description='Count of "$" signs')
    amount: float | None = None
    min_amount: float | None = None
    max_amount: float | None = None
    unit: str | None = None

    @property
    def sort_value(self) -> float | None:
        """Numeric price used for ordering; the low end of a range."""
        if self.amount is not None:
            return self.amount
        if self.min_amount is not None:
            return self.min_amount
        return self.max_amount


class Availability(BaseModel):
    model_config = ConfigDict(frozen=True)

    days: list[str] = Field(default_factory=list)
    start_time: str | None = None
    end_time: str | None = None


class Entity(BaseModel):
    """A location, marketplace listing or event after normalisation."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    kind: EntityKind
    name: str = ""
    category: str = ""
    rating: float = Field(default=0.0, ge=0.0, le=5.0)
    review_count: int = Field(default=0, ge=0)
    distance: str | None = None
    price: PriceInfo | None = None
    availability: Availability | None = None
    created_at: datetime | None = None
    is_hidden_gem: bool = False
    is_must_visit: bool = False

    description: str | None = None
    address: str | None = None
    area: str | None = None
    city: str | None = None
    postal_code: str | None = None
    map_link: str | None = None
    phone: str | None = None
    images: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    # marketplace listings
    condition: str | None = None
    model_year: int | None = None
    seller_id: str | None = None
    seller_name: str | None = None
    damage_images: list[str] = Field(default_factory=list)
    shop_images: list[str] = Field(default_factory=list)
    inspection_certificates: list[str] = Field(default_factory=list)
    is_negotiable: bool = False

    # events
    event_date: str | None = None
    event_time: str | None = None
    attendees: int | None = None


# ── Filter options ───────────────────────────────────────────────────────


class FilterOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_distance: float | None = Field(default=None, ge=0.0)
    distance_unit: DistanceUnit = DistanceUnit(DEFAULT_SEARCH_CONFIG.distance_unit)
    min_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    price_level: int | None = Field(default=None, ge=1, le=4)
    open_now_only: bool = False
    hidden_gem_only: bool = False
    must_visit_only: bool = False


class MarketplaceFilterOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_price: float = Field(default=0.0, ge=0.0)
    max_price: float | None = Field(default=None, ge=0.0)
    min_year: int | None = None
    max_year: int | None = None
    min_rating: float = Field(default=0.0, ge=0.0, le=5.0)
    condition: str = "all"
    postal_code: str | None = None
    area: str | None = None
    max_distance: float | None = Field(default=None, ge=0.0)
    distance_unit: DistanceUnit = DistanceUnit.km


# ── API models ───────────────────────────────────────────────────────────


class Coordinates(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class SearchRequest(BaseModel):
    query: str = Field(default="", max_length=200)
    category: str = "all"
    filters: FilterOptions = Field(default_factory=FilterOptions)
    sort: SearchSort = SearchSort.rating
    limit: int = Field(default=DEFAULT_SEARCH_CONFIG.default_limit, ge=1, le=100)
    include_events: bool = True
    origin: Coordinates | None = Field(
        default=None,
        description="User position; fills in distances from map links",
    )


class SearchResponse(BaseModel):
    results: list[Entity]
    events: list[Entity] = Field(default_factory=list)
    total_candidates: int
    error: str | None = None


class MarketplaceRequest(BaseModel):
    query: str = Field(default="", max_length=200)
    category: str | None = None
    filters: MarketplaceFilterOptions = Field(default_factory=MarketplaceFilterOptions)
    sort: MarketplaceSort = MarketplaceSort.newest
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=DEFAULT_SEARCH_CONFIG.page_size, ge=1, le=50)
    origin: Coordinates | None = None


class MarketplaceResponse(BaseModel):
    listings: list[Entity]
    total: int
    page: int
    total_pages: int
    error: str | None = None


class EnhanceRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=200)
    context: str | None = Field(default=None, max_length=500)


class EnhanceResponse(BaseModel):
    original: str
    enhanced: str


class WishlistRequest(BaseModel):
    entity_id: str = Field(..., min_length=1)


class WishlistResponse(BaseModel):
    items: list[Entity]


class LoginRequest(BaseModel):
    username: str
    password: str


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=40)
    password: str = Field(..., min_length=6)

    @field_validator("password")
    @classmethod
    def _fits_bcrypt(cls, value: str) -> str:
        # bcrypt only hashes the first 72 bytes and newer releases reject longer input.
        if len(value.encode()) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return value
