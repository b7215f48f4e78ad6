"""
Mapping from raw backend rows to ``Entity``.

Backend rows are loosely typed: optional columns may be missing, ``None``
or hold a value of the wrong shape. Everything optional is defaulted here
so nothing downstream has to know what a raw row looks like. Only a
missing ``id`` is an error.
"""
from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from .models import Availability, Entity, EntityKind, PriceInfo

logger = logging.getLogger(__name__)

RawRecord = Mapping[str, Any]


class MissingIdentityError(ValueError):
    """Raised when a backend record has no usable ``id``."""


# ── Field coercion ───────────────────────────────────────────────────────


def _require_id(raw: RawRecord) -> str:
    value = raw.get("id")
    if value is None or not str(value).strip():
        raise MissingIdentityError("record has no id")
    return str(value).strip()


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v is not None and str(v).strip()]
    return []


def _as_float(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Ignoring malformed %s: %r", field, value)
        return None
    if not math.isfinite(number):
        logger.debug("Ignoring non-finite %s: %r", field, value)
        return None
    return number


def _as_int(value: Any, field: str) -> int | None:
    number = _as_float(value, field)
    return int(number) if number is not None else None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def _as_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        # Backend timestamps use a trailing "Z" for UTC.
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring malformed timestamp: %r", value)
        return None


def _normalize_rating(value: Any) -> float:
    if value is None:
        return 0.0
    raw = str(value).strip()
    # "4.1/5"
    if "/" in raw:
        raw = raw.split("/")[0].strip()
    rating = _as_float(raw, "rating")
    if rating is None:
        return 0.0
    return max(0.0, min(5.0, rating))


def _price_tier(value: Any) -> int | None:
    if not isinstance(value, str):
        return None
    tier = value.strip().count("$")
    return tier or None


def _build_price(
    tier: int | None = None,
    amount: float | None = None,
    min_amount: float | None = None,
    max_amount: float | None = None,
    unit: str | None = None,
) -> PriceInfo | None:
    if tier is None and amount is None and min_amount is None and max_amount is None:
        return None
    return PriceInfo(
        tier=tier,
        amount=amount,
        min_amount=min_amount,
        max_amount=max_amount,
        unit=unit,
    )


def _build_availability(raw: RawRecord) -> Availability | None:
    days = _as_list(raw.get("availability_days"))
    start = _as_text(raw.get("availability_start_time"))
    end = _as_text(raw.get("availability_end_time"))
    if not days and not start and not end:
        return None
    return Availability(days=days, start_time=start, end_time=end)


def _join_address(raw: RawRecord) -> str | None:
    address = _as_text(raw.get("address"))
    if address:
        return address
    parts = [p for p in (_as_text(raw.get("area")), _as_text(raw.get("city"))) if p]
    return ", ".join(parts) or None


def _images(raw: RawRecord) -> list[str]:
    images = _as_list(raw.get("images"))
    if not images:
        single = _as_text(raw.get("image_url") or raw.get("image"))
        if single:
            images = [single]
    return images


# ── Formatters ───────────────────────────────────────────────────────────


def format_service_provider(raw: RawRecord) -> Entity:
    """Normalise a ``service_providers`` row."""
    return Entity(
        id=_require_id(raw),
        kind=EntityKind.service,
        name=_as_text(raw.get("name")) or "",
        category=_as_text(raw.get("category")) or "",
        rating=_normalize_rating(raw.get("rating")),
        review_count=max(0, _as_int(raw.get("review_count"), "review_count") or 0),
        distance=_as_text(raw.get("distance")),
        price=_build_price(
            tier=_price_tier(raw.get("price_level")),
            min_amount=_as_float(raw.get("price_range_min"), "price_range_min"),
            max_amount=_as_float(raw.get("price_range_max"), "price_range_max"),
            unit=_as_text(raw.get("price_unit")),
        ),
        availability=_build_availability(raw),
        created_at=_as_datetime(raw.get("created_at")),
        is_hidden_gem=_as_bool(raw.get("is_hidden_gem")),
        is_must_visit=_as_bool(raw.get("is_must_visit")),
        description=_as_text(raw.get("description")),
        address=_join_address(raw),
        area=_as_text(raw.get("area")),
        city=_as_text(raw.get("city")),
        postal_code=_as_text(raw.get("postal_code")),
        map_link=_as_text(raw.get("map_link")),
        phone=_as_text(raw.get("contact_phone")),
        images=_images(raw),
        tags=_as_list(raw.get("tags")),
    )


def format_listing(raw: RawRecord, review_count: int | None = None) -> Entity:
    """
    Normalise a ``marketplace_listings`` row.

    ``review_count`` is the seller's review count when the caller has looked
    it up; otherwise the row's own ``review_count`` column is used.
    """
    if review_count is None:
        review_count = _as_int(raw.get("review_count"), "review_count") or 0

    return Entity(
        id=_require_id(raw),
        kind=EntityKind.listing,
        name=_as_text(raw.get("title")) or "",
        category=_as_text(raw.get("category")) or "",
        rating=_normalize_rating(raw.get("seller_rating")),
        review_count=max(0, review_count),
        distance=_as_text(raw.get("distance")),
        price=_build_price(
            amount=_as_float(raw.get("price"), "price"),
            unit=_as_text(raw.get("price_unit")),
        ),
        created_at=_as_datetime(raw.get("created_at")),
        is_hidden_gem=_as_bool(raw.get("is_hidden_gem")),
        is_must_visit=_as_bool(raw.get("is_must_visit")),
        description=_as_text(raw.get("description")),
        address=_as_text(raw.get("location")) or _join_address(raw),
        area=_as_text(raw.get("area")),
        city=_as_text(raw.get("city")),
        postal_code=_as_text(raw.get("postal_code")),
        map_link=_as_text(raw.get("map_link")),
        phone=_as_text(raw.get("seller_phone")),
        images=_images(raw),
        tags=_as_list(raw.get("tags")),
        condition=_as_text(raw.get("condition")),
        model_year=_as_int(raw.get("model_year"), "model_year"),
        seller_id=_as_text(raw.get("seller_id")),
        seller_name=_as_text(raw.get("seller_name")),
        damage_images=_as_list(raw.get("damage_images")),
        shop_images=_as_list(raw.get("shop_images")),
        inspection_certificates=_as_list(raw.get("inspection_certificates")),
        is_negotiable=_as_bool(raw.get("is_negotiable")),
    )


def format_event(raw: RawRecord) -> Entity:
    """Normalise an ``events`` row."""
    return Entity(
        id=_require_id(raw),
        kind=EntityKind.event,
        name=_as_text(raw.get("title")) or "",
        category=_as_text(raw.get("category")) or "Events",
        rating=_normalize_rating(raw.get("rating")),
        review_count=max(0, _as_int(raw.get("review_count"), "review_count") or 0),
        distance=_as_text(raw.get("distance")),
        price=_build_price(
            amount=_as_float(raw.get("price_per_person"), "price_per_person"),
            unit="per person",
        ),
        created_at=_as_datetime(raw.get("created_at")),
        is_hidden_gem=_as_bool(raw.get("is_hidden_gem")),
        is_must_visit=_as_bool(raw.get("is_must_visit")),
        description=_as_text(raw.get("description")),
        address=_as_text(raw.get("location")),
        map_link=_as_text(raw.get("map_link")),
        phone=_as_text(raw.get("phone_number")),
        images=_images(raw),
        tags=_as_list(raw.get("tags")),
        event_date=_as_text(raw.get("date")),
        event_time=_as_text(raw.get("time")),
        attendees=_as_int(raw.get("attendees"), "attendees"),
    )


def format_records(
    raws: Iterable[RawRecord],
    formatter: Callable[[RawRecord], Entity],
) -> list[Entity]:
    """Format a batch, dropping rows that have no identity."""
    entities: list[Entity] = []
    for raw in raws:
        try:
            entities.append(formatter(raw))
        except MissingIdentityError:
            logger.warning(
                "Dropping %s record without id: %r",
                getattr(formatter, "__name__", "record"),
                raw,
            )
    return entities


# ── Display helpers ──────────────────────────────────────────────────────


def format_price_range(
    min_amount: float | None = None,
    max_amount: float | None = None,
    unit: str | None = None,
) -> str:
    suffix = f" {unit}" if unit else ""
    if min_amount and max_amount:
        return f"₹{min_amount:g} - ₹{max_amount:g}{suffix}"
    if min_amount:
        return f"₹{min_amount:g}+{suffix}"
    if max_amount:
        return f"Up to ₹{max_amount:g}{suffix}"
    return "Price not specified"


def format_phone_number(phone: str | None) -> str:
    if not phone:
        return ""
    if phone.startswith("+91"):
        digits = phone[3:]
        if len(digits) == 10:
            return f"+91 {digits[:5]} {digits[5:]}"
    return phone
