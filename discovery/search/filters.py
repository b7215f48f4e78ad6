from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from .availability import is_open_now
from .distance import normalize_distance
from .models import Entity, FilterOptions, MarketplaceFilterOptions


def _passes_open_now(entity: Entity, now: datetime | None) -> bool:
    hours = entity.availability
    if hours is None:
        return False
    return is_open_now(hours.days, hours.start_time, hours.end_time, now=now)


def _passes_distance(
    entity: Entity,
    max_distance: float | None,
    unit: str,
) -> bool:
    # Missing or unparseable distances are kept.
    if max_distance is None or not entity.distance:
        return True
    value = normalize_distance(entity.distance, unit)
    if value is None:
        return True
    return value <= max_distance


def _passes_price_level(entity: Entity, price_level: int | None) -> bool:
    if price_level is None or entity.price is None or entity.price.tier is None:
        return True
    return entity.price.tier <= price_level


def matches_filters(
    entity: Entity,
    options: FilterOptions,
    now: datetime | None = None,
) -> bool:
    if entity.rating < options.min_rating:
        return False
    if options.open_now_only and not _passes_open_now(entity, now):
        return False
    if options.hidden_gem_only and not entity.is_hidden_gem:
        return False
    if options.must_visit_only and not entity.is_must_visit:
        return False
    if not _passes_distance(entity, options.max_distance, options.distance_unit):
        return False
    if not _passes_price_level(entity, options.price_level):
        return False
    return True


def filter_entities(
    entities: Sequence[Entity],
    options: FilterOptions,
    now: datetime | None = None,
) -> list[Entity]:
    """Keep the entities that pass every predicate, in input order."""
    return [e for e in entities if matches_filters(e, options, now=now)]


# ── Marketplace ──────────────────────────────────────────────────────────


def matches_marketplace_filters(entity: Entity, options: MarketplaceFilterOptions) -> bool:
    if options.postal_code and entity.postal_code:
        if not entity.postal_code.startswith(options.postal_code):
            return False

    if options.area:
        if options.area.strip().lower() not in (entity.area or "").lower():
            return False

    if not _passes_distance(entity, options.max_distance, options.distance_unit):
        return False

    price = entity.price.sort_value if entity.price else None
    if price is not None:
        if price < options.min_price:
            return False
        if options.max_price is not None and price > options.max_price:
            return False

    if entity.model_year is not None:
        if options.min_year is not None and entity.model_year < options.min_year:
            return False
        if options.max_year is not None and entity.model_year > options.max_year:
            return False

    if options.min_rating > 0 and entity.rating < options.min_rating:
        return False

    if options.condition.lower() != "all":
        if (entity.condition or "").lower() != options.condition.lower():
            return False

    return True


def filter_marketplace_listings(
    entities: Sequence[Entity],
    options: MarketplaceFilterOptions,
) -> list[Entity]:
    return [e for e in entities if matches_marketplace_filters(e, options)]
