from __future__ import annotations

from collections.abc import Callable, Sequence

from .distance import normalize_distance
from .models import DistanceUnit, Entity, MarketplaceSort, SearchSort

SortOption = SearchSort | MarketplaceSort

# Sort keys are (missing, value) tuples so absent values always land last;
# descending orders negate the value instead of using reverse=True.
SortKey = Callable[[Entity], tuple]


def _rating_key(entity: Entity) -> tuple:
    return (False, -entity.rating)


def _review_count_key(entity: Entity) -> tuple:
    return (False, -entity.review_count)


def _newest_key(entity: Entity) -> tuple:
    if entity.created_at is None:
        return (True, 0.0)
    return (False, -entity.created_at.timestamp())


def _price_key(descending: bool) -> SortKey:
    def key(entity: Entity) -> tuple:
        value = entity.price.sort_value if entity.price else None
        if value is None:
            return (True, 0.0)
        return (False, -value if descending else value)

    return key


def _distance_key(unit: DistanceUnit) -> SortKey:
    def key(entity: Entity) -> tuple:
        value = normalize_distance(entity.distance, unit)
        if value is None:
            return (True, 0.0)
        return (False, value)

    return key


def _key_for(sort_option: SortOption, unit: DistanceUnit) -> SortKey:
    value = getattr(sort_option, "value", sort_option)
    if value == SearchSort.rating.value:
        return _rating_key
    if value in (SearchSort.distance.value, MarketplaceSort.nearest.value):
        return _distance_key(unit)
    if value in (SearchSort.review_count.value, MarketplaceSort.top_rated.value):
        return _review_count_key
    if value == SearchSort.newest.value:
        return _newest_key
    if value == MarketplaceSort.price_low_high.value:
        return _price_key(descending=False)
    if value == MarketplaceSort.price_high_low.value:
        return _price_key(descending=True)
    raise ValueError(f"Unsupported sort option: {sort_option!r}")


def sort_entities(
    entities: Sequence[Entity],
    sort_option: SortOption,
    unit: DistanceUnit = DistanceUnit.mi,
) -> list[Entity]:
    """Return a new, stably sorted list; equal keys keep their input order."""
    return sorted(entities, key=_key_for(sort_option, unit))
