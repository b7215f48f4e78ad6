from __future__ import annotations

import math
import re
from collections.abc import Sequence

from ..maps.links import calculate_distance, extract_coordinates_from_map_link
from .models import Coordinates, DistanceUnit, Entity

MILES_TO_KM = 1.60934

# Numeric prefix of a token, the way a lenient float parser reads "3mi" as 3.
_NUMBER_PREFIX_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_UNIT_WORDS: dict[str, DistanceUnit] = {
    "km": DistanceUnit.km,
    "kms": DistanceUnit.km,
    "kilometer": DistanceUnit.km,
    "kilometers": DistanceUnit.km,
    "kilometre": DistanceUnit.km,
    "kilometres": DistanceUnit.km,
    "mi": DistanceUnit.mi,
    "mile": DistanceUnit.mi,
    "miles": DistanceUnit.mi,
}
_UNIT_RE = re.compile(r"[a-z]+")


def parse_distance_value(text: str | None) -> float | None:
    """
    Parse the leading number of a free-form distance string.

    ``"0.5 miles away"`` -> 0.5, ``"3mi"`` -> 3.0. Returns ``None`` when
    there is no usable number; callers treat that as "no distance".
    """
    if not text:
        return None
    tokens = str(text).strip().split()
    if not tokens:
        return None
    match = _NUMBER_PREFIX_RE.match(tokens[0])
    if not match:
        return None
    value = float(match.group(0))
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_distance_unit(text: str | None) -> DistanceUnit | None:
    if not text:
        return None
    for word in _UNIT_RE.findall(str(text).lower()):
        unit = _UNIT_WORDS.get(word)
        if unit is not None:
            return unit
    return None


def to_unit(value: float, from_unit: DistanceUnit | str, to_unit: DistanceUnit | str) -> float:
    src = DistanceUnit(from_unit)
    dst = DistanceUnit(to_unit)
    if src == dst:
        return value
    if src == DistanceUnit.mi:
        return value * MILES_TO_KM
    return value / MILES_TO_KM


def normalize_distance(text: str | None, unit: DistanceUnit | str) -> float | None:
    """
    Parse ``text`` and express it in ``unit``.

    A value without its own unit tag is taken to be in ``unit`` already.
    """
    value = parse_distance_value(text)
    if value is None:
        return None
    source = parse_distance_unit(text)
    if source is None:
        return value
    return to_unit(value, source, unit)


def annotate_distances(
    entities: Sequence[Entity],
    origin: Coordinates | None,
    unit: DistanceUnit | str,
) -> list[Entity]:
    """
    Fill in missing distances from each entity's map link.

    Entities that already carry a distance, or whose link has no
    coordinates, are returned unchanged.
    """
    if origin is None:
        return list(entities)

    unit = DistanceUnit(unit)
    code = "K" if unit == DistanceUnit.km else "M"
    annotated: list[Entity] = []
    for entity in entities:
        coords = None if entity.distance else extract_coordinates_from_map_link(entity.map_link)
        if coords is None:
            annotated.append(entity)
            continue
        value = calculate_distance(origin.lat, origin.lng, coords[0], coords[1], unit=code)
        annotated.append(entity.model_copy(update={"distance": f"{value} {unit.value}"}))
    return annotated
