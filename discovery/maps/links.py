from __future__ import annotations

import logging
import math
import re

logger = logging.getLogger(__name__)

_COORD = r"(-?\d+\.\d+),(-?\d+\.\d+)"

# Tried in order:
#   https://www.google.com/maps/@12.9716,77.5946,15z
#   https://www.google.com/maps?q=12.9716,77.5946
#   https://maps.google.com/?ll=12.9716,77.5946
#   https://www.google.com/maps/place/12.9716,77.5946
_LINK_PATTERNS = [
    re.compile(rf"@{_COORD}"),
    re.compile(rf"[?&]q={_COORD}"),
    re.compile(rf"[?&]ll={_COORD}"),
    re.compile(rf"(?:maps/|place/|^){_COORD}"),
]

_EARTH_MILES_PER_DEGREE = 60 * 1.1515
_UNIT_FACTORS = {"K": 1.609344, "M": 1.0, "N": 0.8684}


def extract_coordinates_from_map_link(map_link: str | None) -> tuple[float, float] | None:
    """Return ``(lat, lng)`` from a Google Maps URL, or None for short links and other shapes."""
    if not map_link:
        return None
    for pattern in _LINK_PATTERNS:
        match = pattern.search(map_link)
        if match:
            return float(match.group(1)), float(match.group(2))
    logger.debug("Could not extract coordinates from map link: %s", map_link)
    return None


def calculate_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
    unit: str = "K",
) -> float:
    """
    Great-circle distance between two points, rounded to one decimal.

    ``unit`` is ``"K"`` (kilometres), ``"M"`` (miles) or ``"N"`` (nautical
    miles).
    """
    if unit not in _UNIT_FACTORS:
        raise ValueError(f"Unknown distance unit: {unit!r}")
    if lat1 == lat2 and lon1 == lon2:
        return 0.0

    radlat1 = math.radians(lat1)
    radlat2 = math.radians(lat2)
    radtheta = math.radians(lon1 - lon2)

    dist = math.sin(radlat1) * math.sin(radlat2) + math.cos(radlat1) * math.cos(
        radlat2
    ) * math.cos(radtheta)
    dist = min(dist, 1.0)
    dist = math.degrees(math.acos(dist)) * _EARTH_MILES_PER_DEGREE

    return round(dist * _UNIT_FACTORS[unit], 1)


def format_distance(distance: float, unit: str = "km") -> str:
    if distance < 1:
        return f"{distance * 1000:.0f} m"
    return f"{distance:.1f} {unit}"
