"""
Great-circle helpers. Degrees in, degrees out.
"""

import math
from typing import Iterable, Optional

from src.simulation_layer.models import City, GeoPoint


def angular_distance(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine central angle between two points, in degrees [0, 180]."""
    phi1 = math.radians(a.lat)
    phi2 = math.radians(b.lat)
    delta_phi = math.radians(b.lat - a.lat)
    delta_lambda = math.radians(b.lng - a.lng)

    h = math.sin(delta_phi / 2) ** 2 + \
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    # rounding can push h a hair outside [0, 1]
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))

    return math.degrees(c)


def cities_within(cities: Iterable[City], center: GeoPoint, radius: float) -> list:
    """Cities whose angular distance from center is <= radius degrees."""
    return [c for c in cities if angular_distance(center, c.location) <= radius]


def nearest_city(cities: Iterable[City], point: GeoPoint) -> Optional[City]:
    """Closest city to point, or None for an empty collection."""
    best = None
    best_distance = math.inf
    for city in cities:
        distance = angular_distance(point, city.location)
        if distance < best_distance:
            best = city
            best_distance = distance
    return best
