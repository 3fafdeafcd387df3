"""
Coverage Engine — which satellites serve a ground location right now.

A satellite covers a location when the great-circle distance between the
location and the satellite's sub-satellite point is within the coverage
radius (2,400 km). The result is keyed by satellite number, so each
satellite appears once even if the collection holds duplicates, and keeps
the order in which satellites first qualified (not sorted by distance).
"""

import math
from typing import Dict, Iterable, List, Optional

from constellation_tracker import config
from constellation_tracker.longitude import wrap_to_center
from constellation_tracker.models import CoverageEntry, GeoPoint, GroundLocation, OrbitalObject

CoverageResult = Dict[str, CoverageEntry]


def distance_m(a: GeoPoint, b: GeoPoint, radius_m: float = config.EARTH_MEAN_RADIUS_M) -> float:
    """Haversine great-circle distance in meters on a spherical Earth."""
    lat1 = math.radians(a.lat)
    lat2 = math.radians(b.lat)
    d_lat = lat2 - lat1
    d_lng = math.radians(b.lng - a.lng)

    h = (math.sin(d_lat / 2) ** 2
         + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2)
    return 2 * radius_m * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_spare(obj: OrbitalObject, spares: Iterable[str] = config.SPARE_SATELLITE_NUMBERS) -> bool:
    return obj.number in spares


def ground_point(ground: GroundLocation, reference_longitude: float) -> GeoPoint:
    """The ground location on the copy of the world nearest the view center."""
    return GeoPoint(ground.latitude, wrap_to_center(ground.longitude, reference_longitude))


def compute_coverage(ground: GroundLocation,
                     objects: Iterable[OrbitalObject],
                     reference_longitude: float,
                     include_spares: bool,
                     spares: Iterable[str] = config.SPARE_SATELLITE_NUMBERS,
                     radius_m: float = config.COVERAGE_RADIUS_M) -> CoverageResult:
    """
    Compute the satellites within radius_m of the ground location.

    Satellites without a position yet are ignored, as are spares unless
    include_spares is set. A later entry with the same number replaces
    the earlier one's value but keeps its place in the ordering.
    """
    spares = frozenset(spares)
    user = ground_point(ground, reference_longitude)
    result: CoverageResult = {}

    for obj in objects:
        if not include_spares and obj.number in spares:
            continue
        position = obj.current_position
        if position is None:
            continue
        dist = distance_m(user, position)
        if dist <= radius_m:
            result[obj.number] = CoverageEntry(obj, position, dist)

    return result


def coverage_lines(result: CoverageResult,
                   ground: GroundLocation,
                   reference_longitude: float) -> List[List[List[float]]]:
    """
    One [satellite, user] line per covering satellite.

    Both endpoints are wrapped against the same reference so the line is
    drawn the short way across the map.
    """
    user = ground_point(ground, reference_longitude)
    lines = []
    for entry in result.values():
        sat_lng = wrap_to_center(entry.position.lng, reference_longitude)
        lines.append([[entry.position.lat, sat_lng], [user.lat, user.lng]])
    return lines


def covering_names(result: Optional[CoverageResult]) -> List[str]:
    if not result:
        return []
    return [entry.obj.name for entry in result.values()]
