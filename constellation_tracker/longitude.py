"""
Longitude continuity.

On a map that pans forever to the east and west, one physical point has
infinitely many longitudes, 360° apart. Markers and line endpoints must
be placed on the copy of the world nearest to what the user is looking
at, otherwise a marker jumps to another copy or a coverage line is drawn
the long way round the globe.

    wrap_to_center(lon, center) → the representation within 180° of center
    wrap_longitude(lon)         → the representation in [-180, 180]

Both ends of a rendered line must be wrapped against the same center.
"""

import math


def _check_finite(value: float) -> None:
    if not math.isfinite(value):
        raise ValueError(f"Longitude must be finite, got {value}")


def wrap_longitude(lon: float) -> float:
    """Wrap into [-180, 180] without reference to any view."""
    _check_finite(lon)
    if -180 <= lon <= 180:
        return lon
    # IEEE remainder is exact and lands in [-180, 180] in one step
    return math.remainder(lon, 360.0)


def wrap_to_center(lon: float, center_lon: float) -> float:
    """Shift lon by a whole number of turns so that |lon - center_lon| <= 180."""
    _check_finite(lon)
    _check_finite(center_lon)
    if -180 <= lon - center_lon <= 180:
        return lon
    return center_lon + math.remainder(lon - center_lon, 360.0)
