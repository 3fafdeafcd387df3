"""
SGP4 Orbit Propagator — the orbit-mechanics capability behind the tracker.

SGP4 (Simplified General Perturbations 4) is the standard algorithm used by
NORAD and space agencies worldwide to predict satellite positions. Given a TLE
(Two-Line Element set), it computes where a satellite will be at any time.

The tracker treats this module as a black box with four operations:

    parse_element_set(line1, line2)  → Satrec handle (or ElementSetRejected)
    propagate(satrec, instant)       → (r_eci, v_eci) or None
    sidereal_time(instant)           → GMST angle (radians)
    eci_to_geodetic(r_eci, gmst)     → Geodetic(latitude, longitude, height)

Coordinate Systems used here:
─────────────────────────────
ECI (Earth-Centered Inertial):
  Origin: Earth's center, axes fixed relative to the stars.
  Used by: SGP4 output.

ECEF (Earth-Centered, Earth-Fixed):
  Origin: Earth's center, rotates with Earth.
  Used by: latitude/longitude calculations.

The rotation between ECI and ECEF is given by GMST (Greenwich Mean Sidereal Time).
Positions are in km, velocities in km/s, angles in radians.
"""

import datetime
import math
from typing import List, NamedTuple, Optional, Tuple

from sgp4.api import Satrec, jday

# WGS84 ellipsoid
WGS84_A_KM = 6378.137
WGS84_F = 1.0 / 298.257223563


class ElementSetRejected(ValueError):
    """The TLE line pair could not be turned into an orbital state."""


class Geodetic(NamedTuple):
    latitude: float   # radians
    longitude: float  # radians, (-π, π]
    height: float     # km above the WGS84 ellipsoid


def _julian(dt: datetime.datetime) -> Tuple[float, float]:
    return jday(
        dt.year, dt.month, dt.day,
        dt.hour, dt.minute,
        dt.second + dt.microsecond / 1e6
    )


def parse_element_set(tle_line1: str, tle_line2: str) -> Satrec:
    """
    Build the SGP4 satellite record for one TLE line pair.

    Raises:
        ElementSetRejected: the lines are not a usable element set
    """
    try:
        satrec = Satrec.twoline2rv(tle_line1, tle_line2)
    except (ValueError, IndexError) as e:
        raise ElementSetRejected(f"Invalid TLE lines: {e}") from e

    # sgp4 initialisation reports bad elements through the error code
    if satrec.error != 0:
        raise ElementSetRejected(f"SGP4 initialisation error code {satrec.error}")

    return satrec


def propagate(satrec: Satrec, dt: datetime.datetime) -> Optional[Tuple[List[float], List[float]]]:
    """
    Propagate satellite position using SGP4.

    Returns:
        (r_eci, v_eci) — position [km] and velocity [km/s] in the inertial
        frame, or None when SGP4 cannot produce a state at this instant.

    Error codes from sgp4(): 0=OK, 1=mean elements, 2=mean motion,
    3=pert elements, 4=semi-latus rectum, 6=decay
    """
    jd, fr = _julian(dt)
    error, r_eci, v_eci = satrec.sgp4(jd, fr)

    if error != 0:
        return None
    if not all(math.isfinite(c) for c in (*r_eci, *v_eci)):
        return None

    return list(r_eci), list(v_eci)


def sidereal_time(dt: datetime.datetime) -> float:
    """
    Compute Greenwich Mean Sidereal Time (GMST) in radians.

    GMST is the rotation angle from the ECI X-axis to the ECEF X-axis
    (the prime meridian). This is what links the two frames.

    Formula: IAU 1982 GMST model
      θ_GMST = 280.46061837° + 360.98564736629° × (JD - J2000)

    Returns:
        GMST angle in radians [0, 2π)
    """
    jd, fr = _julian(dt)

    # Days since J2000.0 epoch (Jan 1.5, 2000 = JD 2451545.0)
    d = (jd - 2451545.0) + fr

    theta_deg = 280.46061837 + 360.98564736629 * d
    return math.radians(theta_deg % 360.0)


def eci_to_ecef(r_eci: List[float], gmst_rad: float) -> List[float]:
    """
    Rotate position vector from ECI to ECEF frame.

    The transformation is a rotation about the Z-axis by angle θ (GMST):

        [x_ecef]   [ cos θ   sin θ   0 ] [x_eci]
        [y_ecef] = [-sin θ   cos θ   0 ] [y_eci]
        [z_ecef]   [  0       0      1 ] [z_eci]
    """
    cos_t = math.cos(gmst_rad)
    sin_t = math.sin(gmst_rad)

    x_ecef = r_eci[0] * cos_t + r_eci[1] * sin_t
    y_ecef = -r_eci[0] * sin_t + r_eci[1] * cos_t
    z_ecef = r_eci[2]

    return [x_ecef, y_ecef, z_ecef]


def ecef_to_geodetic(r_ecef: List[float]) -> Geodetic:
    """
    Convert ECEF Cartesian coordinates to geodetic latitude/longitude/height.

    We use Bowring's iterative method for latitude — 5 iterations gives
    centimeter-level accuracy.
    """
    a = WGS84_A_KM
    f = WGS84_F
    e2 = 2 * f - f * f

    x, y, z = r_ecef

    lon_rad = math.atan2(y, x)
    p = math.sqrt(x * x + y * y)

    # Initial latitude estimate, then refine
    lat_rad = math.atan2(z, p * (1.0 - e2))
    for _ in range(5):
        sin_lat = math.sin(lat_rad)
        N = a / math.sqrt(1.0 - e2 * sin_lat * sin_lat)
        lat_rad = math.atan2(z + e2 * N * sin_lat, p)

    sin_lat = math.sin(lat_rad)
    cos_lat = math.cos(lat_rad)
    N = a / math.sqrt(1.0 - e2 * sin_lat * sin_lat)

    if abs(cos_lat) > 1e-10:
        alt_km = p / cos_lat - N
    else:
        # Near the poles, use Z component
        b = a * (1.0 - f)
        alt_km = abs(z) / abs(sin_lat) - (b * b / a)

    return Geodetic(lat_rad, lon_rad, alt_km)


def eci_to_geodetic(r_eci: List[float], gmst_rad: float) -> Geodetic:
    """Inertial position → geodetic coordinates at the given sidereal angle."""
    return ecef_to_geodetic(eci_to_ecef(r_eci, gmst_rad))


def compute_speed(v_eci: List[float]) -> float:
    """Orbital speed magnitude (km/s) from the velocity vector."""
    return math.sqrt(v_eci[0]**2 + v_eci[1]**2 + v_eci[2]**2)
