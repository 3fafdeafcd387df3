"""Data records shared by the tracker modules."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class GroundLocation:
    """The user's chosen point, raw (unwrapped) degrees."""
    latitude: float
    longitude: float

    def to_dict(self) -> dict:
        return {"latitude": self.latitude, "longitude": self.longitude}

    @classmethod
    def from_dict(cls, data: dict) -> "GroundLocation":
        return cls(float(data["latitude"]), float(data["longitude"]))


@dataclass(eq=False)
class OrbitalObject:
    """
    One tracked satellite.

    The identity and element lines are fixed at parse time. Position
    fields start as None and are filled in by the propagation loop;
    previous_position stays None until a second successful propagation.
    """
    number: str
    name: str
    line1: str
    line2: str
    satrec: Any

    previous_position: Optional[GeoPoint] = None
    previous_timestamp: Optional[int] = None
    current_position: Optional[GeoPoint] = None
    current_timestamp: Optional[int] = None
    altitude: Optional[float] = None  # km
    speed: Optional[float] = None     # km/s


@dataclass(frozen=True)
class CoverageEntry:
    obj: OrbitalObject
    position: GeoPoint
    distance_m: float
