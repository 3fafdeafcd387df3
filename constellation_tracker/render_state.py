"""
Render state — what the map client needs to draw one frame.

The client owns markers, circles and lines; this module only tells it,
per satellite, where to put the marker (wrapped to the view center) and
whether to show it, its coverage circle and its highlight. Coverage
lines, the covering-satellite list and the info panel come along too.

Message format (JSON):
{
  "center_lng": 0.0,
  "circle_radius_m": 2400000,
  "satellites": [
    {"index": 0, "number": "106", "name": "Iridium 106", "lat": 12.3, "lng": -45.6,
     "visible": true, "show_circle": false, "highlighted": false}
  ],
  "user": {"lat": 51.5, "lng": -0.1} | null,
  "coverage_lines": [[[sat_lat, sat_lng], [user_lat, user_lng]], ...],
  "covering": ["Iridium 106", ...],
  "covering_message": "No satellites cover this location." | null,
  "selected": {...info panel...} | null,
  "load_error": null,
  "degraded": false        // true while running on a stale TLE cache
}
"""

from typing import Optional

from constellation_tracker import config
from constellation_tracker.coverage import coverage_lines, covering_names, ground_point, is_spare
from constellation_tracker.longitude import wrap_to_center
from constellation_tracker.models import OrbitalObject
from constellation_tracker.session import TrackerSession
from constellation_tracker.tle_fetcher import parse_tle_params

NO_COVERAGE_MESSAGE = "No satellites cover this location."


def satellite_entry(obj: OrbitalObject, index: int, session: TrackerSession) -> Optional[dict]:
    if obj.current_position is None:
        return None

    show = not is_spare(obj) or session.show_spares
    return {
        "index": index,
        "number": obj.number,
        "name": obj.name,
        "lat": round(obj.current_position.lat, 4),
        "lng": round(wrap_to_center(obj.current_position.lng, session.reference_longitude), 4),
        "visible": show,
        "show_circle": show and session.show_coverage_circles,
        "highlighted": obj is session.selected,
    }


def satellite_info(obj: OrbitalObject, with_params: bool = False) -> Optional[dict]:
    """Info panel for one satellite; velocity is shown in km/h."""
    if obj.current_position is None:
        return None

    info = {
        "name": obj.name,
        "number": obj.number,
        "lat": round(obj.current_position.lat, 4),
        "lng": round(obj.current_position.lng, 4),
        "alt_km": round(obj.altitude, 2),
        "speed_km_s": round(obj.speed, 4),
        "velocity_km_h": round(obj.speed * 3600, 2),
    }
    if with_params:
        info["line1"] = obj.line1
        info["line2"] = obj.line2
        try:
            info["params"] = parse_tle_params(obj.line1, obj.line2)
        except ValueError:
            info["params"] = None
    return info


def build_render_state(session: TrackerSession) -> dict:
    center = session.reference_longitude

    satellites = []
    for index, obj in enumerate(session.objects):
        entry = satellite_entry(obj, index, session)
        if entry is not None:
            satellites.append(entry)

    user = None
    lines = []
    covering = []
    message = None
    if session.ground_location is not None:
        point = ground_point(session.ground_location, center)
        user = {"lat": point.lat, "lng": point.lng}
        if session.show_coverage:
            result = session.coverage or {}
            lines = coverage_lines(result, session.ground_location, center)
            covering = covering_names(result)
            if not covering:
                message = NO_COVERAGE_MESSAGE

    selected = None
    if session.selected is not None:
        selected = satellite_info(session.selected)

    return {
        "center_lng": center,
        "circle_radius_m": config.COVERAGE_RADIUS_M,
        "satellites": satellites,
        "user": user,
        "coverage_lines": lines,
        "covering": covering,
        "covering_message": message,
        "selected": selected,
        "load_error": session.load_error,
        "degraded": session.tle_degraded,
    }
