"""
Constellation Tracker engine.

Owns the session state and wires the pieces together:

    TLEFetcher.acquire() → parse_tle_text() → PropagationScheduler (1 s loop)
                                              ↳ compute_coverage() when a
                                                ground location is set

Everything runs on one asyncio event loop. The TLE download is the only
awaited I/O; ticks, coverage and the user operations (pick a location,
pan the map, toggle flags, select a satellite) run to completion without
yielding.
"""

import asyncio
import json
import math
from typing import Optional

from constellation_tracker import config
from constellation_tracker.cache_store import CacheStore, JsonFileCacheStore
from constellation_tracker.coverage import compute_coverage
from constellation_tracker.logging_config import get_logger
from constellation_tracker.longitude import wrap_to_center
from constellation_tracker.models import GeoPoint, GroundLocation, OrbitalObject
from constellation_tracker.render_state import build_render_state
from constellation_tracker.scheduler import PropagationScheduler
from constellation_tracker.session import DISPLAY_FLAGS, TrackerSession
from constellation_tracker.tle_fetcher import AcquisitionError, TLEFetcher
from constellation_tracker.tle_parser import parse_tle_text

logger = get_logger(__name__)


class ConstellationTracker:
    def __init__(self, store: Optional[CacheStore] = None,
                 fetcher: Optional[TLEFetcher] = None,
                 scheduler: Optional[PropagationScheduler] = None,
                 refresh_interval: float = config.TLE_REFRESH_INTERVAL_SECONDS):
        self.store = store if store is not None else JsonFileCacheStore(config.CACHE_FILE)
        self.fetcher = fetcher if fetcher is not None else TLEFetcher(self.store)
        self.session = scheduler.session if scheduler is not None else TrackerSession()
        self.scheduler = scheduler if scheduler is not None else PropagationScheduler(self.session)
        self.refresh_interval = refresh_interval

    # ── Loading ────────────────────────────────────────────────────────────────

    async def load(self, tick: bool = True) -> bool:
        """
        Acquire and parse the element sets.

        With tick set (the default) the first propagation pass runs right
        away; run() leaves that to the loop instead. Returns False when
        nothing could be acquired; the reason is kept in
        session.load_error for the user. An empty parse is not an
        acquisition failure and leaves load_error unset.
        """
        try:
            acquisition = await self.fetcher.acquire()
        except AcquisitionError as e:
            self.session.load_error = str(e)
            logger.error("No TLE data available. Satellites cannot be loaded.")
            return False

        satellites = parse_tle_text(acquisition.text)
        if not satellites:
            logger.error("No satellites were parsed. Check the TLE data format.")

        self.session.load_error = None
        self.session.tle_degraded = acquisition.degraded
        self.session.stage_refresh(satellites)
        if tick:
            self.scheduler.tick()
        logger.info(f"Loaded {len(satellites)} satellites ({acquisition.source})")
        return True

    async def refresh(self) -> bool:
        """
        Re-acquire the element sets and stage them for the next tick.

        A refresh that fails, or parses to nothing, keeps the current
        collection.
        """
        try:
            acquisition = await self.fetcher.acquire()
        except AcquisitionError as e:
            logger.error(f"TLE refresh failed, keeping current satellites: {e}")
            return False

        satellites = parse_tle_text(acquisition.text)
        if not satellites:
            logger.error("TLE refresh parsed no satellites, keeping current satellites")
            return False

        self.session.load_error = None
        self.session.tle_degraded = acquisition.degraded
        self.session.stage_refresh(satellites)
        logger.info(f"Staged {len(satellites)} satellites from refresh ({acquisition.source})")
        return True

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.refresh_interval)
            await self.refresh()

    async def run(self) -> None:
        """Load, then keep propagating and refreshing until stop()."""
        self.restore_ground_location()
        # The loop's first tick installs the collection
        if not await self.load(tick=False):
            return

        refresher = asyncio.create_task(self._refresh_loop())
        try:
            await self.scheduler.run()
        finally:
            refresher.cancel()
            try:
                await refresher
            except asyncio.CancelledError:
                pass

    def stop(self) -> None:
        self.scheduler.stop()

    # ── Ground location ────────────────────────────────────────────────────────

    @staticmethod
    def _checked_location(latitude: float, longitude: float) -> GroundLocation:
        if not (math.isfinite(latitude) and math.isfinite(longitude)):
            raise ValueError("Latitude and longitude must be finite")
        if not -90.0 <= latitude <= 90.0:
            raise ValueError(f"Latitude out of range: {latitude}")
        return GroundLocation(latitude, longitude)

    def set_ground_location(self, latitude: float, longitude: float) -> GroundLocation:
        """Pick a ground location (a map click): persist it, deselect, recompute coverage."""
        location = self._checked_location(latitude, longitude)
        self.session.ground_location = location
        try:
            self.store.set(config.USER_LOCATION_KEY, json.dumps(location.to_dict()))
        except OSError as e:
            logger.warning(f"Could not save location, it will not survive a restart: {e}")
        self.deselect()
        self.recompute_coverage()
        return location

    def restore_ground_location(self) -> Optional[GroundLocation]:
        """Restore the persisted location and center the view on it."""
        raw = self.store.get(config.USER_LOCATION_KEY)
        if not raw:
            return None
        try:
            saved = GroundLocation.from_dict(json.loads(raw))
            location = self._checked_location(saved.latitude, saved.longitude)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Ignoring saved location {raw!r}: {e}")
            return None

        self.session.ground_location = location
        self.set_view_center(location.longitude)
        return location

    # ── View ───────────────────────────────────────────────────────────────────

    def set_view_center(self, longitude: float) -> None:
        """The map was panned: re-wrap every position around the new center."""
        if not math.isfinite(longitude):
            raise ValueError("View center longitude must be finite")
        session = self.session
        session.reference_longitude = longitude

        for obj in session.objects:
            if obj.current_position is not None:
                pos = obj.current_position
                obj.current_position = GeoPoint(pos.lat, wrap_to_center(pos.lng, longitude))
            if obj.previous_position is not None:
                pos = obj.previous_position
                obj.previous_position = GeoPoint(pos.lat, wrap_to_center(pos.lng, longitude))

        self.recompute_coverage()

    # ── Flags ──────────────────────────────────────────────────────────────────

    def set_flag(self, name: str, value: bool) -> None:
        if name not in DISPLAY_FLAGS:
            raise KeyError(f"Unknown display flag: {name}")
        setattr(self.session, name, bool(value))
        if name == "show_spares":
            self.recompute_coverage()

    # ── Selection ──────────────────────────────────────────────────────────────

    def _unique(self, number: str) -> OrbitalObject:
        matches = self.session.find_all(number)
        if not matches:
            raise KeyError(f"Unknown satellite: {number}")
        if len(matches) > 1:
            raise ValueError(f"{len(matches)} satellites share the number {number!r}, select by index")
        return matches[0]

    def _at(self, index: int) -> OrbitalObject:
        if not 0 <= index < len(self.session.objects):
            raise KeyError(f"No satellite at index {index}")
        return self.session.objects[index]

    def select(self, number: str) -> None:
        self.session.selected = self._unique(number)

    def select_at(self, index: int) -> None:
        self.session.selected = self._at(index)

    def deselect(self) -> None:
        self.session.selected = None

    def _toggle(self, obj: OrbitalObject) -> Optional[OrbitalObject]:
        if self.session.selected is obj:
            self.deselect()
        else:
            self.session.selected = obj
        return self.session.selected

    def toggle_selection(self, number: str) -> Optional[OrbitalObject]:
        """Marker click: select the satellite, or deselect it if already selected."""
        return self._toggle(self._unique(number))

    def toggle_selection_at(self, index: int) -> Optional[OrbitalObject]:
        """Marker click by position in the collection; works for duplicate numbers."""
        return self._toggle(self._at(index))

    # ── Coverage / state ───────────────────────────────────────────────────────

    def recompute_coverage(self) -> None:
        session = self.session
        if session.ground_location is None:
            session.coverage = None
            return
        session.coverage = compute_coverage(
            session.ground_location,
            session.objects,
            session.reference_longitude,
            include_spares=session.show_spares,
        )

    def snapshot(self) -> dict:
        return build_render_state(self.session)
