"""
Propagation Scheduler — moves every satellite once per second.

Each tick, for every satellite:
  1. shift current position/timestamp into the "previous" slot
  2. SGP4-propagate to now (skip the satellite this tick if that fails)
  3. ECI → geodetic using the same instant's GMST
  4. wrap longitude to the current view center
  5. store position, timestamp (+3.6 s bias), altitude and speed

Then, if the user has picked a ground location, coverage is recomputed.

The loop sleeps a fixed interval after each tick completes rather than
firing on a fixed schedule, so ticks drift later when a tick is slow.
"""

import asyncio
import datetime
import math
from typing import Awaitable, Callable, List, Optional

from constellation_tracker import config
from constellation_tracker.coverage import compute_coverage
from constellation_tracker.logging_config import get_logger
from constellation_tracker.longitude import wrap_to_center
from constellation_tracker.models import GeoPoint, OrbitalObject
from constellation_tracker.propagator import compute_speed, eci_to_geodetic, propagate, sidereal_time
from constellation_tracker.session import TrackerSession

logger = get_logger(__name__)

TickListener = Callable[[TrackerSession], None]


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _epoch_ms(dt: datetime.datetime) -> int:
    return int(dt.timestamp() * 1000)


class PropagationScheduler:
    def __init__(self, session: TrackerSession,
                 interval: float = config.TICK_INTERVAL_SECONDS,
                 clock: Callable[[], datetime.datetime] = _utcnow,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.session = session
        self.interval = interval
        self.clock = clock
        self.sleep = sleep
        self.listeners: List[TickListener] = []
        self.tick_count = 0
        self._running = False

    def add_listener(self, listener: TickListener) -> None:
        self.listeners.append(listener)

    def remove_listener(self, listener: TickListener) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def update_object(self, obj: OrbitalObject, now: datetime.datetime, now_ms: int,
                      gmst_rad: float) -> bool:
        """Propagate one satellite. Returns False if it kept its old position."""
        obj.previous_position = obj.current_position
        obj.previous_timestamp = obj.current_timestamp if obj.current_timestamp is not None else now_ms

        state = propagate(obj.satrec, now)
        if state is None:
            logger.debug(f"No SGP4 state for {obj.name} at {now.isoformat()}, keeping last position")
            return False
        r_eci, v_eci = state

        geo = eci_to_geodetic(r_eci, gmst_rad)
        latitude = math.degrees(geo.latitude)
        longitude = wrap_to_center(math.degrees(geo.longitude), self.session.reference_longitude)

        obj.current_position = GeoPoint(latitude, longitude)
        obj.current_timestamp = now_ms + config.TIMESTAMP_BIAS_MS
        obj.altitude = geo.height
        obj.speed = compute_speed(v_eci)
        return True

    def tick(self, now: Optional[datetime.datetime] = None) -> int:
        """
        Run one propagation pass over the whole collection.

        Returns the number of satellites whose position was updated.
        """
        session = self.session
        session.apply_pending_refresh()

        now = self.clock() if now is None else now
        now_ms = _epoch_ms(now)
        gmst_rad = sidereal_time(now)

        updated = 0
        for obj in session.objects:
            try:
                if self.update_object(obj, now, now_ms, gmst_rad):
                    updated += 1
            except Exception as e:
                # One bad satellite must not stall the others
                logger.error(f"Propagation failed for {obj.name}: {e}")

        if session.ground_location is not None:
            session.coverage = compute_coverage(
                session.ground_location,
                session.objects,
                session.reference_longitude,
                include_spares=session.show_spares,
            )

        self.tick_count += 1
        for listener in list(self.listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Tick listener failed: {e}")

        return updated

    async def run(self) -> None:
        """
        Tick, wait the interval, tick again, until stop() is called.

        The wait starts when a tick finishes, so the schedule drifts by
        however long each tick took.
        """
        self._running = True
        logger.info(f"Propagation loop started ({self.interval:.1f}s interval)")
        while self._running:
            self.tick()
            await self.sleep(self.interval)
        logger.info("Propagation loop stopped")

    def stop(self) -> None:
        """Stop scheduling further ticks. A tick in progress still completes."""
        self._running = False

    @property
    def running(self) -> bool:
        return self._running
