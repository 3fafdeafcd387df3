"""
TLE Fetcher — retrieves the constellation's Two-Line Element sets from Celestrak.

A TLE (Two-Line Element set) is a standardized format for encoding the orbital
parameters of an Earth-orbiting object. Celestrak serves a whole group at once
as newline-delimited text, three lines per satellite (name, line 1, line 2).

TLEs are updated a few times a day. We cache the raw text for 8 hours to
avoid hammering the server, and fall back to an older copy when the network
is unavailable:

    fresh cache → live fetch → stale cache → AcquisitionError
"""

import datetime
import time
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from constellation_tracker import config
from constellation_tracker.cache_store import CacheStore
from constellation_tracker.logging_config import get_logger

logger = get_logger(__name__)


class AcquisitionError(RuntimeError):
    """No TLE data could be fetched and no cached copy exists."""


@dataclass(frozen=True)
class Acquisition:
    text: str
    source: str  # "cache", "network" or "stale-cache"
    degraded: bool = False


def _now_ms() -> int:
    return int(time.time() * 1000)


class TLEFetcher:
    """
    Acquires raw TLE text under the cache/freshness/fallback policy.

    Args:
        store: cache store holding the raw text and its fetch epoch
        url: element-set endpoint
        max_age_ms: cached text younger than this is served without a fetch
        clock: returns "now" in epoch milliseconds
        transport: optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(self, store: CacheStore,
                 url: str = config.CELESTRAK_URL,
                 max_age_ms: int = config.TLE_CACHE_AGE_MS,
                 clock: Callable[[], int] = _now_ms,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = config.HTTP_TIMEOUT_SECONDS):
        self.store = store
        self.url = url
        self.max_age_ms = max_age_ms
        self.clock = clock
        self.transport = transport
        self.timeout = timeout

    def _cached_text(self) -> Optional[str]:
        return self.store.get(config.TLE_CACHE_KEY) or None

    def _cached_time(self) -> int:
        # A missing or garbled timestamp makes the entry stale, never fresh
        raw = self.store.get(config.TLE_CACHE_TIME_KEY) or "0"
        try:
            return int(raw)
        except ValueError:
            return 0

    def is_fresh(self, now: Optional[int] = None) -> bool:
        if self._cached_text() is None:
            return False
        now = self.clock() if now is None else now
        return now - self._cached_time() < self.max_age_ms

    async def _fetch(self) -> str:
        async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as client:
            response = await client.get(self.url)
            response.raise_for_status()
            return response.text

    async def acquire(self) -> Acquisition:
        """
        Return raw TLE text, touching the network only when the cache is stale.

        Raises:
            AcquisitionError: the fetch failed and nothing is cached
        """
        now = self.clock()

        # Tier 1: fresh cache, no network
        if self.is_fresh(now):
            logger.info("Loaded TLE data from cache.")
            return Acquisition(self._cached_text(), "cache")

        # Tier 2: live fetch
        try:
            text = await self._fetch()
        except httpx.HTTPError as e:
            # Tier 3: any cached copy, regardless of age
            cached = self._cached_text()
            if cached is not None:
                logger.warning(f"Error fetching TLE data, using possibly stale cache: {e}")
                return Acquisition(cached, "stale-cache", degraded=True)
            # Tier 4: nothing to fall back to
            logger.error(f"Failed to fetch TLE data and no cache available: {e}")
            raise AcquisitionError(f"Could not fetch TLE data and no cache available: {e}") from e

        try:
            self.store.set(config.TLE_CACHE_KEY, text)
            self.store.set(config.TLE_CACHE_TIME_KEY, str(now))
        except OSError as e:
            # The download is still good; it just won't be there next time
            logger.warning(f"Fetched TLE data but could not cache it: {e}")
        else:
            logger.info("Fetched and cached new TLE data.")
        return Acquisition(text, "network")

    def clear(self) -> None:
        """Drop the cached element set so the next acquire() has to fetch."""
        self.store.clear(config.TLE_CACHE_KEY)
        self.store.clear(config.TLE_CACHE_TIME_KEY)


def parse_tle_epoch(line1: str) -> str:
    """
    Parse the epoch from TLE line 1 into a human-readable UTC string.

    TLE epoch format: YYDDD.DDDDDDDD
      YY  = 2-digit year (57-99 → 1957-1999, 00-56 → 2000-2056)
      DDD = day of year (1-based)
      .DD = fractional day
    """
    epoch_str = line1[18:32].strip()
    year_2digit = int(epoch_str[:2])
    year = 2000 + year_2digit if year_2digit < 57 else 1900 + year_2digit
    day_of_year = float(epoch_str[2:])

    base = datetime.datetime(year, 1, 1)
    epoch_dt = base + datetime.timedelta(days=day_of_year - 1)
    return epoch_dt.strftime("%Y-%m-%d %H:%M:%S UTC")


def parse_tle_params(line1: str, line2: str) -> dict:
    """
    Extract key orbital parameters from TLE lines for the info panel.

    These numbers come directly from the TLE — no propagation needed.
    """
    inclination = float(line2[8:16].strip())
    raan = float(line2[17:25].strip())
    eccentricity = float("0." + line2[26:33].strip())

    # Mean motion (revolutions per day) → orbital period in minutes
    mean_motion = float(line2[52:63].strip())
    period_minutes = 1440.0 / mean_motion

    return {
        "inclination_deg": round(inclination, 4),
        "raan_deg": round(raan, 4),
        "eccentricity": round(eccentricity, 6),
        "mean_motion_rev_per_day": round(mean_motion, 8),
        "period_minutes": round(period_minutes, 2),
        "epoch": parse_tle_epoch(line1),
    }
