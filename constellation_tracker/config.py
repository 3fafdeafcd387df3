"""
Tracker Configuration and Constants

Values that shape the tracking engine. A few of them can be overridden
through environment variables so a deployment can point at another
element-set group or keep its cache somewhere else.
"""

import os
from pathlib import Path

# Celestrak GP data API, Iridium NEXT group in three-line TLE format
CELESTRAK_URL: str = os.environ.get(
    "TRACKER_TLE_URL",
    "https://celestrak.org/NORAD/elements/gp.php?GROUP=iridium-NEXT&FORMAT=tle",
)
HTTP_TIMEOUT_SECONDS: float = 10.0

# Cache store keys
TLE_CACHE_KEY: str = "iridium_tle_data"
TLE_CACHE_TIME_KEY: str = "iridium_tle_time"
USER_LOCATION_KEY: str = "userLocation"

# A cached element set younger than this is used without touching the network
TLE_CACHE_AGE_MS: int = 8 * 60 * 60 * 1000  # 8 hours

CACHE_FILE: Path = Path(
    os.environ.get("TRACKER_CACHE_FILE", str(Path.home() / ".constellation_tracker_cache.json"))
)

# Propagation loop
TICK_INTERVAL_SECONDS: float = 1.0
# Timestamps are pushed slightly into the future so consumers never
# treat a fresh sample as already stale
TIMESTAMP_BIAS_MS: int = 3600

# Element sets are re-acquired on the same cadence as the cache TTL
TLE_REFRESH_INTERVAL_SECONDS: float = TLE_CACHE_AGE_MS / 1000.0

# Coverage
COVERAGE_RADIUS_M: float = 2_400_000.0
EARTH_MEAN_RADIUS_M: float = 6_371_000.0

# Not part of the active constellation, hidden unless spares are shown
SPARE_SATELLITE_NUMBERS: frozenset = frozenset({
    "162", "161", "169", "170", "176", "124", "175", "115", "105",
    "178", "179", "177", "174",
})
