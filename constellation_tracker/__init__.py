"""
Constellation Tracker

Tracks an orbiting constellation from periodically refreshed TLE sets,
keeps every satellite's ground position current and works out which
satellites cover a chosen ground location.

Modules:
    tle_fetcher: TLE acquisition with cache/freshness/fallback policy
    tle_parser: three-line TLE text → OrbitalObject records
    propagator: SGP4 propagation, GMST and geodetic conversion
    scheduler: the once-per-second propagation loop
    longitude: longitude continuity (wrap-to-center)
    coverage: coverage radius test and deduplication
    tracker: the engine tying it all together
"""

__version__ = "1.0.0"
