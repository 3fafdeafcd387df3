"""
Session state — everything the engine mutates, held in one place.

One TrackerSession is owned by one ConstellationTracker. The propagation
loop and the API handlers all run on the same event loop, and a tick
never yields, so no locking is needed. The one rule is that the
satellite collection is never swapped while a tick is running: a refresh
stages the new collection and the next tick installs it.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from constellation_tracker.coverage import CoverageResult
from constellation_tracker.logging_config import get_logger
from constellation_tracker.models import GroundLocation, OrbitalObject

logger = get_logger(__name__)

DISPLAY_FLAGS = ("show_spares", "show_coverage", "show_coverage_circles")


@dataclass
class TrackerSession:
    objects: List[OrbitalObject] = field(default_factory=list)
    ground_location: Optional[GroundLocation] = None
    reference_longitude: float = 0.0

    show_spares: bool = False
    show_coverage: bool = True
    show_coverage_circles: bool = False

    selected: Optional[OrbitalObject] = None
    coverage: Optional[CoverageResult] = None
    load_error: Optional[str] = None
    tle_degraded: bool = False

    pending_objects: Optional[List[OrbitalObject]] = None

    def find_all(self, number: str) -> List[OrbitalObject]:
        return [obj for obj in self.objects if obj.number == number]

    def find(self, number: str) -> Optional[OrbitalObject]:
        for obj in self.objects:
            if obj.number == number:
                return obj
        return None

    def stage_refresh(self, objects: List[OrbitalObject]) -> None:
        """Queue a replacement collection for the start of the next tick."""
        self.pending_objects = list(objects)

    def apply_pending_refresh(self) -> bool:
        """
        Install a staged collection, if any.

        The whole collection is replaced; satellites missing from the new
        set are dropped. The selection moves to the new record with the
        same number when exactly one exists, and is cleared otherwise.
        """
        if self.pending_objects is None:
            return False

        self.objects = self.pending_objects
        self.pending_objects = None

        if self.selected is not None:
            matches = self.find_all(self.selected.number)
            if len(matches) == 1:
                self.selected = matches[0]
            else:
                logger.info(f"Selected satellite {self.selected.name} is gone after refresh, deselecting")
                self.selected = None

        # Stale until the tick that installed the collection recomputes it
        self.coverage = None
        return True
