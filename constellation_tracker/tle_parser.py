"""
TLE Parser — raw three-line element text → OrbitalObject records.

Celestrak returns one block of three lines per satellite:

    IRIDIUM 106
    1 41917U 17003A   ...
    2 41917  86.3940 ...

Blank lines are ignored. The satellite number comes from the name line
("IRIDIUM 106" → "106") and the display name is normalized to
"Iridium 106". Names without a recognizable number keep their raw text
and get the number "Unknown".
"""

import re
from typing import List, Optional, Tuple

from constellation_tracker.logging_config import get_logger
from constellation_tracker.models import OrbitalObject
from constellation_tracker.propagator import ElementSetRejected, parse_element_set

logger = get_logger(__name__)

SATELLITE_NUMBER_RE = re.compile(r"IRIDIUM\s+(\d+)", re.IGNORECASE)
FAMILY_NAME = "Iridium"
UNKNOWN_NUMBER = "Unknown"


def parse_satellite_name(raw_name: str) -> Tuple[str, str]:
    """Return (number, display name) for a TLE name line."""
    name = raw_name.strip()
    match = SATELLITE_NUMBER_RE.search(name)
    if match is None:
        return UNKNOWN_NUMBER, name
    number = match.group(1)
    return number, f"{FAMILY_NAME} {number}"


def _parse_group(name_line: str, line1: str, line2: str) -> Optional[OrbitalObject]:
    number, name = parse_satellite_name(name_line)
    line1 = line1.strip()
    line2 = line2.strip()
    try:
        satrec = parse_element_set(line1, line2)
    except ElementSetRejected as e:
        logger.error(f"Error parsing TLE for {name}: {e}")
        return None
    return OrbitalObject(number=number, name=name, line1=line1, line2=line2, satrec=satrec)


def parse_tle_text(text: str) -> List[OrbitalObject]:
    """
    Parse a whole element-set download.

    Groups with a missing line are skipped, and so are groups whose
    element lines SGP4 rejects; neither stops the rest of the parse.
    An input with no usable groups gives an empty list.
    """
    lines = [line for line in text.split("\n") if line.strip()]
    satellites = []

    for i in range(0, len(lines), 3):
        group = lines[i:i + 3]
        if len(group) < 3:
            logger.warning(f"Skipping incomplete TLE group at line {i + 1}: {group[0].strip()!r}")
            continue
        sat = _parse_group(*group)
        if sat is not None:
            satellites.append(sat)

    return satellites
