# path: route-enrichment-api/app/services/maxspeed.py

from __future__ import annotations

from typing import Any, Optional
import math
import re


KMH_TO_MPH = 0.621371

NON_NUMERIC_MARKERS = ("signals", "variable", "none")

# UK national speed limit codes
NSL_PREFIXES = (
    ("gb:nsl_single", 60),
    ("gb:nsl_dual", 70),
    ("gb:motorway", 70),
)

_MPH_RE = re.compile(r"^(\d{1,3})\s*(mph)?$")
_KMH_RE = re.compile(r"^(\d{1,3})\s*(km/h|kmh|kph)$")
_FIRST_NUMBER_RE = re.compile(r"(\d{1,3})")

# Embedded numbers above this are taken to be km/h
MAX_PLAUSIBLE_MPH = 70


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def kmh_to_mph(kmh: float) -> int:
    return _round_half_up(kmh * KMH_TO_MPH)


def is_nsl_tag(raw: Any) -> bool:
    if raw is None:
        return False
    s = str(raw).strip().lower()
    return any(s.startswith(prefix) for prefix, _ in NSL_PREFIXES)


def parse_osm_maxspeed_to_mph(raw: Any) -> Optional[int]:
    """
    Normalize an OSM maxspeed-style tag to whole mph.

    Returns None for anything that does not resolve to a number, including
    explicitly non-numeric values such as "signals" or "none". Never raises.
    """
    if raw is None:
        return None

    s = str(raw).strip().lower()
    if not s:
        return None

    if any(marker in s for marker in NON_NUMERIC_MARKERS):
        return None

    for prefix, mph in NSL_PREFIXES:
        if s.startswith(prefix):
            return mph

    m = _MPH_RE.match(s)
    if m:
        return int(m.group(1))

    m = _KMH_RE.match(s)
    if m:
        return kmh_to_mph(int(m.group(1)))

    m = _FIRST_NUMBER_RE.search(s)
    if m:
        v = int(m.group(1))
        if v <= MAX_PLAUSIBLE_MPH:
            return v
        return kmh_to_mph(v)

    return None
