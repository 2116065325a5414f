# path: route-enrichment-api/app/stores/base.py

from __future__ import annotations

from typing import Collection, List, Mapping, Optional, Protocol

from app.models.route_models import Coordinate, PointHit, RoadMatch


# Speed-related tag keys a line feature may carry, in cascade order
SPEED_TAG_KEYS = (
    "maxspeed",
    "maxspeed:forward",
    "maxspeed:backward",
    "maxspeed:type",
    "maxspeed:conditional",
)

CONTROL_KINDS = frozenset({"traffic_signals", "stop", "give_way"})
CROSSING_KIND = "crossing"
CROSSING_KINDS = frozenset({CROSSING_KIND})

ZEBRA_CROSSING_VALUES = frozenset({"zebra", "uncontrolled", "marked"})


class SpatialStoreError(RuntimeError):
    """A spatial query could not be answered (store unreachable, timeout, bad data)."""


class SpatialStore(Protocol):
    def nearest_road(
        self,
        point: Coordinate,
        radius_m: float,
        speed_tagged_only: bool = False,
    ) -> Optional[RoadMatch]:
        ...

    def nearest_points(
        self,
        point: Coordinate,
        kinds: Collection[str],
        radius_m: float,
        limit: int,
    ) -> List[PointHit]:
        ...


def point_kind(tags: Mapping[str, object]) -> Optional[str]:
    """Classify an OSM point by its tags into one of the queryable kinds."""
    highway = str(tags.get("highway") or "").lower()
    if highway in CONTROL_KINDS:
        return highway
    if highway == "crossing":
        crossing = str(tags.get("crossing") or "").lower()
        crossing_ref = str(tags.get("crossing_ref") or "").lower()
        if crossing in ZEBRA_CROSSING_VALUES or crossing_ref == "zebra":
            return CROSSING_KIND
    return None


def speed_tags_from(tags: Mapping[str, object]) -> dict:
    out = {}
    for key in SPEED_TAG_KEYS:
        v = tags.get(key)
        if v is not None and str(v).strip():
            out[key] = str(v)
    return out
