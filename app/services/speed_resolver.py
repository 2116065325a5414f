# path: route-enrichment-api/app/services/speed_resolver.py

from __future__ import annotations

from enum import Enum
from typing import Optional, Tuple
import logging
import math

from app.core.config import EnrichmentConfig
from app.models.route_models import Coordinate, RoadMatch, SpeedEstimate, SpeedSource
from app.services.maxspeed import is_nsl_tag, parse_osm_maxspeed_to_mph
from app.services.road_matcher import RoadMatcher

logger = logging.getLogger(__name__)


class SpeedTagKey(str, Enum):
    MAXSPEED = "maxspeed"
    FORWARD = "maxspeed:forward"
    BACKWARD = "maxspeed:backward"
    TYPE = "maxspeed:type"
    CONDITIONAL = "maxspeed:conditional"


# Tried in this order on a matched feature; first value that parses wins.
SPEED_TAG_CASCADE = (
    SpeedTagKey.MAXSPEED,
    SpeedTagKey.FORWARD,
    SpeedTagKey.BACKWARD,
    SpeedTagKey.TYPE,
    SpeedTagKey.CONDITIONAL,
)

# UK defaults by highway class. Provisional hand-tuned values.
ROAD_CLASS_FALLBACK_MPH = {
    "motorway": 70,
    "motorway_link": 50,
    "trunk": 60,
    "trunk_link": 50,
    "primary": 50,
    "primary_link": 40,
    "secondary": 40,
    "secondary_link": 30,
    "tertiary": 30,
    "tertiary_link": 30,
    "residential": 30,
    "unclassified": 30,
    "service": 20,
    "living_street": 20,
    "track": 15,
}

OSM_BASE_CONFIDENCE = 0.95
OSM_NSL_BASE_CONFIDENCE = 0.92
OSM_SNAP_DECAY_M = 300.0
OSM_NEARBY_BASE_CONFIDENCE = 0.85
OSM_NEARBY_DECAY_M = 400.0
INFERRED_CONFIDENCE = 0.6


def clamp01(x: float) -> float:
    if not math.isfinite(x):
        return 0.0
    return max(0.0, min(1.0, x))


def road_class_fallback_mph(road_class: Optional[str]) -> Optional[int]:
    if not road_class:
        return None
    return ROAD_CLASS_FALLBACK_MPH.get(str(road_class).strip().lower())


def first_usable_tag(road: RoadMatch) -> Optional[Tuple[int, str]]:
    """Walk the tag cascade on one feature; returns (mph, raw tag) or None."""
    for key in SPEED_TAG_CASCADE:
        raw = road.speed_tags.get(key.value)
        if raw is None and key is SpeedTagKey.MAXSPEED:
            raw = road.raw_speed_tag
        mph = parse_osm_maxspeed_to_mph(raw)
        if mph is not None:
            return mph, str(raw)
    return None


class SpeedResolver:
    def __init__(self, matcher: RoadMatcher, config: Optional[EnrichmentConfig] = None) -> None:
        self.matcher = matcher
        self.config = config or EnrichmentConfig()

    def _from_feature(self, road: RoadMatch, snapped: Optional[RoadMatch]) -> Optional[SpeedEstimate]:
        hit = first_usable_tag(road)
        if hit is None:
            return None
        mph, raw = hit
        if is_nsl_tag(raw):
            source, base = SpeedSource.OSM_NSL, OSM_NSL_BASE_CONFIDENCE
        else:
            source, base = SpeedSource.OSM, OSM_BASE_CONFIDENCE
        return SpeedEstimate(
            mph=mph,
            source=source,
            confidence=clamp01(base - road.distance_m / OSM_SNAP_DECAY_M),
            raw_tag=raw,
            snapped=snapped,
            matched=road,
        )

    def resolve(self, point: Coordinate) -> SpeedEstimate:
        cfg = self.config
        snap = self.matcher.snap_to_road(point, cfg.snap_radius_m)

        # 1. Tags on the snapped road itself
        if snap is not None:
            est = self._from_feature(snap, snapped=snap)
            if est is not None:
                return est

        # 2. Confidently on an untagged road: look wider for a tagged segment
        if snap is not None and snap.distance_m <= cfg.widen_snap_max_dist_m:
            wide = self.matcher.nearest_speed_tagged_road(point, cfg.widened_snap_radius_m)
            if wide is not None:
                est = self._from_feature(wide, snapped=snap)
                if est is not None:
                    logger.debug(
                        f"Speed from widened pass: feature {wide.feature_id} at {wide.distance_m}m"
                    )
                    return est

        # 3. Nearest speed-tagged road within the original radius
        nearby = self.matcher.nearest_speed_tagged_road(point, cfg.nearby_radius_m)
        if nearby is not None:
            hit = first_usable_tag(nearby)
            if hit is not None:
                mph, raw = hit
                return SpeedEstimate(
                    mph=mph,
                    source=SpeedSource.OSM_NEARBY,
                    confidence=clamp01(
                        OSM_NEARBY_BASE_CONFIDENCE - nearby.distance_m / OSM_NEARBY_DECAY_M
                    ),
                    raw_tag=raw,
                    snapped=snap,
                    matched=nearby,
                )

        # 4. Road class default
        inferred = road_class_fallback_mph(snap.road_class if snap else None)
        if inferred is not None:
            return SpeedEstimate(
                mph=inferred,
                source=SpeedSource.INFERRED_ROAD_CLASS,
                confidence=INFERRED_CONFIDENCE,
                snapped=snap,
                matched=snap,
            )

        return SpeedEstimate(
            mph=None,
            source=SpeedSource.NONE,
            confidence=0.0,
            snapped=snap,
            matched=nearby,
        )
