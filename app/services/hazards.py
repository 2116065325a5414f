# path: route-enrichment-api/app/services/hazards.py

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
import logging
import re

from app.core.config import EnrichmentConfig
from app.models.route_models import ControlHit, ControlKind, Coordinate, PointHit
from app.services.instruction_builder import InstructionBuilder
from app.stores.base import CONTROL_KINDS, CROSSING_KINDS, SpatialStore, SpatialStoreError
from app.utils.geo import densify

logger = logging.getLogger(__name__)


# Hazard tags
TAG_ROUNDABOUT = "roundabout"
TAG_TRAFFIC_LIGHTS = "traffic_lights"
TAG_STOP = "stop"
TAG_GIVE_WAY = "give_way"
TAG_ZEBRA = "zebra_crossing"

# Common driving-test fault risks
RISK_ROUNDABOUT = ("roundabout_observation", "roundabout_lane_discipline", "signalling")
RISK_TRAFFIC_LIGHTS = ("traffic_light_response",)
RISK_STOP = ("stop_line_full_stop", "junction_observation")
RISK_GIVE_WAY = ("junction_observation",)
RISK_PEDESTRIAN = ("pedestrian_crossing_observation", "pedestrian_priority")
RISK_BEND_SPEED = ("bend_approach_speed",)

_ORDINAL_EXIT_RE = re.compile(r"(\d+)\s*(?:st|nd|rd|th)\s+exit")
_SEMANTIC_EXIT_RE = re.compile(r"roundabout\b.*?\b(left|right|ahead|straight)\b")
_SEMANTIC_EXIT_BEFORE_RE = re.compile(r"\b(left|right|ahead|straight)\b.*?\broundabout")
_TRAFFIC_LIGHTS_RE = re.compile(r"traffic[\s_-]*(?:lights?|signals?)")

# Phrase -> (exit number, confidence); UK roundabouts, clockwise
SEMANTIC_EXITS = {
    "left": (1, 0.75),
    "ahead": (2, 0.70),
    "straight": (2, 0.70),
    "right": (3, 0.75),
}
ORDINAL_EXIT_CONFIDENCE = 0.95


def is_roundabout(direction: Optional[str], action_type: Optional[str] = None) -> bool:
    return any("roundabout" in (s or "").lower() for s in (direction, action_type))


def extract_roundabout_exit(text: Optional[str]) -> Tuple[Optional[int], Optional[bool], Optional[float]]:
    """
    Exit number from instruction text as (exit, inferred, confidence).

    An explicit ordinal ("take the 2nd exit") wins; a direction phrase after
    "roundabout" is an inference, then one before it ("turn right at the
    roundabout"). Unknown exits stay None.
    """
    s = (text or "").lower()

    m = _ORDINAL_EXIT_RE.search(s)
    if m:
        n = int(m.group(1))
        if n > 0:
            return n, False, ORDINAL_EXIT_CONFIDENCE

    m = _SEMANTIC_EXIT_RE.search(s) or _SEMANTIC_EXIT_BEFORE_RE.search(s)
    if m:
        exit_no, conf = SEMANTIC_EXITS[m.group(1)]
        return exit_no, True, conf

    return None, None, None


def roundabout_advisory_mph(exit_no: Optional[int]) -> int:
    if exit_no is not None and exit_no >= 4:
        return 12
    if exit_no == 3:
        return 14
    return 15


def mentions_traffic_lights(text: Optional[str]) -> bool:
    return bool(_TRAFFIC_LIGHTS_RE.search((text or "").lower()))


def zebra_confidence(distance_m: float) -> float:
    if distance_m <= 15:
        return 0.9
    if distance_m <= 30:
        return 0.7
    if distance_m <= 60:
        return 0.5
    return 0.3


def classify_roundabout(builder: InstructionBuilder) -> bool:
    if not is_roundabout(builder.source.direction, builder.source.action_type):
        return False

    exit_no, inferred, conf = extract_roundabout_exit(builder.text)
    builder.tag(TAG_ROUNDABOUT).add_fault_risk(*RISK_ROUNDABOUT)
    builder.mark_decision_point().floor_hazard(3)
    builder.set(
        junction_type="roundabout",
        roundabout_exit=exit_no,
        roundabout_exit_number_inferred=inferred,
        roundabout_exit_confidence=conf,
    )
    return True


def classify_controls(builder: InstructionBuilder, hits: Sequence[ControlHit]) -> None:
    """Tag the instruction from the nearest control; all hits are kept for inspection."""
    ranked = sorted(hits, key=lambda h: h.distance_m)
    builder.set(
        control_hits=ranked,
        nearest_control=ranked[0] if ranked else None,
    )
    if not ranked:
        return

    nearest = ranked[0]
    d = nearest.distance_m

    if nearest.kind is ControlKind.TRAFFIC_SIGNALS:
        builder.tag(TAG_TRAFFIC_LIGHTS).add_fault_risk(*RISK_TRAFFIC_LIGHTS)
        builder.set(junction_type="traffic_lights")
        if d <= 30:
            builder.mark_decision_point()
        if d <= 20:
            builder.set(stop_line_expected=True)
        builder.floor_hazard(3 if d <= 15 else 2)

    elif nearest.kind is ControlKind.STOP:
        builder.tag(TAG_STOP).add_fault_risk(*RISK_STOP)
        builder.set(junction_type="stop")
        if d <= 30:
            builder.mark_decision_point()
            builder.set(must_stop=True, stop_line_expected=True)
        builder.floor_hazard(3)

    elif nearest.kind is ControlKind.GIVE_WAY:
        builder.tag(TAG_GIVE_WAY).add_fault_risk(*RISK_GIVE_WAY)
        builder.set_default("junction_type", "give_way")
        builder.mark_decision_point()
        builder.floor_hazard(2)


def classify_zebra(builder: InstructionBuilder, hit: Optional[PointHit], config: EnrichmentConfig) -> None:
    if hit is None or hit.distance_m > config.zebra_accept_m:
        return

    builder.set(
        zebra_crossing_dist_m=hit.distance_m,
        zebra_crossing_confidence=zebra_confidence(hit.distance_m),
    )
    if hit.distance_m <= config.zebra_tag_m:
        builder.tag(TAG_ZEBRA).add_fault_risk(*RISK_PEDESTRIAN)
        builder.mark_decision_point().floor_hazard(2)
        builder.set(stop_line_expected=True)


def tag_speed_drop(builder: InstructionBuilder, limit_mph: Optional[int], advisory_mph: Optional[int]) -> None:
    warn = limit_mph is not None and advisory_mph is not None and limit_mph - advisory_mph >= 10
    builder.set(speed_drop_warning=warn)
    if warn:
        builder.add_fault_risk(*RISK_BEND_SPEED)


class HazardClassifier:
    """Junction, control and crossing classification for one instruction."""

    def __init__(self, store: SpatialStore, config: Optional[EnrichmentConfig] = None) -> None:
        self.store = store
        self.config = config or EnrichmentConfig()

    def _points(self, point: Coordinate, kinds, radius_m: float, limit: int) -> List[PointHit]:
        if not point.in_range:
            return []
        try:
            return self.store.nearest_points(point, kinds, radius_m, limit)
        except SpatialStoreError as e:
            logger.warning(
                f"Spatial point query {sorted(kinds)} failed at "
                f"({point.lat:.6f}, {point.lon:.6f}) r={radius_m:.0f}m: {e}"
            )
            return []

    def find_controls(self, point: Coordinate, text: str = "") -> List[ControlHit]:
        cfg = self.config
        if mentions_traffic_lights(text):
            radius, limit = cfg.traffic_light_radius_m, cfg.traffic_light_limit
        else:
            radius, limit = cfg.control_radius_m, cfg.control_limit

        hits = self._points(point, CONTROL_KINDS, radius, limit)
        return [
            ControlHit(kind=ControlKind(h.kind), distance_m=h.distance_m, feature_id=h.feature_id)
            for h in hits
        ]

    def find_nearest_zebra(self, polyline: Sequence[Coordinate], index: int) -> Optional[PointHit]:
        cfg = self.config
        if not polyline or index < 0 or index >= len(polyline):
            return None

        window = polyline[max(0, index - cfg.zebra_window): index + cfg.zebra_window + 1]
        best = None
        for p in densify(window, cfg.zebra_densify_step_m):
            for hit in self._points(p, CROSSING_KINDS, cfg.zebra_search_radius_m, cfg.zebra_limit):
                if best is None or hit.distance_m < best.distance_m:
                    best = hit
        return best

    def classify(self, builder: InstructionBuilder, polyline: Sequence[Coordinate], index: int) -> bool:
        """Apply all classifiers; returns True when the instruction is a roundabout."""
        roundabout = classify_roundabout(builder)

        point = polyline[index]
        classify_controls(builder, self.find_controls(point, builder.text))

        zebra = self.find_nearest_zebra(polyline, index)
        classify_zebra(builder, zebra, self.config)

        logger.debug(
            f"Instruction at index {index}: tags={sorted(builder.hazard_tags)} "
            f"score={builder.hazard_score}"
        )
        return roundabout
