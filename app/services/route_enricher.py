# path: route-enrichment-api/app/services/route_enricher.py

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Optional, Sequence, Tuple
import hashlib
import json
import logging
import math
import time
import uuid

from pydantic import ValidationError

from app.core.config import EnrichmentConfig
from app.models.route_models import (
    BBoxWGS84,
    Coordinate,
    EnrichedInstruction,
    EnrichedRoute,
    GeoJSONPoint,
    InstructionIn,
    SpeedEstimate,
    SpeedSource,
)
from app.services.curvature import CurvatureAdvisory, advisory_at
from app.services.hazards import (
    HazardClassifier,
    classify_roundabout,
    roundabout_advisory_mph,
    tag_speed_drop,
)
from app.services.instruction_builder import InstructionBuilder
from app.services.reliability import score_reliability
from app.services.road_matcher import RoadMatcher
from app.services.speed_resolver import SpeedResolver
from app.stores.base import SpatialStore
from app.utils.geo import bbox_is_empty, bounding_box, nearest_index, polyline_length_m

logger = logging.getLogger(__name__)


OSM_SOURCES = frozenset({SpeedSource.OSM, SpeedSource.OSM_NSL, SpeedSource.OSM_NEARBY})


class RouteValidationError(ValueError):
    """The polyline is structurally unusable; the whole enrichment call fails."""


def stable_json_sha256(obj) -> str:
    data = json.dumps(obj, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return "sha256:" + hashlib.sha256(data).hexdigest()


def coerce_polyline(raw: Iterable[Any]) -> List[Coordinate]:
    if raw is None:
        return []
    out = []
    for i, item in enumerate(raw):
        try:
            out.append(Coordinate.model_validate(item))
        except ValidationError as e:
            raise RouteValidationError(f"Invalid polyline point at index {i}: {item!r}") from e
    return out


def coerce_instructions(raw: Iterable[Any]) -> List[InstructionIn]:
    if raw is None:
        return []
    return [InstructionIn.model_validate(item) for item in raw]


def assign_instruction_indices(
    point_count: int,
    instruction_count: int,
    config: Optional[EnrichmentConfig] = None,
) -> List[Optional[int]]:
    """
    Spread instructions evenly along the polyline by index. Long polylines
    keep the first and last instructions a few points in from the ends.
    """
    cfg = config or EnrichmentConfig()
    if instruction_count <= 0:
        return []
    if point_count <= 0:
        return [None] * instruction_count

    last = point_count - 1
    if point_count >= cfg.edge_offset_min_points:
        start = min(cfg.edge_offset_points, last)
        end = max(start, last - cfg.edge_offset_points)
    else:
        start, end = 0, last

    if instruction_count == 1:
        return [start]

    span = end - start
    return [
        start + int(math.floor(i * span / (instruction_count - 1) + 0.5))
        for i in range(instruction_count)
    ]


def instruction_position(step: InstructionIn) -> Optional[Coordinate]:
    """Caller-supplied position of an instruction: ``lat``/``lon`` or a GeoJSON ``location``."""
    extra = step.model_extra or {}
    candidates = [(extra.get("lat"), extra.get("lon"))]
    loc = extra.get("location")
    if isinstance(loc, dict):
        coords = loc.get("coordinates")
        if isinstance(coords, (list, tuple)) and len(coords) >= 2:
            candidates.append((coords[1], coords[0]))

    for lat, lon in candidates:
        if lat is None or lon is None:
            continue
        try:
            return Coordinate(lat=lat, lon=lon)
        except ValidationError:
            logger.warning(f"Ignoring unusable instruction position: lat={lat!r} lon={lon!r}")
    return None


def place_instructions(
    points: Sequence[Coordinate],
    steps: Sequence[InstructionIn],
    config: Optional[EnrichmentConfig] = None,
) -> List[Optional[int]]:
    """
    Polyline index for each instruction. An instruction that carries its own
    position goes to the nearest polyline point; the rest keep their evenly
    spread index.
    """
    indices = assign_instruction_indices(len(points), len(steps), config)
    out = []
    for step, index in zip(steps, indices):
        position = instruction_position(step)
        if position is not None and points:
            index = nearest_index(points, position)
        out.append(index)
    return out


class RouteEnricher:
    """
    Runs every enrichment stage over a route's instructions.

    Instructions are independent of each other, so they are enriched on a
    bounded thread pool; output order always matches input order.
    """

    def __init__(self, store: SpatialStore, config: Optional[EnrichmentConfig] = None) -> None:
        self.config = config or EnrichmentConfig()
        self.store = store
        self.speed_resolver = SpeedResolver(RoadMatcher(store), self.config)
        self.hazards = HazardClassifier(store, self.config)

    def enrich(
        self,
        polyline: Sequence[Any],
        instructions: Sequence[Any],
        route_id: Optional[str] = None,
    ) -> EnrichedRoute:
        started = time.monotonic()
        points = coerce_polyline(polyline)
        steps = coerce_instructions(instructions)

        indices = place_instructions(points, steps, self.config)
        jobs = list(zip(steps, indices))

        workers = min(self.config.max_workers, len(jobs))
        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                enriched = list(pool.map(lambda job: self.enrich_instruction(points, *job), jobs))
        else:
            enriched = [self.enrich_instruction(points, step, idx) for step, idx in jobs]

        box = bounding_box(points)
        source = {
            "polyline": [p.model_dump(mode="json") for p in points],
            "instructions": [s.model_dump(mode="json") for s in steps],
        }
        route = EnrichedRoute(
            route_id=route_id or str(uuid.uuid4()),
            polyline=points,
            instructions=enriched,
            bbox_wgs84=None if bbox_is_empty(box) else BBoxWGS84(**box),
            total_distance_m=round(polyline_length_m(points), 1),
            source_hash=stable_json_sha256(source),
        )

        logger.info(
            f"Enriched route {route.route_id}: {len(points)} points, "
            f"{len(enriched)} instructions in {time.monotonic() - started:.2f}s."
        )
        return route

    def enrich_instruction(
        self,
        polyline: Sequence[Coordinate],
        instruction: InstructionIn,
        index: Optional[int],
    ) -> EnrichedInstruction:
        cfg = self.config
        builder = InstructionBuilder(instruction)

        point = polyline[index] if index is not None else None
        if point is not None and point.in_range:
            builder.set(
                lat=point.lat,
                lon=point.lon,
                location=GeoJSONPoint(coordinates=[point.lon, point.lat]),
                polyline_index=index,
            )
            estimate = self.speed_resolver.resolve(point)
            roundabout = self.hazards.classify(builder, polyline, index)
            curve = advisory_at(polyline, index, cfg)
        else:
            if point is not None:
                logger.warning(f"Instruction point out of range at index {index}: {point}")
            estimate = SpeedEstimate()
            roundabout = classify_roundabout(builder)
            curve = CurvatureAdvisory()

        advisory, limit = self._apply_speeds(builder, estimate, curve, roundabout)

        score, label = score_reliability(
            estimate.source,
            estimate.snapped is not None,
            estimate.snapped.distance_m if estimate.snapped else None,
            builder.hazard_tags,
            limit,
            advisory,
        )
        builder.set(step_reliability_score=score, step_reliability_label=label)
        return builder.build()

    def _apply_speeds(
        self,
        builder: InstructionBuilder,
        estimate: SpeedEstimate,
        curve: CurvatureAdvisory,
        roundabout: bool,
    ) -> Tuple[Optional[int], Optional[int]]:
        snapped = estimate.snapped
        road = snapped or estimate.matched
        limit = estimate.mph

        # Polyline geometry does not follow the path round the island
        if roundabout:
            advisory = roundabout_advisory_mph(builder.get("roundabout_exit"))
        else:
            advisory = curve.advisory_mph

        builder.set(
            speed_mph=limit,
            speed_limit_mph_osm=limit if estimate.source in OSM_SOURCES else None,
            speed_limit_mph_final=limit,
            speed_source=estimate.source,
            speed_limit_confidence=round(estimate.confidence, 3),
            snapped_to_road=snapped is not None,
            snap_distance_m=snapped.distance_m if snapped else None,
            road_class=road.road_class if road else None,
            road_name=road.name if road else None,
            advisory_speed_mph=advisory,
            turn_angle_deg=curve.turn_angle_deg,
            bend_radius_m=curve.bend_radius_m,
        )
        tag_speed_drop(builder, limit, advisory)
        return advisory, limit
