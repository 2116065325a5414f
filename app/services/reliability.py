# path: route-enrichment-api/app/services/reliability.py

from __future__ import annotations

from typing import Collection, Optional, Tuple

from app.models.route_models import ReliabilityLabel, SpeedSource


SOURCE_BASE_SCORE = {
    SpeedSource.OSM: 0.9,
    SpeedSource.OSM_NSL: 0.9,
    SpeedSource.OSM_NEARBY: 0.82,
    SpeedSource.INFERRED_ROAD_CLASS: 0.72,
}
DEFAULT_BASE_SCORE = 0.65

TAG_PENALTIES = {
    "traffic_lights": 0.02,
    "stop": 0.03,
}

# (minimum limit - advisory drop in mph, penalty), most severe first
DIVERGENCE_PENALTIES = (
    (20, 0.08),
    (15, 0.05),
    (10, 0.03),
)


def reliability_label(score: float) -> ReliabilityLabel:
    if score >= 0.85:
        return ReliabilityLabel.HIGH
    if score >= 0.70:
        return ReliabilityLabel.MEDIUM
    return ReliabilityLabel.LOW


def score_reliability(
    source: SpeedSource,
    snapped: bool,
    snap_distance_m: Optional[float],
    hazard_tags: Collection[str] = (),
    limit_mph: Optional[int] = None,
    advisory_mph: Optional[int] = None,
) -> Tuple[float, ReliabilityLabel]:
    """Composite 0-1 confidence for everything derived for one instruction."""
    score = SOURCE_BASE_SCORE.get(source, DEFAULT_BASE_SCORE)

    if not snapped or snap_distance_m is None:
        score -= 0.1
    elif snap_distance_m <= 5:
        score += 0.05
    elif snap_distance_m <= 15:
        score += 0.02
    elif snap_distance_m >= 40:
        score -= 0.05

    for tag, penalty in TAG_PENALTIES.items():
        if tag in hazard_tags:
            score -= penalty

    if limit_mph is not None and advisory_mph is not None:
        drop = limit_mph - advisory_mph
        for threshold, penalty in DIVERGENCE_PENALTIES:
            if drop >= threshold:
                score -= penalty
                break

    score = round(max(0.0, min(1.0, score)), 3)
    return score, reliability_label(score)
