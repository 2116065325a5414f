# path: route-enrichment-api/app/services/curvature.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence
import math

from app.core.config import EnrichmentConfig
from app.models.route_models import Coordinate
from app.utils.geo import bend_radius_m, turn_angle_deg


# (upper radius bound in metres, advisory mph). Tuned for driving-test
# instruction, not vehicle dynamics.
RADIUS_MPH_BUCKETS = (
    (25.0, 10),
    (40.0, 15),
    (60.0, 20),
    (90.0, 25),
    (140.0, 30),
    (220.0, 35),
    (320.0, 40),
)

# (minimum deflection in degrees, advisory mph) for the coarse junction angle
TURN_ANGLE_MPH_BUCKETS = (
    (100.0, 10),
    (70.0, 15),
    (45.0, 20),
    (30.0, 25),
)


@dataclass(frozen=True)
class CurvatureAdvisory:
    turn_angle_deg: Optional[float] = None
    bend_radius_m: Optional[float] = None
    angle_mph: Optional[int] = None
    bend_mph: Optional[int] = None

    @property
    def advisory_mph(self) -> Optional[int]:
        found = [v for v in (self.angle_mph, self.bend_mph) if v is not None]
        return min(found) if found else None


def mph_from_radius(radius_m: float) -> Optional[int]:
    if not math.isfinite(radius_m):
        return None
    for bound, mph in RADIUS_MPH_BUCKETS:
        if radius_m < bound:
            return mph
    return None


def angle_advisory_mph(angle_deg: Optional[float]) -> Optional[int]:
    if angle_deg is None:
        return None
    for threshold, mph in TURN_ANGLE_MPH_BUCKETS:
        if angle_deg >= threshold:
            return mph
    return None


def min_bend_radius_m(points: Sequence[Coordinate], sample_step: int = 2) -> float:
    step = max(1, sample_step)
    best = math.inf
    for i in range(0, len(points) - 2, step):
        best = min(best, bend_radius_m(points[i], points[i + 1], points[i + 2]))
    return best


def compute_bend_advisory_mph(
    points: Optional[Sequence[Coordinate]], sample_step: int = 2
) -> Optional[int]:
    """
    Slide a 3-point window over points and return the most restrictive
    advisory mph, or None when no bend is tight enough to matter.
    """
    if not points or len(points) < 3:
        return None
    # buckets are monotonic in radius, so the tightest bend gives the lowest mph
    return mph_from_radius(min_bend_radius_m(points, sample_step))


def advisory_at(
    points: Sequence[Coordinate], index: int, config: Optional[EnrichmentConfig] = None
) -> CurvatureAdvisory:
    cfg = config or EnrichmentConfig()
    n = len(points)
    if n == 0 or index < 0 or index >= n:
        return CurvatureAdvisory()

    # Coarse deflection across the instruction point
    angle = None
    a_i = max(0, index - cfg.angle_window)
    c_i = min(n - 1, index + cfg.angle_window)
    if a_i < index < c_i:
        angle = turn_angle_deg(points[a_i], points[index], points[c_i])

    window = points[max(0, index - cfg.bend_window): index + cfg.bend_window + 1]
    radius = min_bend_radius_m(window, cfg.bend_sample_step)

    return CurvatureAdvisory(
        turn_angle_deg=round(angle, 1) if angle is not None else None,
        bend_radius_m=round(radius, 1) if math.isfinite(radius) else None,
        angle_mph=angle_advisory_mph(angle),
        bend_mph=mph_from_radius(radius),
    )
