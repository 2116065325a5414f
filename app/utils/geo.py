# path: route-enrichment-api/app/utils/geo.py

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence
import math

from app.models.route_models import Coordinate


EARTH_RADIUS_M = 6371000.0
MIN_LEG_M = 0.5
MIN_BEND_DEG = 5.0


def haversine_m(a_lon: float, a_lat: float, b_lon: float, b_lat: float) -> float:
    phi1 = math.radians(a_lat)
    phi2 = math.radians(b_lat)
    dphi = math.radians(b_lat - a_lat)
    dlmb = math.radians(b_lon - a_lon)

    s = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(max(0.0, s))))


def distance_m(a: Coordinate, b: Coordinate) -> float:
    return haversine_m(a.lon, a.lat, b.lon, b.lat)


def turn_angle_deg(a: Coordinate, b: Coordinate, c: Coordinate) -> float:
    """
    Deflection at b for the path a -> b -> c.

    0 for a straight line through b, approaching 180 for a full reversal.
    """
    ab = distance_m(a, b)
    bc = distance_m(b, c)
    if ab == 0 or bc == 0:
        return 0.0
    ac = distance_m(a, c)

    # Law of cosines gives the interior angle at b
    cos_b = (ab * ab + bc * bc - ac * ac) / (2 * ab * bc)
    cos_b = max(-1.0, min(1.0, cos_b))
    return 180.0 - math.degrees(math.acos(cos_b))


def bend_radius_m(a: Coordinate, b: Coordinate, c: Coordinate) -> float:
    """
    Circumradius of triangle a-b-c in metres, or +inf for a near-straight
    or collapsed triple.
    """
    ab = distance_m(a, b)
    bc = distance_m(b, c)
    if ab < MIN_LEG_M or bc < MIN_LEG_M:
        return math.inf

    theta = turn_angle_deg(a, b, c)
    if theta < MIN_BEND_DEG:
        return math.inf

    # sin(deflection) == sin(interior angle), which is the angle opposite ac
    sin_b = math.sin(math.radians(theta))
    if sin_b < 1e-6:
        return math.inf
    return distance_m(a, c) / (2 * sin_b)


def bounding_box(points: Iterable[Coordinate]) -> Dict[str, float]:
    # Empty input leaves the box inverted (min > max); check with bbox_is_empty.
    box = {
        "min_lat": math.inf,
        "min_lon": math.inf,
        "max_lat": -math.inf,
        "max_lon": -math.inf,
    }
    for p in points:
        box["min_lat"] = min(box["min_lat"], p.lat)
        box["min_lon"] = min(box["min_lon"], p.lon)
        box["max_lat"] = max(box["max_lat"], p.lat)
        box["max_lon"] = max(box["max_lon"], p.lon)
    return box


def bbox_is_empty(box: Dict[str, float]) -> bool:
    return box["min_lat"] > box["max_lat"] or box["min_lon"] > box["max_lon"]


def densify(points: Sequence[Coordinate], step_m: float) -> List[Coordinate]:
    """
    Insert linearly interpolated points wherever consecutive samples are
    more than step_m apart. Original points are kept in order.
    """
    if not points:
        return []
    if step_m <= 0:
        return list(points)

    out = [points[0]]
    for i in range(1, len(points)):
        a = points[i - 1]
        b = points[i]
        seg = distance_m(a, b)
        if seg > step_m:
            n = int(math.ceil(seg / step_m))
            for k in range(1, n):
                frac = k / n
                out.append(
                    Coordinate(
                        lat=a.lat + frac * (b.lat - a.lat),
                        lon=a.lon + frac * (b.lon - a.lon),
                    )
                )
        out.append(b)
    return out


def nearest_index(points: Sequence[Coordinate], target: Coordinate) -> Optional[int]:
    # Planar squared distance in degrees; fine at the scale of one route.
    best_i = None
    best_d = math.inf
    for i, p in enumerate(points):
        d = (p.lat - target.lat) ** 2 + (p.lon - target.lon) ** 2
        if d < best_d:
            best_d = d
            best_i = i
    return best_i


def polyline_length_m(points: Sequence[Coordinate]) -> float:
    total = 0.0
    for i in range(1, len(points)):
        total += distance_m(points[i - 1], points[i])
    return total
