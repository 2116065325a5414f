import math
from typing import Dict, List, Optional, Sequence

from app.models.route_models import Coordinate, PointHit, RoadMatch
from app.stores.base import SpatialStoreError

BASE_LAT, BASE_LON = 51.5, -0.1
M_PER_DEG_LAT = 111_195.0


def offset(north_m: float = 0.0, east_m: float = 0.0) -> Coordinate:
    """Coordinate north_m / east_m metres from the shared base point."""
    return Coordinate(
        lat=BASE_LAT + north_m / M_PER_DEG_LAT,
        lon=BASE_LON + east_m / (M_PER_DEG_LAT * math.cos(math.radians(BASE_LAT))),
    )


def line_feature(osm_id: int, coords: Sequence[Coordinate], tags: Optional[Dict] = None) -> Dict:
    props = {"osm_id": osm_id, "highway": "residential"}
    props.update(tags or {})
    return {
        "type": "Feature",
        "properties": props,
        "geometry": {"type": "LineString", "coordinates": [[c.lon, c.lat] for c in coords]},
    }


def point_feature(osm_id: int, coord: Coordinate, tags: Dict) -> Dict:
    props = {"osm_id": osm_id}
    props.update(tags)
    return {
        "type": "Feature",
        "properties": props,
        "geometry": {"type": "Point", "coordinates": [coord.lon, coord.lat]},
    }


def feature_collection(*features: Dict) -> Dict:
    return {"type": "FeatureCollection", "features": list(features)}


class FakeStore:
    """Store with pre-computed distances; ignores the query point."""

    def __init__(self, roads=(), points=(), fail: bool = False) -> None:
        self.roads: List[RoadMatch] = list(roads)
        self.points: List[PointHit] = list(points)
        self.fail = fail
        self.calls: List[tuple] = []

    def nearest_road(self, point, radius_m, speed_tagged_only=False):
        self.calls.append(("road", radius_m, speed_tagged_only))
        if self.fail:
            raise SpatialStoreError("connection refused")
        found = [
            r for r in self.roads
            if r.distance_m <= radius_m and (r.speed_tags or not speed_tagged_only)
        ]
        return min(found, key=lambda r: r.distance_m) if found else None

    def nearest_points(self, point, kinds, radius_m, limit):
        self.calls.append(("points", tuple(sorted(kinds)), radius_m, limit))
        if self.fail:
            raise SpatialStoreError("statement timeout")
        found = [p for p in self.points if p.kind in kinds and p.distance_m <= radius_m]
        return sorted(found, key=lambda p: p.distance_m)[:limit]


def road(feature_id: int, distance_m: float, road_class: str = "residential", **speed_tags) -> RoadMatch:
    tags = {k.replace("__", ":"): v for k, v in speed_tags.items()}
    return RoadMatch(
        feature_id=feature_id,
        road_class=road_class,
        name=f"Road {feature_id}",
        distance_m=distance_m,
        raw_speed_tag=tags.get("maxspeed"),
        speed_tags=tags,
    )
