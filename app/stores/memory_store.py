# path: route-enrichment-api/app/stores/memory_store.py

from __future__ import annotations

from typing import Any, Collection, Dict, List, Optional, Tuple
import json
import logging
import threading

from pyproj import Transformer
from shapely.geometry import Point, shape
from shapely.ops import transform
from shapely.strtree import STRtree

from app.models.route_models import Coordinate, PointHit, RoadMatch
from app.stores.base import SpatialStoreError, point_kind, speed_tags_from
from app.utils.geo import bbox_is_empty, bounding_box

logger = logging.getLogger(__name__)


def _feature_id(props: Dict[str, Any], feature: Dict[str, Any], fallback: int) -> int:
    for raw in (props.get("osm_id"), feature.get("id")):
        try:
            return int(raw)
        except (TypeError, ValueError):
            continue
    return fallback


class MemorySpatialStore:
    """
    Spatial store over a GeoJSON FeatureCollection of OSM-tagged features.

    LineStrings with a ``highway`` tag become road features; Points are kept
    when their tags classify as a control or a pedestrian crossing. Geometry
    is projected into a local azimuthal equidistant frame centred on the
    data, so distances are metres. Read-only after construction.
    """

    def __init__(self, feature_collection: Dict[str, Any]) -> None:
        features = feature_collection.get("features") or []

        lonlat_points = []
        for f in features:
            geom = f.get("geometry") or {}
            coords = geom.get("coordinates") or []
            if geom.get("type") == "Point" and coords:
                lonlat_points.append(Coordinate(lat=coords[1], lon=coords[0]))
            elif geom.get("type") == "LineString":
                lonlat_points.extend(Coordinate(lat=c[1], lon=c[0]) for c in coords)

        box = bounding_box(lonlat_points)
        if bbox_is_empty(box):
            lat0, lon0 = 0.0, 0.0
        else:
            lat0 = (box["min_lat"] + box["max_lat"]) / 2
            lon0 = (box["min_lon"] + box["max_lon"]) / 2

        self._to_local = Transformer.from_crs(
            "EPSG:4326",
            f"+proj=aeqd +lat_0={lat0} +lon_0={lon0} +datum=WGS84 +units=m",
            always_xy=True,
        )
        # Transformer is not guaranteed safe to share across threads
        self._transform_lock = threading.Lock()

        self._roads: List[Tuple[Any, RoadMatch]] = []
        self._points: List[Tuple[Any, int, str]] = []

        for idx, f in enumerate(features):
            props = f.get("properties") or {}
            geom = f.get("geometry") or {}
            feature_id = _feature_id(props, f, idx)

            if geom.get("type") == "LineString" and props.get("highway"):
                speed_tags = speed_tags_from(props)
                road = RoadMatch(
                    feature_id=feature_id,
                    road_class=props.get("highway"),
                    name=props.get("name"),
                    distance_m=0.0,
                    raw_speed_tag=speed_tags.get("maxspeed"),
                    speed_tags=speed_tags,
                )
                self._roads.append((self._project(shape(geom)), road))
            elif geom.get("type") == "Point":
                kind = point_kind(props)
                if kind is not None:
                    self._points.append((self._project(shape(geom)), feature_id, kind))

        self._road_tree = STRtree([g for g, _ in self._roads]) if self._roads else None
        self._point_tree = STRtree([g for g, _, _ in self._points]) if self._points else None

        logger.info(
            f"Memory spatial store loaded: {len(self._roads)} roads, {len(self._points)} points."
        )

    @classmethod
    def from_geojson_file(cls, path: str) -> "MemorySpatialStore":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (IOError, ValueError) as e:
            raise SpatialStoreError(f"Failed to load GeoJSON from {path}: {e}") from e
        return cls(data)

    def _project(self, geom):
        return transform(self._to_local.transform, geom)

    def _local_point(self, point: Coordinate) -> Point:
        with self._transform_lock:
            x, y = self._to_local.transform(point.lon, point.lat)
        return Point(x, y)

    def nearest_road(
        self,
        point: Coordinate,
        radius_m: float,
        speed_tagged_only: bool = False,
    ) -> Optional[RoadMatch]:
        if not self._roads:
            return None
        p = self._local_point(point)

        best: Optional[Tuple[float, RoadMatch]] = None
        for i in self._road_tree.query(p.buffer(radius_m)):
            geom, road = self._roads[int(i)]
            if speed_tagged_only and not road.speed_tags:
                continue
            d = geom.distance(p)
            if d > radius_m:
                continue
            if best is None or d < best[0]:
                best = (d, road)

        if best is None:
            return None
        return best[1].model_copy(update={"distance_m": round(best[0], 1)})

    def nearest_points(
        self,
        point: Coordinate,
        kinds: Collection[str],
        radius_m: float,
        limit: int,
    ) -> List[PointHit]:
        if not self._points:
            return []
        p = self._local_point(point)

        hits = []
        for i in self._point_tree.query(p.buffer(radius_m)):
            geom, feature_id, kind = self._points[int(i)]
            if kind not in kinds:
                continue
            d = geom.distance(p)
            if d <= radius_m:
                hits.append(PointHit(feature_id=feature_id, kind=kind, distance_m=round(d, 1)))

        hits.sort(key=lambda h: h.distance_m)
        return hits[:limit]
