# path: route-enrichment-api/app/stores/postgis_store.py

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Collection, Dict, Iterator, List, Optional
import logging
import math
import threading

import psycopg2
from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from app.models.route_models import Coordinate, PointHit, RoadMatch
from app.stores.base import SpatialStoreError, speed_tags_from

logger = logging.getLogger(__name__)


# Query point in both frames: web mercator for the index, geography for metres.
_QUERY_POINT = """
  SELECT
    ST_Transform(ST_SetSRID(ST_MakePoint(%(lon)s, %(lat)s), 4326), 3857) AS geom,
    ST_SetSRID(ST_MakePoint(%(lon)s, %(lat)s), 4326)::geography AS geog
"""

_SPEED_TAG_FILTER = """
  AND (
    (l.tags ? 'maxspeed')
    OR (l.tags ? 'maxspeed:forward')
    OR (l.tags ? 'maxspeed:backward')
    OR (l.tags ? 'maxspeed:type')
    OR (l.tags ? 'maxspeed:conditional')
  )
"""

_NEAREST_ROAD_SQL = """
SELECT
  l.osm_id AS osm_id,
  l.highway AS highway,
  l.name AS name,
  (l.tags -> 'maxspeed') AS "maxspeed",
  (l.tags -> 'maxspeed:forward') AS "maxspeed:forward",
  (l.tags -> 'maxspeed:backward') AS "maxspeed:backward",
  (l.tags -> 'maxspeed:type') AS "maxspeed:type",
  (l.tags -> 'maxspeed:conditional') AS "maxspeed:conditional",
  ST_Distance(ST_Transform(l.way, 4326)::geography, q.geog) AS dist_m
FROM planet_osm_line l
CROSS JOIN ({query_point}) q
WHERE l.highway IS NOT NULL
  {speed_filter}
  AND ST_DWithin(l.way, q.geom, %(merc_radius)s)
ORDER BY l.way <-> q.geom
LIMIT 1;
"""

_NEAREST_POINTS_SQL = """
SELECT osm_id, kind, dist_m
FROM (
  SELECT
    p.osm_id AS osm_id,
    CASE
      WHEN p.highway IN ('traffic_signals', 'stop', 'give_way') THEN p.highway
      WHEN p.highway = 'crossing'
        AND (
          (p.tags -> 'crossing') IN ('zebra', 'uncontrolled', 'marked')
          OR (p.tags -> 'crossing_ref') = 'zebra'
        ) THEN 'crossing'
    END AS kind,
    ST_Distance(ST_Transform(p.way, 4326)::geography, q.geog) AS dist_m
  FROM planet_osm_point p
  CROSS JOIN ({query_point}) q
  WHERE p.highway IS NOT NULL
    AND ST_DWithin(p.way, q.geom, %(merc_radius)s)
) s
WHERE kind = ANY(%(kinds)s)
  AND dist_m <= %(radius_m)s
ORDER BY dist_m
LIMIT %(limit)s;
"""


def mercator_radius(radius_m: float, lat: float) -> float:
    # Web mercator stretches ground distance by 1/cos(lat)
    c = math.cos(math.radians(max(-85.0, min(85.0, lat))))
    return radius_m / c


class PostgisSpatialStore:
    """
    Spatial store backed by an osm2pgsql import (hstore ``tags`` column,
    geometry in EPSG:3857). Distances are geodesic metres.
    """

    def __init__(
        self,
        dsn: Optional[str] = None,
        min_connections: int = 1,
        max_connections: int = 8,
        statement_timeout_ms: int = 5000,
        pool: Optional[Any] = None,
    ) -> None:
        if pool is None:
            try:
                pool = ThreadedConnectionPool(
                    min_connections,
                    max_connections,
                    dsn,
                    options=f"-c statement_timeout={int(statement_timeout_ms)}",
                )
            except psycopg2.Error as e:
                raise SpatialStoreError(f"Could not connect to spatial database: {e}") from e
        self._pool = pool
        # ThreadedConnectionPool fails instead of waiting when exhausted
        self._slots = threading.BoundedSemaphore(max_connections)

    def close(self) -> None:
        self._pool.closeall()

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        with self._slots:
            try:
                conn = self._pool.getconn()
            except psycopg2.Error as e:
                raise SpatialStoreError(f"No database connection available: {e}") from e
            try:
                with conn.cursor(cursor_factory=RealDictCursor) as cur:
                    yield cur
            finally:
                # Read-only queries; end the transaction before returning the connection.
                try:
                    conn.rollback()
                except psycopg2.Error as e:
                    logger.warning(f"Discarding broken database connection: {e}")
                self._pool.putconn(conn, close=bool(conn.closed))

    def _fetch(self, sql: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            with self._cursor() as cur:
                cur.execute(sql, params)
                return list(cur.fetchall())
        except psycopg2.Error as e:
            raise SpatialStoreError(str(e).strip()) from e

    def nearest_road(
        self,
        point: Coordinate,
        radius_m: float,
        speed_tagged_only: bool = False,
    ) -> Optional[RoadMatch]:
        sql = _NEAREST_ROAD_SQL.format(
            query_point=_QUERY_POINT,
            speed_filter=_SPEED_TAG_FILTER if speed_tagged_only else "",
        )
        rows = self._fetch(
            sql,
            {
                "lon": point.lon,
                "lat": point.lat,
                "merc_radius": mercator_radius(radius_m, point.lat),
            },
        )
        if not rows:
            return None

        r = rows[0]
        dist = float(r["dist_m"] or 0.0)
        if dist > radius_m:
            return None

        speed_tags = speed_tags_from(r)
        return RoadMatch(
            feature_id=int(r["osm_id"]),
            road_class=r.get("highway"),
            name=r.get("name"),
            distance_m=round(dist, 1),
            raw_speed_tag=speed_tags.get("maxspeed"),
            speed_tags=speed_tags,
        )

    def nearest_points(
        self,
        point: Coordinate,
        kinds: Collection[str],
        radius_m: float,
        limit: int,
    ) -> List[PointHit]:
        sql = _NEAREST_POINTS_SQL.format(query_point=_QUERY_POINT)
        rows = self._fetch(
            sql,
            {
                "lon": point.lon,
                "lat": point.lat,
                "merc_radius": mercator_radius(radius_m, point.lat),
                "radius_m": radius_m,
                "kinds": sorted(kinds),
                "limit": int(limit),
            },
        )
        return [
            PointHit(
                feature_id=int(r["osm_id"]),
                kind=r["kind"],
                distance_m=round(float(r["dist_m"] or 0.0), 1),
            )
            for r in rows
        ]
