# path: route-enrichment-api/app/services/road_matcher.py

from __future__ import annotations

from typing import Optional
import logging

from app.models.route_models import Coordinate, RoadMatch
from app.stores.base import SpatialStore, SpatialStoreError

logger = logging.getLogger(__name__)


DEFAULT_SNAP_RADIUS_M = 120.0


class RoadMatcher:
    """
    Matches coordinates to road line features in a spatial store.

    Store failures are logged and reported as "no match" so a single bad
    query never aborts a route.
    """

    def __init__(self, store: SpatialStore) -> None:
        self.store = store

    def snap_to_road(
        self, point: Coordinate, radius_m: float = DEFAULT_SNAP_RADIUS_M
    ) -> Optional[RoadMatch]:
        """Nearest road within radius_m, tagged or not."""
        return self._nearest(point, radius_m, speed_tagged_only=False)

    def nearest_speed_tagged_road(
        self, point: Coordinate, radius_m: float = DEFAULT_SNAP_RADIUS_M
    ) -> Optional[RoadMatch]:
        """
        Nearest road within radius_m carrying any maxspeed variant. Queried
        separately because the nearest road overall may be untagged.
        """
        return self._nearest(point, radius_m, speed_tagged_only=True)

    def _nearest(
        self, point: Coordinate, radius_m: float, speed_tagged_only: bool
    ) -> Optional[RoadMatch]:
        if not point.in_range:
            return None
        try:
            return self.store.nearest_road(point, radius_m, speed_tagged_only=speed_tagged_only)
        except SpatialStoreError as e:
            query = "speed-tagged road" if speed_tagged_only else "road snap"
            logger.warning(
                f"Spatial {query} query failed at ({point.lat:.6f}, {point.lon:.6f}) "
                f"r={radius_m:.0f}m: {e}"
            )
            return None
