import pytest

from app.stores.base import SpatialStoreError, point_kind
from app.stores.memory_store import MemorySpatialStore
from helpers import feature_collection, line_feature, offset, point_feature


@pytest.fixture
def store():
    return MemorySpatialStore(
        feature_collection(
            line_feature(1, [offset(10, -100), offset(10, 100)], {"name": "North Rd"}),
            line_feature(
                2,
                [offset(-30, -100), offset(-30, 100)],
                {"highway": "secondary", "maxspeed:forward": "40 mph"},
            ),
            # no highway tag: not a road
            line_feature(3, [offset(2, -100), offset(2, 100)], {"highway": None, "railway": "rail"}),
            point_feature(11, offset(0, 20), {"highway": "stop"}),
            point_feature(12, offset(0, 8), {"highway": "give_way"}),
            point_feature(13, offset(0, 4), {"highway": "crossing", "crossing_ref": "zebra"}),
            point_feature(14, offset(0, 1), {"amenity": "bench"}),
        )
    )


def test_snaps_to_nearest_road(store):
    hit = store.nearest_road(offset(0, 0), 120)
    assert hit.feature_id == 1
    assert hit.name == "North Rd"
    assert hit.road_class == "residential"
    assert hit.distance_m == pytest.approx(10, abs=0.5)
    assert hit.speed_tags == {}


def test_speed_tagged_query_skips_untagged_roads(store):
    hit = store.nearest_road(offset(0, 0), 120, speed_tagged_only=True)
    assert hit.feature_id == 2
    assert hit.distance_m == pytest.approx(30, abs=0.5)
    assert hit.speed_tags == {"maxspeed:forward": "40 mph"}
    assert hit.raw_speed_tag is None


def test_radius_limits_road_search(store):
    assert store.nearest_road(offset(0, 0), 5) is None


def test_point_query_filters_orders_and_limits(store):
    hits = store.nearest_points(offset(0, 0), {"stop", "give_way", "traffic_signals"}, 50, 5)
    assert [h.feature_id for h in hits] == [12, 11]
    assert hits[0].kind == "give_way"
    assert hits[0].distance_m == pytest.approx(8, abs=0.5)

    assert len(store.nearest_points(offset(0, 0), {"stop", "give_way"}, 50, 1)) == 1

    crossings = store.nearest_points(offset(0, 0), {"crossing"}, 50, 8)
    assert [h.feature_id for h in crossings] == [13]


def test_empty_collection():
    empty = MemorySpatialStore(feature_collection())
    assert empty.nearest_road(offset(0, 0), 500) is None
    assert empty.nearest_points(offset(0, 0), {"stop"}, 500, 3) == []


def test_missing_file_raises_store_error(tmp_path):
    with pytest.raises(SpatialStoreError):
        MemorySpatialStore.from_geojson_file(str(tmp_path / "missing.geojson"))


def test_point_kinds():
    assert point_kind({"highway": "traffic_signals"}) == "traffic_signals"
    assert point_kind({"highway": "crossing", "crossing": "uncontrolled"}) == "crossing"
    assert point_kind({"highway": "crossing", "crossing": "traffic_signals"}) is None
    assert point_kind({"amenity": "bench"}) is None
