import pytest

from app.core.config import EnrichmentConfig
from app.models.route_models import SpeedSource
from app.services.road_matcher import RoadMatcher
from app.services.speed_resolver import (
    SPEED_TAG_CASCADE,
    SpeedResolver,
    first_usable_tag,
    road_class_fallback_mph,
)
from helpers import FakeStore, offset, road


def resolve(store, **config):
    return SpeedResolver(RoadMatcher(store), EnrichmentConfig(**config)).resolve(offset(0, 0))


def test_cascade_order_is_explicit():
    assert [k.value for k in SPEED_TAG_CASCADE] == [
        "maxspeed",
        "maxspeed:forward",
        "maxspeed:backward",
        "maxspeed:type",
        "maxspeed:conditional",
    ]


def test_snapped_road_tag_wins():
    est = resolve(FakeStore(roads=[road(1, 6.0, maxspeed="30 mph")]))
    assert est.mph == 30
    assert est.source is SpeedSource.OSM
    assert est.confidence == pytest.approx(0.95 - 6 / 300)
    assert est.raw_tag == "30 mph"
    assert est.snapped.feature_id == 1
    assert est.matched.feature_id == 1


def test_nsl_code_is_tagged_osm_nsl():
    est = resolve(FakeStore(roads=[road(1, 0.0, maxspeed="GB:nsl_single")]))
    assert est.mph == 60
    assert est.source is SpeedSource.OSM_NSL
    assert est.confidence == pytest.approx(0.92)


def test_gb_zone_code_resolves_as_osm():
    est = resolve(FakeStore(roads=[road(1, 0.0, maxspeed="GB:zone20")]))
    assert est.mph == 20
    assert est.source is SpeedSource.OSM
    assert est.confidence == pytest.approx(0.95)


def test_cascade_skips_unusable_variants():
    hit = first_usable_tag(road(1, 0.0, maxspeed="signals", maxspeed__forward="40"))
    assert hit == (40, "40")


def test_widened_pass_runs_before_nearby_and_inference():
    snap = road(1, 10.0)
    tagged_far = road(2, 300.0, maxspeed="20 mph")
    est = resolve(FakeStore(roads=[snap, tagged_far]))

    assert est.source is SpeedSource.OSM
    assert est.mph == 20
    assert est.snapped.feature_id == 1
    assert est.matched.feature_id == 2
    assert est.confidence == pytest.approx(0.95 - 300 / 300)


def test_no_widened_pass_when_snap_is_loose():
    store = FakeStore(roads=[road(1, 30.0, road_class="residential"), road(2, 300.0, maxspeed="20")])
    est = resolve(store)

    assert est.source is SpeedSource.INFERRED_ROAD_CLASS
    assert est.mph == 30
    assert est.confidence == pytest.approx(0.6)
    assert ("road", 500.0, True) not in store.calls


def test_nearby_tagged_road():
    est = resolve(FakeStore(roads=[road(1, 30.0), road(2, 80.0, maxspeed="40 mph")]))
    assert est.source is SpeedSource.OSM_NEARBY
    assert est.mph == 40
    assert est.confidence == pytest.approx(0.85 - 80 / 400)
    assert est.snapped.feature_id == 1
    assert est.matched.feature_id == 2


def test_unknown_road_class_keeps_snap():
    est = resolve(FakeStore(roads=[road(1, 30.0, road_class="footway")]))
    assert est.mph is None
    assert est.source is SpeedSource.NONE
    assert est.confidence == 0
    assert est.snapped.road_class == "footway"


def test_nothing_found():
    est = resolve(FakeStore())
    assert est.mph is None
    assert est.source is SpeedSource.NONE
    assert est.snapped is None


def test_store_failure_degrades_to_unknown():
    est = resolve(FakeStore(roads=[road(1, 0.0, maxspeed="30")], fail=True))
    assert est.mph is None
    assert est.source is SpeedSource.NONE


def test_road_class_table():
    assert road_class_fallback_mph("motorway") == 70
    assert road_class_fallback_mph("Trunk") == 60
    assert road_class_fallback_mph("track") == 15
    assert road_class_fallback_mph("footway") is None
    assert road_class_fallback_mph(None) is None
