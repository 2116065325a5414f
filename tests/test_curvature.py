import math

import pytest

from app.core.config import EnrichmentConfig
from app.services.curvature import (
    CurvatureAdvisory,
    advisory_at,
    angle_advisory_mph,
    compute_bend_advisory_mph,
    min_bend_radius_m,
    mph_from_radius,
)
from helpers import offset


@pytest.mark.parametrize(
    "radius,expected",
    [
        (10, 10),
        (24.9, 10),
        (25, 15),
        (59, 20),
        (89.9, 25),
        (139, 30),
        (219, 35),
        (319, 40),
        (320, None),
        (math.inf, None),
    ],
)
def test_radius_buckets(radius, expected):
    assert mph_from_radius(radius) == expected


def test_angle_buckets():
    assert angle_advisory_mph(150) == 10
    assert angle_advisory_mph(90) == 15
    assert angle_advisory_mph(50) == 20
    assert angle_advisory_mph(10) is None
    assert angle_advisory_mph(None) is None


def test_bend_advisory_needs_three_points():
    assert compute_bend_advisory_mph(None) is None
    assert compute_bend_advisory_mph([offset(0, 0), offset(10, 0)]) is None


def test_straight_line_has_no_bend_advisory():
    pts = [offset(20 * i, 0) for i in range(10)]
    assert compute_bend_advisory_mph(pts) is None


def test_right_angle_bend():
    pts = [offset(0, 0), offset(100, 0), offset(100, 100)]
    assert compute_bend_advisory_mph(pts) == 25


def test_most_restrictive_bend_wins():
    # gentle bend then a tight one
    pts = [
        offset(0, 0),
        offset(100, 20),
        offset(200, 0),
        offset(220, 0),
        offset(220, 20),
    ]
    assert compute_bend_advisory_mph(pts, sample_step=1) == 10


def test_bend_advisory_follows_tightest_radius():
    pts = [
        offset(0, 0),
        offset(100, 20),
        offset(200, 0),
        offset(220, 0),
        offset(220, 20),
        offset(300, 40),
    ]
    tightest = min_bend_radius_m(pts, sample_step=1)
    assert tightest < 25
    assert compute_bend_advisory_mph(pts, sample_step=1) == mph_from_radius(tightest)

    adv = advisory_at(pts, 3, EnrichmentConfig(bend_sample_step=1))
    assert adv.bend_radius_m == pytest.approx(tightest, abs=0.06)
    assert adv.bend_mph == compute_bend_advisory_mph(pts, sample_step=1)


def test_advisory_at_corner_takes_minimum_of_angle_and_bend():
    pts = [offset(0, 0), offset(100, 0), offset(100, 100)]
    adv = advisory_at(pts, 1, EnrichmentConfig())

    assert adv.turn_angle_deg == pytest.approx(90, abs=0.5)
    assert adv.angle_mph == 15
    assert adv.bend_mph == 25
    assert adv.bend_radius_m == pytest.approx(70.7, abs=1.0)
    assert adv.advisory_mph == 15


def test_advisory_at_end_point_uses_bend_only():
    pts = [offset(0, 0), offset(100, 0), offset(100, 100)]
    adv = advisory_at(pts, 0)
    assert adv.turn_angle_deg is None
    assert adv.advisory_mph == 25


def test_advisory_on_straight_road_is_unset():
    pts = [offset(20 * i, 0) for i in range(20)]
    adv = advisory_at(pts, 10)
    assert adv.turn_angle_deg == pytest.approx(0, abs=0.01)
    assert adv.bend_radius_m is None
    assert adv.advisory_mph is None


def test_advisory_out_of_range_index():
    assert advisory_at([], 0) == CurvatureAdvisory()
    assert advisory_at([offset(0, 0)], 3).advisory_mph is None
