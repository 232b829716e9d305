"""
Tests for the proximity filter, the delay estimator and the summaries.
"""
import math
import random

import pytest

from analytics import (
    RouteDelayEstimator,
    RouteProximityFilter,
    compare_candidates,
    format_eta_minutes,
    haversine_meters,
    signal_state_summary,
)
from models import LightColor, RouteCandidate, RouteSegment
from simulation import TrafficLightRegistry

from conftest import set_lights

# Roughly 111 m per 0.001 degree of latitude
ROUTE = [(35.7800, -78.6400), (35.7805, -78.6400), (35.7810, -78.6400)]


def make_registry(points, states=None, rng=None):
    reg = TrafficLightRegistry(timer_policy='per_light', rng=rng or random.Random(0))
    reg.load(points)
    if states:
        set_lights(reg, states)
    return reg


class TestHaversine:

    def test_zero_distance(self):
        assert haversine_meters(35.78, -78.64, 35.78, -78.64) == pytest.approx(0.0)

    def test_one_degree_latitude(self):
        assert haversine_meters(35.0, -78.0, 36.0, -78.0) == pytest.approx(111195, rel=1e-3)

    def test_longitude_shrinks_with_latitude(self):
        at_equator = haversine_meters(0.0, 0.0, 0.0, 0.001)
        at_raleigh = haversine_meters(35.78, 0.0, 35.78, 0.001)
        assert at_raleigh == pytest.approx(at_equator * math.cos(math.radians(35.78)), rel=1e-3)


class TestRouteProximityFilter:
    """Selecting the signals on a route."""

    def test_signal_on_path_selected(self):
        reg = make_registry([(35.7805, -78.6400), (35.7900, -78.6500)])
        selected = RouteProximityFilter().select(reg, ROUTE, 25)
        assert [light.position for light in selected] == [(35.7805, -78.6400)]

    def test_threshold_boundary(self):
        reg = make_registry([(35.7800, -78.6400)])
        offset = float(haversine_meters(35.7800, -78.6400, 35.7800, -78.6402))
        path = [(35.7800, -78.6402)]
        assert RouteProximityFilter().select(reg, path, offset - 0.01) == []
        assert len(RouteProximityFilter().select(reg, path, offset + 0.01)) == 1

    def test_exact_point_needs_positive_threshold(self):
        reg = make_registry([ROUTE[0]])
        assert RouteProximityFilter().select(reg, ROUTE, 0) == []
        assert len(RouteProximityFilter().select(reg, ROUTE, 0.001)) == 1

    def test_uses_meters_not_degrees(self):
        # 0.0003 degrees of longitude is ~27 m here but ~33 m of latitude
        reg = make_registry([(35.7800, -78.6403), (35.7803, -78.6400)])
        selected = RouteProximityFilter().select(reg, [(35.7800, -78.6400)], 30)
        assert [light.position for light in selected] == [(35.7800, -78.6403)]

    def test_zero_threshold_is_empty(self, registry):
        assert RouteProximityFilter().select(registry, ROUTE, 0) == []

    def test_infinite_threshold_is_everything(self, registry):
        selected = RouteProximityFilter().select(registry, ROUTE, math.inf)
        assert selected == list(registry.all())

    def test_registry_order_not_route_order(self):
        reg = make_registry([(35.7810, -78.6400), (35.7800, -78.6400)])
        selected = RouteProximityFilter().select(reg, ROUTE, 10)
        assert [light.position for light in selected] == [(35.7810, -78.6400), (35.7800, -78.6400)]

    def test_empty_path(self, registry):
        assert RouteProximityFilter().select(registry, [], 100) == []

    def test_empty_registry(self):
        assert RouteProximityFilter().select(TrafficLightRegistry(), ROUTE, 100) == []

    def test_stride_always_checks_last_point(self):
        path = [(35.7800 + i * 0.0001, -78.6400) for i in range(11)]
        reg = make_registry([path[-1]])
        assert len(RouteProximityFilter(sample_stride=3).select(reg, path, 1)) == 1

    def test_stride_skips_intermediate_points(self):
        path = [(35.7800 + i * 0.001, -78.6400) for i in range(5)]
        reg = make_registry([path[1]])
        assert RouteProximityFilter(sample_stride=1).select(reg, path, 5)
        assert RouteProximityFilter(sample_stride=2).select(reg, path, 5) == []

    def test_invalid_stride(self):
        with pytest.raises(ValueError):
            RouteProximityFilter(sample_stride=0)


class TestSpeedClassification:

    @pytest.mark.parametrize('name', ['I-40', 'i-440 Beltline', 'US Hwy 70', 'Interstate 87', 'CAPITAL HWY'])
    def test_highway_names(self, name):
        assert RouteDelayEstimator.speed_of(RouteSegment(100, name)) == 70

    @pytest.mark.parametrize('name', ['Hillsborough Street', 'Capital Boulevard', '', '-'])
    def test_local_names(self, name):
        assert RouteDelayEstimator.speed_of(RouteSegment(100, name)) == 35


class TestRouteDelayEstimator:
    """Base travel time, penalties and the combined estimate."""

    def test_base_travel_from_segments(self, estimator):
        candidate = RouteCandidate.from_points(ROUTE, segments=[
            RouteSegment(1609.34, 'Main Street'),
            RouteSegment(1609.34 * 7, 'I-40'),
        ])
        # 1 mile at 35 mph + 7 miles at 70 mph
        expected = 3600 / 35 + 7 * 3600 / 70
        assert estimator.base_travel_seconds(candidate) == pytest.approx(expected)

    def test_base_duration_overrides_segments(self, estimator):
        candidate = RouteCandidate.from_points(ROUTE, segments=[RouteSegment(5000, 'Main')],
                                               base_duration_seconds=300)
        assert estimator.base_travel_seconds(candidate) == 300

    def test_flat_penalty_counts_red_only(self, estimator):
        reg = make_registry([(1, 1), (2, 2), (3, 3)],
                            [(LightColor.RED, 40), (LightColor.GREEN, 10), (LightColor.RED, 5)])
        assert estimator.red_light_penalty(reg.all()) == 60

    def test_countdown_penalty_sums_remaining_red(self):
        est = RouteDelayEstimator(penalty_policy='countdown')
        reg = make_registry([(1, 1), (2, 2), (3, 3)],
                            [(LightColor.RED, 40), (LightColor.GREEN, 10), (LightColor.RED, 5)])
        assert est.red_light_penalty(reg.all()) == 45

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            RouteDelayEstimator(penalty_policy='linear')

    def test_red_light_at_first_point_scenario(self, estimator):
        reg = make_registry([ROUTE[0]], [(LightColor.RED, 25)])
        candidate = RouteCandidate.from_points(ROUTE, base_duration_seconds=120)
        eta = estimator.estimate(candidate, reg, 25)
        assert eta == 150
        assert format_eta_minutes(eta) == '2.5 min'

    def test_no_segments_no_duration_is_penalty_only(self, estimator):
        reg = make_registry([ROUTE[1], ROUTE[2]], [(LightColor.RED, 25), (LightColor.RED, 35)])
        candidate = RouteCandidate.from_points(ROUTE)
        penalty = estimator.red_light_penalty(RouteProximityFilter().select(reg, ROUTE, 25))
        assert estimator.estimate(candidate, reg, 25) == penalty == 60

    def test_far_red_light_ignored(self, estimator):
        reg = make_registry([(35.9, -78.9)], [(LightColor.RED, 25)])
        candidate = RouteCandidate.from_points(ROUTE, base_duration_seconds=120)
        assert estimator.estimate(candidate, reg, 25) == 120

    def test_empty_registry_gives_base_time(self, estimator):
        candidate = RouteCandidate.from_points(ROUTE, base_duration_seconds=90)
        assert estimator.estimate(candidate, TrafficLightRegistry(), 25) == 90

    def test_breakdown(self, estimator):
        reg = make_registry([ROUTE[0], ROUTE[2]], [(LightColor.RED, 25), (LightColor.GREEN, 20)])
        candidate = RouteCandidate.from_points(ROUTE, base_duration_seconds=100)
        result = estimator.breakdown(candidate, reg, 25)
        assert result.base_seconds == 100
        assert result.penalty_seconds == 30
        assert result.nearby_signals == 2
        assert result.red_signals == 1
        assert result.total_seconds == 130


class TestFormatting:

    @pytest.mark.parametrize('seconds, text', [(150, '2.5 min'), (300, '5.0 min'), (0, '0.0 min'), (89, '1.5 min')])
    def test_format_eta_minutes(self, seconds, text):
        assert format_eta_minutes(seconds) == text


class TestSummaries:

    def test_compare_candidates(self, estimator):
        reg = make_registry([ROUTE[0]], [(LightColor.RED, 25)])
        candidates = [
            RouteCandidate.from_points(ROUTE, base_duration_seconds=300, distance_meters=2000),
            RouteCandidate.from_points([(35.9, -78.9)], base_duration_seconds=360),
        ]
        df = compare_candidates(candidates, estimator, reg, 25, active_index=0)
        assert df['route'].tolist() == ['Route 1', 'Route 2']
        assert df['active'].tolist() == [True, False]
        assert df['eta_minutes'].tolist() == pytest.approx([5.5, 6.0])
        assert df['red_signals'].tolist() == [1, 0]
        assert df['distance_km'].tolist() == pytest.approx([2.0, 0.0])

    def test_compare_no_candidates(self, estimator, registry):
        df = compare_candidates([], estimator, registry, 25)
        assert df.empty

    def test_signal_state_summary(self):
        reg = make_registry([(1, 1), (2, 2), (3, 3)],
                            [(LightColor.RED, 40), (LightColor.GREEN, 10), (LightColor.RED, 20)])
        summary = signal_state_summary(reg).set_index('color')
        assert summary.loc['red', 'count'] == 2
        assert summary.loc['red', 'mean_countdown'] == 30.0
        assert summary.loc['green', 'max_countdown'] == 10

    def test_signal_state_summary_empty(self):
        assert signal_state_summary(TrafficLightRegistry()).empty
