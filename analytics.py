"""
Route analytics: which signals sit on a route, and how long the route takes.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence
import logging

import numpy as np
import pandas as pd

from models import LatLng, RouteCandidate, RouteSegment, TrafficLight
from simulation import TrafficLightRegistry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

EARTH_RADIUS_METERS = 6371008.8
METERS_PER_MILE = 1609.34

HIGHWAY_SPEED_MPH = 70
LOCAL_SPEED_MPH = 35
HIGHWAY_MARKERS = ('i-', 'hwy', 'interstate')


def haversine_meters(lat1, lng1, lat2, lng2):
    """Great-circle distance in meters; accepts scalars or numpy arrays."""
    lat1, lng1, lat2, lng2 = map(np.radians, (lat1, lng1, lat2, lng2))
    a = (np.sin((lat2 - lat1) / 2) ** 2
         + np.cos(lat1) * np.cos(lat2) * np.sin((lng2 - lng1) / 2) ** 2)
    return 2 * EARTH_RADIUS_METERS * np.arcsin(np.sqrt(np.clip(a, 0.0, 1.0)))


def format_eta_minutes(seconds: float) -> str:
    """Render an ETA in seconds as minutes with one decimal, e.g. '2.5 min'."""
    return f"{seconds / 60:.1f} min"


class RouteProximityFilter:
    """Selects the signals that lie within a distance of a route path."""

    def __init__(self, sample_stride: int = 1):
        if sample_stride < 1:
            raise ValueError("sample_stride must be at least 1")
        self.sample_stride = sample_stride

    def _sample_path(self, route_path: Sequence[LatLng]) -> np.ndarray:
        points = np.asarray(route_path, dtype=float).reshape(-1, 2)
        if self.sample_stride == 1 or len(points) == 0:
            return points
        sampled = points[::self.sample_stride]
        # The final point is always checked so the destination block is covered
        if (len(points) - 1) % self.sample_stride:
            sampled = np.vstack([sampled, points[-1]])
        return sampled

    def select(self, registry: TrafficLightRegistry, route_path: Sequence[LatLng],
               threshold_meters: float) -> List[TrafficLight]:
        """Signals strictly closer than threshold_meters to any sampled path point.

        Results keep registry order.
        """
        lights = registry.all()
        path = self._sample_path(route_path)
        if not lights or len(path) == 0 or threshold_meters <= 0:
            return []

        positions = np.array([light.position for light in lights], dtype=float)
        # (lights x path points) distance matrix
        distances = haversine_meters(
            positions[:, 0:1], positions[:, 1:2],
            path[np.newaxis, :, 0], path[np.newaxis, :, 1],
        )
        near = (distances < threshold_meters).any(axis=1)
        return [light for light, hit in zip(lights, near) if hit]


@dataclass(frozen=True)
class RouteEstimate:
    """Breakdown of one candidate's ETA, all in seconds."""
    base_seconds: float
    penalty_seconds: float
    nearby_signals: int
    red_signals: int

    @property
    def total_seconds(self) -> float:
        return self.base_seconds + self.penalty_seconds


class RouteDelayEstimator:
    """Combines per-segment travel time with red-light penalties."""

    def __init__(self, proximity_filter: Optional[RouteProximityFilter] = None,
                 penalty_policy: str = 'flat', flat_penalty_seconds: float = 30.0):
        if penalty_policy not in ('flat', 'countdown'):
            raise ValueError(f"Unknown penalty policy {penalty_policy!r}")
        self.proximity_filter = proximity_filter or RouteProximityFilter()
        self.penalty_policy = penalty_policy
        self.flat_penalty_seconds = flat_penalty_seconds

    @staticmethod
    def speed_of(segment: RouteSegment) -> int:
        """Speed in mph: highway-looking road names get 70, everything else 35."""
        name = (segment.road_name or '').lower()
        if any(marker in name for marker in HIGHWAY_MARKERS):
            return HIGHWAY_SPEED_MPH
        return LOCAL_SPEED_MPH

    def base_travel_seconds(self, candidate: RouteCandidate) -> float:
        """Service-reported duration when present, otherwise summed segment times."""
        if candidate.base_duration_seconds is not None:
            return float(candidate.base_duration_seconds)
        seconds = 0.0
        for segment in candidate.segments:
            miles = segment.distance_meters / METERS_PER_MILE
            seconds += miles / self.speed_of(segment) * 3600
        return seconds

    def red_light_penalty(self, signals: Iterable[TrafficLight]) -> float:
        """Delay in seconds for the red lights among signals, per the penalty policy."""
        red = [light for light in signals if light.is_red]
        if self.penalty_policy == 'countdown':
            return float(sum(light.countdown for light in red))
        return len(red) * self.flat_penalty_seconds

    def breakdown(self, candidate: RouteCandidate, registry: TrafficLightRegistry,
                  threshold_meters: float) -> RouteEstimate:
        """Base time, penalty and signal counts for one candidate."""
        # Hold the registry lock so a tick cannot land between filtering and scoring
        with registry.lock:
            nearby = self.proximity_filter.select(registry, candidate.path, threshold_meters)
            penalty = self.red_light_penalty(nearby)
            red_count = sum(1 for light in nearby if light.is_red)
        return RouteEstimate(
            base_seconds=self.base_travel_seconds(candidate),
            penalty_seconds=penalty,
            nearby_signals=len(nearby),
            red_signals=red_count,
        )

    def estimate(self, candidate: RouteCandidate, registry: TrafficLightRegistry,
                 threshold_meters: float) -> float:
        """ETA in seconds: base travel time plus red-light penalty."""
        return self.breakdown(candidate, registry, threshold_meters).total_seconds


def compare_candidates(candidates: Sequence[RouteCandidate], estimator: RouteDelayEstimator,
                       registry: TrafficLightRegistry, threshold_meters: float,
                       active_index: Optional[int] = None) -> pd.DataFrame:
    """One row per candidate with its ETA breakdown, for side-by-side display."""
    rows = []
    for i, candidate in enumerate(candidates):
        est = estimator.breakdown(candidate, registry, threshold_meters)
        rows.append({
            'route': f"Route {i + 1}",
            'active': i == active_index,
            'distance_km': (candidate.distance_meters or 0.0) / 1000,
            'base_minutes': est.base_seconds / 60,
            'penalty_minutes': est.penalty_seconds / 60,
            'eta_minutes': est.total_seconds / 60,
            'nearby_signals': est.nearby_signals,
            'red_signals': est.red_signals,
        })
    columns = ['route', 'active', 'distance_km', 'base_minutes', 'penalty_minutes',
               'eta_minutes', 'nearby_signals', 'red_signals']
    return pd.DataFrame(rows, columns=columns)


def signal_state_summary(registry: TrafficLightRegistry) -> pd.DataFrame:
    """Count and countdown statistics per light color."""
    snapshot = registry.snapshot()
    if snapshot.empty:
        logger.warning("No traffic lights available for state summary")
        return pd.DataFrame(columns=['color', 'count', 'mean_countdown', 'max_countdown'])

    summary = snapshot.groupby('color')['countdown'].agg(['count', 'mean', 'max']).reset_index()
    summary.columns = ['color', 'count', 'mean_countdown', 'max_countdown']
    summary['mean_countdown'] = summary['mean_countdown'].round(1)
    return summary
