"""
Data models and structures for the traffic-light ETA simulator.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
import math
import random

LatLng = Tuple[float, float]

# Countdown ranges in seconds, inclusive
RED_DURATION_RANGE = (20, 40)
GREEN_DURATION_RANGE = (15, 30)


class TrafficEtaError(Exception):
    """Base class for simulator errors."""


class DataLoadError(TrafficEtaError):
    """Traffic-light dataset is unavailable or malformed."""


class RoutingRequestError(TrafficEtaError):
    """Routing service request failed (network, HTTP status or body)."""


class InvalidSelectionError(TrafficEtaError):
    """Route index does not refer to a known candidate."""


class LightColor(str, Enum):
    RED = 'red'
    GREEN = 'green'

    def flipped(self) -> 'LightColor':
        """The other color."""
        return LightColor.GREEN if self is LightColor.RED else LightColor.RED


class SessionStage(str, Enum):
    AWAITING_START = 'awaiting_start'
    AWAITING_END = 'awaiting_end'


@dataclass
class TrafficLight:
    """A simulated traffic signal with a color and a countdown in seconds."""
    lat: float
    lng: float
    color: LightColor = LightColor.RED
    countdown: int = 0
    rng: random.Random = field(default_factory=random.Random, repr=False, compare=False)

    @classmethod
    def create(cls, lat: float, lng: float, rng: Optional[random.Random] = None) -> 'TrafficLight':
        """Create a light at a position with a randomized initial state."""
        light = cls(lat=float(lat), lng=float(lng), rng=rng or random.Random())
        light.initialize()
        return light

    @property
    def position(self) -> LatLng:
        """(lat, lng) of the light."""
        return (self.lat, self.lng)

    @property
    def is_red(self) -> bool:
        return self.color is LightColor.RED

    def _draw_countdown(self, color: LightColor) -> int:
        low, high = RED_DURATION_RANGE if color is LightColor.RED else GREEN_DURATION_RANGE
        return self.rng.randint(low, high)

    def initialize(self):
        """Pick a color 50/50 and a fresh countdown for it."""
        self.color = LightColor.RED if self.rng.random() < 0.5 else LightColor.GREEN
        self.countdown = self._draw_countdown(self.color)

    def toggle(self):
        """Flip the color immediately and restart the countdown."""
        self.color = self.color.flipped()
        self.countdown = self._draw_countdown(self.color)

    def tick(self, elapsed_seconds: float = 1):
        """Advance the countdown, flipping the color once it runs out."""
        remaining = self.countdown - elapsed_seconds
        if remaining <= 0:
            self.toggle()
        else:
            self.countdown = math.ceil(remaining)


@dataclass(frozen=True)
class RouteSegment:
    """One step of a route as reported by the routing service."""
    distance_meters: float
    road_name: str = ''


@dataclass(frozen=True)
class RouteCandidate:
    """A possible path between the selected points, with timing data."""
    path: Tuple[LatLng, ...]
    segments: Tuple[RouteSegment, ...] = ()
    base_duration_seconds: Optional[float] = None
    distance_meters: Optional[float] = None

    @classmethod
    def from_points(cls, path, segments=(), base_duration_seconds=None,
                    distance_meters=None) -> 'RouteCandidate':
        """Build a candidate from any iterables of points and segments."""
        return cls(
            path=tuple((float(lat), float(lng)) for lat, lng in path),
            segments=tuple(segments),
            base_duration_seconds=base_duration_seconds,
            distance_meters=distance_meters,
        )
