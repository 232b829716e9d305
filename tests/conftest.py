import os
import random
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from analytics import RouteDelayEstimator, RouteProximityFilter
from models import RoutingRequestError
from simulation import TrafficLightRegistry


class FakeRouter:
    """Routing collaborator returning canned candidates or raising a canned error."""

    def __init__(self, candidates=(), error=None):
        self.candidates = list(candidates)
        self.error = error
        self.calls = []

    def directions(self, start, end, alternatives=2):
        self.calls.append((start, end, alternatives))
        if self.error is not None:
            raise self.error
        return list(self.candidates)


def set_lights(registry, states):
    """Force (color, countdown) pairs onto the registry's lights, in order."""
    for light, (color, countdown) in zip(registry.all(), states):
        light.color = color
        light.countdown = countdown


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def registry(rng):
    reg = TrafficLightRegistry(timer_policy='per_light', rng=rng)
    reg.load([(35.7800, -78.6400), (35.7810, -78.6400), (35.7900, -78.6500)])
    return reg


@pytest.fixture
def estimator():
    return RouteDelayEstimator(RouteProximityFilter(), penalty_policy='flat', flat_penalty_seconds=30)


@pytest.fixture
def router():
    return FakeRouter()


@pytest.fixture
def failing_router():
    return FakeRouter(error=RoutingRequestError("HTTP 503"))
