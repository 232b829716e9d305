"""
Traffic-light simulation: the signal registry and the periodic timer that drives it.
"""
import json
import random
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging

import pandas as pd
import requests

from models import DataLoadError, LatLng, LightColor, TrafficLight

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def _read_geojson(source: str, timeout: float) -> dict:
    if source.startswith(('http://', 'https://')):
        response = requests.get(source, timeout=timeout)
        response.raise_for_status()
        return response.json()
    with open(source, encoding='utf-8') as handle:
        return json.load(handle)


def load_traffic_light_points(source: str, timeout: float = 10.0) -> List[LatLng]:
    """Read signal positions from a GeoJSON file path or URL.

    GeoJSON stores coordinates as [lng, lat]; the returned points are
    (lat, lng). Any failure to fetch or parse raises DataLoadError.
    """
    try:
        data = _read_geojson(source, timeout)
    except (OSError, ValueError, requests.RequestException) as e:
        raise DataLoadError(f"Could not read traffic-light dataset {source}: {e}") from e

    features = data.get('features') if isinstance(data, dict) else None
    if not isinstance(features, list):
        raise DataLoadError(f"Dataset {source} is not a GeoJSON FeatureCollection")

    points = []
    for i, feature in enumerate(features):
        try:
            lng, lat = feature['geometry']['coordinates'][:2]
            points.append((float(lat), float(lng)))
        except (KeyError, TypeError, ValueError) as e:
            raise DataLoadError(f"Feature {i} in {source} has no usable point geometry") from e

    return points


class TrafficLightRegistry:
    """All simulated signals for the map area, in dataset order."""

    def __init__(self, timer_policy: str = 'global', rng: Optional[random.Random] = None):
        self.timer_policy = timer_policy
        self.rng = rng or random.Random()
        self._lights: List[TrafficLight] = []
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._lights)

    @property
    def lock(self) -> threading.RLock:
        """Held while lights are mutated; readers that need a consistent view take it too."""
        return self._lock

    def load(self, dataset: Iterable[Tuple[float, float]]) -> int:
        """Create one light per dataset point, skipping repeated positions."""
        lights = []
        seen = set()
        try:
            for lat, lng in dataset:
                position = (float(lat), float(lng))
                if position in seen:
                    continue
                seen.add(position)
                lights.append(TrafficLight.create(*position, rng=self.rng))
        except (TypeError, ValueError) as e:
            raise DataLoadError(f"Malformed traffic-light dataset: {e}") from e

        with self._lock:
            self._lights = lights
        logger.info(f"Loaded {len(lights)} traffic lights")
        return len(lights)

    def tick_all(self, elapsed_seconds: float):
        """Advance every light by one timer period."""
        with self._lock:
            for light in self._lights:
                if self.timer_policy == 'global':
                    light.toggle()
                else:
                    light.tick(elapsed_seconds)

    def all(self) -> Tuple[TrafficLight, ...]:
        """Snapshot of the lights in dataset order."""
        with self._lock:
            return tuple(self._lights)

    def count_by_color(self) -> Dict[str, int]:
        """Number of lights per color."""
        with self._lock:
            counts = {color.value: 0 for color in LightColor}
            for light in self._lights:
                counts[light.color.value] += 1
            return counts

    def snapshot(self) -> pd.DataFrame:
        """Current light states as a DataFrame (lat, lng, color, countdown)."""
        with self._lock:
            rows = [
                {'lat': l.lat, 'lng': l.lng, 'color': l.color.value, 'countdown': l.countdown}
                for l in self._lights
            ]
        return pd.DataFrame(rows, columns=['lat', 'lng', 'color', 'countdown'])


class TrafficSimulation:
    """Periodic timer that advances the registry and notifies a listener."""

    def __init__(self, registry: TrafficLightRegistry, tick_interval: float,
                 on_tick: Optional[Callable[[], None]] = None):
        self.registry = registry
        self.tick_interval = tick_interval
        self.on_tick = on_tick
        self.tick_count = 0
        self.simulation_running = False
        self.simulation_thread = None
        self.stop_timeout = 10.0
        self._stop_event = threading.Event()

    def step(self):
        """Execute one tick of the simulation."""
        try:
            self.registry.tick_all(self.tick_interval)
            self.tick_count += 1
            if self.on_tick is not None:
                self.on_tick()
            logger.debug(f"Simulation tick {self.tick_count} completed")
        except Exception as e:
            logger.error(f"Error in simulation step: {e}")

    def start_simulation(self):
        """Start ticking on a background thread."""
        if self.simulation_running:
            logger.warning("Simulation is already running")
            return

        self.simulation_running = True
        # One event per run: a thread still finishing after stop stays stopped
        stop_event = threading.Event()
        self._stop_event = stop_event
        logger.info(f"Starting traffic-light simulation ({self.tick_interval:g}s ticks)")

        def simulation_loop():
            while not stop_event.wait(self.tick_interval):
                self.step()
            logger.info("Traffic-light simulation stopped")

        self.simulation_thread = threading.Thread(target=simulation_loop, daemon=True)
        self.simulation_thread.start()

    def stop_simulation(self):
        """Stop the background timer."""
        if self.simulation_running:
            self.simulation_running = False
            logger.info("Stopping traffic-light simulation")
            self._stop_event.set()
            if self.simulation_thread:
                self.simulation_thread.join(timeout=self.stop_timeout)
                if self.simulation_thread.is_alive():
                    logger.warning("Simulation thread still finishing its last tick")

    def get_simulation_status(self) -> Dict:
        """Get current simulation status."""
        return {
            'running': self.simulation_running,
            'ticks': self.tick_count,
            'tick_interval': self.tick_interval,
            'timer_policy': self.registry.timer_policy,
            'lights': len(self.registry),
            'light_colors': self.registry.count_by_color(),
        }
