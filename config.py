"""
Configuration for the traffic-light ETA simulator.
"""
import os
from dataclasses import dataclass
from typing import Optional, Tuple

DEFAULT_DATASET = os.path.join(
    os.path.dirname(os.path.abspath(__file__)), 'data', 'raleigh_traffic_lights.geojson'
)

ORS_DIRECTIONS_URL = "https://api.openrouteservice.org/v2/directions/driving-car/geojson"

PENALTY_POLICIES = ('flat', 'countdown')

# Tick period in seconds for each timer policy
TIMER_PERIODS = {
    'global': 30.0,    # every light flips together
    'per_light': 1.0,  # independent countdowns
}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class SimulationConfig:
    """Runtime settings for the simulation, estimator and routing client."""
    ors_api_key: str = ''
    ors_base_url: str = ORS_DIRECTIONS_URL
    ors_timeout: float = 10.0
    dataset_source: str = DEFAULT_DATASET
    dataset_timeout: float = 10.0

    proximity_threshold_meters: float = 25.0
    path_sample_stride: int = 1
    penalty_policy: str = 'flat'
    red_light_penalty_seconds: float = 30.0
    timer_policy: str = 'global'

    alternative_routes: int = 2
    alternative_share_factor: float = 0.6

    map_center: Tuple[float, float] = (35.7796, -78.6382)
    map_zoom: int = 12
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.penalty_policy not in PENALTY_POLICIES:
            raise ValueError(
                f"Unknown penalty policy {self.penalty_policy!r}, expected one of {PENALTY_POLICIES}"
            )
        if self.timer_policy not in TIMER_PERIODS:
            raise ValueError(
                f"Unknown timer policy {self.timer_policy!r}, expected one of {tuple(TIMER_PERIODS)}"
            )
        # Under the global timer a light flips every period regardless of its countdown
        if self.penalty_policy == 'countdown' and self.timer_policy == 'global':
            raise ValueError("The countdown penalty policy needs the per_light timer policy")
        if self.path_sample_stride < 1:
            raise ValueError("path_sample_stride must be at least 1")
        if not 0 <= self.alternative_routes <= 2:
            raise ValueError("alternative_routes must be 0, 1 or 2")
        if self.proximity_threshold_meters < 0:
            raise ValueError("proximity_threshold_meters must not be negative")

    @property
    def tick_interval(self) -> float:
        """Seconds between simulation ticks for the configured timer policy."""
        return TIMER_PERIODS[self.timer_policy]

    @classmethod
    def from_env(cls) -> 'SimulationConfig':
        """Build a configuration from environment variables."""
        return cls(
            ors_api_key=os.getenv('ORS_API_KEY', ''),
            ors_base_url=os.getenv('ORS_BASE_URL', ORS_DIRECTIONS_URL),
            ors_timeout=_env_float('ORS_TIMEOUT', 10.0),
            dataset_source=os.getenv('TRAFFIC_LIGHTS_DATASET', DEFAULT_DATASET),
            dataset_timeout=_env_float('DATASET_TIMEOUT', 10.0),
            proximity_threshold_meters=_env_float('PROXIMITY_THRESHOLD_METERS', 25.0),
            path_sample_stride=_env_int('PATH_SAMPLE_STRIDE', 1),
            penalty_policy=os.getenv('PENALTY_POLICY', 'flat').lower(),
            red_light_penalty_seconds=_env_float('RED_LIGHT_PENALTY_SECONDS', 30.0),
            timer_policy=os.getenv('TIMER_POLICY', 'global').lower(),
            alternative_routes=_env_int('ALTERNATIVE_ROUTES', 2),
            alternative_share_factor=_env_float('ALTERNATIVE_SHARE_FACTOR', 0.6),
            map_center=(
                _env_float('MAP_CENTER_LAT', 35.7796),
                _env_float('MAP_CENTER_LNG', -78.6382),
            ),
            map_zoom=_env_int('MAP_ZOOM', 12),
            random_seed=_env_int('RANDOM_SEED', None),
        )
