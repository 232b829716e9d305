"""
Application instance wiring the registry, simulation, router and session together.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
import logging
import random

from analytics import RouteDelayEstimator, RouteProximityFilter
from config import SimulationConfig
from models import DataLoadError
from routing import OpenRouteServiceClient
from session import DisplayBoard, MapView, SessionController
from simulation import TrafficLightRegistry, TrafficSimulation, load_traffic_light_points

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class TrafficEtaApplication:
    """Owns all simulator state for one running dashboard."""

    def __init__(self, config: SimulationConfig, router=None,
                 rng: Optional[random.Random] = None, background_routing: bool = False):
        self.config = config
        self.rng = rng or random.Random(config.random_seed)

        self.registry = TrafficLightRegistry(timer_policy=config.timer_policy, rng=self.rng)
        self.lights_loaded = self._load_registry()

        self.proximity_filter = RouteProximityFilter(sample_stride=config.path_sample_stride)
        self.estimator = RouteDelayEstimator(
            proximity_filter=self.proximity_filter,
            penalty_policy=config.penalty_policy,
            flat_penalty_seconds=config.red_light_penalty_seconds,
        )
        self.router = router or OpenRouteServiceClient(
            api_key=config.ors_api_key,
            base_url=config.ors_base_url,
            timeout=config.ors_timeout,
            share_factor=config.alternative_share_factor,
        )
        self.executor = ThreadPoolExecutor(max_workers=2) if background_routing else None

        self.map_view = MapView(center=config.map_center, zoom=config.map_zoom)
        self.display = DisplayBoard()
        self.session = SessionController(
            registry=self.registry,
            estimator=self.estimator,
            router=self.router,
            map_view=self.map_view,
            display=self.display,
            threshold_meters=config.proximity_threshold_meters,
            alternatives=config.alternative_routes,
            executor=self.executor,
        )
        self.simulation = TrafficSimulation(
            registry=self.registry,
            tick_interval=config.tick_interval,
            on_tick=self.session.refresh,
        )

    def _load_registry(self) -> bool:
        try:
            points = load_traffic_light_points(self.config.dataset_source, timeout=self.config.dataset_timeout)
            self.registry.load(points)
            return True
        except DataLoadError as e:
            logger.error(f"Traffic lights unavailable, continuing without them: {e}")
            return False

    def start(self):
        """Start the light simulation."""
        self.simulation.start_simulation()

    def stop(self):
        """Stop the simulation and release the routing executor."""
        self.simulation.stop_simulation()
        if self.executor is not None:
            self.executor.shutdown(wait=False)
