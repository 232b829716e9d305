"""
Click-to-route session: the start/end selection state machine and the
map and text surfaces it drives.
"""
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
import logging
import threading

from analytics import RouteDelayEstimator, format_eta_minutes
from models import (
    InvalidSelectionError,
    LatLng,
    RouteCandidate,
    RoutingRequestError,
    SessionStage,
)
from simulation import TrafficLightRegistry

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

MAX_CANDIDATES = 2

ACTIVE_ROUTE_STYLE = {'color': 'blue', 'opacity': 0.95}
INACTIVE_ROUTE_STYLE = {'color': 'gray', 'opacity': 0.5}
ROUTE_WEIGHT = 7


@dataclass(frozen=True)
class MapMarker:
    position: LatLng
    label: str


@dataclass(frozen=True)
class PathOverlay:
    path: Tuple[LatLng, ...]
    color: str
    opacity: float
    weight: int = ROUTE_WEIGHT


class MapView:
    """In-memory map scene: point markers, path overlays and the viewport."""

    def __init__(self, center: LatLng = (35.7796, -78.6382), zoom: int = 12):
        self.center = center
        self.zoom = zoom
        self.markers: Dict[str, MapMarker] = {}
        self.paths: Dict[int, PathOverlay] = {}
        self.bounds: Optional[Tuple[LatLng, LatLng]] = None
        self.highlighted_signals: Tuple[LatLng, ...] = ()

    def place_marker(self, key: str, position: LatLng, label: str = ''):
        """Place or move a labelled point marker."""
        self.markers[key] = MapMarker(position=position, label=label)

    def remove_marker(self, key: str):
        """Remove a marker; unknown keys are ignored."""
        self.markers.pop(key, None)

    def draw_path(self, key: int, path: Sequence[LatLng], color: str, opacity: float,
                  weight: int = ROUTE_WEIGHT):
        """Draw or restyle the overlay for one route."""
        self.paths[key] = PathOverlay(path=tuple(path), color=color, opacity=opacity, weight=weight)

    def remove_path(self, key: int):
        """Remove a route overlay; unknown keys are ignored."""
        self.paths.pop(key, None)

    def fit_bounds(self, path: Sequence[LatLng]):
        """Fit the viewport to the bounding box of a path."""
        if not path:
            return
        lats = [p[0] for p in path]
        lngs = [p[1] for p in path]
        self.bounds = ((min(lats), min(lngs)), (max(lats), max(lngs)))

    def highlight_signals(self, positions: Sequence[LatLng]):
        """Mark the signals that count toward the active route's delay."""
        self.highlighted_signals = tuple(positions)

    def clear_signal_highlights(self):
        self.highlighted_signals = ()


class DisplayBoard:
    """Text surfaces for the current ETA and the two route alternatives."""

    PLACEHOLDERS = {
        'eta': '--',
        'route_1': 'Route 1: --',
        'route_2': 'Route 2: --',
    }

    def __init__(self):
        self.texts: Dict[str, str] = dict(self.PLACEHOLDERS)
        self.highlighted: Optional[str] = None

    def update(self, surface: str, text: str):
        """Set the text of one surface; unknown surfaces raise KeyError."""
        if surface not in self.PLACEHOLDERS:
            raise KeyError(f"Unknown display surface {surface!r}")
        self.texts[surface] = text

    def highlight(self, surface: Optional[str]):
        """Emphasize one surface, or none."""
        self.highlighted = surface

    def reset(self, surface: Optional[str] = None):
        """Put one surface, or all of them, back to its placeholder."""
        if surface is None:
            self.texts = dict(self.PLACEHOLDERS)
            self.highlighted = None
        else:
            self.texts[surface] = self.PLACEHOLDERS[surface]
            if self.highlighted == surface:
                self.highlighted = None

    def text(self, surface: str) -> str:
        """Current text of a surface."""
        return self.texts[surface]


@dataclass(frozen=True)
class SessionState:
    stage: SessionStage
    start_point: Optional[LatLng]
    end_point: Optional[LatLng]
    candidates: Tuple[RouteCandidate, ...]
    active_index: Optional[int]


class SessionController:
    """Two-click start/end selection that requests routes and shows their ETAs.

    Routing runs inline, or on `executor` when one is given. Each request
    carries a token; a result is applied only if its token is the one the
    session is currently waiting for, so a slow earlier request never
    overwrites a later one. In-flight requests are not cancelled.
    """

    def __init__(self, registry: TrafficLightRegistry, estimator: RouteDelayEstimator,
                 router, map_view: MapView = None, display: DisplayBoard = None,
                 threshold_meters: float = 25.0, alternatives: int = MAX_CANDIDATES,
                 executor: Optional[Executor] = None):
        self.registry = registry
        self.estimator = estimator
        self.router = router
        self.map_view = map_view or MapView()
        self.display = display or DisplayBoard()
        self.threshold_meters = threshold_meters
        self.alternatives = alternatives
        self.executor = executor

        self.stage = SessionStage.AWAITING_START
        self.start_point: Optional[LatLng] = None
        self.end_point: Optional[LatLng] = None
        self.candidates: Tuple[RouteCandidate, ...] = ()
        self.active_index: Optional[int] = None
        self.last_error: Optional[RoutingRequestError] = None

        self.request_token = 0
        self._awaited_token: Optional[int] = None
        self._lock = threading.RLock()

    def state(self) -> SessionState:
        """Consistent snapshot of the selection state."""
        with self._lock:
            return SessionState(
                stage=self.stage,
                start_point=self.start_point,
                end_point=self.end_point,
                candidates=self.candidates,
                active_index=self.active_index,
            )

    def reset(self):
        """Clear markers, routes and ETAs and wait for a new start point."""
        with self._lock:
            self.map_view.remove_marker('start')
            self.map_view.remove_marker('end')
            for key in list(self.map_view.paths):
                self.map_view.remove_path(key)
            self.map_view.bounds = None
            self.map_view.clear_signal_highlights()
            self.display.reset()

            self.stage = SessionStage.AWAITING_START
            self.start_point = None
            self.end_point = None
            self.candidates = ()
            self.active_index = None
            self.last_error = None
            self._awaited_token = None

    def handle_click(self, point: LatLng) -> Optional[int]:
        """Record a map click; the second click of a pair requests routes.

        Returns the request token when a routing request was issued.
        """
        point = (float(point[0]), float(point[1]))
        with self._lock:
            if self.stage is SessionStage.AWAITING_START:
                self.reset()
                self.start_point = point
                self.map_view.place_marker('start', point, 'Start')
                self.stage = SessionStage.AWAITING_END
                logger.info(f"Start point set to {point}")
                return None

            self.end_point = point
            self.map_view.place_marker('end', point, 'Destination')
            self.stage = SessionStage.AWAITING_START
            self.request_token += 1
            token = self.request_token
            self._awaited_token = token
            start, end = self.start_point, self.end_point

        logger.info(f"Requesting routes from {start} to {end} (request {token})")
        self._request_routes(token, start, end)
        return token

    def _request_routes(self, token: int, start: LatLng, end: LatLng):
        if self.executor is not None:
            future = self.executor.submit(self.router.directions, start, end, self.alternatives)
            future.add_done_callback(lambda f: self._complete(token, f))
            return

        try:
            candidates = self.router.directions(start, end, self.alternatives)
        except RoutingRequestError as e:
            self.receive_routing_error(token, e)
        else:
            self.receive_routes(token, candidates)

    def _complete(self, token: int, future: Future):
        error = future.exception()
        if error is None:
            self.receive_routes(token, future.result())
        elif isinstance(error, RoutingRequestError):
            self.receive_routing_error(token, error)
        else:
            self.receive_routing_error(token, RoutingRequestError(f"Routing request failed: {error}"))

    def receive_routes(self, token: int, candidates: Sequence[RouteCandidate]) -> bool:
        """Apply routing results if they answer the current request."""
        with self._lock:
            if token != self._awaited_token:
                logger.info(f"Discarding stale routing result for request {token}")
                return False

            self.candidates = tuple(candidates)[:MAX_CANDIDATES]
            self.active_index = None
            self.last_error = None
            if not self.candidates:
                logger.warning("Routing service returned no routes")
                return True

            self.activate_route(0)
            return True

    def receive_routing_error(self, token: int, error: RoutingRequestError) -> bool:
        """Log a failed request; displayed state is left as it was."""
        with self._lock:
            if token != self._awaited_token:
                logger.info(f"Ignoring error from superseded request {token}: {error}")
                return False
            logger.error(f"Routing request {token} failed: {error}")
            self.last_error = error
            return True

    def select_route(self, index: int):
        """Make a candidate active; raises InvalidSelectionError if there is none at index."""
        with self._lock:
            if not 0 <= index < len(self.candidates):
                raise InvalidSelectionError(
                    f"Route index {index} out of range for {len(self.candidates)} candidate(s)"
                )
            self.active_index = index
            self._draw_routes()
            self._show_estimates()

    def activate_route(self, index: int) -> bool:
        """Like select_route, but an invalid index is a no-op."""
        try:
            self.select_route(index)
        except InvalidSelectionError as e:
            logger.warning(f"Ignoring route activation: {e}")
            return False
        return True

    def refresh(self):
        """Recompute displayed ETAs after the lights change."""
        with self._lock:
            if self.active_index is None:
                return
            self._show_estimates()

    def _draw_routes(self):
        for i, candidate in enumerate(self.candidates):
            style = ACTIVE_ROUTE_STYLE if i == self.active_index else INACTIVE_ROUTE_STYLE
            self.map_view.draw_path(i, candidate.path, **style)
        active = self.candidates[self.active_index]
        self.map_view.fit_bounds(active.path)
        nearby = self.estimator.proximity_filter.select(self.registry, active.path, self.threshold_meters)
        self.map_view.highlight_signals([light.position for light in nearby])

    def _eta(self, candidate: RouteCandidate) -> float:
        return self.estimator.estimate(candidate, self.registry, self.threshold_meters)

    def _show_estimates(self):
        etas: List[float] = [self._eta(candidate) for candidate in self.candidates]
        self.display.update('eta', format_eta_minutes(etas[self.active_index]))

        if len(self.candidates) < MAX_CANDIDATES:
            return
        for i, eta in enumerate(etas):
            self.display.update(f'route_{i + 1}', f"Route {i + 1}: {format_eta_minutes(eta)}")
        self.display.highlight(f'route_{self.active_index + 1}')
