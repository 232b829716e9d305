"""
OpenRouteService client: fetches driving routes between two points.
"""
from typing import List
import logging

import requests

from models import LatLng, RouteCandidate, RouteSegment, RoutingRequestError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def parse_route_feature(feature: dict) -> RouteCandidate:
    """Convert one GeoJSON route feature into a RouteCandidate.

    Per-step data (distance and road name) is used when the response has
    instructions; otherwise the summary duration becomes the base duration.
    """
    try:
        coordinates = feature['geometry']['coordinates']
        path = tuple((float(lat), float(lng)) for lng, lat, *_ in coordinates)
    except (KeyError, TypeError, ValueError) as e:
        raise RoutingRequestError(f"Route feature has no usable geometry: {e}") from e

    properties = feature.get('properties') or {}
    summary = properties.get('summary') or {}

    segments = []
    try:
        for segment in properties.get('segments') or []:
            for step in segment.get('steps') or []:
                segments.append(RouteSegment(
                    distance_meters=float(step.get('distance', 0.0)),
                    road_name=step.get('name') or '',
                ))
        base_duration = None
        if not segments and 'duration' in summary:
            base_duration = float(summary['duration'])
        distance = float(summary['distance']) if 'distance' in summary else None
    except (AttributeError, TypeError, ValueError) as e:
        raise RoutingRequestError(f"Route feature has malformed properties: {e}") from e

    return RouteCandidate(
        path=path,
        segments=tuple(segments),
        base_duration_seconds=base_duration,
        distance_meters=distance,
    )


def parse_directions_response(data) -> List[RouteCandidate]:
    """Parse a GeoJSON FeatureCollection of routes."""
    if not isinstance(data, dict) or not isinstance(data.get('features'), list):
        raise RoutingRequestError("Routing response is not a GeoJSON FeatureCollection")
    return [parse_route_feature(feature) for feature in data['features']]


class OpenRouteServiceClient:
    """Requests driving directions from the OpenRouteService API."""

    def __init__(self, api_key: str, base_url: str, timeout: float = 10.0,
                 share_factor: float = 0.6, session: requests.Session = None):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.share_factor = share_factor
        self.http = session or requests.Session()

    def _build_body(self, start: LatLng, end: LatLng, alternatives: int) -> dict:
        body = {
            'coordinates': [[start[1], start[0]], [end[1], end[0]]],
            'instructions': True,
        }
        if alternatives > 1:
            body['alternative_routes'] = {
                'share_factor': self.share_factor,
                'target_count': alternatives,
            }
        return body

    def directions(self, start: LatLng, end: LatLng, alternatives: int = 2) -> List[RouteCandidate]:
        """Fetch up to `alternatives` route candidates from start to end."""
        headers = {
            'Authorization': self.api_key,
            'Content-Type': 'application/json',
            'Accept': 'application/json, application/geo+json',
        }
        body = self._build_body(start, end, alternatives)

        try:
            response = self.http.post(self.base_url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Routing request failed: {e}")
            raise RoutingRequestError(f"Routing request failed: {e}") from e

        if not response.ok:
            logger.error(f"Routing service returned {response.status_code}: {response.text[:200]}")
            raise RoutingRequestError(f"Routing service returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RoutingRequestError(f"Routing response is not valid JSON: {e}") from e

        candidates = parse_directions_response(data)
        logger.info(f"Routing service returned {len(candidates)} route(s)")
        return candidates
