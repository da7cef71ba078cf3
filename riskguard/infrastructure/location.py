"""Great-circle distance and geofence checks."""

import math
from typing import Iterable, Optional

from riskguard.models.interfaces import ILocationService
from riskguard.models.threat import Geofence, GeoPoint

EARTH_RADIUS_KM = 6371.0
DEFAULT_GEOFENCE_RADIUS_KM = 50.0


class HaversineLocationService(ILocationService):
    """Spherical-earth distance using the haversine formula"""

    def __init__(self, default_radius_km: float = DEFAULT_GEOFENCE_RADIUS_KM):
        self.default_radius_km = default_radius_km

    def distance_km(self, a: GeoPoint, b: GeoPoint) -> float:
        lat_delta = math.radians(b.latitude - a.latitude)
        lon_delta = math.radians(b.longitude - a.longitude)

        h = (math.sin(lat_delta / 2) ** 2
             + math.cos(math.radians(a.latitude)) * math.cos(math.radians(b.latitude))
             * math.sin(lon_delta / 2) ** 2)
        c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
        return EARTH_RADIUS_KM * c

    def is_within_geofence(self, point: GeoPoint, center: GeoPoint, radius_km: Optional[float] = None) -> bool:
        radius = self.default_radius_km if radius_km is None else radius_km
        return self.distance_km(point, center) <= radius

    def in_any_geofence(self, point: GeoPoint, fences: Iterable[Geofence]) -> bool:
        return any(self.is_within_geofence(point, fence.center, fence.radius_km) for fence in fences)
