"""Geographic primitives shared by the party directory and order pricing."""

import math
from dataclasses import dataclass

from src.js_common.errors import InvalidLocationError

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise InvalidLocationError(f"latitude {self.latitude} outside [-90, 90]")
        if not -180.0 <= self.longitude <= 180.0:
            raise InvalidLocationError(f"longitude {self.longitude} outside [-180, 180]")


def haversine_km(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance on a spherical earth.

    PostGIS geography distances use the WGS84 spheroid, so the two can differ
    by a few metres over city distances. Pricing only ever uses this function,
    which keeps shipping quotes reproducible.
    """
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def round_km(distance_km: float) -> float:
    """Display rounding: one decimal place."""
    return round(distance_km, 1)
