"""Great-circle geometry for geo-near queries.

Distances are metres on a sphere. The radius is the one MongoDB uses for
``2dsphere`` distances, so ``maxDistance`` values mean the same thing to
API clients written against it.
"""

from __future__ import annotations

from dataclasses import dataclass
import math


EARTH_RADIUS_METERS = 6_378_100.0


@dataclass(frozen=True)
class BoundingBox:
    """Latitude/longitude box; ``wraps`` is set when longitudes cross the antimeridian."""

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    full_longitude: bool = False

    @property
    def wraps(self) -> bool:
        return not self.full_longitude and (self.min_lng < -180.0 or self.max_lng > 180.0)


def haversine_distance(lng1: float, lat1: float, lng2: float, lat2: float) -> float:
    """Return the great-circle distance in metres between two points."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = phi2 - phi1
    d_lambda = math.radians(lng2 - lng1)
    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    a = min(1.0, max(0.0, a))
    return 2 * EARTH_RADIUS_METERS * math.asin(math.sqrt(a))


def bounding_box(lng: float, lat: float, radius_m: float) -> BoundingBox:
    """Return a box guaranteed to contain every point within ``radius_m`` of the centre.

    Uses the spherical bounding-coordinates method: latitude extends by the
    angular radius; longitude extends by ``asin(sin(r) / cos(lat))`` unless a
    pole falls inside the circle, in which case every longitude is covered.
    """

    angular = max(radius_m, 0.0) / EARTH_RADIUS_METERS
    if angular >= math.pi:
        return BoundingBox(-90.0, 90.0, -180.0, 180.0, full_longitude=True)

    lat_rad = math.radians(lat)
    min_lat = lat_rad - angular
    max_lat = lat_rad + angular
    if min_lat <= -math.pi / 2 or max_lat >= math.pi / 2:
        return BoundingBox(
            max(math.degrees(min_lat), -90.0),
            min(math.degrees(max_lat), 90.0),
            -180.0,
            180.0,
            full_longitude=True,
        )

    ratio = math.sin(angular) / math.cos(lat_rad)
    if ratio >= 1.0:
        return BoundingBox(math.degrees(min_lat), math.degrees(max_lat), -180.0, 180.0, full_longitude=True)
    delta_lng = math.degrees(math.asin(ratio))
    return BoundingBox(
        math.degrees(min_lat),
        math.degrees(max_lat),
        lng - delta_lng,
        lng + delta_lng,
    )
