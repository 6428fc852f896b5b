"""
Great-circle distance between shipment locations.

Locations are looked up in a city coordinate table. A location missing from
the table is replaced by a fixed default (New York for the origin, Los Angeles
for the destination) instead of failing, and the substitution is logged.
"""

from math import atan2, cos, radians, sin, sqrt

from aws_lambda_powertools import Logger

from rates.schemas import Location

logger = Logger(service="rates")

EARTH_RADIUS_MILES = 3959

CITY_COORDINATES: dict[str, tuple[float, float]] = {
    "new york, ny": (40.7128, -74.0060),
    "los angeles, ca": (34.0522, -118.2437),
    "chicago, il": (41.8781, -87.6298),
    "houston, tx": (29.7604, -95.3698),
    "phoenix, az": (33.4484, -112.0740),
    "philadelphia, pa": (39.9526, -75.1652),
    "san antonio, tx": (29.4241, -98.4936),
    "san diego, ca": (32.7157, -117.1611),
    "dallas, tx": (32.7767, -96.7970),
    "san jose, ca": (37.3382, -121.8863),
    "austin, tx": (30.2672, -97.7431),
    "jacksonville, fl": (30.3322, -81.6557),
    "fort worth, tx": (32.7555, -97.3308),
    "columbus, oh": (39.9612, -82.9988),
    "charlotte, nc": (35.2271, -80.8431),
    "san francisco, ca": (37.7749, -122.4194),
    "indianapolis, in": (39.7684, -86.1581),
    "seattle, wa": (47.6062, -122.3321),
    "denver, co": (39.7392, -104.9903),
    "washington, dc": (38.9072, -77.0369),
    "boston, ma": (42.3601, -71.0589),
    "el paso, tx": (31.7619, -106.4850),
    "nashville, tn": (36.1627, -86.7816),
    "detroit, mi": (42.3314, -83.0458),
    "oklahoma city, ok": (35.4676, -97.5164),
    "portland, or": (45.5152, -122.6784),
    "las vegas, nv": (36.1699, -115.1398),
    "memphis, tn": (35.1495, -90.0490),
    "louisville, ky": (38.2527, -85.7585),
    "baltimore, md": (39.2904, -76.6122),
    "milwaukee, wi": (43.0389, -87.9065),
    "albuquerque, nm": (35.0844, -106.6504),
    "tucson, az": (32.2226, -110.9747),
    "fresno, ca": (36.7378, -119.7871),
    "sacramento, ca": (38.5816, -121.4944),
    "mesa, az": (33.4152, -111.8315),
    "kansas city, mo": (39.0997, -94.5786),
    "atlanta, ga": (33.7490, -84.3880),
    "long beach, ca": (33.7701, -118.1937),
    "colorado springs, co": (38.8339, -104.8214),
    "raleigh, nc": (35.7796, -78.6382),
    "miami, fl": (25.7617, -80.1918),
    "virginia beach, va": (36.8529, -75.9780),
    "omaha, ne": (41.2565, -95.9345),
    "oakland, ca": (37.8044, -122.2712),
    "minneapolis, mn": (44.9778, -93.2650),
    "tulsa, ok": (36.1540, -95.9928),
    "arlington, tx": (32.7357, -97.1081),
    "tampa, fl": (27.9506, -82.4572),
}

DEFAULT_ORIGIN = CITY_COORDINATES["new york, ny"]
DEFAULT_DESTINATION = CITY_COORDINATES["los angeles, ca"]


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in statute miles."""
    lat1_rad = radians(lat1)
    lat2_rad = radians(lat2)
    delta_lat = radians(lat2 - lat1)
    delta_lon = radians(lon2 - lon1)

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))

    return EARTH_RADIUS_MILES * c


def location_key(location: Location | str | None) -> str:
    if location is None:
        return ""
    text = location.label if isinstance(location, Location) else str(location)
    parts = [p.strip() for p in text.split(",") if p.strip()]
    return ", ".join(parts[:2]).lower()


class DistanceResolver:
    def __init__(
        self,
        coordinates: dict[str, tuple[float, float]] | None = None,
        default_origin: tuple[float, float] = DEFAULT_ORIGIN,
        default_destination: tuple[float, float] = DEFAULT_DESTINATION,
    ):
        table = CITY_COORDINATES if coordinates is None else coordinates
        self.coordinates = {location_key(k): v for k, v in table.items()}
        self.default_origin = default_origin
        self.default_destination = default_destination

    def coordinates_for(self, location: Location | str | None, default: tuple[float, float]) -> tuple[float, float]:
        key = location_key(location)
        coords = self.coordinates.get(key)
        if coords is None:
            logger.warning("Unknown location, using default coordinates", extra={"location": key, "default": default})
            return default
        return coords

    def resolve(self, origin: Location | str | None, destination: Location | str | None) -> int:
        """Distance in whole miles. Never raises; identical locations give 0."""
        if location_key(origin) and location_key(origin) == location_key(destination):
            return 0
        lat1, lon1 = self.coordinates_for(origin, self.default_origin)
        lat2, lon2 = self.coordinates_for(destination, self.default_destination)
        return int(round(haversine_miles(lat1, lon1, lat2, lon2)))
