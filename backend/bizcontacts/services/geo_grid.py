"""Grid of search points covering a circular area."""

import math
from dataclasses import dataclass

KM_PER_DEGREE_LAT = 111.32


@dataclass(frozen=True)
class GridPoint:
    latitude: float
    longitude: float


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    r = 6371.0
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * r * math.asin(math.sqrt(a))


def generate_grid_points(
    center_lat: float,
    center_lng: float,
    radius_km: float,
    grid_radius_km: float = 1.5,
    density: float = 1.5,
) -> list[GridPoint]:
    """Square lattice over the circle, keeping only points inside the radius.

    Spacing is grid_radius_km * 2 / density, so a density above 1 makes
    neighbouring search circles overlap. The center is always included.
    """
    if radius_km <= 0:
        return [GridPoint(center_lat, center_lng)]

    spacing_km = grid_radius_km * 2 / density
    steps = int(math.ceil(radius_km / spacing_km))
    lat_step = spacing_km / KM_PER_DEGREE_LAT
    lng_step = spacing_km / (KM_PER_DEGREE_LAT * max(math.cos(math.radians(center_lat)), 1e-6))

    points = []
    for i in range(-steps, steps + 1):
        for j in range(-steps, steps + 1):
            lat = center_lat + i * lat_step
            lng = center_lng + j * lng_step
            if haversine_km(center_lat, center_lng, lat, lng) <= radius_km:
                points.append(GridPoint(round(lat, 6), round(lng, 6)))

    # Closest to the center first so early stopping keeps the densest area
    points.sort(key=lambda p: haversine_km(center_lat, center_lng, p.latitude, p.longitude))
    return points
