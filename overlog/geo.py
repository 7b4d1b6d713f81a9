"""Geographic helpers: distances, bearings and unit conversions."""
from __future__ import annotations

import math

import numpy as np

EARTH_RADIUS_M = 6371000.0
MS_TO_KMH = 3.6
MS_TO_MPH = 2.23694
M_TO_FT = 3.28084


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Return great-circle distance between two points in metres."""
    phi1, phi2 = map(math.radians, [lat1, lat2])
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def haversine_np(lat1, lon1, lat2, lon2):
    """Vectorised haversine (arrays in degrees)."""
    lat1 = np.radians(lat1)
    lat2 = np.radians(lat2)
    dlat = lat2 - lat1
    dlon = np.radians(np.asarray(lon2) - np.asarray(lon1))
    a = np.sin(dlat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2, degrees in [0, 360)."""
    phi1, phi2 = map(math.radians, (lat1, lat2))
    dlon = math.radians(lon2 - lon1)
    y = math.sin(dlon) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination(lat: float, lon: float, bearing_deg: float, distance_m: float) -> tuple[float, float]:
    """Point reached travelling ``distance_m`` from (lat, lon) along ``bearing_deg``."""
    phi = math.radians(lat)
    lam = math.radians(lon)
    theta = math.radians(bearing_deg)
    delta = distance_m / EARTH_RADIUS_M
    phi2 = math.asin(math.sin(phi) * math.cos(delta) + math.cos(phi) * math.sin(delta) * math.cos(theta))
    lam2 = lam + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(phi),
        math.cos(delta) - math.sin(phi) * math.sin(phi2),
    )
    return math.degrees(phi2), math.degrees(lam2)


def ms_to_kmh(speed_ms: float) -> float:
    return speed_ms * MS_TO_KMH


def kmh_to_ms(speed_kmh: float) -> float:
    return speed_kmh / MS_TO_KMH


def ms_to_mph(speed_ms: float) -> float:
    return speed_ms * MS_TO_MPH


def mph_to_ms(speed_mph: float) -> float:
    return speed_mph / MS_TO_MPH


def m_to_ft(metres: float) -> float:
    return metres * M_TO_FT


def g_force_magnitude(gx: float, gy: float, gz: float) -> float:
    return math.sqrt(gx * gx + gy * gy + gz * gz)


def acceleration(speed1: float, speed2: float, time_delta: float) -> float:
    """Mean acceleration (m/s^2) between two speeds; 0 for a zero interval."""
    if time_delta == 0:
        return 0.0
    return (speed2 - speed1) / time_delta


def wgs84_to_local(lat: float, lon: float, ref_lat: float, ref_lon: float) -> tuple[float, float]:
    """Equirectangular projection to metres (x east, y north) around a reference point."""
    x = math.radians(lon - ref_lon) * EARTH_RADIUS_M * math.cos(math.radians(ref_lat))
    y = math.radians(lat - ref_lat) * EARTH_RADIUS_M
    return x, y


def local_to_wgs84(x: float, y: float, ref_lat: float, ref_lon: float) -> tuple[float, float]:
    lat = ref_lat + math.degrees(y / EARTH_RADIUS_M)
    lon = ref_lon + math.degrees(x / (EARTH_RADIUS_M * math.cos(math.radians(ref_lat))))
    return lat, lon


__all__ = [
    "EARTH_RADIUS_M",
    "haversine",
    "haversine_np",
    "bearing",
    "destination",
    "ms_to_kmh",
    "kmh_to_ms",
    "ms_to_mph",
    "mph_to_ms",
    "m_to_ft",
    "g_force_magnitude",
    "acceleration",
    "wgs84_to_local",
    "local_to_wgs84",
]
