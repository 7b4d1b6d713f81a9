"""Numeric contracts of the geographic and formatting helpers."""

from datetime import datetime, timedelta

import pytest

pytest.importorskip("numpy")

import numpy as np  # noqa: E402

from overlog.geo import (  # noqa: E402
    acceleration,
    bearing,
    destination,
    g_force_magnitude,
    haversine,
    haversine_np,
    kmh_to_ms,
    local_to_wgs84,
    ms_to_kmh,
    ms_to_mph,
    mph_to_ms,
    wgs84_to_local,
)
from overlog.utils import (  # noqa: E402
    cardinal,
    clamp,
    file_extension,
    format_distance,
    format_duration,
    format_hms,
    format_speed,
    frame_to_timestamp,
    is_valid_telemetry_format,
    is_valid_video_format,
    lerp,
    normalize_angle,
    timestamp_to_frame,
)


def test_haversine_one_degree_of_latitude():
    assert haversine(0.0, 0.0, 1.0, 0.0) == pytest.approx(111195.0, rel=1e-3)
    assert haversine(45.0, 6.0, 45.0, 6.0) == 0.0


def test_vectorised_haversine_matches_scalar():
    lats = np.array([45.0, 45.1, 45.2])
    lons = np.array([6.0, 6.1, 6.3])
    vec = haversine_np(lats[:-1], lons[:-1], lats[1:], lons[1:])
    scalar = [haversine(lats[i], lons[i], lats[i + 1], lons[i + 1]) for i in range(2)]
    assert vec == pytest.approx(scalar)


@pytest.mark.parametrize(
    "lat2, lon2, expected",
    [(1.0, 0.0, 0.0), (0.0, 1.0, 90.0), (-1.0, 0.0, 180.0), (0.0, -1.0, 270.0)],
)
def test_bearing_cardinal_directions(lat2, lon2, expected):
    assert bearing(0.0, 0.0, lat2, lon2) == pytest.approx(expected)


def test_destination_travels_requested_distance():
    lat, lon = destination(45.0, 6.0, 60.0, 1000.0)
    assert haversine(45.0, 6.0, lat, lon) == pytest.approx(1000.0, rel=1e-6)
    assert bearing(45.0, 6.0, lat, lon) == pytest.approx(60.0, abs=0.01)


def test_speed_conversions():
    assert ms_to_kmh(10.0) == pytest.approx(36.0)
    assert kmh_to_ms(36.0) == pytest.approx(10.0)
    assert ms_to_mph(1.0) == pytest.approx(2.23694)
    assert mph_to_ms(ms_to_mph(12.3)) == pytest.approx(12.3)


def test_g_force_and_acceleration():
    assert g_force_magnitude(3.0, 4.0, 0.0) == pytest.approx(5.0)
    assert acceleration(10.0, 20.0, 2.0) == pytest.approx(5.0)
    assert acceleration(10.0, 20.0, 0.0) == 0.0


def test_local_projection_inverts():
    x, y = wgs84_to_local(45.001, 6.002, 45.0, 6.0)
    assert y == pytest.approx(111.2, rel=1e-2)
    assert local_to_wgs84(x, y, 45.0, 6.0) == pytest.approx((45.001, 6.002))


def test_format_duration():
    assert format_duration(65) == "1:05"
    assert format_duration(3661) == "1:01:01"
    assert format_duration(30) == "0:30"
    assert format_hms(3661) == "1:01:01"


def test_format_speed_and_distance():
    assert format_speed(10.0) == "36.0 km/h"
    assert format_speed(30.0) == "108 km/h"
    assert format_distance(1500.0) == "1.50 km"
    assert format_distance(500.0) == "500 m"


def test_angles():
    assert normalize_angle(-90.0) == 270.0
    assert normalize_angle(720.0) == 0.0
    assert cardinal(0) == "N"
    assert cardinal(350) == "N"
    assert cardinal(90) == "E"
    assert cardinal(225) == "SW"


def test_clamp_and_lerp():
    assert clamp(5, 0, 3) == 3
    assert clamp(-1, 0, 3) == 0
    assert lerp(10.0, 20.0, 0.25) == pytest.approx(12.5)


def test_frame_timestamp_conversions():
    start = datetime(2024, 1, 1)
    assert timestamp_to_frame(start + timedelta(seconds=1), start, 30) == 30
    assert frame_to_timestamp(45, start, 30) == start + timedelta(seconds=1.5)


def test_extension_checks():
    assert file_extension("clip.MP4") == "mp4"
    assert is_valid_video_format("mov")
    assert not is_valid_video_format("gpx")
    assert is_valid_telemetry_format("bin")
    assert not is_valid_telemetry_format("txt")
