"""Small formatting and arithmetic helpers shared by the renderer and CLI."""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

VIDEO_EXTENSIONS = ("mp4", "mov", "webm", "avi", "mkv", "m4v")
TELEMETRY_EXTENSIONS = ("gpx", "csv", "json", "tcx", "bin")


def format_duration(seconds: float) -> str:
    """65 -> '1:05', 3661 -> '1:01:01'."""
    seconds = max(0.0, float(seconds))
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_hms(seconds: int) -> str:
    """Format seconds into H:MM:SS."""
    return str(timedelta(seconds=int(max(0, seconds))))


def format_speed(speed_ms: float) -> str:
    """Speed in m/s rendered as km/h, one decimal below 100."""
    speed_kmh = speed_ms * 3.6
    if round(speed_kmh, 1) >= 100.0:
        return f"{speed_kmh:.0f} km/h"
    return f"{speed_kmh:.1f} km/h"


def format_distance(metres: float) -> str:
    if metres >= 1000.0:
        return f"{metres / 1000.0:.2f} km"
    return f"{metres:.0f} m"


def clamp(value, lower, upper):
    return max(lower, min(upper, value))


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation between two values."""
    return a + (b - a) * t


def normalize_angle(angle: float) -> float:
    """Normalise an angle to [0, 360)."""
    return float(angle) % 360.0


def cardinal(heading_deg: float) -> str:
    points = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")
    return points[int((normalize_angle(heading_deg) + 22.5) // 45) % 8]


def timestamp_to_frame(timestamp: datetime, start_time: datetime, fps: float) -> int:
    seconds = (timestamp - start_time).total_seconds()
    return int(seconds * fps + 1e-9)


def frame_to_timestamp(frame: int, start_time: datetime, fps: float) -> datetime:
    return start_time + timedelta(seconds=frame / fps)


def file_extension(path) -> str:
    return Path(path).suffix.lstrip(".").lower()


def is_valid_video_format(extension: str) -> bool:
    return extension.lower() in VIDEO_EXTENSIONS


def is_valid_telemetry_format(extension: str) -> bool:
    return extension.lower() in TELEMETRY_EXTENSIONS


__all__ = [
    "format_duration",
    "format_hms",
    "format_speed",
    "format_distance",
    "clamp",
    "lerp",
    "normalize_angle",
    "cardinal",
    "timestamp_to_frame",
    "frame_to_timestamp",
    "file_extension",
    "is_valid_video_format",
    "is_valid_telemetry_format",
]
