"""Utilities for reading telemetry files into a :class:`TelemetrySeries`.

Each adapter maps its source schema onto :class:`Sample`. Channels a format
does not carry stay ``None``. Record handling follows ``on_error``:

* ``"raise"`` (default) stops at the first malformed record with a
  :class:`TelemetryParseError` naming the file and record number;
* ``"skip"`` logs the record and carries on.

A file that cannot be read as the declared format at all always raises.
"""
from __future__ import annotations

import io
import json
import logging
import math
import xml.etree.ElementTree as ET
from datetime import datetime
from pathlib import Path
from typing import Callable

import gpxpy
import gpxpy.gpx
import pandas as pd
import pytz

from .errors import TelemetryParseError, UnsupportedFormatError
from .telemetry import CHANNELS, Sample, TelemetrySeries, ensure_utc

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = ("csv", "json", "gpx", "tcx")
ERROR_POLICIES = ("raise", "skip")

# Header spellings accepted in CSV files and JSON objects.
CHANNEL_ALIASES = {
    "time": "timestamp",
    "datetime": "timestamp",
    "utc": "timestamp",
    "lat": "latitude",
    "lon": "longitude",
    "lng": "longitude",
    "long": "longitude",
    "ele": "altitude",
    "elevation": "altitude",
    "alt": "altitude",
    "course": "heading",
    "bearing": "heading",
    "gx": "g_force_x",
    "gy": "g_force_y",
    "gz": "g_force_z",
    "accel": "acceleration",
    "steer": "steering",
}

TCX_NS = "{http://www.garmin.com/xmlschemas/TrainingCenterDatabase/v2}"


class _RecordSink:
    """Collects samples and applies the malformed-record policy."""

    def __init__(self, source: str, fmt: str, on_error: str):
        if on_error not in ERROR_POLICIES:
            raise ValueError(f"on_error must be one of {ERROR_POLICIES}, got {on_error!r}")
        self.source = source
        self.fmt = fmt
        self.on_error = on_error
        self.samples: list[Sample] = []
        self.skipped = 0

    def add(self, record: int, build: Callable[[], Sample]) -> None:
        try:
            self.samples.append(build())
        except (TypeError, ValueError, OverflowError) as exc:
            if self.on_error == "raise":
                raise TelemetryParseError(str(exc), self.source, record, self.fmt) from exc
            self.skipped += 1
            logger.warning("Skipping %s record %d in %s: %s", self.fmt.upper(), record, self.source or "<telemetry>", exc)

    def series(self) -> TelemetrySeries:
        if self.skipped:
            logger.warning("%d malformed record(s) skipped in %s", self.skipped, self.source or "<telemetry>")
        return TelemetrySeries(self.samples, source=self.source, fmt=self.fmt)


def canonical_field(name: str) -> str:
    key = str(name).strip().lower().replace(" ", "_").replace("-", "_")
    return CHANNEL_ALIASES.get(key, key)


def parse_timestamp(value) -> datetime:
    """ISO-8601 text (naive taken as UTC) or seconds since the Unix epoch."""
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, bool) or value is None:
        raise ValueError(f"invalid timestamp {value!r}")
    if isinstance(value, (int, float)):
        return _epoch(float(value))
    text = str(value).strip()
    if not text:
        raise ValueError("missing timestamp")
    try:
        return _epoch(float(text))
    except ValueError:
        pass
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"invalid timestamp {value!r}") from exc


def _epoch(seconds: float) -> datetime:
    if not math.isfinite(seconds):
        raise ValueError(f"invalid timestamp {seconds!r}")
    return datetime.fromtimestamp(seconds, tz=pytz.utc)


def parse_number(value, name: str) -> float | None:
    """Empty / null means absent; anything else must be a finite number."""
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    if isinstance(value, bool):
        raise ValueError(f"{name}: expected a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name}: expected a number, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValueError(f"{name}: non-finite value {value!r}")
    return number


def sample_from_mapping(data: dict) -> Sample:
    """Build a sample from a flat mapping of (possibly aliased) field names."""
    if not isinstance(data, dict):
        raise ValueError(f"expected an object, got {type(data).__name__}")
    normalised = {}
    origin = {}
    for key, value in data.items():
        name = canonical_field(key)
        if name in origin and (name == "timestamp" or name in CHANNELS):
            raise ValueError(f"fields {origin[name]!r} and {key!r} both map to {name!r}")
        origin[name] = key
        normalised[name] = value
    if "timestamp" not in normalised:
        raise ValueError("missing timestamp")
    values = {
        name: parse_number(normalised.get(name), name)
        for name in CHANNELS
    }
    _check_ranges(values)
    return Sample(timestamp=parse_timestamp(normalised["timestamp"]), **values)


def _check_ranges(values: dict) -> None:
    lat = values.get("latitude")
    lon = values.get("longitude")
    if lat is not None and not -90.0 <= lat <= 90.0:
        raise ValueError(f"latitude out of range: {lat}")
    if lon is not None and not -180.0 <= lon <= 180.0:
        raise ValueError(f"longitude out of range: {lon}")


# ---------- CSV ----------

def parse_csv(raw: bytes, source: str = "", on_error: str = "raise") -> TelemetrySeries:
    sink = _RecordSink(source, "csv", on_error)
    try:
        frame = pd.read_csv(io.BytesIO(raw), dtype=str, keep_default_na=False, skipinitialspace=True)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise TelemetryParseError(str(exc), source, None, "csv") from exc

    frame = frame.fillna("")
    mapped: dict[str, str] = {}
    for column in frame.columns:
        name = canonical_field(column)
        if name in mapped and (name == "timestamp" or name in CHANNELS):
            raise TelemetryParseError(
                f"columns {mapped[name]!r} and {column!r} both map to {name!r}", source, None, "csv"
            )
        mapped[name] = column
    frame.columns = [canonical_field(c) for c in frame.columns]
    if "timestamp" not in frame.columns:
        raise TelemetryParseError("missing 'timestamp' column", source, None, "csv")
    known = [c for c in frame.columns if c == "timestamp" or c in CHANNELS]
    ignored = sorted(set(frame.columns) - set(known))
    if ignored:
        logger.debug("Ignoring CSV columns %s in %s", ignored, source or "<telemetry>")

    for position, row in enumerate(frame[known].to_dict(orient="records"), start=1):
        sink.add(position, lambda row=row: sample_from_mapping(row))
    return sink.series()


# ---------- JSON ----------

def parse_json(raw: bytes, source: str = "", on_error: str = "raise") -> TelemetrySeries:
    try:
        document = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise TelemetryParseError(str(exc), source, None, "json") from exc

    metadata = {}
    if isinstance(document, dict):
        points = document.get("points")
        metadata = document.get("metadata") or {}
    else:
        points = document
    if not isinstance(points, list):
        raise TelemetryParseError("expected a list of points", source, None, "json")

    sink = _RecordSink(source, "json", on_error)
    for position, point in enumerate(points, start=1):
        sink.add(position, lambda point=point: sample_from_mapping(point))
    series = sink.series()
    if isinstance(metadata, dict) and metadata.get("source"):
        series.source = str(metadata["source"])
        series.calculate_summary()
    return series


# ---------- GPX ----------

def _extension_value(point, tag: str) -> str | None:
    for ext in getattr(point, "extensions", None) or []:
        if ext.tag.split("}")[-1] == tag and ext.text:
            return ext.text.strip()
        node = ext.find(f".//{{*}}{tag}")
        if node is not None and node.text:
            return node.text.strip()
    return None


def _gpx_sample(point) -> Sample:
    if point.time is None:
        raise ValueError("track point has no time")
    speed = getattr(point, "speed", None)
    if speed is None:
        speed = _extension_value(point, "speed")
    heading = getattr(point, "course", None)
    if heading is None:
        heading = _extension_value(point, "course")
    values = {
        "latitude": parse_number(point.latitude, "latitude"),
        "longitude": parse_number(point.longitude, "longitude"),
        "altitude": parse_number(point.elevation, "altitude"),
        "speed": parse_number(speed, "speed"),
        "heading": parse_number(heading, "heading"),
    }
    _check_ranges(values)
    return Sample(timestamp=parse_timestamp(point.time), **values)


def parse_gpx(raw: bytes, source: str = "", on_error: str = "raise") -> TelemetrySeries:
    try:
        gpx = gpxpy.parse(raw.decode("utf-8"))
    except (UnicodeDecodeError, gpxpy.gpx.GPXException) as exc:
        raise TelemetryParseError(str(exc), source, None, "gpx") from exc

    sink = _RecordSink(source, "gpx", on_error)
    points_iter = (
        pt
        for track in gpx.tracks
        for segment in track.segments
        for pt in segment.points
    )
    for position, point in enumerate(points_iter, start=1):
        sink.add(position, lambda point=point: _gpx_sample(point))
    return sink.series()


# ---------- TCX ----------

def _tcx_text(node, path: str) -> str | None:
    found = node.find(path)
    if found is None or found.text is None:
        return None
    return found.text.strip()


def _tcx_sample(node) -> Sample:
    time_text = _tcx_text(node, f"{TCX_NS}Time")
    if not time_text:
        raise ValueError("trackpoint has no time")
    speed = None
    for ext in node.iter():
        if ext.tag.split("}")[-1] == "Speed" and ext.text:
            speed = ext.text.strip()
            break
    values = {
        "latitude": parse_number(_tcx_text(node, f"{TCX_NS}Position/{TCX_NS}LatitudeDegrees"), "latitude"),
        "longitude": parse_number(_tcx_text(node, f"{TCX_NS}Position/{TCX_NS}LongitudeDegrees"), "longitude"),
        "altitude": parse_number(_tcx_text(node, f"{TCX_NS}AltitudeMeters"), "altitude"),
        "speed": parse_number(speed, "speed"),
    }
    _check_ranges(values)
    return Sample(timestamp=parse_timestamp(time_text), **values)


def parse_tcx(raw: bytes, source: str = "", on_error: str = "raise") -> TelemetrySeries:
    try:
        root = ET.fromstring(raw)
    except ET.ParseError as exc:
        raise TelemetryParseError(str(exc), source, None, "tcx") from exc

    sink = _RecordSink(source, "tcx", on_error)
    for position, node in enumerate(root.iter(f"{TCX_NS}Trackpoint"), start=1):
        sink.add(position, lambda node=node: _tcx_sample(node))
    return sink.series()


# ---------- dispatch ----------

PARSERS = {
    "csv": parse_csv,
    "json": parse_json,
    "gpx": parse_gpx,
    "tcx": parse_tcx,
}


def detect_format(path) -> str:
    extension = Path(path).suffix.lstrip(".").lower()
    if extension not in SUPPORTED_FORMATS:
        raise UnsupportedFormatError(f"unsupported telemetry file extension: {extension or '<none>'} ({path})")
    return extension


def parse(fmt: str, raw: bytes, source: str = "", on_error: str = "raise") -> TelemetrySeries:
    """Parse ``raw`` bytes in the given format into a sorted series."""
    fmt = (fmt or "").lower()
    parser = PARSERS.get(fmt)
    if parser is None:
        raise UnsupportedFormatError(f"unsupported telemetry format: {fmt or '<none>'}")
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    series = parser(raw, source=source, on_error=on_error)
    logger.info("Parsed %d %s sample(s) from %s", len(series), fmt.upper(), source or "<telemetry>")
    return series


def parse_file(path, fmt: str | None = None, on_error: str = "raise") -> TelemetrySeries:
    path = Path(path)
    fmt = fmt or detect_format(path)
    return parse(fmt, path.read_bytes(), source=str(path), on_error=on_error)


def series_to_dict(series: TelemetrySeries) -> dict:
    return {
        "points": [sample.to_dict() for sample in series],
        "metadata": series.summary.to_dict(),
    }


def to_json(series: TelemetrySeries, indent: int | None = 2) -> str:
    return json.dumps(series_to_dict(series), indent=indent)


__all__ = [
    "SUPPORTED_FORMATS",
    "canonical_field",
    "parse_timestamp",
    "parse_number",
    "sample_from_mapping",
    "parse_csv",
    "parse_json",
    "parse_gpx",
    "parse_tcx",
    "detect_format",
    "parse",
    "parse_file",
    "series_to_dict",
    "to_json",
]
