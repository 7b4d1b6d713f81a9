"""Telemetry time-series model and the temporal resolver.

A :class:`TelemetrySeries` keeps its samples sorted by timestamp and carries a
:class:`Summary` that is recomputed from scratch whenever the samples change.
``interpolate_at`` answers "what was the telemetry state at time t":

* an exact timestamp returns the stored sample unchanged;
* between two samples every channel defined on *both* sides is linearly
  interpolated, a channel known on one side only is left absent;
* outside the recorded range the result depends on :class:`BoundaryMode`
  (``NONE`` returns ``None``, ``CLAMP`` returns the nearest endpoint).

Latitude and longitude are interpolated linearly in degrees, which is accurate
enough for the short gaps between consecutive log records.
"""
from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, fields, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, Iterator

import numpy as np
import pytz

from .geo import g_force_magnitude, haversine, haversine_np

logger = logging.getLogger(__name__)

CHANNELS = (
    "latitude",
    "longitude",
    "altitude",
    "speed",
    "heading",
    "g_force_x",
    "g_force_y",
    "g_force_z",
    "acceleration",
    "rpm",
    "throttle",
    "brake",
    "steering",
)


class BoundaryMode(str, Enum):
    """What the resolver returns for a time outside the recorded range."""

    NONE = "none"
    CLAMP = "clamp"


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.utc)
    return value.astimezone(pytz.utc)


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


@dataclass
class Sample:
    """One telemetry instant. ``None`` marks a channel the source did not record."""

    timestamp: datetime
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    speed: float | None = None  # m/s
    heading: float | None = None  # degrees
    g_force_x: float | None = None
    g_force_y: float | None = None
    g_force_z: float | None = None
    acceleration: float | None = None  # m/s^2
    rpm: float | None = None
    throttle: float | None = None
    brake: float | None = None
    steering: float | None = None

    def __post_init__(self) -> None:
        self.timestamp = ensure_utc(self.timestamp)

    def channels(self) -> dict[str, float]:
        """Defined channels only."""
        return {name: getattr(self, name) for name in CHANNELS if getattr(self, name) is not None}

    @property
    def has_position(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def g_force(self) -> float | None:
        if self.g_force_x is None or self.g_force_y is None or self.g_force_z is None:
            return None
        return g_force_magnitude(self.g_force_x, self.g_force_y, self.g_force_z)

    def to_dict(self) -> dict:
        data: dict = {"timestamp": format_timestamp(self.timestamp)}
        data.update(self.channels())
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Sample":
        """Inverse of :meth:`to_dict`, validated like a JSON telemetry record."""
        from .parsers import sample_from_mapping

        return sample_from_mapping(data)


@dataclass
class Bounds:
    min_lat: float
    max_lat: float
    min_lon: float
    max_lon: float

    def center(self) -> tuple[float, float]:
        return (self.min_lat + self.max_lat) * 0.5, (self.min_lon + self.max_lon) * 0.5

    def include(self, lat: float, lon: float) -> None:
        self.min_lat = min(self.min_lat, lat)
        self.max_lat = max(self.max_lat, lat)
        self.min_lon = min(self.min_lon, lon)
        self.max_lon = max(self.max_lon, lon)


@dataclass
class Summary:
    """Derived facts about a series; ``None`` where the channel never appears."""

    source: str = ""
    format: str = ""
    point_count: int = 0
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration: float | None = None
    total_distance: float | None = None
    min_speed: float | None = None
    max_speed: float | None = None
    avg_speed: float | None = None
    min_g_force: float | None = None
    max_g_force: float | None = None
    bounds: Bounds | None = None

    def to_dict(self) -> dict:
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, datetime):
                value = format_timestamp(value)
            elif isinstance(value, Bounds):
                value = {
                    "min_lat": value.min_lat,
                    "max_lat": value.max_lat,
                    "min_lon": value.min_lon,
                    "max_lon": value.max_lon,
                }
            data[f.name] = value
        return data


def interpolate_samples(a: Sample, b: Sample, t: datetime) -> Sample:
    """Linear blend of two bracketing samples at ``t`` (``a.timestamp < t < b.timestamp``)."""
    span = (b.timestamp - a.timestamp).total_seconds()
    ratio = (t - a.timestamp).total_seconds() / span
    values = {}
    for name in CHANNELS:
        va = getattr(a, name)
        vb = getattr(b, name)
        if va is not None and vb is not None:
            values[name] = va + ratio * (vb - va)
    return Sample(timestamp=t, **values)


class TelemetrySeries:
    """Samples ordered by timestamp plus their :class:`Summary`."""

    def __init__(self, samples: Iterable[Sample] = (), source: str = "", fmt: str = ""):
        self._samples: list[Sample] = list(samples)
        self._times: list[datetime] = []
        self.source = source
        self.format = fmt
        self.summary = Summary()
        self.calculate_summary()

    @classmethod
    def new(cls) -> "TelemetrySeries":
        return cls()

    # -- container protocol -------------------------------------------------
    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[Sample]:
        return iter(self._samples)

    def __getitem__(self, index: int) -> Sample:
        return self._samples[index]

    @property
    def samples(self) -> tuple[Sample, ...]:
        return tuple(self._samples)

    @property
    def is_empty(self) -> bool:
        return not self._samples

    @property
    def start_time(self) -> datetime | None:
        return self._times[0] if self._times else None

    @property
    def end_time(self) -> datetime | None:
        return self._times[-1] if self._times else None

    # -- mutation -------------------------------------------------------------
    def add(self, sample: Sample) -> None:
        self._samples.append(sample)
        self.calculate_summary()

    def extend(self, samples: Iterable[Sample]) -> None:
        self._samples.extend(samples)
        self.calculate_summary()

    def sort(self) -> None:
        # list.sort is stable: equal timestamps keep their input order.
        self._samples.sort(key=lambda s: s.timestamp)
        self._times = [s.timestamp for s in self._samples]

    def calculate_summary(self) -> Summary:
        """Sort, then rebuild the summary in a single pass over the samples."""
        self.sort()
        summary = Summary(source=self.source, format=self.format, point_count=len(self._samples))
        if not self._samples:
            self.summary = summary
            return summary

        summary.start_time = self._times[0]
        summary.end_time = self._times[-1]
        summary.duration = (self._times[-1] - self._times[0]).total_seconds()

        distance = None
        speed_total = 0.0
        speed_count = 0
        previous = None
        for sample in self._samples:
            if sample.speed is not None:
                speed = sample.speed
                summary.min_speed = speed if summary.min_speed is None else min(summary.min_speed, speed)
                summary.max_speed = speed if summary.max_speed is None else max(summary.max_speed, speed)
                speed_total += speed
                speed_count += 1
            g = sample.g_force
            if g is not None:
                summary.min_g_force = g if summary.min_g_force is None else min(summary.min_g_force, g)
                summary.max_g_force = g if summary.max_g_force is None else max(summary.max_g_force, g)
            if sample.has_position:
                if summary.bounds is None:
                    summary.bounds = Bounds(sample.latitude, sample.latitude, sample.longitude, sample.longitude)
                else:
                    summary.bounds.include(sample.latitude, sample.longitude)
            if previous is not None and previous.has_position and sample.has_position:
                step = haversine(previous.latitude, previous.longitude, sample.latitude, sample.longitude)
                distance = step if distance is None else distance + step
            previous = sample

        summary.total_distance = distance
        if speed_count:
            summary.avg_speed = speed_total / speed_count
        self.summary = summary
        return summary

    def derive_speed(self, overwrite: bool = False) -> int:
        """Fill ``speed`` from consecutive positions; returns how many samples changed.

        Each segment speed is assigned to the segment's end point and the first
        positioned sample takes the first segment's speed. Segments with no time
        difference produce no value.
        """
        positioned = [i for i, s in enumerate(self._samples) if s.has_position]
        if len(positioned) < 2:
            return 0
        lats = np.array([self._samples[i].latitude for i in positioned], dtype=float)
        lons = np.array([self._samples[i].longitude for i in positioned], dtype=float)
        origin = self._times[positioned[0]]
        times = np.array([(self._times[i] - origin).total_seconds() for i in positioned], dtype=float)

        dists = haversine_np(lats[:-1], lons[:-1], lats[1:], lons[1:])
        dt = np.diff(times)
        segment_speeds = np.where(dt > 0, dists / np.where(dt > 0, dt, 1.0), np.nan)
        speeds = np.insert(segment_speeds, 0, segment_speeds[0])

        changed = 0
        for index, value in zip(positioned, speeds):
            sample = self._samples[index]
            if not np.isfinite(value) or (sample.speed is not None and not overwrite):
                continue
            self._samples[index] = replace(sample, speed=float(value))
            changed += 1
        self.calculate_summary()
        logger.debug("Derived speed for %d of %d samples", changed, len(self._samples))
        return changed

    # -- queries --------------------------------------------------------------
    def time_offset(self, t: datetime) -> float:
        """Seconds between the first sample and ``t``."""
        if not self._times:
            raise ValueError("empty telemetry series")
        return (ensure_utc(t) - self._times[0]).total_seconds()

    def at_offset(self, seconds: float) -> datetime:
        if not self._times:
            raise ValueError("empty telemetry series")
        return self._times[0] + timedelta(seconds=seconds)

    def sample_at(self, t: datetime) -> Sample | None:
        """Exact match (first occurrence) or ``None``."""
        t = ensure_utc(t)
        i = bisect_left(self._times, t)
        if i < len(self._times) and self._times[i] == t:
            return self._samples[i]
        return None

    def sample_at_or_before(self, t: datetime) -> Sample | None:
        """Sample at ``t`` or the most recent one before it."""
        t = ensure_utc(t)
        i = bisect_right(self._times, t)
        if i == 0:
            return None
        first = bisect_left(self._times, self._times[i - 1])
        return self._samples[first]

    def interpolate_at(self, t: datetime, mode: BoundaryMode | str = BoundaryMode.NONE) -> Sample | None:
        mode = BoundaryMode(mode)
        if not self._samples:
            return None
        t = ensure_utc(t)
        i = bisect_left(self._times, t)
        if i < len(self._times) and self._times[i] == t:
            return self._samples[i]
        if i == 0:
            return self._samples[0] if mode is BoundaryMode.CLAMP else None
        if i == len(self._times):
            return self.sample_at_or_before(t) if mode is BoundaryMode.CLAMP else None
        before = self._samples[bisect_left(self._times, self._times[i - 1])]
        return interpolate_samples(before, self._samples[i], t)


__all__ = [
    "CHANNELS",
    "BoundaryMode",
    "ensure_utc",
    "format_timestamp",
    "Sample",
    "Bounds",
    "Summary",
    "interpolate_samples",
    "TelemetrySeries",
]
