"""Render styles: which overlay elements are drawn, where, and in which units.

Element geometry is expressed on a 1920x1080 reference canvas, like the
overlay presets it grew out of, and scaled to the output resolution.
"""
from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

import pytz

from . import (
    BRAKE_COLOR,
    CLOCK_COLOR,
    DEFAULT_RESOLUTION,
    DEFAULT_STYLE,
    GAUGE_BG_COLOR,
    MARGIN,
    RING_COLOR,
    SECONDARY_TEXT_COLOR,
    TEXT_COLOR,
    THROTTLE_COLOR,
    VECTOR_COLOR,
    WARNING_COLOR,
)
from .errors import ConfigError
from .geo import m_to_ft, ms_to_kmh, ms_to_mph

logger = logging.getLogger(__name__)

REFERENCE_RESOLUTION = DEFAULT_RESOLUTION
UNIT_SYSTEMS = ("metric", "imperial")

DEFAULT_COLORS = {
    "text": TEXT_COLOR,
    "secondary_text": SECONDARY_TEXT_COLOR,
    "clock": CLOCK_COLOR,
    "warning": WARNING_COLOR,
    "gauge_background": GAUGE_BG_COLOR,
    "ring": RING_COLOR,
    "vector": VECTOR_COLOR,
    "throttle": THROTTLE_COLOR,
    "brake": BRAKE_COLOR,
}

# Every element the renderer knows, with its geometry on the reference canvas.
DEFAULT_ELEMENT_CONFIGS = {
    "speed": {"visible": True, "x": MARGIN, "y": MARGIN, "width": 400, "height": 60, "font": "large"},
    "g_force": {"visible": True, "x": MARGIN, "y": MARGIN + 70, "width": 300, "height": 40, "font": "medium"},
    "gps": {"visible": True, "x": MARGIN, "y": MARGIN + 120, "width": 500, "height": 30, "font": "small"},
    "altitude": {"visible": True, "x": MARGIN, "y": MARGIN + 160, "width": 300, "height": 40, "font": "medium"},
    "heading": {"visible": True, "x": MARGIN, "y": MARGIN + 210, "width": 300, "height": 40, "font": "medium"},
    "rpm": {"visible": True, "x": MARGIN, "y": MARGIN + 260, "width": 300, "height": 40, "font": "medium"},
    "steering": {"visible": True, "x": MARGIN, "y": MARGIN + 310, "width": 300, "height": 40, "font": "medium"},
    "clock": {"visible": True, "x": 1920 - 250, "y": MARGIN, "width": 200, "height": 40, "font": "medium"},
    "frame": {"visible": False, "x": 1920 - 250, "y": MARGIN + 50, "width": 200, "height": 30, "font": "small"},
    "speed_gauge": {"visible": True, "x": MARGIN, "y": 1080 - 200 - MARGIN, "width": 400, "height": 200},
    "g_ring": {"visible": True, "x": 960 - 100, "y": 540 - 100, "width": 200, "height": 200},
    "pedals": {"visible": True, "x": 1920 - 180 - MARGIN, "y": 1080 - 220 - MARGIN, "width": 180, "height": 220},
    "compass": {"visible": True, "x": 960 - 250, "y": MARGIN, "width": 500, "height": 60},
}

BUILTIN_STYLE_ELEMENTS = {
    "default": ("speed", "speed_gauge", "g_force", "g_ring", "gps", "altitude", "clock"),
    "minimal": ("speed", "clock"),
    "racing": ("speed", "speed_gauge", "g_force", "g_ring", "rpm", "steering", "pedals", "clock"),
    "gps": ("speed", "gps", "altitude", "heading", "compass", "clock"),
}


def hex_to_rgba(value) -> tuple[int, int, int, int]:
    """'#rrggbb', '#rrggbbaa' or a 3/4 sequence -> RGBA tuple."""
    if isinstance(value, (list, tuple)):
        if len(value) not in (3, 4):
            raise ValueError(f"invalid colour {value!r}")
        channels = [int(c) for c in value]
        if len(channels) == 3:
            channels.append(255)
        return tuple(channels)
    text = str(value).lstrip("#")
    if len(text) not in (6, 8):
        raise ValueError(f"invalid colour {value!r}")
    channels = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
    if len(channels) == 3:
        channels.append(255)
    return tuple(channels)


def rgba_to_hex(rgba) -> str:
    r, g, b, *rest = rgba
    alpha = rest[0] if rest else 255
    text = f"#{int(r):02x}{int(g):02x}{int(b):02x}"
    return text if alpha == 255 else f"{text}{int(alpha):02x}"


@dataclass(frozen=True)
class RenderStyle:
    """Configuration for the overlay renderer; never touches telemetry."""

    name: str
    elements: dict = field(default_factory=dict)
    units: str = "metric"
    timezone: str = "UTC"
    colors: dict = field(default_factory=lambda: dict(DEFAULT_COLORS))
    gauge_max_speed: float = 200.0  # in display units
    rpm_max: float = 9000.0

    def __post_init__(self) -> None:
        if self.units not in UNIT_SYSTEMS:
            raise ConfigError(f"unknown unit system {self.units!r}, expected one of {UNIT_SYSTEMS}")
        try:
            pytz.timezone(self.timezone)
        except pytz.UnknownTimeZoneError as exc:
            raise ConfigError(f"unknown timezone {self.timezone!r}") from exc
        unknown = set(self.elements) - set(DEFAULT_ELEMENT_CONFIGS)
        if unknown:
            raise ConfigError(f"unknown overlay element(s): {sorted(unknown)}")

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def color(self, key: str):
        return self.colors.get(key, DEFAULT_COLORS[key])

    def is_visible(self, element: str) -> bool:
        return bool(self.elements.get(element, {}).get("visible"))

    def visible_elements(self) -> list[str]:
        return [name for name, cfg in self.elements.items() if cfg.get("visible")]

    def speed(self, speed_ms: float) -> tuple[float, str]:
        if self.units == "imperial":
            return ms_to_mph(speed_ms), "mph"
        return ms_to_kmh(speed_ms), "km/h"

    def format_speed(self, speed_ms: float) -> str:
        value, unit = self.speed(speed_ms)
        return f"{value:.0f} {unit}"

    def altitude(self, metres: float) -> tuple[float, str]:
        if self.units == "imperial":
            return m_to_ft(metres), "ft"
        return metres, "m"

    def scaled_elements(self, resolution: tuple[int, int]) -> dict:
        return scale_element_configs(self.elements, resolution)


def scale_element_configs(element_configs: dict, resolution: tuple[int, int]) -> dict:
    """Rescale reference-canvas geometry to ``resolution``."""
    sx = resolution[0] / REFERENCE_RESOLUTION[0]
    sy = resolution[1] / REFERENCE_RESOLUTION[1]
    scaled = {}
    for name, cfg in element_configs.items():
        item = dict(cfg)
        for key, factor in (("x", sx), ("width", sx), ("y", sy), ("height", sy)):
            if key in item:
                item[key] = int(round(item[key] * factor))
        scaled[name] = item
    return scaled


def _elements_for(visible: tuple[str, ...]) -> dict:
    configs = {}
    for name in visible:
        cfg = copy.deepcopy(DEFAULT_ELEMENT_CONFIGS[name])
        cfg["visible"] = True
        configs[name] = cfg
    return configs


BUILTIN_STYLES = {
    "default": RenderStyle("default", _elements_for(BUILTIN_STYLE_ELEMENTS["default"])),
    "minimal": RenderStyle("minimal", _elements_for(BUILTIN_STYLE_ELEMENTS["minimal"])),
    "racing": RenderStyle("racing", _elements_for(BUILTIN_STYLE_ELEMENTS["racing"]), gauge_max_speed=320.0),
    "gps": RenderStyle("gps", _elements_for(BUILTIN_STYLE_ELEMENTS["gps"])),
}


def style_names() -> list[str]:
    return sorted(BUILTIN_STYLES)


def get_style(name: str | None = None) -> RenderStyle:
    key = (name or DEFAULT_STYLE).lower()
    try:
        return BUILTIN_STYLES[key]
    except KeyError:
        raise ConfigError(f"unknown style {name!r}, available: {', '.join(style_names())}") from None


def style_from_preset(config: dict) -> RenderStyle:
    """Merge a preset document onto its base style."""
    if not isinstance(config, dict):
        raise ConfigError("invalid preset format")

    base = get_style(config.get("base", DEFAULT_STYLE))
    elements = copy.deepcopy(base.elements)
    for name, params in (config.get("elements") or {}).items():
        if name not in DEFAULT_ELEMENT_CONFIGS:
            raise ConfigError(f"unknown overlay element {name!r} in preset")
        if not isinstance(params, dict):
            raise ConfigError(f"element {name!r} must be an object")
        cfg = elements.get(name) or copy.deepcopy(DEFAULT_ELEMENT_CONFIGS[name])
        if "visible" in params:
            cfg["visible"] = bool(params["visible"])
        for key in ("x", "y", "width", "height"):
            if key not in params:
                continue
            try:
                cfg[key] = int(params[key])
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"element {name!r}: {key} must be an integer") from exc
        if "font" in params:
            cfg["font"] = str(params["font"])
        elements[name] = cfg

    colors = dict(base.colors)
    for key, value in (config.get("colors") or {}).items():
        if key not in DEFAULT_COLORS:
            logger.warning("Ignoring unknown colour key %r in preset", key)
            continue
        try:
            colors[key] = hex_to_rgba(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"colour {key!r}: {exc}") from exc

    try:
        gauge_max = float(config.get("gauge_max_speed", base.gauge_max_speed))
        rpm_max = float(config.get("rpm_max", base.rpm_max))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid gauge range: {exc}") from exc
    return RenderStyle(
        name=str(config.get("name", base.name)),
        elements=elements,
        units=config.get("units", base.units),
        timezone=config.get("timezone", base.timezone),
        colors=colors,
        gauge_max_speed=gauge_max,
        rpm_max=rpm_max,
    )


def style_to_preset(style: RenderStyle) -> dict:
    """Self-contained preset: elements the style lacks are written as hidden."""
    elements = {}
    for name, default in DEFAULT_ELEMENT_CONFIGS.items():
        cfg = copy.deepcopy(style.elements.get(name) or default)
        cfg["visible"] = bool(style.elements.get(name, {}).get("visible"))
        elements[name] = cfg
    return {
        "name": style.name,
        "units": style.units,
        "timezone": style.timezone,
        "gauge_max_speed": style.gauge_max_speed,
        "rpm_max": style.rpm_max,
        "elements": elements,
        "colors": {key: rgba_to_hex(value) for key, value in style.colors.items()},
    }


def load_style_preset(path) -> RenderStyle:
    try:
        with open(path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"cannot read style preset {path}: {exc}") from exc
    return style_from_preset(data)


def save_style_preset(style: RenderStyle, path) -> Path:
    path = Path(path)
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(style_to_preset(style), fh, ensure_ascii=False, indent=2)
    return path


__all__ = [
    "REFERENCE_RESOLUTION",
    "UNIT_SYSTEMS",
    "DEFAULT_COLORS",
    "DEFAULT_ELEMENT_CONFIGS",
    "BUILTIN_STYLES",
    "hex_to_rgba",
    "rgba_to_hex",
    "RenderStyle",
    "scale_element_configs",
    "style_names",
    "get_style",
    "style_from_preset",
    "style_to_preset",
    "load_style_preset",
    "save_style_preset",
]
