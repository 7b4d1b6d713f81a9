"""Rendering utilities for telemetry overlays.

``OverlayRenderer.render_frame`` is a pure function of (sample, frame number,
style): it returns a transparent RGBA image with only the elements the style
asks for. An element whose channels are absent from the sample is omitted.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from PIL import Image, ImageDraw, ImageFont

from . import (
    DEFAULT_FONT_PATH,
    FONT_SIZE_LARGE,
    FONT_SIZE_MEDIUM,
    FONT_SIZE_SMALL,
    HIGH_G_THRESHOLD,
    RING_MAX_G,
    TRANSPARENT,
)
from .errors import ConfigError, RenderError
from .styles import RenderStyle
from .telemetry import Sample
from .utils import cardinal, clamp, normalize_angle

logger = logging.getLogger(__name__)

# Fraction of the style's rpm_max at which the RPM label turns to the warning colour.
SHIFT_LIGHT_FRACTION = 0.9


@dataclass(frozen=True)
class FontSet:
    large: ImageFont.ImageFont
    medium: ImageFont.ImageFont
    small: ImageFont.ImageFont

    def get(self, size: str):
        return getattr(self, size, self.medium)


def load_fonts(font_path: str = DEFAULT_FONT_PATH) -> FontSet:
    """TrueType fonts at the overlay sizes, Pillow's default font if unavailable."""
    try:
        return FontSet(
            large=ImageFont.truetype(font_path, FONT_SIZE_LARGE),
            medium=ImageFont.truetype(font_path, FONT_SIZE_MEDIUM),
            small=ImageFont.truetype(font_path, FONT_SIZE_SMALL),
        )
    except IOError:
        logger.warning("Font %s not found, using Pillow's default font", font_path)
        return FontSet(
            large=_default_font(FONT_SIZE_LARGE),
            medium=_default_font(FONT_SIZE_MEDIUM),
            small=_default_font(FONT_SIZE_SMALL),
        )


def _default_font(size: int):
    return ImageFont.load_default(size=size)


@dataclass(frozen=True)
class Label:
    """A piece of text the renderer places on the frame."""

    element: str
    text: str
    position: tuple[int, int]
    color: tuple
    font: str = "medium"


def pedal_fraction(value: float) -> float:
    """Pedal inputs come as 0..1 or 0..100 depending on the logger."""
    if value > 1.0:
        value = value / 100.0
    return clamp(value, 0.0, 1.0)


class OverlayRenderer:
    def __init__(self, width: int, height: int, fonts: FontSet | None = None):
        if int(width) <= 0 or int(height) <= 0:
            raise ConfigError(f"invalid overlay size {width}x{height}")
        self.width = int(width)
        self.height = int(height)
        self.fonts = fonts if fonts is not None else load_fonts()

    @property
    def resolution(self) -> tuple[int, int]:
        return self.width, self.height

    def blank_frame(self) -> Image.Image:
        return Image.new("RGBA", self.resolution, TRANSPARENT)

    # ------------------------------------------------------------------ layout
    def layout_frame(self, sample: Sample | None, frame_number: int, style: RenderStyle) -> list[Label]:
        """Text labels drawn for ``sample``, in drawing order."""
        if sample is None:
            return []
        areas = style.scaled_elements(self.resolution)
        labels = []

        def add(element: str, text: str, color_key: str = "text", color=None):
            cfg = areas[element]
            labels.append(
                Label(
                    element=element,
                    text=text,
                    position=(cfg["x"], cfg["y"]),
                    color=color or style.color(color_key),
                    font=cfg.get("font", "medium"),
                )
            )

        for element in style.visible_elements():
            if element == "speed" and sample.speed is not None:
                add("speed", style.format_speed(sample.speed))
            elif element == "g_force" and sample.g_force is not None:
                magnitude = sample.g_force
                color = style.color("warning") if magnitude > HIGH_G_THRESHOLD else None
                add("g_force", f"G: {magnitude:.2f}", color=color)
            elif element == "gps" and sample.has_position:
                add("gps", f"GPS: {sample.latitude:.6f}, {sample.longitude:.6f}", "secondary_text")
            elif element == "altitude" and sample.altitude is not None:
                value, unit = style.altitude(sample.altitude)
                add("altitude", f"Alt: {value:.0f} {unit}")
            elif element == "heading" and sample.heading is not None:
                heading = normalize_angle(sample.heading)
                add("heading", f"HDG: {heading:03.0f}° {cardinal(heading)}")
            elif element == "rpm" and sample.rpm is not None:
                color = style.color("warning") if sample.rpm >= style.rpm_max * SHIFT_LIGHT_FRACTION else None
                add("rpm", f"RPM: {sample.rpm:.0f}", color=color)
            elif element == "steering" and sample.steering is not None:
                add("steering", f"Steer: {sample.steering:+.1f}")
            elif element == "clock":
                add("clock", sample.timestamp.astimezone(style.tz).strftime("%H:%M:%S"), "clock")
            elif element == "frame":
                add("frame", f"#{frame_number}", "clock")
        return labels

    # ------------------------------------------------------------------ raster
    def render_frame(self, sample: Sample | None, frame_number: int, style: RenderStyle) -> Image.Image:
        img = self.blank_frame()
        if sample is None:
            return img
        try:
            draw = ImageDraw.Draw(img)
            areas = style.scaled_elements(self.resolution)
            if style.is_visible("speed_gauge") and sample.speed is not None:
                value, _ = style.speed(sample.speed)
                draw_circular_speedometer(
                    draw, value, 0.0, style.gauge_max_speed, areas["speed_gauge"], style.color("gauge_background")
                )
            if style.is_visible("g_ring") and sample.g_force is not None:
                draw_g_force_ring(
                    draw,
                    sample.g_force_x,
                    sample.g_force_y,
                    sample.g_force_z,
                    areas["g_ring"],
                    style.color("ring"),
                    style.color("vector"),
                )
            if style.is_visible("pedals") and (sample.throttle is not None or sample.brake is not None):
                draw_pedal_bars(
                    draw, sample.throttle, sample.brake, areas["pedals"],
                    style.color("throttle"), style.color("brake"), style.color("gauge_background"),
                )
            if style.is_visible("compass") and sample.heading is not None:
                draw_compass_tape(
                    draw, sample.heading, areas["compass"], self.fonts.small,
                    style.color("text"), style.color("warning"),
                )
            for label in self.layout_frame(sample, frame_number, style):
                draw.text(label.position, label.text, font=self.fonts.get(label.font), fill=label.color)
        except (OSError, ValueError) as exc:
            raise RenderError(f"failed to render frame {frame_number}: {exc}") from exc
        return img


def draw_circular_speedometer(draw, speed, speed_min, speed_max, draw_area, gauge_bg_color):
    x0, y0 = draw_area["x"], draw_area["y"]
    w, h = draw_area["width"], draw_area["height"]
    radius = min(w / 2.0, h) - 5
    if radius <= 0:
        return
    cx = x0 + w / 2.0
    cy = y0 + h - 10
    bbox = [cx - radius, cy - radius, cx + radius, cy + radius]
    draw.arc(bbox, start=180, end=360, fill=gauge_bg_color, width=12)
    fraction = 0.0 if speed_max <= speed_min else (speed - speed_min) / (speed_max - speed_min)
    fraction = clamp(fraction, 0.0, 1.0)
    col = (0, 255, 0, 255) if fraction < 0.33 else ((255, 255, 0, 255) if fraction < 0.66 else (255, 0, 0, 255))
    if fraction > 0:
        draw.arc(bbox, start=180.0, end=180.0 + fraction * 180.0, fill=col, width=12)


def draw_g_force_ring(draw, gx, gy, gz, draw_area, ring_color, vector_color):
    """Ring scaled to RING_MAX_G with the lateral/longitudinal vector from its centre."""
    cx = draw_area["x"] + draw_area["width"] / 2.0
    cy = draw_area["y"] + draw_area["height"] / 2.0
    radius = min(draw_area["width"], draw_area["height"]) / 2.0
    draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius], outline=ring_color, width=2)
    draw.ellipse([cx - radius / 2, cy - radius / 2, cx + radius / 2, cy + radius / 2], outline=ring_color, width=1)
    magnitude = math.sqrt(gx * gx + gy * gy + gz * gz)
    if magnitude == 0:
        return
    scaled = min(magnitude / RING_MAX_G, 1.0)
    vx = cx + radius * scaled * gx / magnitude
    vy = cy + radius * scaled * gy / magnitude
    draw.line([(cx, cy), (vx, vy)], fill=vector_color, width=3)
    draw.ellipse([vx - 4, vy - 4, vx + 4, vy + 4], fill=vector_color)


def draw_pedal_bars(draw, throttle, brake, draw_area, throttle_color, brake_color, bg_color):
    x, y = draw_area["x"], draw_area["y"]
    w, h = draw_area["width"], draw_area["height"]
    bar_w = (w - 20) / 2.0
    for index, (value, color) in enumerate(((throttle, throttle_color), (brake, brake_color))):
        if value is None:
            continue
        bx = x + index * (bar_w + 20)
        draw.rectangle([bx, y, bx + bar_w, y + h], outline=bg_color, width=2)
        fill_h = int(h * pedal_fraction(value))
        if fill_h > 0:
            draw.rectangle([bx, y + h - fill_h, bx + bar_w, y + h], fill=color)


def draw_compass_tape(draw, heading_deg, area, font, text_color, center_color, span_deg: float = 120.0):
    """Horizontal heading tape centred on the current heading."""
    x, y, w, h = area["x"], area["y"], area["width"], area["height"]
    if w <= 0 or h <= 0:
        return
    hdg = normalize_angle(heading_deg)
    cx = x + w / 2.0
    px_per_deg = w / span_deg
    start = int(math.floor(hdg - span_deg / 2.0))
    end = int(math.ceil(hdg + span_deg / 2.0))
    for d in range(start, end + 1):
        if d % 5:
            continue
        delta = ((d - hdg + 540) % 360) - 180
        tx = cx + delta * px_per_deg
        if tx < x or tx > x + w:
            continue
        big = d % 45 == 0
        tick = h * (0.5 if big else 0.25)
        draw.line([(tx, y + h - tick), (tx, y + h)], fill=text_color, width=2 if big else 1)
        if big:
            label = cardinal(d) if d % 90 == 0 else f"{int(normalize_angle(d))}"
            bbox = draw.textbbox((0, 0), label, font=font)
            draw.text((tx - (bbox[2] - bbox[0]) / 2, y), label, font=font, fill=text_color)
    draw.line([(cx, y + h * 0.3), (cx, y + h)], fill=center_color, width=3)


__all__ = [
    "FontSet",
    "load_fonts",
    "Label",
    "pedal_fraction",
    "OverlayRenderer",
    "draw_circular_speedometer",
    "draw_g_force_ring",
    "draw_pedal_bars",
    "draw_compass_tape",
]
