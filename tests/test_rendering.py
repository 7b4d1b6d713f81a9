from __future__ import annotations

from datetime import datetime, timedelta

import pytest

pytest.importorskip("PIL")
pytest.importorskip("numpy")

import numpy as np  # noqa: E402
import pytz  # noqa: E402
from PIL import ImageFont  # noqa: E402

from overlog.errors import ConfigError  # noqa: E402
from overlog.renderer import FontSet, OverlayRenderer, load_fonts, pedal_fraction  # noqa: E402
from overlog.styles import RenderStyle, get_style, style_from_preset  # noqa: E402
from overlog.telemetry import Sample, TelemetrySeries  # noqa: E402

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=pytz.utc)


def small_fonts() -> FontSet:
    font = ImageFont.load_default()
    return FontSet(large=font, medium=font, small=font)


def full_sample() -> Sample:
    return Sample(
        T0,
        latitude=45.123456,
        longitude=6.654321,
        altitude=1234.0,
        speed=15.0,
        heading=92.0,
        g_force_x=0.3,
        g_force_y=-0.4,
        g_force_z=1.0,
        rpm=6500.0,
        throttle=0.8,
        brake=0.0,
        steering=-12.5,
    )


def texts(labels) -> dict:
    return {label.element: label.text for label in labels}


def test_blank_frame_is_transparent():
    renderer = OverlayRenderer(320, 180, small_fonts())
    img = renderer.render_frame(None, 0, get_style())
    assert img.mode == "RGBA"
    assert img.size == (320, 180)
    assert not np.asarray(img)[:, :, 3].any()


def test_frame_has_transparent_background_and_content():
    renderer = OverlayRenderer(640, 360, small_fonts())
    alpha = np.asarray(renderer.render_frame(full_sample(), 0, get_style("racing")))[:, :, 3]
    assert alpha.any()
    assert alpha[-1, 320] == 0 or alpha[0, 0] == 0
    assert (alpha == 0).sum() > alpha.size // 2


def test_render_is_pure():
    renderer = OverlayRenderer(320, 180, small_fonts())
    sample = full_sample()
    before = sample.to_dict()
    first = np.asarray(renderer.render_frame(sample, 7, get_style()))
    second = np.asarray(renderer.render_frame(sample, 7, get_style()))
    assert np.array_equal(first, second)
    assert sample.to_dict() == before


def test_layout_labels_for_default_style():
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    labels = texts(renderer.layout_frame(full_sample(), 0, get_style()))
    assert labels["speed"] == "54 km/h"
    assert labels["gps"] == "GPS: 45.123456, 6.654321"
    assert labels["altitude"] == "Alt: 1234 m"
    assert labels["clock"] == "12:00:00"
    assert labels["g_force"].startswith("G: 1.")
    assert "rpm" not in labels


def test_absent_channels_are_omitted():
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    style = get_style("racing")
    labels = texts(renderer.layout_frame(Sample(T0, rpm=4000.0), 0, style))
    assert labels == {"rpm": "RPM: 4000", "clock": "12:00:00"}


def test_high_g_label_is_red():
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    style = get_style()
    sample = Sample(T0, g_force_x=2.0, g_force_y=1.0, g_force_z=1.0)
    (label,) = [lab for lab in renderer.layout_frame(sample, 0, style) if lab.element == "g_force"]
    assert label.color == style.color("warning")


def test_imperial_units_and_timezone():
    style = style_from_preset(
        {"base": "gps", "units": "imperial", "timezone": "America/New_York"}
    )
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    labels = texts(renderer.layout_frame(full_sample(), 0, style))
    assert labels["speed"] == "34 mph"
    assert labels["altitude"] == "Alt: 4049 ft"
    assert labels["clock"] == "08:00:00"
    assert labels["heading"] == "HDG: 092° E"


def test_label_positions_scale_with_resolution():
    style = get_style("minimal")
    full = OverlayRenderer(1920, 1080, small_fonts()).layout_frame(full_sample(), 0, style)
    half = OverlayRenderer(960, 540, small_fonts()).layout_frame(full_sample(), 0, style)
    assert half[0].position == (full[0].position[0] // 2, full[0].position[1] // 2)


def test_frame_counter_is_opt_in():
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    style = style_from_preset({"base": "minimal", "elements": {"frame": {"visible": True}}})
    assert texts(renderer.layout_frame(full_sample(), 42, style))["frame"] == "#42"


def test_interpolated_sample_renders_expected_speed():
    series = TelemetrySeries([Sample(T0, speed=10.0), Sample(T0 + timedelta(seconds=10), speed=20.0)])
    sample = series.interpolate_at(T0 + timedelta(seconds=5))
    assert sample.speed == pytest.approx(15.0)
    labels = texts(OverlayRenderer(1920, 1080, small_fonts()).layout_frame(sample, 150, get_style()))
    assert labels["speed"] == "54 km/h"


def test_invalid_size():
    with pytest.raises(ConfigError):
        OverlayRenderer(0, 1080, small_fonts())


def test_missing_font_falls_back():
    fonts = load_fonts("/nonexistent/font.ttf")
    assert fonts.large is not None
    renderer = OverlayRenderer(320, 180, fonts)
    renderer.render_frame(full_sample(), 0, RenderStyle("plain", get_style().elements))


def test_pedal_fraction_accepts_percentages():
    assert pedal_fraction(0.25) == 0.25
    assert pedal_fraction(75.0) == 0.75
    assert pedal_fraction(150.0) == 1.0


def test_rpm_label_warns_near_limit():
    renderer = OverlayRenderer(1920, 1080, small_fonts())
    style = get_style("racing")
    near = [lab for lab in renderer.layout_frame(Sample(T0, rpm=8500.0), 0, style) if lab.element == "rpm"]
    low = [lab for lab in renderer.layout_frame(Sample(T0, rpm=4000.0), 0, style) if lab.element == "rpm"]
    assert near[0].color == style.color("warning")
    assert low[0].color == style.color("text")
