"""Video pipeline: standalone overlay rendering and burning overlays into clips."""
from __future__ import annotations

import logging
import math
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator

import numpy as np

from . import DEFAULT_FONT_PATH, DEFAULT_FPS, DEFAULT_OVERLAY_DURATION_SECONDS, DEFAULT_RESOLUTION, MAX_FPS
from .codec import CompositeMuxer, OverlayCursor, OverlayEncoder, OverlayReader, VideoDecoder
from .compositing import alpha_composite, fit_overlay
from .errors import ConfigError, InvalidInputError
from .renderer import FontSet, OverlayRenderer, load_fonts
from .styles import RenderStyle
from .telemetry import BoundaryMode, TelemetrySeries

logger = logging.getLogger(__name__)

# Absorbs float noise such as 30 * 2.0000000001 without rounding 29.7 up.
FRAME_EPSILON = 1e-6


class OverlayMismatch(str, Enum):
    """What a burn does once the overlay clip is shorter than the source."""

    FREEZE = "freeze"
    BLANK = "blank"
    TRUNCATE = "truncate"


@dataclass
class RenderResult:
    output: Path
    frames: int
    blank_frames: int
    fps: float
    duration: float


@dataclass
class BurnResult:
    output: Path
    frames: int
    overlay_frames: int
    audio_packets: int
    truncated: bool = False


def frame_count(fps: float, duration: float) -> int:
    """``floor(fps * duration)``; ``frame_count(30, 2.0) == 60``."""
    if fps <= 0 or duration <= 0:
        return 0
    return int(math.floor(fps * duration + FRAME_EPSILON))


def frame_times(start: datetime, fps: float, count: int) -> Iterator[datetime]:
    for index in range(count):
        yield start + timedelta(seconds=index / fps)


def validate_output_params(width: int, height: int, fps: float) -> None:
    for name, value in (("width", width), ("height", height)):
        if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
            raise ConfigError(f"{name} must be a positive integer, got {value!r}")
        if value % 2:
            raise ConfigError(f"{name} must be even for chroma-subsampled codecs, got {value}")
    if not 0 < fps <= MAX_FPS:
        raise ConfigError(f"fps must be within (0, {MAX_FPS}], got {fps}")


def ordered_map(func: Callable, items: Iterable, workers: int = 1, lookahead: int | None = None) -> Iterator:
    """``map(func, items)`` over a thread pool, yielding results in input order.

    At most ``lookahead`` calls are in flight. An exception raised by ``func``
    surfaces when its result is reached.
    """
    if workers <= 1:
        for item in items:
            yield func(item)
        return

    lookahead = max(lookahead or workers * 2, 1)
    pending = deque()
    with ThreadPoolExecutor(max_workers=workers) as pool:
        try:
            for item in items:
                pending.append(pool.submit(func, item))
                if len(pending) >= lookahead:
                    yield pending.popleft().result()
            while pending:
                yield pending.popleft().result()
        finally:
            for future in pending:
                future.cancel()


def _report(progress_callback, done: int, total: int) -> None:
    if progress_callback and total:
        progress_callback(done / total)


def render_overlay(
    series: TelemetrySeries,
    style: RenderStyle,
    output,
    fps: float = DEFAULT_FPS,
    duration: float | None = None,
    *,
    width: int = DEFAULT_RESOLUTION[0],
    height: int = DEFAULT_RESOLUTION[1],
    fonts: FontSet | None = None,
    font_path: str = DEFAULT_FONT_PATH,
    boundary_mode: BoundaryMode | str = BoundaryMode.NONE,
    workers: int = 1,
    lookahead: int | None = None,
    progress_callback=None,
) -> RenderResult:
    """Render a transparent overlay clip for ``series``.

    Frame ``i`` shows the telemetry resolved at ``start + i / fps``. Times the
    resolver has no sample for (see ``boundary_mode``) become blank frames.
    """
    if series.is_empty:
        raise ConfigError("telemetry series is empty")
    validate_output_params(width, height, fps)
    boundary_mode = BoundaryMode(boundary_mode)
    if duration is None:
        duration = series.summary.duration or DEFAULT_OVERLAY_DURATION_SECONDS
    if duration <= 0:
        raise ConfigError(f"duration must be positive, got {duration}")
    total = frame_count(fps, duration)
    if total == 0:
        raise ConfigError(f"{duration}s at {fps} fps yields no frames")

    renderer = OverlayRenderer(width, height, fonts if fonts is not None else load_fonts(font_path))
    start = series.start_time
    output = Path(output)
    logger.info(
        "Rendering %d frame(s) at %sx%s, %s fps, style %s, %s workers",
        total, width, height, fps, style.name, max(workers, 1),
    )

    def produce(item):
        index, t = item
        sample = series.interpolate_at(t, boundary_mode)
        return np.asarray(renderer.render_frame(sample, index, style)), sample is None

    blank = 0
    with OverlayEncoder(output, fps, width, height) as encoder:
        frames = ordered_map(produce, enumerate(frame_times(start, fps, total)), workers, lookahead)
        for index, (frame, is_blank) in enumerate(frames):
            encoder.write(frame, index)
            if is_blank:
                blank += 1
                logger.debug("Frame %d has no telemetry, rendered blank", index)
            _report(progress_callback, index + 1, total)

    if blank:
        logger.info("%d of %d frame(s) fell outside the telemetry range", blank, total)
    return RenderResult(output=output, frames=total, blank_frames=blank, fps=fps, duration=duration)


def _packet_time(packet) -> float:
    ts = packet.pts if packet.pts is not None else packet.dts
    return float(ts * packet.time_base)


def _require_file(path, what: str) -> Path:
    path = Path(path)
    if not path.is_file():
        raise InvalidInputError(f"{what} not found: {path}")
    return path


def burn_overlay(
    source_video,
    overlay_video,
    output,
    offset: float = 0.0,
    *,
    mismatch: OverlayMismatch | str = OverlayMismatch.FREEZE,
    codec: str = "libx264",
    progress_callback=None,
) -> BurnResult:
    """Composite ``overlay_video`` over ``source_video`` into ``output``.

    The source's frame timing is kept and its audio packets are copied
    unmodified. Overlay time ``0`` lines up with source time ``offset``.
    """
    source_video = _require_file(source_video, "source video")
    overlay_video = _require_file(overlay_video, "overlay video")
    mismatch = OverlayMismatch(mismatch)
    output = Path(output)

    frames = 0
    truncated_at = None
    with VideoDecoder(source_video) as source, OverlayReader(overlay_video) as overlay:
        total = source.video.frames or 0
        cursor = overlay.cursor()
        resized_warned = False
        with CompositeMuxer(output, source, codec=codec) as muxer:
            logger.info(
                "Burning %s onto %s (%dx%d, offset %.3fs, %s)",
                overlay_video, source_video, source.width, source.height, offset, mismatch.value,
            )
            for kind, item in source.read():
                if kind == "audio":
                    if truncated_at is None:
                        muxer.copy_audio(item)
                    elif _packet_time(item) < truncated_at:
                        muxer.copy_audio(item)
                    else:
                        break
                    continue
                if truncated_at is not None:
                    continue

                ts = source.frame_time(item)
                state, overlay_rgba = cursor.frame_at(ts - offset)
                if state == OverlayCursor.ENDED:
                    if mismatch is OverlayMismatch.TRUNCATE:
                        truncated_at = float(item.time) if item.time is not None else ts
                        logger.info("Overlay ended at source time %.3fs, truncating output", ts)
                        if source.audio is None:
                            break
                        continue
                    if mismatch is OverlayMismatch.BLANK:
                        overlay_rgba = None

                rgb = item.to_ndarray(format="rgb24")
                if overlay_rgba is not None:
                    if overlay_rgba.shape[:2] != rgb.shape[:2] and not resized_warned:
                        logger.warning(
                            "Overlay is %dx%d, source is %dx%d; resizing overlay frames",
                            overlay_rgba.shape[1], overlay_rgba.shape[0], rgb.shape[1], rgb.shape[0],
                        )
                        resized_warned = True
                    rgb = alpha_composite(rgb, fit_overlay(overlay_rgba, rgb.shape[1], rgb.shape[0]))
                muxer.write_video(rgb, item.pts, item.time_base)
                frames += 1
                _report(progress_callback, min(frames, total), total)

    logger.info("Wrote %d frame(s) and %d audio packet(s) to %s", frames, muxer.audio_packets, output)
    return BurnResult(
        output=output,
        frames=frames,
        overlay_frames=cursor.frames_read,
        audio_packets=muxer.audio_packets,
        truncated=truncated_at is not None,
    )


__all__ = [
    "OverlayMismatch",
    "RenderResult",
    "BurnResult",
    "frame_count",
    "frame_times",
    "validate_output_params",
    "ordered_map",
    "render_overlay",
    "burn_overlay",
]
