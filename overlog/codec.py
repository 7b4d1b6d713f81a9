"""Encoder, decoder and muxer handles used by the video pipeline.

Every class here follows the same small contract: ``open()`` acquires the
underlying ffmpeg resources, ``close()`` flushes and releases them and
``abort()`` releases them and deletes the partially written output. They are
context managers that abort when the ``with`` block raises.

* :class:`OverlayEncoder` writes transparent RGBA frames through imageio's
  ffmpeg plugin.
* :class:`VideoDecoder` demuxes a source clip into decoded video frames and
  untouched audio packets (PyAV).
* :class:`OverlayReader` decodes a rendered overlay clip into RGBA arrays.
* :class:`CompositeMuxer` encodes composite frames and copies audio packets
  into the output container.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from fractions import Fraction
from pathlib import Path
from typing import Iterator

import av
import imageio.v2 as imageio
import imageio_ffmpeg
import numpy as np

from .errors import CodecError, ConfigError

logger = logging.getLogger(__name__)

# Container extension -> (codec, pixel format) able to carry an alpha channel.
ALPHA_CODECS = {
    ".mov": ("png", "rgba"),
    ".webm": ("libvpx-vp9", "yuva420p"),
    ".mkv": ("ffv1", "bgra"),
}
VP9_OUTPUT_PARAMS = ["-crf", "30", "-b:v", "0", "-auto-alt-ref", "0"]

# Tolerance when comparing presentation times in seconds.
TIME_EPSILON = 1e-6

# Decoders that keep the alpha plane of VP8/VP9 streams (ffmpeg's native ones drop it).
ALPHA_DECODERS = {"vp8": "libvpx", "vp9": "libvpx-vp9"}


def alpha_codec_for(path) -> tuple[str, str]:
    suffix = Path(path).suffix.lower()
    try:
        return ALPHA_CODECS[suffix]
    except KeyError:
        raise ConfigError(
            f"overlay output must be one of {', '.join(sorted(ALPHA_CODECS))} to keep transparency, got {suffix or '<none>'}"
        ) from None


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
        logger.info("Removed incomplete output %s", path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.error("Could not remove incomplete output %s: %s", path, exc)


@dataclass
class VideoDescriptor:
    width: int
    height: int
    fps: float
    duration: float | None
    frame_count: int | None = None
    has_audio: bool = False
    codec: str = ""


def probe_video(path) -> VideoDescriptor:
    """Read the facts of a video file that drive frame count and timing."""
    try:
        container = av.open(str(path))
    except (av.FFmpegError, OSError) as exc:
        raise CodecError(f"cannot open video: {exc}", str(path)) from exc
    try:
        if not container.streams.video:
            raise CodecError("no video stream", str(path))
        stream = container.streams.video[0]
        rate = stream.average_rate or stream.guessed_rate
        if stream.duration is not None and stream.time_base is not None:
            duration = float(stream.duration * stream.time_base)
        elif container.duration is not None:
            duration = container.duration / av.time_base
        else:
            duration = None
        return VideoDescriptor(
            width=stream.codec_context.width,
            height=stream.codec_context.height,
            fps=float(rate) if rate else 0.0,
            duration=duration,
            frame_count=stream.frames or None,
            has_audio=bool(container.streams.audio),
            codec=stream.codec_context.name,
        )
    finally:
        container.close()


class _Handle:
    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()
        return False


class OverlayEncoder(_Handle):
    """Alpha-capable writer for standalone overlay clips."""

    def __init__(self, path, fps: float, width: int, height: int):
        self.path = Path(path)
        self.fps = fps
        self.width = int(width)
        self.height = int(height)
        self.codec, self.pixel_format = alpha_codec_for(self.path)
        self.frames_written = 0
        self._writer = None

    def open(self) -> "OverlayEncoder":
        if self.fps <= 0:
            raise ConfigError(f"fps must be positive, got {self.fps}")
        if self.width <= 0 or self.height <= 0:
            raise ConfigError(f"invalid frame size {self.width}x{self.height}")
        if self.pixel_format.startswith("yuva420") and (self.width % 2 or self.height % 2):
            raise ConfigError(f"{self.codec} needs even dimensions, got {self.width}x{self.height}")
        try:
            imageio_ffmpeg.get_ffmpeg_exe()
        except RuntimeError as exc:
            raise CodecError(f"ffmpeg not available: {exc}", str(self.path)) from exc

        output_params = list(VP9_OUTPUT_PARAMS) if self.codec == "libvpx-vp9" else []
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._writer = imageio.get_writer(
                str(self.path),
                format="FFMPEG",
                mode="I",
                fps=self.fps,
                codec=self.codec,
                pixelformat=self.pixel_format,
                quality=None,
                macro_block_size=1,
                output_params=output_params,
                ffmpeg_log_level="error",
            )
        except (OSError, RuntimeError, ValueError) as exc:
            raise CodecError(f"cannot open {self.codec} encoder: {exc}", str(self.path)) from exc
        logger.debug("Opened %s/%s encoder at %s fps for %s", self.codec, self.pixel_format, self.fps, self.path)
        return self

    def write(self, frame, index: int | None = None) -> None:
        """Append one RGBA frame; ``index`` must be the next frame number when given."""
        if self._writer is None:
            raise CodecError("encoder is not open", str(self.path))
        if index is not None and index != self.frames_written:
            raise CodecError(f"frame {index} delivered out of order, expected {self.frames_written}", str(self.path))
        data = np.asarray(frame)
        if data.shape != (self.height, self.width, 4):
            raise CodecError(
                f"frame shape {data.shape} does not match {self.width}x{self.height} RGBA", str(self.path)
            )
        try:
            self._writer.append_data(data)
        except (OSError, RuntimeError, ValueError) as exc:
            raise CodecError(f"write failed at frame {self.frames_written}: {exc}", str(self.path)) from exc
        self.frames_written += 1

    def close(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        try:
            writer.close()
        except (OSError, RuntimeError) as exc:
            _remove_partial(self.path)
            raise CodecError(f"finalising overlay failed: {exc}", str(self.path)) from exc
        logger.info("Wrote %d overlay frame(s) to %s", self.frames_written, self.path)

    def abort(self) -> None:
        writer, self._writer = self._writer, None
        if writer is not None:
            try:
                writer.close()
            except (OSError, RuntimeError) as exc:
                logger.debug("Ignoring encoder close error during abort: %s", exc)
        _remove_partial(self.path)


def _stream_time(stream, pts, index: int) -> float:
    """Presentation time in seconds from the start of ``stream``."""
    if pts is None or stream.time_base is None:
        rate = stream.average_rate or stream.guessed_rate or 1
        return index / float(rate)
    start = stream.start_time or 0
    return float((pts - start) * stream.time_base)


class VideoDecoder(_Handle):
    """Source clip reader: decoded video frames interleaved with raw audio packets."""

    def __init__(self, path):
        self.path = Path(path)
        self.container = None
        self.video = None
        self.audio = None
        self._index = 0

    def open(self) -> "VideoDecoder":
        try:
            self.container = av.open(str(self.path))
        except (av.FFmpegError, OSError) as exc:
            raise CodecError(f"cannot open source video: {exc}", str(self.path)) from exc
        if not self.container.streams.video:
            self.close()
            raise CodecError("source has no video stream", str(self.path))
        self.video = self.container.streams.video[0]
        self.video.thread_type = "AUTO"
        self.audio = self.container.streams.audio[0] if self.container.streams.audio else None
        return self

    @property
    def width(self) -> int:
        return self.video.codec_context.width

    @property
    def height(self) -> int:
        return self.video.codec_context.height

    @property
    def rate(self) -> Fraction:
        return self.video.average_rate or self.video.guessed_rate or Fraction(30, 1)

    def frame_time(self, frame) -> float:
        return _stream_time(self.video, frame.pts, self._index)

    def read(self) -> Iterator[tuple[str, object]]:
        """Yield ``("video", VideoFrame)`` and ``("audio", Packet)`` in demux order."""
        streams = [self.video] + ([self.audio] if self.audio is not None else [])
        try:
            for packet in self.container.demux(*streams):
                if packet.stream.type == "audio":
                    if packet.dts is None:
                        continue
                    yield "audio", packet
                    continue
                for frame in packet.decode():
                    yield "video", frame
                    self._index += 1
        except av.FFmpegError as exc:
            raise CodecError(f"decode failed after frame {self._index}: {exc}", str(self.path)) from exc

    def close(self) -> None:
        if self.container is not None:
            container, self.container = self.container, None
            container.close()

    def abort(self) -> None:
        self.close()


class OverlayReader(_Handle):
    """Sequential RGBA frames of a rendered overlay clip with their times."""

    def __init__(self, path):
        self.path = Path(path)
        self.container = None
        self.stream = None
        self._decoder = None

    def open(self) -> "OverlayReader":
        try:
            self.container = av.open(str(self.path))
        except (av.FFmpegError, OSError) as exc:
            raise CodecError(f"cannot open overlay video: {exc}", str(self.path)) from exc
        if not self.container.streams.video:
            self.close()
            raise CodecError("overlay has no video stream", str(self.path))
        self.stream = self.container.streams.video[0]
        decoder_name = ALPHA_DECODERS.get(self.stream.codec_context.name)
        if decoder_name:
            try:
                self._decoder = av.CodecContext.create(decoder_name, "r")
            except (ValueError, av.FFmpegError) as exc:
                logger.warning("%s decoder unavailable (%s); overlay transparency may be lost", decoder_name, exc)
        return self

    @property
    def frame_duration(self) -> float:
        rate = self.stream.average_rate or self.stream.guessed_rate
        return 1.0 / float(rate) if rate else 0.0

    def cursor(self) -> "OverlayCursor":
        return OverlayCursor(self.frames(), self.frame_duration)

    def frames(self) -> Iterator[tuple[float, np.ndarray]]:
        index = 0
        try:
            if self._decoder is None:
                decoded = self.container.decode(self.stream)
            else:
                decoded = (
                    frame
                    for packet in self.container.demux(self.stream)
                    for frame in self._decoder.decode(packet)
                )
            for frame in decoded:
                yield _stream_time(self.stream, frame.pts, index), frame.to_ndarray(format="rgba")
                index += 1
        except av.FFmpegError as exc:
            raise CodecError(f"overlay decode failed after frame {index}: {exc}", str(self.path)) from exc

    def close(self) -> None:
        if self.container is not None:
            container, self.container = self.container, None
            container.close()

    def abort(self) -> None:
        self.close()


class OverlayCursor:
    """Forward-only lookup of the overlay frame shown at a given overlay time."""

    BEFORE = "before"
    ACTIVE = "active"
    ENDED = "ended"

    def __init__(self, frames, frame_duration: float):
        self._frames = iter(frames)
        self.frame_duration = frame_duration
        self._current = None
        self._next = next(self._frames, None)
        self.frames_read = 0

    def frame_at(self, t: float) -> tuple[str, np.ndarray | None]:
        """``(state, frame)``: the latest frame whose time is <= ``t``.

        ``t`` must not decrease between calls. ``BEFORE`` means the overlay has
        not started yet, ``ENDED`` that ``t`` is past the last frame's span
        (the last frame is still returned).
        """
        while self._next is not None and self._next[0] <= t + TIME_EPSILON:
            self._current = self._next
            self._next = next(self._frames, None)
            self.frames_read += 1
        if self._current is None:
            return self.BEFORE, None
        if self._next is None and t >= self._current[0] + self.frame_duration - TIME_EPSILON:
            return self.ENDED, self._current[1]
        return self.ACTIVE, self._current[1]


class CompositeMuxer(_Handle):
    """Output container: re-encoded video at the source timing plus copied audio."""

    def __init__(self, path, source: VideoDecoder, codec: str = "libx264", pixel_format: str = "yuv420p"):
        self.path = Path(path)
        self.source = source
        self.codec = codec
        self.pixel_format = pixel_format
        self.container = None
        self.video = None
        self.audio = None
        self.frames_written = 0
        self.audio_packets = 0

    def open(self) -> "CompositeMuxer":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self.container = av.open(str(self.path), mode="w")
            self.video = self.container.add_stream(self.codec, rate=self.source.rate)
            self.video.width = self.source.width
            self.video.height = self.source.height
            self.video.pix_fmt = self.pixel_format
            if self.source.audio is not None:
                self.audio = self.container.add_stream_from_template(self.source.audio)
        except (av.FFmpegError, ValueError, OSError) as exc:
            self.abort()
            raise CodecError(f"cannot open {self.codec} output: {exc}", str(self.path)) from exc
        return self

    def write_video(self, rgb: np.ndarray, pts, time_base) -> None:
        frame = av.VideoFrame.from_ndarray(rgb, format="rgb24")
        frame.pts = pts
        frame.time_base = time_base
        try:
            for packet in self.video.encode(frame):
                self.container.mux(packet)
        except (av.FFmpegError, ValueError) as exc:
            raise CodecError(f"encode failed at frame {self.frames_written}: {exc}", str(self.path)) from exc
        self.frames_written += 1

    def copy_audio(self, packet) -> None:
        if self.audio is None:
            return
        packet.stream = self.audio
        try:
            self.container.mux(packet)
        except (av.FFmpegError, ValueError) as exc:
            raise CodecError(f"audio passthrough failed: {exc}", str(self.path)) from exc
        self.audio_packets += 1

    def close(self) -> None:
        if self.container is None:
            return
        container, self.container = self.container, None
        try:
            for packet in self.video.encode(None):
                container.mux(packet)
            container.close()
        except (av.FFmpegError, ValueError, OSError) as exc:
            _remove_partial(self.path)
            raise CodecError(f"finalising output failed: {exc}", str(self.path)) from exc

    def abort(self) -> None:
        container, self.container = self.container, None
        if container is not None:
            try:
                container.close()
            except (av.FFmpegError, OSError) as exc:
                logger.debug("Ignoring muxer close error during abort: %s", exc)
        _remove_partial(self.path)


__all__ = [
    "ALPHA_CODECS",
    "alpha_codec_for",
    "VideoDescriptor",
    "probe_video",
    "OverlayEncoder",
    "VideoDecoder",
    "OverlayReader",
    "OverlayCursor",
    "CompositeMuxer",
]
