"""Command line entry point for telemetry overlay rendering."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from overlog import DEFAULT_FONT_PATH, DEFAULT_FPS, DEFAULT_RESOLUTION, DEFAULT_STYLE, __version__
from overlog.errors import InvalidInputError, OverlogError
from overlog.parsers import SUPPORTED_FORMATS, parse_file, to_json
from overlog.styles import get_style, load_style_preset, style_names
from overlog.telemetry import BoundaryMode
from overlog.utils import format_distance, format_duration, format_speed
from overlog.video import OverlayMismatch, burn_overlay, render_overlay

logger = logging.getLogger("overlog")


def _load_series(path: str, fmt: str | None = None, skip_invalid: bool = False):
    if not Path(path).is_file():
        raise InvalidInputError(f"telemetry file not found: {path}")
    return parse_file(path, fmt=fmt, on_error="skip" if skip_invalid else "raise")


def _progress(fraction: float) -> None:
    sys.stderr.write(f"\r{fraction * 100:5.1f}%")
    if fraction >= 1.0:
        sys.stderr.write("\n")
    sys.stderr.flush()


def cmd_parse(args) -> None:
    series = _load_series(args.input, args.format, args.skip_invalid)
    text = to_json(series)
    if args.output:
        Path(args.output).write_text(text, encoding="utf-8")
        print(f"Parsed {len(series)} point(s) to {args.output}")
    else:
        print(text)


def cmd_render(args) -> None:
    series = _load_series(args.input, args.format, args.skip_invalid)
    if args.derive_speed:
        series.derive_speed()
    style = load_style_preset(args.style_file) if args.style_file else get_style(args.style)
    result = render_overlay(
        series,
        style,
        args.output,
        fps=args.fps,
        duration=args.duration,
        width=args.width,
        height=args.height,
        font_path=args.font,
        boundary_mode=BoundaryMode.CLAMP if args.clamp else BoundaryMode.NONE,
        workers=args.workers,
        progress_callback=None if args.quiet else _progress,
    )
    print(f"Rendered {result.frames} frame(s) ({format_duration(result.duration)}) to {result.output}")
    if result.blank_frames:
        print(f"{result.blank_frames} frame(s) had no telemetry and were left blank")


def cmd_burn(args) -> None:
    result = burn_overlay(
        args.video,
        args.overlay,
        args.output,
        offset=args.offset,
        mismatch=args.mismatch,
        codec=args.codec,
        progress_callback=None if args.quiet else _progress,
    )
    note = " (truncated at overlay end)" if result.truncated else ""
    print(f"Burned {result.frames} frame(s), {result.audio_packets} audio packet(s) to {result.output}{note}")


def cmd_info(args) -> None:
    series = _load_series(args.input, args.format, args.skip_invalid)
    summary = series.summary
    print(f"Source: {summary.source}")
    print(f"Format: {summary.format.upper()}")
    print(f"Points: {summary.point_count}")
    if summary.start_time is not None:
        print(f"Start: {summary.start_time.isoformat()}")
        print(f"End: {summary.end_time.isoformat()}")
    if summary.duration is not None:
        print(f"Duration: {format_duration(summary.duration)}")
    if summary.max_speed is not None:
        print(f"Max speed: {format_speed(summary.max_speed)}")
    if summary.total_distance is not None:
        print(f"Distance: {format_distance(summary.total_distance)}")
    if summary.max_g_force is not None:
        print(f"Max G: {summary.max_g_force:.2f}")


def _add_input_args(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("-i", "--input", required=True, help="Telemetry input file")
    sub.add_argument("-f", "--format", choices=SUPPORTED_FORMATS, help="Input format (from extension by default)")
    sub.add_argument("--skip-invalid", action="store_true", help="Skip malformed records instead of failing")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="overlog", description="Overlay telemetry data onto video files"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="No progress output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_parse = subparsers.add_parser("parse", help="Parse telemetry data to JSON")
    _add_input_args(p_parse)
    p_parse.add_argument("-o", "--output", help="Output JSON file (stdout by default)")
    p_parse.set_defaults(func=cmd_parse)

    p_render = subparsers.add_parser("render", help="Render a transparent overlay video")
    _add_input_args(p_render)
    p_render.add_argument("-o", "--output", required=True, help="Output overlay video (.mov, .webm or .mkv)")
    p_render.add_argument("--width", type=int, default=DEFAULT_RESOLUTION[0], help="Video width")
    p_render.add_argument("--height", type=int, default=DEFAULT_RESOLUTION[1], help="Video height")
    p_render.add_argument("--duration", type=float, help="Duration in seconds (telemetry span by default)")
    p_render.add_argument("--fps", type=float, default=DEFAULT_FPS, help="Frames per second")
    p_render.add_argument("--style", default=DEFAULT_STYLE, choices=style_names(), help="Overlay style")
    p_render.add_argument("--style-file", help="JSON style preset (overrides --style)")
    p_render.add_argument("--font", default=DEFAULT_FONT_PATH, help="TrueType font file")
    p_render.add_argument("--clamp", action="store_true", help="Hold the first/last sample outside the telemetry range")
    p_render.add_argument("--workers", type=int, default=1, help="Frame rendering threads")
    p_render.add_argument("--derive-speed", action="store_true", help="Compute missing speeds from positions")
    p_render.set_defaults(func=cmd_render)

    p_burn = subparsers.add_parser("burn", help="Burn an overlay video into a source video")
    p_burn.add_argument("-v", "--video", required=True, help="Source video file")
    p_burn.add_argument("--overlay", required=True, help="Overlay video file")
    p_burn.add_argument("-o", "--output", required=True, help="Output video file")
    p_burn.add_argument("--offset", type=float, default=0.0, help="Source time in seconds where the overlay starts")
    p_burn.add_argument(
        "--mismatch",
        choices=[m.value for m in OverlayMismatch],
        default=OverlayMismatch.FREEZE.value,
        help="What to show once the overlay is shorter than the video",
    )
    p_burn.add_argument("--codec", default="libx264", help="Video codec of the output")
    p_burn.set_defaults(func=cmd_burn)

    p_info = subparsers.add_parser("info", help="Print a telemetry summary")
    _add_input_args(p_info)
    p_info.set_defaults(func=cmd_info)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        args.func(args)
    except (OverlogError, OSError) as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
