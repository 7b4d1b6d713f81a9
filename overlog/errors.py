"""Exceptions raised by the overlay toolchain."""
from __future__ import annotations


class OverlogError(Exception):
    """Base class for every error the package raises on purpose."""


class TelemetryParseError(OverlogError, ValueError):
    """A telemetry file (or one of its records) could not be parsed."""

    def __init__(self, message: str, source: str = "", record: int | None = None, fmt: str = ""):
        self.source = source
        self.record = record
        self.format = fmt
        location = source or "<telemetry>"
        if record is not None:
            location = f"{location}, record {record}"
        prefix = f"{fmt.upper()} " if fmt else ""
        super().__init__(f"{prefix}parse error in {location}: {message}")


class UnsupportedFormatError(OverlogError, ValueError):
    """The telemetry format or file extension is not handled."""


class InvalidInputError(OverlogError, ValueError):
    """A caller supplied a missing file or an out-of-range value."""


class ConfigError(OverlogError, ValueError):
    """Impossible rendering configuration (size, fps, style, preset)."""


class RenderError(OverlogError):
    """Drawing a frame failed."""


class CodecError(OverlogError):
    """The video encoder, decoder or muxer failed."""

    def __init__(self, message: str, path: str = ""):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)


__all__ = [
    "OverlogError",
    "TelemetryParseError",
    "UnsupportedFormatError",
    "InvalidInputError",
    "ConfigError",
    "RenderError",
    "CodecError",
]
