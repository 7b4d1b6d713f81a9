"""Core definitions and configuration for the telemetry overlay package."""

__version__ = "0.1.0"

# Geometry and timing defaults
DEFAULT_RESOLUTION = (1920, 1080)
DEFAULT_FPS = 30
DEFAULT_FONT_PATH = "DejaVuSans.ttf"
DEFAULT_STYLE = "default"
DEFAULT_OVERLAY_DURATION_SECONDS = 30.0
MAX_FPS = 240

# Colour palette (RGBA, overlays are drawn on a transparent canvas)
TRANSPARENT = (0, 0, 0, 0)
TEXT_COLOR = (255, 255, 255, 255)
SECONDARY_TEXT_COLOR = (200, 200, 200, 255)
CLOCK_COLOR = (150, 150, 150, 255)
WARNING_COLOR = (255, 0, 0, 255)
GAUGE_BG_COLOR = (30, 30, 30, 200)
RING_COLOR = (100, 100, 100, 255)
VECTOR_COLOR = (255, 255, 0, 255)
THROTTLE_COLOR = (0, 200, 0, 255)
BRAKE_COLOR = (220, 0, 0, 255)

# Layout constants
FONT_SIZE_LARGE = 48
FONT_SIZE_MEDIUM = 30
FONT_SIZE_SMALL = 20
MARGIN = 50

# g-force above which the magnitude label turns red
HIGH_G_THRESHOLD = 2.0
# g-force mapped to the outer edge of the ring
RING_MAX_G = 3.0

__all__ = [
    "__version__",
    "DEFAULT_RESOLUTION",
    "DEFAULT_FPS",
    "DEFAULT_FONT_PATH",
    "DEFAULT_STYLE",
    "DEFAULT_OVERLAY_DURATION_SECONDS",
    "MAX_FPS",
    "TRANSPARENT",
    "TEXT_COLOR",
    "SECONDARY_TEXT_COLOR",
    "CLOCK_COLOR",
    "WARNING_COLOR",
    "GAUGE_BG_COLOR",
    "RING_COLOR",
    "VECTOR_COLOR",
    "THROTTLE_COLOR",
    "BRAKE_COLOR",
    "FONT_SIZE_LARGE",
    "FONT_SIZE_MEDIUM",
    "FONT_SIZE_SMALL",
    "MARGIN",
    "HIGH_G_THRESHOLD",
    "RING_MAX_G",
]
