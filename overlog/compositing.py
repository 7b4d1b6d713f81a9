"""Alpha compositing of rendered overlay frames onto source video frames."""
from __future__ import annotations

import numpy as np
from PIL import Image

from .errors import InvalidInputError


def alpha_composite(source_rgb: np.ndarray, overlay_rgba: np.ndarray) -> np.ndarray:
    """Standard "over": ``out = overlay * a + source * (1 - a)`` per channel.

    ``source_rgb`` is HxWx3 uint8, ``overlay_rgba`` is HxWx4 uint8 with
    straight (non-premultiplied) alpha. Returns a new HxWx3 uint8 array.
    """
    if source_rgb.ndim != 3 or source_rgb.shape[2] != 3:
        raise InvalidInputError(f"source frame must be HxWx3, got {source_rgb.shape}")
    if overlay_rgba.ndim != 3 or overlay_rgba.shape[2] != 4:
        raise InvalidInputError(f"overlay frame must be HxWx4, got {overlay_rgba.shape}")
    if source_rgb.shape[:2] != overlay_rgba.shape[:2]:
        raise InvalidInputError(
            f"frame size mismatch: source {source_rgb.shape[1]}x{source_rgb.shape[0]}, "
            f"overlay {overlay_rgba.shape[1]}x{overlay_rgba.shape[0]}"
        )

    alpha = overlay_rgba[:, :, 3:4].astype(np.float32) / 255.0
    if not alpha.any():
        return source_rgb.copy()
    blended = overlay_rgba[:, :, :3].astype(np.float32) * alpha + source_rgb.astype(np.float32) * (1.0 - alpha)
    return np.clip(np.rint(blended), 0, 255).astype(np.uint8)


def fit_overlay(overlay_rgba: np.ndarray, width: int, height: int) -> np.ndarray:
    """Resize an RGBA overlay to ``width`` x ``height`` when needed."""
    if overlay_rgba.shape[1] == width and overlay_rgba.shape[0] == height:
        return overlay_rgba
    resized = Image.fromarray(np.ascontiguousarray(overlay_rgba)).resize((width, height), Image.BILINEAR)
    return np.asarray(resized)


__all__ = ["alpha_composite", "fit_overlay"]
