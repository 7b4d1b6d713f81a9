import pytest

pytest.importorskip("numpy")
pytest.importorskip("PIL")

import numpy as np  # noqa: E402

from overlog.compositing import alpha_composite, fit_overlay  # noqa: E402
from overlog.errors import InvalidInputError  # noqa: E402


def solid(h, w, value, channels):
    return np.full((h, w, channels), value, dtype=np.uint8)


def test_transparent_overlay_leaves_source_untouched():
    source = solid(4, 6, 90, 3)
    out = alpha_composite(source, solid(4, 6, 0, 4))
    assert np.array_equal(out, source)
    assert out is not source


def test_opaque_overlay_replaces_source():
    overlay = solid(4, 6, 200, 4)
    overlay[:, :, 3] = 255
    out = alpha_composite(solid(4, 6, 10, 3), overlay)
    assert (out == 200).all()


def test_half_alpha_blends():
    overlay = np.zeros((2, 2, 4), dtype=np.uint8)
    overlay[:, :, 0] = 255
    overlay[:, :, 3] = 128
    out = alpha_composite(solid(2, 2, 0, 3), overlay)
    assert out.dtype == np.uint8
    assert out[0, 0, 0] == 128
    assert out[0, 0, 1] == 0


def test_shape_mismatch_rejected():
    with pytest.raises(InvalidInputError):
        alpha_composite(solid(4, 6, 0, 3), solid(4, 5, 0, 4))
    with pytest.raises(InvalidInputError):
        alpha_composite(solid(4, 6, 0, 4), solid(4, 6, 0, 4))


def test_fit_overlay_resizes_only_when_needed():
    overlay = solid(10, 20, 255, 4)
    assert fit_overlay(overlay, 20, 10) is overlay
    resized = fit_overlay(overlay, 40, 20)
    assert resized.shape == (20, 40, 4)
    assert (resized[:, :, 3] == 255).all()
