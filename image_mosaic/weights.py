"""Centerline blending weights.

A pixel's weight says how far it sits inside the valid data of its region:
1 on the centerline of its row/column span and falling linearly towards the
first/last valid pixel. Taking the smaller of the horizontal and vertical
weight means a pixel only scores high when it is interior along both axes, so
overlapping images hand over smoothly instead of meeting at a hard seam.

``centerline_weights`` measures the spans on a validity mask, so it follows
nodata borders but only sees the region it is given. ``footprint_weights``
measures them on a placed image's extent, which is the same for every tile.
"""
from typing import Optional

import numpy as np

from ._typing_utils import BoolArray, FloatArray
from .geometry import SINGULAR_DET, AffineTransform, Box

DEFAULT_HOLE_FILL_VALUE = 0.0
DEFAULT_BORDER_FILL_VALUE = -1.0


def _span_extents(valid: BoolArray, axis: int) -> tuple[FloatArray, FloatArray, BoolArray]:
    """First and last valid index along ``axis`` for every line.

    Lines with no valid samples get ``lo = n`` and ``hi = -1`` so that no index
    ever falls inside them.
    """
    n = valid.shape[axis]
    has_valid = valid.any(axis=axis)
    lo = np.argmax(valid, axis=axis)
    hi = n - 1 - np.argmax(np.flip(valid, axis=axis), axis=axis)
    lo = np.where(has_valid, lo, n)
    hi = np.where(has_valid, hi, -1)
    return lo, hi, has_valid


def _line_weights(
    positions: FloatArray, lo: FloatArray, hi: FloatArray, has_valid: BoolArray
) -> FloatArray:
    """Linear falloff from the span center: 1 at the center, > 0 at the span ends."""
    center = (lo + hi) / 2.0
    half_span = np.where(has_valid, (hi - lo) / 2.0 + 1.0, 1.0)
    weights = 1.0 - np.abs(positions - center) / half_span
    weights = np.clip(weights, 0.0, 1.0)
    return np.where(has_valid, weights, 0.0)


def centerline_weights(
    valid: BoolArray,
    hole_fill_value: float = DEFAULT_HOLE_FILL_VALUE,
    border_fill_value: float = DEFAULT_BORDER_FILL_VALUE,
    roi: Optional[Box] = None,
) -> FloatArray:
    """Compute the centerline weight of every pixel of a region.

    Args:
        valid: Boolean validity mask of the region, shape ``(rows, cols)``.
        hole_fill_value: Weight for invalid pixels lying inside the valid
            envelope along both axes.
        border_fill_value: Weight for the remaining invalid pixels. The default
            of -1 is a sentinel; callers must clamp it away before blending.
        roi: Part of the region (in region-local coordinates) to return weights
            for. The spans are always measured over the whole region.

    Returns:
        float64 array shaped like ``roi`` cropped to the region (or the whole region).
    """
    valid = np.asarray(valid, dtype=bool)
    if valid.ndim != 2:
        raise ValueError(f"Validity mask must be 2-dimensional, got shape {valid.shape}")

    # Valid column span of each row, valid row span of each column.
    row_lo, row_hi, row_has_valid = _span_extents(valid, axis=1)
    col_lo, col_hi, col_has_valid = _span_extents(valid, axis=0)

    region = Box.from_shape(valid.shape)
    output_box = region if roi is None else roi.intersection(region)
    rows_slice, cols_slice = output_box.slices()
    rows = np.arange(output_box.min[1], output_box.max[1])[:, np.newaxis]
    cols = np.arange(output_box.min[0], output_box.max[0])[np.newaxis, :]

    r_lo, r_hi, r_ok = (a[rows_slice][:, np.newaxis] for a in (row_lo, row_hi, row_has_valid))
    c_lo, c_hi, c_ok = (a[cols_slice][np.newaxis, :] for a in (col_lo, col_hi, col_has_valid))

    weight_h = _line_weights(cols, r_lo, r_hi, r_ok)
    weight_v = _line_weights(rows, c_lo, c_hi, c_ok)
    weights = np.minimum(weight_h, weight_v)

    inner_pixel = (cols >= r_lo) & (cols <= r_hi) & (rows >= c_lo) & (rows <= c_hi)
    invalid_fill = np.where(inner_pixel, hole_fill_value, border_fill_value)

    return np.where(valid[rows_slice, cols_slice], weights, invalid_fill).astype(np.float64)


def _footprint_span(
    slope_u: float,
    offset_u: FloatArray,
    max_u: float,
    slope_v: float,
    offset_v: FloatArray,
    max_v: float,
) -> tuple[FloatArray, FloatArray, BoolArray]:
    """Range of ``s`` along lines mapped to ``(u, v) = (slope * s + offset)``
    that lands inside ``[0, max_u] x [0, max_v]``.

    Lines that miss the rectangle get ``lo = hi = 0`` and ``has_valid`` False.
    """
    lo = np.full(np.shape(offset_u), -np.inf)
    hi = np.full(np.shape(offset_u), np.inf)
    for slope, offset, upper in ((slope_u, offset_u, max_u), (slope_v, offset_v, max_v)):
        offset = np.asarray(offset, dtype=np.float64)
        if abs(slope) < SINGULAR_DET:
            # Parallel to this edge pair: all or nothing.
            inside = (offset >= 0) & (offset <= upper)
            hi = np.where(inside, hi, -np.inf)
            continue
        ends = np.stack([-offset / slope, (upper - offset) / slope])
        lo = np.maximum(lo, ends.min(axis=0))
        hi = np.minimum(hi, ends.max(axis=0))
    has_valid = np.isfinite(lo) & np.isfinite(hi) & (hi >= lo)
    return np.where(has_valid, lo, 0.0), np.where(has_valid, hi, 0.0), has_valid


def footprint_weights(
    to_native: AffineTransform, image_shape: tuple[int, int], box: Box
) -> FloatArray:
    """Centerline weights of a placed image, measured on its footprint.

    The row and column spans are where each reference-frame line through
    ``box`` crosses the image extent, so a pixel's weight never depends on
    which box it is computed in.

    Args:
        to_native: Maps reference-frame points to the image's pixel coordinates.
        image_shape: ``(rows, cols)`` of the image.
        box: Reference-frame pixels to return weights for.

    Returns:
        float64 array of shape ``box.shape``; 0 where the lines miss the image.
    """
    height, width = image_shape
    rows = np.arange(box.min[1], box.max[1], dtype=np.float64)
    cols = np.arange(box.min[0], box.max[0], dtype=np.float64)
    (m00, m01), (m10, m11) = to_native.matrix
    t0, t1 = to_native.translation

    # Moving along x on a fixed row, then along y on a fixed column.
    row_lo, row_hi, row_ok = _footprint_span(
        m00, m01 * rows + t0, width - 1, m10, m11 * rows + t1, height - 1
    )
    col_lo, col_hi, col_ok = _footprint_span(
        m01, m00 * cols + t0, width - 1, m11, m10 * cols + t1, height - 1
    )

    across = (slice(None), np.newaxis)
    down = (np.newaxis, slice(None))
    weight_h = _line_weights(cols[down], row_lo[across], row_hi[across], row_ok[across])
    weight_v = _line_weights(rows[across], col_lo[down], col_hi[down], col_ok[down])
    return np.minimum(weight_h, weight_v)
