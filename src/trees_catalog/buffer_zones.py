"""
Buffer-zone tagging for extracted ROIs.

A buffered ROI is loaded with an extra margin so that downstream algorithms
(segmentation, metrics) do not suffer from edge artifacts. Each point gets a
code telling which part of the margin it lies in:

    circle:     0 = ROI, 1 = buffer ring
    rectangle:  0 = ROI, 1 = bottom, 2 = left, 3 = top, 4 = right

Rectangle codes are positional, not combined. The four tests run in the
order bottom, left, top, right and a later match overwrites an earlier one,
so a point in the top-left corner ends up as TOP.
"""

from __future__ import annotations

from enum import IntEnum

import numpy as np

from .geometry import Circle, Geometry, Rectangle


class BufferZone(IntEnum):
    NONE = 0
    CIRCLE_EDGE = 1
    BOTTOM = 1
    LEFT = 2
    TOP = 3
    RIGHT = 4


def classify_buffer(points: np.ndarray, geometry: Geometry, buffer: float) -> np.ndarray:
    """
    Compute a buffer-zone code for every point.

    Args:
        points: (N, 2+) array, x in column 0 and y in column 1
        geometry: The outer (already buffered) query geometry
        buffer: Width of the margin inside the geometry

    Returns:
        New uint8 array of length N (the input is not modified)
    """
    points = np.asarray(points, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] < 2:
        raise ValueError(f"Expected an (N, 2+) coordinate array, got shape {points.shape}")

    x = points[:, 0]
    y = points[:, 1]
    codes = np.full(len(points), BufferZone.NONE, dtype=np.uint8)

    if isinstance(geometry, Circle):
        inner = geometry.r - buffer
        if inner <= 0:
            codes[:] = BufferZone.CIRCLE_EDGE
        else:
            dist2 = (x - geometry.x) ** 2 + (y - geometry.y) ** 2
            codes[dist2 > inner ** 2] = BufferZone.CIRCLE_EDGE
    elif isinstance(geometry, Rectangle):
        xleft, xright, ybottom, ytop = geometry.bounds
        codes[y < ybottom + buffer] = BufferZone.BOTTOM
        codes[x < xleft + buffer] = BufferZone.LEFT
        codes[y > ytop - buffer] = BufferZone.TOP
        codes[x > xright - buffer] = BufferZone.RIGHT
    else:
        raise TypeError(f"Unsupported geometry type: {type(geometry).__name__}")

    return codes
