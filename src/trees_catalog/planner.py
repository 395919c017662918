"""
Turn a set of ROI requests into self-contained work units.

Each unit carries everything a worker needs: the buffered query geometry,
the buffer width, the tiles to open and the unit name used to put results
back into the caller's order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ValidationError
from .geometry import Circle, Geometry, Rectangle
from .tile_index import TileIndex, TileRecord

Number = Union[int, float]
NumberOrSequence = Union[Number, Sequence[Number], np.ndarray]


@dataclass(frozen=True)
class WorkUnit:
    """One independently dispatchable job."""

    name: str
    geometry: Geometry  # outer geometry, buffer included
    buffer: float = 0.0
    tiles: Tuple[TileRecord, ...] = ()
    extra: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self):
        if self.buffer < 0:
            raise ValidationError(f"Buffer of unit '{self.name}' must be >= 0, got {self.buffer}")
        if self.tiles is None:
            raise ValidationError(f"Unit '{self.name}' has no tile list")

    @property
    def paths(self) -> List[str]:
        return [tile.path for tile in self.tiles]


def _as_array(values: NumberOrSequence, label: str) -> np.ndarray:
    array = np.atleast_1d(np.asarray(values, dtype=np.float64))
    if array.ndim != 1:
        raise ValidationError(f"{label} must be a scalar or a 1-D sequence")
    return array


def _broadcast(values: NumberOrSequence, n: int, label: str) -> np.ndarray:
    array = _as_array(values, label)
    if len(array) == 1:
        return np.repeat(array, n)
    if len(array) != n:
        raise ValidationError(f"x is not same length as {label} ({n} != {len(array)})")
    return array


def validate_queries(
    x: NumberOrSequence,
    y: NumberOrSequence,
    r: NumberOrSequence,
    r2: Optional[NumberOrSequence] = None,
    buffer: NumberOrSequence = 0.0,
    roinames: Optional[Sequence[str]] = None,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, Optional[np.ndarray], np.ndarray, List[str]]:
    """
    Check and normalise ROI inputs.

    Scalars (or length-1 sequences) for r, r2 and buffer are broadcast to
    one value per ROI. Nothing is read from disk here.

    Returns:
        Tuple of (x, y, r, r2 or None, buffer, names), all of length len(x)

    Raises:
        ValidationError: on any malformed input
    """
    x = _as_array(x, "x")
    y = _as_array(y, "y")
    n = len(x)

    if len(y) != n:
        raise ValidationError(f"x is not same length as y ({n} != {len(y)})")
    if n == 0:
        raise ValidationError("At least one ROI is required")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise ValidationError("ROI coordinates must be finite")

    r = _broadcast(r, n, "r")
    if np.any(~np.isfinite(r)) or np.any(r <= 0):
        raise ValidationError("Radius must be a positive value")

    if r2 is not None:
        r2 = _broadcast(r2, n, "r2")
        if np.any(~np.isfinite(r2)) or np.any(r2 <= 0):
            raise ValidationError("Second radius must be a positive value")

    buffer = _broadcast(buffer, n, "buffer")
    if np.any(~np.isfinite(buffer)) or np.any(buffer < 0):
        raise ValidationError("Buffer size must be a positive value")

    if roinames is None:
        names = [f"ROI{i}" for i in range(1, n + 1)]
    else:
        names = [str(name) for name in roinames]
        if len(names) != n:
            raise ValidationError(f"x is not same length as roinames ({n} != {len(names)})")
        if len(set(names)) != n:
            raise ValidationError("ROI names must be unique")

    return x, y, r, r2, buffer, names


def plan_queries(
    index: TileIndex,
    x: NumberOrSequence,
    y: NumberOrSequence,
    r: NumberOrSequence,
    r2: Optional[NumberOrSequence] = None,
    buffer: NumberOrSequence = 0.0,
    roinames: Optional[Sequence[str]] = None,
    extra: Optional[Mapping[str, Any]] = None,
    verbose: bool = False,
) -> List[WorkUnit]:
    """
    Build one work unit per ROI that touches at least one tile.

    A circle is planned when r2 is None, otherwise a rectangle with half
    width r and half height r2. The geometry stored in each unit is the ROI
    grown by its buffer. ROIs that hit no tile are dropped; the remaining
    units keep the input order.

    Args:
        index: TileIndex of the catalog
        x, y: ROI centres
        r: Radius (circle) or half width (rectangle), scalar or per ROI
        r2: Half height for rectangles, scalar or per ROI
        buffer: Buffer width, scalar or per ROI
        roinames: Optional unique names (default ROI1, ROI2, ...)
        extra: Options passed through untouched to the worker
        verbose: Print dropped ROIs

    Returns:
        List of WorkUnit
    """
    x, y, r, r2, buffer, names = validate_queries(x, y, r, r2, buffer, roinames)
    extra = dict(extra or {})

    units = []
    dropped = []
    for i, name in enumerate(names):
        if r2 is None:
            roi: Geometry = Circle(float(x[i]), float(y[i]), float(r[i]))
        else:
            roi = Rectangle.centred(float(x[i]), float(y[i]), float(r[i]), float(r2[i]))

        geometry = roi.expand(float(buffer[i]))
        tiles = index.intersecting(geometry, inclusive=True)
        if not tiles:
            dropped.append(name)
            continue

        units.append(WorkUnit(name=name, geometry=geometry, buffer=float(buffer[i]), tiles=tiles, extra=extra))

    if verbose and dropped:
        print(f"  ⚠ Warning: {len(dropped)} ROI(s) outside the catalog were skipped: {', '.join(dropped)}")

    return units
