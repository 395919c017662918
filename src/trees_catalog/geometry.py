"""
Query shapes and the typed spatial predicate handed to the point reader.

Bounds are always expressed as (xmin, xmax, ymin, ymax), the same order the
tile bounds use everywhere else in the pipeline.
"""

from __future__ import annotations

import math
import operator
import re
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

import numpy as np

from .errors import ValidationError

Bounds = Tuple[float, float, float, float]


@dataclass(frozen=True)
class Circle:
    """Disc centred on (x, y) with radius r."""

    x: float
    y: float
    r: float

    @property
    def bounds(self) -> Bounds:
        return (self.x - self.r, self.x + self.r, self.y - self.r, self.y + self.r)

    def expand(self, distance: float) -> "Circle":
        return Circle(self.x, self.y, self.r + distance)

    def contains(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        return (x - self.x) ** 2 + (y - self.y) ** 2 <= self.r ** 2

    def __str__(self) -> str:
        return f"-inside_circle {self.x} {self.y} {self.r}"


@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned rectangle stored by its bounds.

    Membership is half-open, [xmin, xmax) x [ymin, ymax). closed_x and
    closed_y make the upper edge of that axis inclusive; retile cells on the
    upper edges of a catalog are closed so the points lying there are kept.
    """

    xmin: float
    xmax: float
    ymin: float
    ymax: float
    closed_x: bool = False
    closed_y: bool = False

    @classmethod
    def centred(cls, x: float, y: float, half_width: float, half_height: float) -> "Rectangle":
        """Rectangle centred on (x, y), 2 * half_width wide and 2 * half_height high."""
        return cls(x - half_width, x + half_width, y - half_height, y + half_height)

    @property
    def x(self) -> float:
        return (self.xmin + self.xmax) / 2

    @property
    def y(self) -> float:
        return (self.ymin + self.ymax) / 2

    @property
    def half_width(self) -> float:
        return (self.xmax - self.xmin) / 2

    @property
    def half_height(self) -> float:
        return (self.ymax - self.ymin) / 2

    @property
    def bounds(self) -> Bounds:
        return (self.xmin, self.xmax, self.ymin, self.ymax)

    def expand(self, distance: float) -> "Rectangle":
        return Rectangle(
            self.xmin - distance,
            self.xmax + distance,
            self.ymin - distance,
            self.ymax + distance,
            self.closed_x,
            self.closed_y,
        )

    def contains(self, x: np.ndarray, y: np.ndarray) -> np.ndarray:
        # Half-open so that adjacent cells never share a point
        inside_x = (x >= self.xmin) & ((x <= self.xmax) if self.closed_x else (x < self.xmax))
        inside_y = (y >= self.ymin) & ((y <= self.ymax) if self.closed_y else (y < self.ymax))
        return inside_x & inside_y

    def __str__(self) -> str:
        return f"-inside {self.xmin} {self.ymin} {self.xmax} {self.ymax}"


Geometry = Union[Circle, Rectangle]


_OPERATORS = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}

_FILTER_RE = re.compile(r"^\s*([A-Za-z_][A-Za-z0-9_]*)\s*(==|!=|<=|>=|<|>)\s*(\S+)\s*$")


@dataclass(frozen=True)
class AttributeFilter:
    """
    A single comparison clause on one point dimension, e.g. Z >= 0.

    Dimension names are matched case-insensitively against the loaded
    attributes; x, y and z refer to the scaled coordinates.
    """

    dimension: str
    op: str
    value: float

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValidationError(
                f"Unsupported operator '{self.op}' (expected one of {', '.join(_OPERATORS)})"
            )

    def mask(self, columns: Dict[str, np.ndarray]) -> np.ndarray:
        key = self.dimension.lower()
        lookup = {name.lower(): values for name, values in columns.items()}
        if key not in lookup:
            raise KeyError(f"Dimension '{self.dimension}' is not available for filtering")
        return _OPERATORS[self.op](lookup[key], self.value)

    def __str__(self) -> str:
        return f"{self.dimension}{self.op}{self.value}"


def parse_attribute_filter(text: str) -> AttributeFilter:
    """Parse 'Z>=2' or 'classification == 2' into an AttributeFilter."""
    match = _FILTER_RE.match(text)
    if not match:
        raise ValidationError(f"Invalid attribute filter: {text!r}. Expected e.g. 'Z>=0'")
    dimension, op, raw = match.groups()
    try:
        value = float(raw)
    except ValueError:
        raise ValidationError(f"Attribute filter value must be numeric: {text!r}")
    return AttributeFilter(dimension, op, value)


@dataclass(frozen=True)
class SpatialFilter:
    """Shape clause plus attribute clauses; all must hold for a point to be kept."""

    shape: Geometry
    attributes: Tuple[AttributeFilter, ...] = field(default_factory=tuple)

    @property
    def bounds(self) -> Bounds:
        return self.shape.bounds

    def mask(
        self,
        x: np.ndarray,
        y: np.ndarray,
        columns: Optional[Dict[str, np.ndarray]] = None,
    ) -> np.ndarray:
        keep = self.shape.contains(x, y)
        if self.attributes:
            lookup = dict(columns or {})
            lookup.setdefault("x", x)
            lookup.setdefault("y", y)
            for clause in self.attributes:
                keep &= clause.mask(lookup)
        return keep

    def __str__(self) -> str:
        parts = [str(self.shape)] + [f"-keep {clause}" for clause in self.attributes]
        return " ".join(parts)


def is_finite_bounds(bounds: Bounds) -> bool:
    return all(math.isfinite(v) for v in bounds)
