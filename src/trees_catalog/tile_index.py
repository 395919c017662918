"""
In-memory spatial index over the catalog's tile bounding boxes.

The index is built once and never modified afterwards, so it can be shared
by all workers of a batch without locking.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Tuple

import numpy as np

from .errors import CatalogIndexError
from .geometry import Bounds, Circle, Geometry, Rectangle


@dataclass(frozen=True)
class TileRecord:
    """One physical tile file and its XY extent."""

    path: str
    bbox: Bounds  # xmin, xmax, ymin, ymax
    point_count: int = 0

    @property
    def name(self) -> str:
        return Path(self.path).name


class TileIndex:
    """Answers 'which tiles intersect this geometry' for a fixed set of tiles."""

    def __init__(self, records: Iterable[TileRecord]):
        self.records: Tuple[TileRecord, ...] = tuple(records)

        seen = set()
        for record in self.records:
            if record.path in seen:
                raise CatalogIndexError(f"Duplicate tile path in catalog: {record.path}")
            seen.add(record.path)

            xmin, xmax, ymin, ymax = record.bbox
            if not (xmin < xmax and ymin < ymax):
                raise CatalogIndexError(
                    f"Degenerate bounding box for {record.path}: "
                    f"x=[{xmin}, {xmax}], y=[{ymin}, {ymax}]"
                )

        # Columns: xmin, xmax, ymin, ymax
        self._boxes = np.array([r.bbox for r in self.records], dtype=np.float64).reshape(-1, 4)

    def __len__(self) -> int:
        return len(self.records)

    @property
    def extent(self) -> Bounds:
        """Overall (xmin, xmax, ymin, ymax) of all tiles."""
        if not self.records:
            raise CatalogIndexError("Cannot compute the extent of an empty catalog")
        return (
            float(self._boxes[:, 0].min()),
            float(self._boxes[:, 1].max()),
            float(self._boxes[:, 2].min()),
            float(self._boxes[:, 3].max()),
        )

    def intersecting(self, geometry: Geometry, inclusive: bool = False) -> Tuple[TileRecord, ...]:
        """
        Return the tiles whose bounding box overlaps the geometry.

        By default boxes that merely touch the geometry are excluded. With
        inclusive=True the test follows point membership instead: a tile is
        returned whenever its closed bounding box shares a point with the
        region the geometry keeps, so tiles whose points lie exactly on the
        geometry's lower edge (or on a closed upper edge, or on a circle's
        rim) are read too.

        Circles are tested against the closest point of each box, not just
        against the circle's bounding square, so corner tiles outside the
        disc are not pulled in.

        Args:
            geometry: Circle or Rectangle
            inclusive: Match tiles that only touch the geometry where it keeps points

        Returns:
            Tuple of TileRecord in catalog order (empty if nothing intersects)
        """
        if not self.records:
            return ()

        gxmin, gxmax, gymin, gymax = geometry.bounds
        boxes = self._boxes

        if not inclusive:
            mask = (
                (boxes[:, 0] < gxmax)
                & (boxes[:, 1] > gxmin)
                & (boxes[:, 2] < gymax)
                & (boxes[:, 3] > gymin)
            )
        elif isinstance(geometry, Rectangle):
            # Lower edges always hold points, upper edges only when closed
            mask = (
                ((boxes[:, 0] <= gxmax) if geometry.closed_x else (boxes[:, 0] < gxmax))
                & (boxes[:, 1] >= gxmin)
                & ((boxes[:, 2] <= gymax) if geometry.closed_y else (boxes[:, 2] < gymax))
                & (boxes[:, 3] >= gymin)
            )
        else:
            mask = (
                (boxes[:, 0] <= gxmax)
                & (boxes[:, 1] >= gxmin)
                & (boxes[:, 2] <= gymax)
                & (boxes[:, 3] >= gymin)
            )

        if isinstance(geometry, Circle):
            dx = np.maximum.reduce([boxes[:, 0] - geometry.x, np.zeros(len(boxes)), geometry.x - boxes[:, 1]])
            dy = np.maximum.reduce([boxes[:, 2] - geometry.y, np.zeros(len(boxes)), geometry.y - boxes[:, 3]])
            dist2 = dx ** 2 + dy ** 2
            mask &= (dist2 <= geometry.r ** 2) if inclusive else (dist2 < geometry.r ** 2)
        elif not isinstance(geometry, Rectangle):
            raise TypeError(f"Unsupported geometry type: {type(geometry).__name__}")

        return tuple(self.records[i] for i in np.flatnonzero(mask))
