"""
Plan the output tiles ("clusters") of a catalog retile.

Two layouts are supported:

- by file: one cluster per source tile, same extent as the source file,
  optionally grown by a buffer
- grid: the catalog extent split into a regular grid of square cells of
  the requested size, each grown by the buffer

Every cluster is resolved against the tile index up front. Grid cells that
touch no tile are kept so that the grid is complete; they simply produce
empty output, which the retile step discards.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .errors import ValidationError
from .geometry import Bounds, Geometry, Rectangle, is_finite_bounds
from .planner import WorkUnit
from .tile_index import TileIndex

# Refuse to plan absurd grids (usually a unit mismatch between size and extent)
MAX_CLUSTERS = 1_000_000

OUTPUT_EXTENSIONS = ("las", "laz")

_LIDAR_SUFFIX = re.compile(r"(\.copc)?\.la[sz]$", re.IGNORECASE)


@dataclass(frozen=True)
class Cluster(WorkUnit):
    """A retile work unit: the buffered window plus its unbuffered core cell."""

    core: Optional[Geometry] = None
    ext: str = "las"

    def __post_init__(self):
        super().__post_init__()
        if self.ext not in OUTPUT_EXTENSIONS:
            raise ValidationError(f"Output format must be one of {OUTPUT_EXTENSIONS}, got '{self.ext}'")

    @property
    def filename(self) -> str:
        return f"{self.name}.{self.ext}"


def normalize_ext(ext: str) -> str:
    ext = ext.lower().lstrip(".")
    if ext not in OUTPUT_EXTENSIONS:
        raise ValidationError(f"Output format must be one of {OUTPUT_EXTENSIONS}, got '{ext}'")
    return ext


def name_width(count: int) -> int:
    """Zero-padding width for sequential cluster names (at least 5 digits)."""
    return max(5, math.ceil(math.log10(count + 1)))


def sequential_names(count: int, prefix: str = "") -> List[str]:
    width = name_width(count)
    return [f"{prefix}{i:0{width}d}" for i in range(1, count + 1)]


def strip_lidar_suffix(path: str) -> str:
    """'plot_12.copc.laz' -> 'plot_12'."""
    name = Path(path).name
    stripped = _LIDAR_SUFFIX.sub("", name)
    return stripped if stripped != name else Path(path).stem


def build_grid(
    extent: Bounds,
    tiling_size: float,
    align_to_grid: bool = False,
    grid_offset: float = 0.0,
) -> List[Bounds]:
    """
    Split an extent into square cells.

    Args:
        extent: (xmin, xmax, ymin, ymax) to cover
        tiling_size: Cell edge length in catalog units
        align_to_grid: Snap the grid origin down to a multiple of tiling_size
        grid_offset: Move the origin this far below/left of the extent minimum

    Returns:
        List of cell bounds (xmin, xmax, ymin, ymax), sorted by (col, row)
    """
    minx, maxx, miny, maxy = extent

    if not is_finite_bounds(extent):
        raise ValidationError(
            f"Invalid bounds detected (infinity or NaN): "
            f"minx={minx}, maxx={maxx}, miny={miny}, maxy={maxy}."
        )
    if not (math.isfinite(tiling_size) and tiling_size > 0):
        raise ValidationError(f"Tiling size must be a positive value, got {tiling_size}")

    start_x = minx - grid_offset
    start_y = miny - grid_offset
    if align_to_grid:
        start_x = math.floor(start_x / tiling_size) * tiling_size
        start_y = math.floor(start_y / tiling_size) * tiling_size

    # Tolerance keeps 0.3 / 0.1 from becoming 4 cells
    num_cols = max(1, math.ceil((maxx - start_x) / tiling_size - 1e-9))
    num_rows = max(1, math.ceil((maxy - start_y) / tiling_size - 1e-9))

    total = num_cols * num_rows
    if total > MAX_CLUSTERS:
        raise ValidationError(
            f"Would create {total:,} tiles ({num_cols} x {num_rows}), "
            f"which exceeds the maximum of {MAX_CLUSTERS:,}. "
            f"Consider using a larger tiling size."
        )

    cells = []
    for col in range(num_cols):
        x0 = start_x + col * tiling_size
        for row in range(num_rows):
            y0 = start_y + row * tiling_size
            cells.append((x0, x0 + tiling_size, y0, y0 + tiling_size))
    return cells


def plan_clusters(
    index: TileIndex,
    tiling_size: Optional[float] = None,
    buffer: float = 0.0,
    by_file: bool = False,
    prefix: str = "",
    ext: str = "las",
    align_to_grid: bool = False,
    grid_offset: float = 0.0,
) -> List[Cluster]:
    """
    Plan the clusters of a retile.

    By file, clusters are named after their source file when no prefix is
    given and the source names are unique. Every other case uses 1-based
    sequential names zero-padded to at least 5 digits, after the prefix.

    Args:
        index: TileIndex of the source catalog
        tiling_size: Grid cell size (required unless by_file)
        buffer: Margin added around every cluster
        by_file: One cluster per source file instead of a grid
        prefix: Prefix for output names
        ext: Output format, 'las' or 'laz'
        align_to_grid: See build_grid
        grid_offset: See build_grid

    Returns:
        List of Cluster in planning order
    """
    ext = normalize_ext(ext)
    if not math.isfinite(buffer) or buffer < 0:
        raise ValidationError("Buffer size must be a positive value")
    if len(index) == 0:
        raise ValidationError("The catalog contains no tiles")

    if by_file:
        # A header bbox is the extent of the file's own points, so both upper edges hold points
        cores = [Rectangle(*record.bbox, closed_x=True, closed_y=True) for record in index.records]
        names = [strip_lidar_suffix(record.path) for record in index.records]
        if prefix or len(set(names)) != len(names):
            names = sequential_names(len(cores), prefix)
    else:
        if tiling_size is None:
            raise ValidationError("A tiling size is required unless processing by file")
        cells = build_grid(index.extent, tiling_size, align_to_grid, grid_offset)
        # Close the last column and row so points on the catalog's upper edges are kept
        last_x = max(cell[1] for cell in cells)
        last_y = max(cell[3] for cell in cells)
        cores = [
            Rectangle(*cell, closed_x=cell[1] == last_x, closed_y=cell[3] == last_y)
            for cell in cells
        ]
        names = sequential_names(len(cores), prefix)

    clusters = []
    for name, core in zip(names, cores):
        geometry = core.expand(buffer)
        clusters.append(
            Cluster(
                name=name,
                geometry=geometry,
                buffer=buffer,
                tiles=index.intersecting(geometry, inclusive=True),
                core=core,
                ext=ext,
            )
        )
    return clusters
