"""
Point-cloud reading and writing with laspy.

This is the I/O collaborator the planners and the dispatcher call into:

- read_points: load the points of one or more tiles that satisfy a
  SpatialFilter, merged into a single PointBatch
- write_cluster: stream the points of a retile cluster into a new file
- read_point_count: header-only point count, used to drop empty outputs

LAZ files are handled through the lazrs backend when it is installed.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Union

import laspy
import numpy as np
from laspy.vlrs.known import (
    GeoAsciiParamsVlr,
    GeoDoubleParamsVlr,
    GeoKeyDirectoryVlr,
    WktCoordinateSystemVlr,
)

from .geometry import SpatialFilter

PathLike = Union[str, Path]

DEFAULT_POINT_FORMAT = 3
DEFAULT_VERSION = "1.2"
DEFAULT_SCALE = 0.01
CHUNK_SIZE = 1_000_000

_CRS_VLRS = (GeoKeyDirectoryVlr, GeoDoubleParamsVlr, GeoAsciiParamsVlr, WktCoordinateSystemVlr)
_COORDINATE_DIMS = ("X", "Y", "Z")


def laz_backend() -> Optional[laspy.LazBackend]:
    """Return the best available LAZ backend (LazrsParallel, Lazrs, then laszip)."""
    for backend in (laspy.LazBackend.LazrsParallel, laspy.LazBackend.Lazrs, laspy.LazBackend.Laszip):
        if backend.is_available():
            return backend
    return None


def _laz_kwargs(path: PathLike) -> dict:
    if str(path).lower().endswith(".laz"):
        backend = laz_backend()
        if backend is not None:
            return {"laz_backend": backend}
    return {}


@dataclass
class PointBatch:
    """
    Points loaded for one work unit.

    Coordinates are scaled (real-world) values. ``attributes`` holds every
    other loaded dimension, parallel to the coordinates. ``buffer`` holds
    the buffer-zone code of every point when the unit was buffered.
    """

    x: np.ndarray
    y: np.ndarray
    z: np.ndarray
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    buffer: Optional[np.ndarray] = None
    header: Optional[laspy.LasHeader] = None  # template for writing

    @classmethod
    def empty(cls, header: Optional[laspy.LasHeader] = None) -> "PointBatch":
        return cls(np.empty(0), np.empty(0), np.empty(0), header=header)

    def __len__(self) -> int:
        return len(self.x)

    @property
    def xy(self) -> np.ndarray:
        return np.column_stack((self.x, self.y))

    @property
    def xyz(self) -> np.ndarray:
        return np.column_stack((self.x, self.y, self.z))

    def with_buffer(self, codes: np.ndarray) -> "PointBatch":
        """Copy of this batch carrying buffer codes."""
        if len(codes) != len(self):
            raise ValueError(f"Expected {len(self)} buffer codes, got {len(codes)}")
        return replace(self, buffer=np.asarray(codes, dtype=np.uint8))

    def canonical_order(self) -> np.ndarray:
        """Index that sorts the points by x, then y, then z."""
        return np.lexsort((self.z, self.y, self.x))

    def to_las(self) -> laspy.LasData:
        """Build a LasData from the batch, adding a 'buffer' extra dimension when tagged."""
        template = self.header
        if template is not None:
            header = laspy.LasHeader(point_format=template.point_format.id, version=template.version)
            header.scales = np.array(template.scales)
            header.offsets = np.array(template.offsets)
            header.global_encoding = template.global_encoding
            header.vlrs.extend(vlr for vlr in template.vlrs if isinstance(vlr, _CRS_VLRS))
        else:
            header = laspy.LasHeader(point_format=DEFAULT_POINT_FORMAT, version=DEFAULT_VERSION)
            header.scales = np.array([DEFAULT_SCALE] * 3)
            if len(self):
                header.offsets = np.floor([self.x.min(), self.y.min(), self.z.min()])

        attributes = dict(self.attributes)
        if self.buffer is not None:
            attributes["buffer"] = self.buffer

        standard = set(header.point_format.dimension_names)
        for name, values in attributes.items():
            if name not in standard:
                header.add_extra_dim(laspy.ExtraBytesParams(name=name, type=np.asarray(values).dtype))

        las = laspy.LasData(header)
        if len(self) == 0:
            return las

        las.x = self.x
        las.y = self.y
        las.z = self.z
        for name, values in attributes.items():
            setattr(las, name, values)
        return las


@dataclass(frozen=True)
class WriteReport:
    path: Path
    point_count: int


def _select_dims(header: laspy.LasHeader, select: Optional[Iterable[str]]) -> List[str]:
    dims = [d for d in header.point_format.dimension_names if d not in _COORDINATE_DIMS]
    if select is None:
        return dims
    wanted = {s.lower() for s in select}
    return [d for d in dims if d.lower() in wanted]


def read_points(
    paths: Sequence[PathLike],
    spatial_filter: SpatialFilter,
    select: Optional[Iterable[str]] = None,
    chunk_size: int = CHUNK_SIZE,
) -> PointBatch:
    """
    Load the points of several tiles that satisfy a spatial filter.

    Files are streamed in chunks so that only matching points are kept in
    memory. Only dimensions present in every file are returned.

    Args:
        paths: Tile files to read
        spatial_filter: Shape and attribute clauses
        select: Optional dimension names to keep (x, y, z are always kept)
        chunk_size: Points per read chunk

    Returns:
        PointBatch (empty if no point matches)
    """
    select = list(select) if select is not None else None
    xs, ys, zs = [], [], []
    columns: Dict[str, List[np.ndarray]] = {}
    common: Optional[List[str]] = None
    template: Optional[laspy.LasHeader] = None

    for path in paths:
        with laspy.open(str(path), **_laz_kwargs(path)) as reader:
            header = reader.header
            if template is None:
                template = header

            all_dims = _select_dims(header, None)
            keep_dims = _select_dims(header, select)
            common = keep_dims if common is None else [d for d in common if d in keep_dims]

            for points in reader.chunk_iterator(chunk_size):
                x = np.asarray(points.x)
                y = np.asarray(points.y)
                z = np.asarray(points.z)

                chunk_columns = {name: np.asarray(points[name]) for name in all_dims}
                filter_columns = dict(chunk_columns)
                filter_columns["z"] = z
                mask = spatial_filter.mask(x, y, filter_columns)
                if not mask.any():
                    continue

                xs.append(x[mask])
                ys.append(y[mask])
                zs.append(z[mask])
                for name in keep_dims:
                    columns.setdefault(name, []).append(chunk_columns[name][mask])

    if not xs:
        return PointBatch.empty(header=template)

    attributes = {name: np.concatenate(columns[name]) for name in (common or []) if name in columns}
    return PointBatch(
        x=np.concatenate(xs),
        y=np.concatenate(ys),
        z=np.concatenate(zs),
        attributes=attributes,
        header=template,
    )


def write_las(las: laspy.LasData, destination: PathLike) -> Path:
    destination = Path(destination)
    destination.parent.mkdir(parents=True, exist_ok=True)
    do_compress = destination.suffix.lower() == ".laz"
    las.write(str(destination), do_compress=do_compress, **_laz_kwargs(destination))
    return destination


def write_batch(batch: PointBatch, destination: PathLike) -> WriteReport:
    """Write a PointBatch to a LAS/LAZ file."""
    path = write_las(batch.to_las(), destination)
    return WriteReport(path, len(batch))


def write_cluster(cluster, destination: PathLike, chunk_size: int = CHUNK_SIZE) -> WriteReport:
    """
    Write every point of a cluster's (buffered) window to destination.

    A cluster without source tiles still produces a valid file with zero
    points, so that the caller's post-write check handles both cases alike.
    """
    if cluster.tiles:
        batch = read_points(cluster.paths, SpatialFilter(cluster.geometry), chunk_size=chunk_size)
    else:
        batch = PointBatch.empty()
    return write_batch(batch, destination)


def read_point_count(path: PathLike) -> int:
    """Number of point records according to the file header."""
    with laspy.open(str(path), **_laz_kwargs(path)) as reader:
        return int(reader.header.point_count)


def read_header_bounds(path: PathLike):
    """(xmin, xmax, ymin, ymax), point count and header of a file, without loading points."""
    with laspy.open(str(path), **_laz_kwargs(path)) as reader:
        header = reader.header
        bounds = (float(header.x_min), float(header.x_max), float(header.y_min), float(header.y_max))
        return bounds, int(header.point_count), header
