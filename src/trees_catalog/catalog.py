"""
Catalog of LAS/LAZ tiles.

A catalog is the list of tile files of a folder (or of a pdal tindex) with
their XY extents, wrapped around a TileIndex for spatial lookups.

Reading the header of thousands of tiles is slow, so the extents found in a
folder are cached in a sidecar file (.catalog_index.json) next to the
tiles. An entry is reused as long as the file's size and modification time
are unchanged; anything else is re-read from the header.
"""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

import fiona
from pyproj import CRS
from pyproj.exceptions import CRSError

from .geometry import Bounds
from .las_io import read_header_bounds
from .tile_index import TileIndex, TileRecord

INDEX_FILENAME = ".catalog_index.json"
INDEX_VERSION = 1
LIDAR_SUFFIXES = (".las", ".laz")


def find_lidar_files(directory: Path) -> List[Path]:
    """All .las/.laz files directly inside directory (case-insensitive), sorted by name."""
    return sorted(
        p for p in Path(directory).iterdir()
        if p.is_file() and p.suffix.lower() in LIDAR_SUFFIXES
    )


def _tile_bbox(bbox: Bounds, header) -> Bounds:
    """
    Header extent of a tile, usable as an index record.

    A file whose points all share one x (or y) has a zero-width header
    extent on that axis; it is widened by one scale quantum.
    """
    xmin, xmax, ymin, ymax = bbox
    if xmax <= xmin:
        xmax = xmin + float(header.scales[0])
    if ymax <= ymin:
        ymax = ymin + float(header.scales[1])
    return (xmin, xmax, ymin, ymax)


def _header_crs(header) -> str:
    try:
        crs = header.parse_crs()
    except CRSError:
        return "missing"
    return crs.to_string() if crs is not None else "missing"


def load_index_file(index_path: Path) -> Dict[str, dict]:
    """Read the sidecar index; a missing or unreadable file yields an empty cache."""
    if not index_path.exists():
        return {}
    try:
        with index_path.open() as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        print(f"  ⚠ Warning: Ignoring unreadable index file {index_path}: {e}")
        return {}
    if data.get("version") != INDEX_VERSION:
        return {}
    return {entry["path"]: entry for entry in data.get("tiles", [])}


def save_index_file(index_path: Path, entries: List[dict]) -> None:
    data = {"version": INDEX_VERSION, "tiles": entries}
    try:
        with index_path.open("w") as f:
            json.dump(data, f, indent=2)
    except OSError as e:
        print(f"  ⚠ Warning: Could not write index file {index_path}: {e}")


class Catalog:
    """A set of tiles plus the spatial index over them."""

    def __init__(
        self,
        records: List[TileRecord],
        crs: str = "missing",
        directory: Optional[Path] = None,
    ):
        self.index = TileIndex(records)
        self.crs = crs
        self.directory = Path(directory) if directory is not None else None

    @property
    def records(self) -> Tuple[TileRecord, ...]:
        return self.index.records

    @property
    def paths(self) -> List[str]:
        return [record.path for record in self.records]

    @property
    def extent(self) -> Bounds:
        return self.index.extent

    @property
    def point_count(self) -> int:
        return sum(record.point_count for record in self.records)

    def __len__(self) -> int:
        return len(self.index)

    def __iter__(self) -> Iterator[TileRecord]:
        return iter(self.records)

    def __repr__(self) -> str:
        return f"Catalog({len(self)} tiles, crs={self.crs}, directory={self.directory})"

    @classmethod
    def from_directory(
        cls,
        directory: Union[str, Path],
        use_index_file: bool = True,
        rebuild: bool = False,
        index_filename: str = INDEX_FILENAME,
        verbose: bool = False,
    ) -> "Catalog":
        """
        Scan a folder for LAS/LAZ tiles.

        Args:
            directory: Folder containing the tiles
            use_index_file: Read and update the sidecar index
            rebuild: Ignore the cached entries and re-read every header
            index_filename: Name of the sidecar index inside directory
            verbose: Print what was scanned

        Returns:
            Catalog over the files found (may be empty)
        """
        directory = Path(directory)
        if not directory.is_dir():
            raise FileNotFoundError(f"Catalog directory not found: {directory}")

        files = find_lidar_files(directory)
        index_path = directory / index_filename
        cached = load_index_file(index_path) if use_index_file and not rebuild else {}

        entries = []
        reread = 0
        for path in files:
            key = str(path.resolve())
            stat = path.stat()
            entry = cached.get(key)
            if entry is None or entry.get("mtime") != stat.st_mtime or entry.get("size") != stat.st_size:
                bbox, count, header = read_header_bounds(path)
                entry = {
                    "path": key,
                    "bbox": list(_tile_bbox(bbox, header)),
                    "point_count": count,
                    "mtime": stat.st_mtime,
                    "size": stat.st_size,
                    "crs": _header_crs(header),
                }
                reread += 1
            entries.append(entry)

        if use_index_file and (reread or len(cached) != len(entries) or not index_path.exists()):
            save_index_file(index_path, entries)

        if verbose:
            print(f"  Found {len(files)} tiles in {directory} ({reread} headers read, {len(files) - reread} cached)")

        records = [
            TileRecord(path=e["path"], bbox=tuple(e["bbox"]), point_count=int(e["point_count"]))
            for e in entries
        ]
        return cls(records, crs=_common_crs([e["crs"] for e in entries]), directory=directory)

    @classmethod
    def from_tindex(cls, tindex_path: Union[str, Path], location_field: str = "Location") -> "Catalog":
        """
        Build a catalog from a pdal tindex (GeoPackage or shapefile).

        Each feature's polygon gives the tile extent and its location field
        the tile path. Point counts are not stored in a tindex and are left
        at 0.
        """
        tindex_path = Path(tindex_path)
        records = []
        with fiona.open(tindex_path) as src:
            srs_info = "missing"
            if src.crs:
                try:
                    srs_info = CRS.from_user_input(src.crs).to_string()
                except CRSError:
                    srs_info = str(src.crs)

            for feature in src:
                geom = feature["geometry"]
                if geom["type"] == "Polygon":
                    coords = geom["coordinates"][0]
                elif geom["type"] == "MultiPolygon":
                    coords = [c for poly in geom["coordinates"] for c in poly[0]]
                else:
                    continue

                xs, ys = zip(*[(c[0], c[1]) for c in coords])
                location = feature["properties"].get(location_field)
                if not location:
                    continue
                records.append(TileRecord(path=str(location), bbox=(min(xs), max(xs), min(ys), max(ys))))

        if not records:
            raise ValueError(f"No features found in tindex: {tindex_path}")

        return cls(records, crs=srs_info, directory=tindex_path.parent)


def _common_crs(crs_list: List[str]) -> str:
    known = sorted({c for c in crs_list if c and c != "missing"})
    if not known:
        return "missing"
    if len(known) > 1:
        print(f"  ⚠ Warning: Tiles use {len(known)} different CRS ({', '.join(known)}); using {known[0]}")
    return known[0]


def describe(catalog: Catalog) -> str:
    """Multi-line human readable summary."""
    lines = [f"Tiles: {len(catalog)}", f"CRS: {catalog.crs}"]
    if len(catalog):
        xmin, xmax, ymin, ymax = catalog.extent
        lines.append(f"Extent: x=[{xmin:.2f}, {xmax:.2f}] y=[{ymin:.2f}, {ymax:.2f}]")
        area = (xmax - xmin) * (ymax - ymin)
        lines.append(f"Area: {area:,.1f} (catalog units squared)")
        if catalog.point_count:
            lines.append(f"Points: {catalog.point_count:,}")
            if area > 0 and math.isfinite(area):
                lines.append(f"Density: {catalog.point_count / area:.2f} points per unit squared")
    return "\n".join(lines)
