#!/usr/bin/env python3
"""
ROI query: extract the points of a catalog that fall inside a set of
circles or rectangles.

From a set of (x, y) ROI centres (for example a ground inventory), the
points of every ROI are extracted from the catalog, even when a ROI spans
several tiles. ROIs can be buffered: the buffer ring is loaded too and every
point gets a 'buffer' code (0 = ROI, >0 = buffer, see buffer_zones.py).

Steps:
1. Validate the ROI inputs (nothing is read before this passes)
2. Resolve the tiles of every ROI; ROIs outside the catalog are skipped
3. Extract every ROI in parallel
4. Return the results in the input order, keyed by ROI name

Usage:
    python main_query.py --catalog_dir /path/to/tiles --rois plots.csv --output_dir /path/to/rois
"""

from __future__ import annotations

import argparse
import csv
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from parameters import QUERY_PARAMS
from trees_catalog.buffer_zones import classify_buffer
from trees_catalog.catalog import Catalog
from trees_catalog.clusters import normalize_ext
from trees_catalog.dispatcher import UnitFailure, dispatch, failures, print_progress
from trees_catalog.errors import ValidationError
from trees_catalog.geometry import AttributeFilter, SpatialFilter, parse_attribute_filter
from trees_catalog.las_io import PointBatch, read_points, write_batch
from trees_catalog.planner import WorkUnit, plan_queries

Reader = Callable[..., PointBatch]


def extract_unit(unit: WorkUnit, reader: Reader = read_points) -> PointBatch:
    """
    Load the points of one ROI and tag its buffer.

    The unit's extra options may hold 'attribute_filters' (AttributeFilter
    clauses ANDed with the shape) and 'select' (dimensions to load).
    """
    clauses = tuple(unit.extra.get("attribute_filters", ()))
    spatial_filter = SpatialFilter(unit.geometry, clauses)
    batch = reader(unit.paths, spatial_filter, unit.extra.get("select"))

    if unit.buffer > 0:
        batch = batch.with_buffer(classify_buffer(batch.xy, unit.geometry, unit.buffer))
    return batch


def catalog_queries(
    catalog: Catalog,
    x: Sequence[float],
    y: Sequence[float],
    r,
    r2=None,
    buffer=0.0,
    roinames: Optional[Sequence[str]] = None,
    attribute_filters: Iterable[AttributeFilter] = (),
    select: Optional[Iterable[str]] = None,
    workers: int = QUERY_PARAMS['workers'],
    progress: bool = QUERY_PARAMS['progress'],
    reader: Reader = read_points,
    verbose: bool = True,
) -> Dict[str, Any]:
    """
    Extract the points of every ROI.

    Args:
        catalog: Source catalog
        x, y: ROI centres
        r: Radius of circular ROIs, or half width of rectangular ROIs
        r2: Half height; when given, ROIs are rectangles (r == r2 gives squares)
        buffer: Buffer width around every ROI (scalar or per ROI)
        roinames: Names used as result keys (default ROI1, ROI2, ...)
        attribute_filters: Extra clauses every point must satisfy
        select: Dimensions to load besides x, y, z (default all)
        workers: Number of parallel workers
        progress: Print a line per completed ROI
        reader: Point reader, read_points(paths, spatial_filter, select)
        verbose: Print section banners and a summary

    Returns:
        Dict ROI name -> PointBatch (or UnitFailure), in input order,
        without the ROIs that touch no tile
    """
    if verbose:
        print("=" * 60)
        print("ROI query")
        print("=" * 60)

    extra = {"attribute_filters": tuple(attribute_filters), "select": list(select) if select is not None else None}
    units = plan_queries(catalog.index, x, y, r, r2, buffer, roinames, extra=extra, verbose=verbose)

    if verbose:
        print(f"  Catalog: {len(catalog)} tiles")
        print(f"  ROIs to extract: {len(units)}")
        print(f"  Workers: {min(workers, len(units)) if units else 0}")

    results = dispatch(
        units,
        lambda unit: extract_unit(unit, reader),
        pool_size=workers,
        progress=print_progress if progress else None,
    )

    if verbose:
        failed = failures(results)
        print(f"  Extraction complete: {len(results) - len(failed)} successful, {len(failed)} failed")
        for name in failed:
            print(f"  ✗ {name}: {results[name].message}")

    return results


def write_batches(results: Dict[str, Any], output_dir: Path, ext: str = "las") -> List[Path]:
    """Write every successfully extracted ROI to output_dir/<name>.<ext>; failures are skipped."""
    ext = normalize_ext(ext)
    output_dir = Path(output_dir)
    written = []
    for name, batch in results.items():
        if isinstance(batch, UnitFailure):
            continue
        report = write_batch(batch, output_dir / f"{name}.{ext}")
        written.append(report.path)
        print(f"  ✓ {name}: {report.point_count:,} points → {report.path.name}")
    return written


def read_roi_csv(csv_path: Path, default_radius: float) -> Dict[str, list]:
    """
    Read ROI centres from a CSV file with columns x, y and optional r, r2, buffer, name.

    Returns:
        Dict with lists 'x', 'y', 'r', 'r2' (or None), 'buffer' (or None), 'names' (or None)
    """
    with open(csv_path, newline='') as f:
        rows = list(csv.DictReader(f))

    if not rows:
        raise ValidationError(f"No ROIs found in {csv_path}")

    columns = {key.strip().lower(): key for key in rows[0].keys() if key}
    for required in ("x", "y"):
        if required not in columns:
            raise ValidationError(f"ROI file {csv_path} needs an '{required}' column")

    def column(name, cast):
        if name not in columns:
            return None
        return [cast(row[columns[name]]) for row in rows]

    return {
        "x": column("x", float),
        "y": column("y", float),
        "r": column("r", float) or [default_radius],
        "r2": column("r2", float),
        "buffer": column("buffer", float),
        "names": column("name", str),
    }


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Extract ROIs (circles or rectangles) from a catalog of LAS/LAZ tiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--catalog_dir", "-c", type=Path, required=True, help="Folder with the LAS/LAZ tiles")
    parser.add_argument("--rois", type=Path, required=True, help="CSV with columns x,y[,r][,r2][,buffer][,name]")
    parser.add_argument("--output_dir", "-o", type=Path, required=True, help="Folder for the extracted ROIs")
    parser.add_argument("--radius", type=float, default=QUERY_PARAMS['radius'],
                        help=f"Radius when the CSV has no r column (default: {QUERY_PARAMS['radius']})")
    parser.add_argument("--square", action="store_true", help="Extract squares of half width r instead of discs")
    parser.add_argument("--buffer", type=float, default=QUERY_PARAMS['buffer'],
                        help=f"Buffer around every ROI (default: {QUERY_PARAMS['buffer']})")
    parser.add_argument("--filter", action="append", default=[], help="Attribute filter, e.g. 'Z>=0' (repeatable)")
    parser.add_argument("--workers", type=int, default=QUERY_PARAMS['workers'],
                        help=f"Number of parallel workers (default: {QUERY_PARAMS['workers']})")
    parser.add_argument("--ext", default=QUERY_PARAMS['ext'], help="Output format, las or laz")
    args = parser.parse_args()

    try:
        catalog = Catalog.from_directory(args.catalog_dir, verbose=True)
        rois = read_roi_csv(args.rois, args.radius)
        r2 = rois["r2"] or (rois["r"] if args.square else None)
        results = catalog_queries(
            catalog,
            rois["x"],
            rois["y"],
            rois["r"],
            r2=r2,
            buffer=rois["buffer"] or args.buffer,
            roinames=rois["names"],
            attribute_filters=[parse_attribute_filter(f) for f in args.filter],
            workers=args.workers,
        )
        write_batches(results, args.output_dir, args.ext)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
