#!/usr/bin/env python3
"""
Retile a catalog: split or merge the tiles of a catalog into a new set of
files, optionally with a buffer around every new tile.

Steps:
1. Plan the new tiles (a regular grid, or one tile per source file)
2. Optionally plot the plan and ask for confirmation
3. Refuse to run if the output folder already holds LAS/LAZ files
4. Write every new tile in parallel
5. Delete the new tiles that received no points
6. Return the new catalog

Usage:
    python main_retile.py --catalog_dir /path/to/tiles --output_dir /path/to/new --tiling_size 250
    python main_retile.py --catalog_dir /path/to/tiles --output_dir /path/to/new --by_file --buffer 20
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from parameters import RETILE_PARAMS
from trees_catalog.catalog import Catalog, find_lidar_files
from trees_catalog.clusters import Cluster, plan_clusters
from trees_catalog.dispatcher import UnitFailure, dispatch, failures, print_progress
from trees_catalog.errors import ConflictError
from trees_catalog.las_io import WriteReport, read_point_count, write_cluster

Writer = Callable[[Cluster, Path], WriteReport]


def check_output_dir(path: Path) -> None:
    """Raise ConflictError if path already contains .las/.laz files."""
    if path.exists():
        existing = find_lidar_files(path)
        if existing:
            raise ConflictError(
                f"The output folder already contains {len(existing)} .las or .laz file(s) "
                f"(e.g. {existing[0].name}). Operation aborted."
            )


def write_and_validate(cluster: Cluster, path: Path, writer: Writer = write_cluster) -> Optional[Path]:
    """
    Write one cluster, then delete the file again if it holds no point.

    Returns:
        Path of the written file, or None if the cluster was empty
    """
    output_file = path / cluster.filename
    writer(cluster, output_file)

    if read_point_count(output_file) == 0:
        output_file.unlink()
        return None
    return output_file


def catalog_retile(
    catalog: Catalog,
    path: Union[str, Path],
    prefix: str = RETILE_PARAMS['prefix'],
    ext: str = RETILE_PARAMS['ext'],
    tiling_size: Optional[float] = RETILE_PARAMS['tiling_size'],
    buffer: float = RETILE_PARAMS['buffer'],
    by_file: bool = RETILE_PARAMS['by_file'],
    workers: int = RETILE_PARAMS['workers'],
    progress: bool = RETILE_PARAMS['progress'],
    align_to_grid: bool = RETILE_PARAMS['align_to_grid'],
    grid_offset: float = RETILE_PARAMS['grid_offset'],
    confirm: Optional[Callable[[List[Cluster]], bool]] = None,
    plot: Optional[Path] = None,
    writer: Writer = write_cluster,
    verbose: bool = True,
) -> Optional[Catalog]:
    """
    Write a retiled copy of a catalog to path.

    Args:
        catalog: Source catalog
        path: Output folder (created if needed, must not contain LAS/LAZ files)
        prefix: Prefix of the output file names
        ext: 'las' or 'laz'
        tiling_size: Edge length of the new tiles (ignored when by_file)
        buffer: Buffer around every new tile
        by_file: Keep the source tiling (useful to add or remove a buffer)
        workers: Number of parallel workers
        progress: Print a line per written tile
        align_to_grid: Snap the grid origin to a multiple of tiling_size
        grid_offset: Move the grid origin below/left of the catalog extent
        confirm: Called with the plan before anything is written; returning
            False aborts without side effects
        plot: Optional PNG path for a drawing of the plan
        writer: Cluster writer, writer(cluster, output_file) -> WriteReport
        verbose: Print section banners and a summary

    Returns:
        The new Catalog, or None if the user declined
    """
    path = Path(path)

    if verbose:
        print("=" * 60)
        print("Retiling catalog")
        print("=" * 60)
        print(f"  Source tiles: {len(catalog)}")
        print(f"  Output: {path}")
        if by_file:
            print(f"  Mode: by file, buffer {buffer}")
        else:
            print(f"  Mode: grid of {tiling_size} with buffer {buffer}")

    clusters = plan_clusters(
        catalog.index,
        tiling_size=tiling_size,
        buffer=buffer,
        by_file=by_file,
        prefix=prefix,
        ext=ext,
        align_to_grid=align_to_grid,
        grid_offset=grid_offset,
    )

    if verbose:
        empty = sum(1 for c in clusters if not c.tiles)
        print(f"  Planned tiles: {len(clusters)} ({empty} outside the catalog)")

    check_output_dir(path)

    if plot is not None:
        from trees_catalog.plot_catalog import plot_plan
        plot_plan(catalog, clusters, plot, label_units=len(clusters) <= 200)

    if confirm is not None and not confirm(clusters):
        print("  Retile cancelled")
        return None

    path.mkdir(parents=True, exist_ok=True)

    results = dispatch(
        clusters,
        lambda cluster: write_and_validate(cluster, path, writer),
        pool_size=workers,
        progress=print_progress if progress else None,
    )

    failed = failures(results)

    if verbose:
        counts = summarize(results)
        print()
        print(f"  Retiling complete: {counts['written']} written, {counts['empty']} empty, {counts['failed']} failed")
        for name in failed:
            print(f"  ✗ {name}: {results[name].message}")

    if clusters and len(failed) == len(clusters):
        raise RuntimeError(f"All {len(clusters)} tiles failed to write; first error: {results[failed[0]].message}")

    return Catalog.from_directory(path)


def summarize(results: Dict[str, object]) -> Dict[str, int]:
    """Count written, empty and failed clusters of a retile result mapping."""
    return {
        "written": sum(1 for v in results.values() if isinstance(v, Path)),
        "empty": sum(1 for v in results.values() if v is None),
        "failed": sum(1 for v in results.values() if isinstance(v, UnitFailure)),
    }


def ask_confirmation(clusters: List[Cluster]) -> bool:
    """Interactive yes/no prompt shown before writing."""
    answer = input(f"This will write up to {len(clusters)} tiles. Do you want to continue? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def main():
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Retile a catalog of LAS/LAZ tiles",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--catalog_dir", "-c", type=Path, required=True, help="Folder with the source tiles")
    parser.add_argument("--output_dir", "-o", type=Path, required=True, help="Folder for the new tiles")
    parser.add_argument("--tiling_size", type=float, default=RETILE_PARAMS['tiling_size'],
                        help=f"Size of the new tiles (default: {RETILE_PARAMS['tiling_size']})")
    parser.add_argument("--buffer", type=float, default=RETILE_PARAMS['buffer'],
                        help=f"Buffer around the new tiles (default: {RETILE_PARAMS['buffer']})")
    parser.add_argument("--by_file", action="store_true", help="One new tile per source file")
    parser.add_argument("--prefix", default=RETILE_PARAMS['prefix'], help="Prefix of the new file names")
    parser.add_argument("--ext", default=RETILE_PARAMS['ext'], help="Output format, las or laz")
    parser.add_argument("--workers", type=int, default=RETILE_PARAMS['workers'],
                        help=f"Number of parallel workers (default: {RETILE_PARAMS['workers']})")
    parser.add_argument("--plot", type=Path, help="Save a PNG of the planned tiles")
    parser.add_argument("--interactive", action="store_true", help="Ask before writing")
    args = parser.parse_args()

    try:
        catalog = Catalog.from_directory(args.catalog_dir, verbose=True)
        new_catalog = catalog_retile(
            catalog,
            args.output_dir,
            prefix=args.prefix,
            ext=args.ext,
            tiling_size=args.tiling_size,
            buffer=args.buffer,
            by_file=args.by_file,
            workers=args.workers,
            plot=args.plot,
            confirm=ask_confirmation if args.interactive else None,
        )
        if new_catalog is not None:
            print(f"\nNew catalog: {new_catalog}")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
