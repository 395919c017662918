#!/usr/bin/env python3
"""
Main orchestrator script for the catalog tools.

Routes to appropriate task modules based on --task parameter:
- index: scan a folder of LAS/LAZ tiles and (re)build its sidecar index
- query: extract circular or rectangular ROIs from a catalog
- retile: write the catalog as a new set of tiles (grid or by file, with buffer)

Usage:
    python run.py --task index --catalog_dir /path/to/tiles
    python run.py --task query --catalog_dir /path/to/tiles --rois plots.csv --output_dir /path/to/rois
    python run.py --task retile --catalog_dir /path/to/tiles --output_dir /path/to/new --tiling_size 250
"""

import argparse
import sys
from pathlib import Path

from parameters import load_params, print_params


def _open_catalog(args, catalog_params):
    from trees_catalog.catalog import Catalog

    if not args.catalog_dir:
        print("Error: --catalog_dir is required")
        sys.exit(1)

    catalog_dir = Path(args.catalog_dir)
    if not catalog_dir.exists():
        print(f"Error: Catalog directory does not exist: {catalog_dir}")
        sys.exit(1)

    return Catalog.from_directory(
        catalog_dir,
        use_index_file=catalog_params['use_index_file'],
        rebuild=catalog_params['rebuild_index'],
        index_filename=catalog_params['index_filename'],
        verbose=True,
    )


def run_index_task(args, params):
    """
    Run the index task: read every tile header and write the sidecar index.

    Useful before the first query on a large folder, or after tiles were
    replaced in place.
    """
    from trees_catalog.catalog import describe

    print("=" * 60)
    print("Running Index Task")
    print("=" * 60)

    try:
        catalog = _open_catalog(args, params)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)

    print()
    print(describe(catalog))


def run_query_task(args, params, catalog_params):
    """
    Run the query task: extract every ROI listed in a CSV file.

    Pipeline:
    1. Open the catalog (sidecar index reused when up to date)
    2. Read ROI centres from the CSV
    3. Extract all ROIs in parallel (via main_query.py)
    4. Write one file per ROI
    """
    from main_query import catalog_queries, read_roi_csv, write_batches
    from trees_catalog.geometry import parse_attribute_filter

    if not args.rois:
        print("Error: --rois is required for query task")
        sys.exit(1)
    if not args.output_dir:
        print("Error: --output_dir is required for query task")
        sys.exit(1)

    rois_path = Path(args.rois)
    if not rois_path.exists():
        print(f"Error: ROI file does not exist: {rois_path}")
        sys.exit(1)

    print("=" * 60)
    print("Running Query Task")
    print("=" * 60)
    print(f"ROI file: {rois_path}")
    print(f"Output directory: {args.output_dir}")
    print(f"Default radius: {params['radius']}")
    print(f"Buffer: {params['buffer']}")
    print(f"Workers: {params['workers']}")
    print()

    try:
        catalog = _open_catalog(args, catalog_params)
        rois = read_roi_csv(rois_path, params['radius'])
        r2 = rois["r2"] or (rois["r"] if args.square else None)
        results = catalog_queries(
            catalog,
            rois["x"],
            rois["y"],
            rois["r"],
            r2=r2,
            buffer=rois["buffer"] or params['buffer'],
            roinames=rois["names"],
            attribute_filters=[parse_attribute_filter(f) for f in args.filter],
            workers=params['workers'],
            progress=params['progress'],
        )
        written = write_batches(results, Path(args.output_dir), params['ext'])

        print()
        print("=" * 60)
        print("Query Task Complete")
        print("=" * 60)
        print(f"ROIs written: {len(written)}")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


def run_retile_task(args, params, catalog_params):
    """
    Run the retile task.

    Pipeline:
    1. Open the catalog
    2. Plan the new tiles and refuse an occupied output folder
    3. Write the new tiles in parallel, dropping empty ones (via main_retile.py)
    """
    from main_retile import ask_confirmation, catalog_retile

    if not args.output_dir:
        print("Error: --output_dir is required for retile task")
        sys.exit(1)

    print("=" * 60)
    print("Running Retile Task")
    print("=" * 60)
    print(f"Output directory: {args.output_dir}")
    if params['by_file']:
        print("Layout: one tile per source file")
    else:
        print(f"Tiling size: {params['tiling_size']}")
    print(f"Buffer: {params['buffer']}")
    print(f"Workers: {params['workers']}")
    print()

    try:
        catalog = _open_catalog(args, catalog_params)
        new_catalog = catalog_retile(
            catalog,
            Path(args.output_dir),
            prefix=params['prefix'],
            ext=params['ext'],
            tiling_size=params['tiling_size'],
            buffer=params['buffer'],
            by_file=params['by_file'],
            workers=params['workers'],
            progress=params['progress'],
            align_to_grid=params['align_to_grid'],
            grid_offset=params['grid_offset'],
            plot=Path(args.plot) if args.plot else None,
            confirm=ask_confirmation if args.interactive else None,
        )
        if new_catalog is None:
            return

        print()
        print("=" * 60)
        print("Retile Task Complete")
        print("=" * 60)
        print(f"New catalog: {new_catalog}")
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(
        description="Catalog tools: index, ROI query and retile of LAS/LAZ tile folders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Build the sidecar index of a folder
  python run.py --task index --catalog_dir /path/to/tiles

  # Extract 15 m plots listed in a CSV (columns x,y[,r][,r2][,buffer][,name])
  python run.py --task query --catalog_dir /path/to/tiles --rois plots.csv --output_dir /path/to/rois

  # Square plots with a 5 m buffer, ground points removed
  python run.py --task query --catalog_dir /path/to/tiles --rois plots.csv --output_dir /path/to/rois \\
    --square --buffer 5 --filter "classification!=2"

  # Retile into 250 m tiles with a 10 m buffer
  python run.py --task retile --catalog_dir /path/to/tiles --output_dir /path/to/new \\
    --tiling_size 250 --buffer 10

  # Add a buffer to the existing tiling
  python run.py --task retile --catalog_dir /path/to/tiles --output_dir /path/to/new --by_file --buffer 20

  # Retile with config file and parameter overrides
  python run.py --task retile --catalog_dir /path/to/tiles --output_dir /path/to/new \\
    --config my_params.py --param RETILE.ext=laz

  # View current parameters
  python run.py --show-params
        """
    )

    # Parameter configuration
    parser.add_argument(
        "--config",
        type=Path,
        help="Custom config file (Python file with QUERY_PARAMS, RETILE_PARAMS, CATALOG_PARAMS)"
    )

    parser.add_argument(
        "--param",
        action="append",
        default=[],
        help="Parameter override, e.g. --param tiling_size=250 or --param QUERY.buffer=5 (repeatable)"
    )

    parser.add_argument(
        "--show-params",
        action="store_true",
        help="Show current parameter configuration and exit"
    )

    parser.add_argument(
        "--task",
        type=str,
        choices=["index", "query", "retile"],
        help="Task to run: index, query (ROI extraction) or retile"
    )

    # Shared arguments
    parser.add_argument("--catalog_dir", type=str, help="Folder with the LAS/LAZ tiles")
    parser.add_argument("--output_dir", type=str, help="Output folder (query and retile)")
    parser.add_argument("--workers", type=int, help="Number of parallel workers (default: 4)")
    parser.add_argument("--buffer", type=float, help="Buffer around every ROI or new tile (default: 0)")
    parser.add_argument("--ext", type=str, help="Output format, las or laz (default: las)")
    parser.add_argument("--rebuild_index", action="store_true", help="Re-read every tile header")

    # Query arguments
    parser.add_argument("--rois", type=str, help="CSV with ROI centres (required for query)")
    parser.add_argument("--radius", type=float, help="Radius when the CSV has no r column (default: 15)")
    parser.add_argument("--square", action="store_true", help="Extract squares of half width r instead of discs")
    parser.add_argument("--filter", action="append", default=[], help="Attribute filter, e.g. 'Z>=0' (repeatable)")

    # Retile arguments
    parser.add_argument("--tiling_size", type=float, help="Edge length of the new tiles (default: 500)")
    parser.add_argument("--by_file", action="store_true", help="One new tile per source file")
    parser.add_argument("--prefix", type=str, help="Prefix of the new file names")
    parser.add_argument("--align_to_grid", action="store_true", help="Snap the grid origin to a multiple of tiling_size")
    parser.add_argument("--grid_offset", type=float, help="Move the grid origin below/left of the extent (default: 0)")
    parser.add_argument("--plot", type=str, help="Save a PNG of the planned tiles")
    parser.add_argument("--interactive", action="store_true", help="Ask before writing")

    args = parser.parse_args()

    # Build parameter overrides from CLI arguments
    param_overrides = list(args.param)

    if args.workers is not None:
        param_overrides.append(f"QUERY.workers={args.workers}")
        param_overrides.append(f"RETILE.workers={args.workers}")
    if args.buffer is not None:
        param_overrides.append(f"QUERY.buffer={args.buffer}")
        param_overrides.append(f"RETILE.buffer={args.buffer}")
    if args.ext is not None:
        param_overrides.append(f"QUERY.ext={args.ext}")
        param_overrides.append(f"RETILE.ext={args.ext}")
    if args.radius is not None:
        param_overrides.append(f"radius={args.radius}")
    if args.tiling_size is not None:
        param_overrides.append(f"tiling_size={args.tiling_size}")
    if args.by_file:
        param_overrides.append("by_file=True")
    if args.align_to_grid:
        param_overrides.append("align_to_grid=True")
    if args.grid_offset is not None:
        param_overrides.append(f"grid_offset={args.grid_offset}")
    if args.rebuild_index:
        param_overrides.append("rebuild_index=True")

    # Load parameters with overrides
    try:
        params = load_params(
            config_file=args.config,
            param_overrides=param_overrides if param_overrides else None,
            use_env=True
        )
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    # Prefixes such as "007" must stay strings
    if args.prefix is not None:
        params['RETILE_PARAMS']['prefix'] = args.prefix

    # Extract specific parameter sets
    QUERY_PARAMS = params['QUERY_PARAMS']
    RETILE_PARAMS = params['RETILE_PARAMS']
    CATALOG_PARAMS = params['CATALOG_PARAMS']

    # Show parameters if requested
    if args.show_params:
        print_params(params)
        sys.exit(0)

    # Task is required if not showing params
    if not args.task:
        parser.error("--task is required (unless using --show-params)")

    # Show parameter summary if config or CLI overrides were provided
    if args.config or param_overrides:
        print()
        print_params(params)
        print()

    # Route to appropriate task function
    if args.task == "index":
        run_index_task(args, CATALOG_PARAMS)
    elif args.task == "query":
        run_query_task(args, QUERY_PARAMS, CATALOG_PARAMS)
    elif args.task == "retile":
        run_retile_task(args, RETILE_PARAMS, CATALOG_PARAMS)
    else:
        print(f"Error: Unknown task: {args.task}")
        sys.exit(1)


if __name__ == "__main__":
    main()
