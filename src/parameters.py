"""
Centralized parameter configuration for the catalog query and retile tools.

All default parameters are defined here and can be overridden via:
1. Custom config file: python run.py --config my_config.py
2. CLI arguments: python run.py --param tiling_size=250 --param workers=8
3. Environment variables: RETILE_TILING_SIZE=250 python run.py ...

Parameters are loaded with load_params() and passed explicitly into every
call; nothing below is read as global state by the library code.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional


# Default ROI query parameters
QUERY_PARAMS = {
    'radius': 15.0,               # ROI radius (or half width) in catalog units
    'buffer': 0.0,                # Buffer added around every ROI
    'workers': 4,                 # Number of parallel workers
    'ext': 'las',                 # Format of the written ROI files
    'progress': True,             # Print a line per completed ROI
}

# Default retile parameters
RETILE_PARAMS = {
    'tiling_size': 500.0,         # Edge length of the new tiles
    'buffer': 0.0,                # Buffer added around every new tile
    'by_file': False,             # One output tile per input file instead of a grid
    'prefix': '',                 # Prefix of the written file names
    'ext': 'las',                 # Output format (las or laz)
    'workers': 4,                 # Number of parallel workers
    'align_to_grid': False,       # Snap the grid origin to a multiple of tiling_size
    'grid_offset': 0.0,           # Move the grid origin below/left of the extent
    'progress': True,             # Print a line per completed tile
}

# Default catalog parameters
CATALOG_PARAMS = {
    'use_index_file': True,       # Cache tile extents in a sidecar file
    'index_filename': '.catalog_index.json',
    'rebuild_index': False,       # Re-read every header even if cached
}

CATEGORIES = ['QUERY_PARAMS', 'RETILE_PARAMS', 'CATALOG_PARAMS']
ENV_PREFIXES = {'QUERY_': 'QUERY_PARAMS', 'RETILE_': 'RETILE_PARAMS', 'CATALOG_': 'CATALOG_PARAMS'}


def load_params_from_file(config_file: Path) -> Dict[str, Dict[str, Any]]:
    """
    Load parameters from a custom Python config file.

    The config file should define QUERY_PARAMS, RETILE_PARAMS and/or CATALOG_PARAMS.

    Args:
        config_file: Path to Python config file

    Returns:
        Dictionary keyed by category name
    """
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found: {config_file}")

    # Load the config file as a module
    import importlib.util
    spec = importlib.util.spec_from_file_location("config", config_file)
    config_module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(config_module)

    params = {}
    for category in CATEGORIES:
        if hasattr(config_module, category):
            params[category] = getattr(config_module, category)

    return params


def load_params_from_env(environ: Optional[Dict[str, str]] = None) -> Dict[str, Dict[str, Any]]:
    """
    Load parameter overrides from environment variables.

    Environment variables should be prefixed with QUERY_, RETILE_ or CATALOG_:
    - QUERY_BUFFER=5
    - RETILE_TILING_SIZE=250
    - CATALOG_USE_INDEX_FILE=false

    Returns:
        Dictionary with parameter overrides
    """
    environ = os.environ if environ is None else environ
    params = {category: {} for category in CATEGORIES}

    for key, value in environ.items():
        for prefix, category in ENV_PREFIXES.items():
            if key.startswith(prefix):
                params[category][key[len(prefix):].lower()] = _parse_value(value)
                break

    return params


def parse_param_override(param_str: str) -> tuple[str, str, Any]:
    """
    Parse a parameter override string.

    Format: "category.param=value" or "param=value"
    Examples:
    - "tiling_size=250"
    - "RETILE.buffer=10"
    - "QUERY.workers=8"

    Args:
        param_str: Parameter override string

    Returns:
        Tuple of (category, param_name, value)
    """
    if '=' not in param_str:
        raise ValueError(f"Invalid parameter format: {param_str}. Expected format: param=value")

    key, value = param_str.split('=', 1)

    # Check if category is specified
    if '.' in key:
        category, param_name = key.split('.', 1)
        category = category.upper()
        if not category.endswith('_PARAMS'):
            category = f"{category}_PARAMS"
    else:
        # Try to infer category from parameter name
        param_name = key
        category = _infer_category(param_name)

    return category, param_name, _parse_value(value)


def _infer_category(param_name: str) -> str:
    """Infer parameter category from parameter name (shared names go to RETILE_PARAMS)."""
    if param_name in CATALOG_PARAMS:
        return 'CATALOG_PARAMS'
    if param_name in QUERY_PARAMS and param_name not in RETILE_PARAMS:
        return 'QUERY_PARAMS'
    return 'RETILE_PARAMS'


def _parse_value(value_str: str) -> Any:
    """Parse string value to appropriate Python type."""
    # Try boolean
    if value_str.lower() in ('true', 'yes'):
        return True
    if value_str.lower() in ('false', 'no'):
        return False

    # Try int
    try:
        return int(value_str)
    except ValueError:
        pass

    # Try float
    try:
        return float(value_str)
    except ValueError:
        pass

    # Return as string
    return value_str


def load_params(
    config_file: Optional[Path] = None,
    param_overrides: Optional[list[str]] = None,
    use_env: bool = True
) -> Dict[str, Dict[str, Any]]:
    """
    Load parameters with priority: CLI overrides > config file > env vars > defaults.

    Args:
        config_file: Optional path to custom config file
        param_overrides: List of parameter override strings (e.g., ["tiling_size=250"])
        use_env: Whether to load from environment variables

    Returns:
        Dictionary with QUERY_PARAMS, RETILE_PARAMS, CATALOG_PARAMS
    """
    # Start with defaults
    params = {
        'QUERY_PARAMS': QUERY_PARAMS.copy(),
        'RETILE_PARAMS': RETILE_PARAMS.copy(),
        'CATALOG_PARAMS': CATALOG_PARAMS.copy(),
    }

    # Apply environment variables
    if use_env:
        env_params = load_params_from_env()
        for category in CATEGORIES:
            params[category].update(env_params[category])

    # Apply config file
    if config_file:
        file_params = load_params_from_file(config_file)
        for category, values in file_params.items():
            params[category].update(values)

    # Apply CLI overrides (highest priority)
    if param_overrides:
        for override in param_overrides:
            category, param_name, value = parse_param_override(override)
            if category in params:
                params[category][param_name] = value

    return params


def print_params(params: Dict[str, Dict[str, Any]]):
    """Print current parameter configuration."""
    print("=" * 60)
    print("Current Parameters")
    print("=" * 60)

    for category in CATEGORIES:
        if category in params:
            print(f"\n{category}:")
            for key, value in sorted(params[category].items()):
                print(f"  {key}: {value}")

    print("=" * 60)


if __name__ == "__main__":
    """CLI for viewing/testing parameter configuration."""
    import argparse

    parser = argparse.ArgumentParser(description="View/test parameter configuration")
    parser.add_argument("--config", type=Path, help="Custom config file")
    parser.add_argument("--param", action="append", help="Parameter override (param=value)")
    parser.add_argument("--no-env", action="store_true", help="Ignore environment variables")

    args = parser.parse_args()

    params = load_params(
        config_file=args.config,
        param_overrides=args.param,
        use_env=not args.no_env
    )

    print_params(params)
