"""Shared fixtures: small synthetic LAS tiles written with laspy."""

from pathlib import Path

import laspy
import numpy as np
import pytest

from trees_catalog.tile_index import TileIndex, TileRecord

TILE_SIZE = 100.0
SPACING = 5.0


def _grid_points(x0, y0, size=TILE_SIZE, spacing=SPACING):
    """Regular grid of points at the centre of every spacing x spacing cell of a tile."""
    coords = np.arange(spacing / 2, size, spacing)
    gx, gy = np.meshgrid(x0 + coords, y0 + coords, indexing="ij")
    return gx.ravel(), gy.ravel()


def _write_las(path, x, y, z=None, classification=None):
    header = laspy.LasHeader(point_format=3, version="1.2")
    header.scales = np.array([0.01, 0.01, 0.01])
    header.offsets = np.array([0.0, 0.0, 0.0])
    las = laspy.LasData(header)
    las.x = x
    las.y = y
    las.z = (x + y) / 10.0 if z is None else z
    if classification is None:
        classification = np.where(np.arange(len(x)) % 2 == 0, 2, 1)
    las.classification = np.asarray(classification, dtype=np.uint8)
    las.write(str(path))
    return Path(path)


@pytest.fixture
def make_tile():
    """Factory writing one square tile of grid points with its lower-left corner at (x0, y0)."""

    def _make(path, x0=0.0, y0=0.0, size=TILE_SIZE, spacing=SPACING):
        x, y = _grid_points(x0, y0, size, spacing)
        return _write_las(path, x, y)

    return _make


@pytest.fixture
def write_points():
    """Factory writing arbitrary points to a LAS file."""
    return _write_las


@pytest.fixture
def grid_tiles(tmp_path, make_tile):
    """Folder holding a 2 x 2 block of 100 m tiles covering [0, 200] x [0, 200]."""
    tiles_dir = tmp_path / "tiles"
    tiles_dir.mkdir()
    for x0 in (0.0, 100.0):
        for y0 in (0.0, 100.0):
            make_tile(tiles_dir / f"tile_{int(x0)}_{int(y0)}.las", x0, y0)
    return tiles_dir


@pytest.fixture
def grid_xy():
    """All (x, y) points of the grid_tiles fixture as two flat arrays."""
    xs, ys = [], []
    for x0 in (0.0, 100.0):
        for y0 in (0.0, 100.0):
            x, y = _grid_points(x0, y0)
            xs.append(x)
            ys.append(y)
    return np.concatenate(xs), np.concatenate(ys)


@pytest.fixture
def block_index():
    """TileIndex of four 100 x 100 boxes covering [0, 200] x [0, 200], no files behind them."""
    records = [
        TileRecord(path=f"/data/tile_{x0}_{y0}.las", bbox=(x0, x0 + 100.0, y0, y0 + 100.0), point_count=10)
        for x0 in (0.0, 100.0)
        for y0 in (0.0, 100.0)
    ]
    return TileIndex(records)


@pytest.fixture
def edge_tiles(tmp_path):
    """
    Two tiles whose points lie on a 10 m lattice, edges included.

    a.las covers [0, 100] x [0, 100] (121 points, a full column on x=100),
    b.las covers [110, 200] x [0, 100] (110 points). A 10 m buffer around
    a.las ends exactly on the first column of b.las and the other way round.
    """
    tiles_dir = tmp_path / "edge_tiles"
    tiles_dir.mkdir()
    lattice = np.arange(0.0, 101.0, 10.0)
    for name, xs in (("a.las", lattice), ("b.las", lattice[1:] + 100.0)):
        gx, gy = np.meshgrid(xs, lattice, indexing="ij")
        _write_las(tiles_dir / name, gx.ravel(), gy.ravel())
    return tiles_dir
