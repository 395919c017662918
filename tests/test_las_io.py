"""
Tests for point-cloud reading and writing.
"""

import laspy
import numpy as np
import pytest

from trees_catalog.clusters import Cluster
from trees_catalog.geometry import Circle, Rectangle, SpatialFilter, parse_attribute_filter
from trees_catalog.las_io import (
    PointBatch,
    read_header_bounds,
    read_point_count,
    read_points,
    write_batch,
    write_cluster,
)


class TestReadPoints:
    """Tests for read_points."""

    def test_circle_across_tiles(self, grid_tiles, grid_xy):
        """A circle on the shared corner collects points from all four tiles."""
        x, y = grid_xy
        expected = int(np.sum((x - 100) ** 2 + (y - 100) ** 2 <= 12 ** 2))

        paths = sorted(grid_tiles.glob("*.las"))
        batch = read_points(paths, SpatialFilter(Circle(100, 100, 12)))

        assert len(batch) == expected
        assert np.all((batch.x - 100) ** 2 + (batch.y - 100) ** 2 <= 12 ** 2)

    def test_attribute_filter(self, grid_tiles):
        """Attribute clauses are applied together with the shape."""
        path = grid_tiles / "tile_0_0.las"
        shape = Rectangle(0, 100, 0, 100)
        everything = read_points([path], SpatialFilter(shape))
        ground = read_points([path], SpatialFilter(shape, (parse_attribute_filter("classification==2"),)))

        assert len(everything) == 400
        assert len(ground) == 200
        assert np.all(ground.attributes["classification"] == 2)

    def test_select_limits_attributes(self, grid_tiles):
        """Only selected dimensions are loaded besides the coordinates."""
        batch = read_points([grid_tiles / "tile_0_0.las"], SpatialFilter(Circle(50, 50, 10)), select=["classification"])
        assert list(batch.attributes) == ["classification"]
        assert len(batch.z) == len(batch)

    def test_no_match_returns_empty_batch(self, grid_tiles):
        """A filter that matches nothing gives an empty batch with a header template."""
        batch = read_points([grid_tiles / "tile_0_0.las"], SpatialFilter(Circle(500, 500, 1)))
        assert len(batch) == 0
        assert batch.header is not None

    def test_small_chunks(self, grid_tiles):
        """Chunked reading returns the same points as a single chunk."""
        path = grid_tiles / "tile_0_0.las"
        spatial_filter = SpatialFilter(Circle(50, 50, 30))
        whole = read_points([path], spatial_filter)
        chunked = read_points([path], spatial_filter, chunk_size=37)
        np.testing.assert_array_equal(whole.xyz[whole.canonical_order()], chunked.xyz[chunked.canonical_order()])


class TestWriting:
    """Tests for writing batches and clusters."""

    def test_buffer_written_as_extra_dimension(self, tmp_path):
        """Buffer codes are stored in a 'buffer' extra dimension."""
        batch = PointBatch(
            x=np.array([1.0, 2.0, 3.0]),
            y=np.array([4.0, 5.0, 6.0]),
            z=np.array([7.0, 8.0, 9.0]),
        ).with_buffer(np.array([0, 1, 3]))

        report = write_batch(batch, tmp_path / "roi.las")

        assert report.point_count == 3
        las = laspy.read(str(report.path))
        np.testing.assert_allclose(las.x, [1.0, 2.0, 3.0])
        assert las["buffer"].tolist() == [0, 1, 3]

    def test_attributes_round_trip(self, grid_tiles, tmp_path):
        """Standard dimensions of the source survive a read and write."""
        batch = read_points([grid_tiles / "tile_0_0.las"], SpatialFilter(Circle(50, 50, 10)))
        report = write_batch(batch, tmp_path / "out.las")

        las = laspy.read(str(report.path))
        assert len(las.points) == len(batch)
        assert sorted(np.asarray(las.classification).tolist()) == sorted(batch.attributes["classification"].tolist())

    def test_buffer_code_length_checked(self):
        """Buffer codes must match the number of points."""
        batch = PointBatch(np.zeros(2), np.zeros(2), np.zeros(2))
        with pytest.raises(ValueError):
            batch.with_buffer(np.zeros(3))

    def test_empty_batch_writes_valid_file(self, tmp_path):
        """An empty batch still gives a readable file with zero points."""
        path = write_batch(PointBatch.empty(), tmp_path / "empty.las").path
        assert read_point_count(path) == 0

    def test_write_cluster_without_tiles(self, tmp_path):
        """A cluster with no source tile writes an empty file."""
        cluster = Cluster("00001", Rectangle(0, 1, 0, 1))
        report = write_cluster(cluster, tmp_path / cluster.filename)
        assert report.point_count == 0
        assert read_point_count(report.path) == 0

    def test_write_cluster_keeps_window_points(self, grid_tiles, tmp_path):
        """A cluster writes the points of its buffered window."""
        from trees_catalog.catalog import Catalog

        catalog = Catalog.from_directory(grid_tiles, use_index_file=False)
        window = Rectangle(90, 110, 90, 110)
        cluster = Cluster("00001", window, tiles=catalog.index.intersecting(window))

        report = write_cluster(cluster, tmp_path / cluster.filename)

        # 5 m grid offset by 2.5: 92.5, 97.5, 102.5, 107.5 on each axis
        assert report.point_count == 16
        assert read_point_count(report.path) == 16


class TestHeaders:
    """Tests for header-only helpers."""

    def test_header_bounds(self, grid_tiles):
        """Bounds come from the header without loading points."""
        bounds, count, header = read_header_bounds(grid_tiles / "tile_100_0.las")
        assert bounds == pytest.approx((102.5, 197.5, 2.5, 97.5))
        assert count == 400
        assert header.point_format.id == 3
