"""
Tests for ROI validation and planning.
"""

import numpy as np
import pytest

from trees_catalog.errors import ValidationError
from trees_catalog.geometry import Circle, Rectangle
from trees_catalog.planner import WorkUnit, plan_queries, validate_queries


class TestValidateQueries:
    """Tests for validate_queries."""

    def test_scalar_broadcast(self):
        """Scalar radius and buffer are repeated for every ROI."""
        x, y, r, r2, buffer, names = validate_queries([1, 2, 3], [4, 5, 6], 10, buffer=2)
        assert r.tolist() == [10, 10, 10]
        assert buffer.tolist() == [2, 2, 2]
        assert r2 is None
        assert names == ["ROI1", "ROI2", "ROI3"]

    def test_xy_length_mismatch(self):
        """x and y of different lengths are rejected."""
        with pytest.raises(ValidationError, match="x is not same length as y"):
            validate_queries([1, 2], [1], 10)

    def test_radius_length_mismatch(self):
        """A radius vector of the wrong length is rejected."""
        with pytest.raises(ValidationError, match="r"):
            validate_queries([1, 2, 3], [1, 2, 3], [10, 20])

    @pytest.mark.parametrize("r", [0, -1, float("nan")])
    def test_non_positive_radius(self, r):
        """Radius must be positive and finite."""
        with pytest.raises(ValidationError, match="Radius"):
            validate_queries([1], [1], r)

    def test_non_positive_r2(self):
        """Second radius must be positive."""
        with pytest.raises(ValidationError, match="Second radius"):
            validate_queries([1], [1], 5, r2=0)

    def test_negative_buffer(self):
        """Negative buffers are rejected."""
        with pytest.raises(ValidationError, match="Buffer"):
            validate_queries([1], [1], 5, buffer=-1)

    def test_non_finite_coordinates(self):
        """NaN centres are rejected."""
        with pytest.raises(ValidationError, match="finite"):
            validate_queries([1, float("nan")], [1, 2], 5)

    def test_empty_query(self):
        """At least one ROI is required."""
        with pytest.raises(ValidationError):
            validate_queries([], [], 5)

    def test_duplicate_names(self):
        """ROI names are result keys and must be unique."""
        with pytest.raises(ValidationError, match="unique"):
            validate_queries([1, 2], [1, 2], 5, roinames=["a", "a"])

    def test_names_length(self):
        """One name per ROI is required."""
        with pytest.raises(ValidationError, match="roinames"):
            validate_queries([1, 2], [1, 2], 5, roinames=["a"])

    def test_validation_error_is_value_error(self):
        """ValidationError can be caught as ValueError."""
        with pytest.raises(ValueError):
            validate_queries([1, 2], [1], 10)


class TestPlanQueries:
    """Tests for plan_queries."""

    def test_circles_with_buffer(self, block_index):
        """The unit geometry is the ROI grown by its buffer."""
        units = plan_queries(block_index, [50], [50], 10, buffer=2)
        assert len(units) == 1
        unit = units[0]
        assert unit.name == "ROI1"
        assert unit.geometry == Circle(50.0, 50.0, 12.0)
        assert unit.buffer == 2.0
        assert [t.name for t in unit.tiles] == ["tile_0.0_0.0.las"]

    def test_rectangles_when_r2_given(self, block_index):
        """r2 switches to rectangles with half width r and half height r2."""
        units = plan_queries(block_index, [50], [50], 10, r2=5)
        assert units[0].geometry == Rectangle.centred(50.0, 50.0, 10.0, 5.0)

    def test_buffer_pulls_in_neighbour_tiles(self, block_index):
        """A ROI inside one tile reaches a neighbour through its buffer."""
        without = plan_queries(block_index, [95], [50], 4)
        with_buffer = plan_queries(block_index, [95], [50], 4, buffer=2)
        assert len(without[0].tiles) == 1
        assert len(with_buffer[0].tiles) == 2

    def test_roi_touching_catalog_edge_kept(self, block_index):
        """A disc whose rim lies on the catalog edge can hold points there and is planned."""
        units = plan_queries(block_index, [-10], [50], 10)
        assert [t.name for t in units[0].tiles] == ["tile_0.0_0.0.las"]

    def test_outside_rois_dropped_in_order(self, block_index, capsys):
        """ROIs that touch no tile are skipped, the rest keep their order."""
        units = plan_queries(
            block_index,
            [150, 1000, 50],
            [150, 1000, 50],
            5,
            roinames=["b", "far", "a"],
            verbose=True,
        )
        assert [u.name for u in units] == ["b", "a"]
        assert "far" in capsys.readouterr().out

    def test_per_roi_values(self, block_index):
        """Vectors of radius and buffer are applied per ROI."""
        units = plan_queries(block_index, [50, 150], [50, 150], [5, 6], buffer=[0, 1])
        assert [u.geometry.r for u in units] == [5.0, 7.0]
        assert [u.buffer for u in units] == [0.0, 1.0]

    def test_extra_passed_through(self, block_index):
        """Worker options are attached to every unit."""
        units = plan_queries(block_index, [50, 150], [50, 150], 5, extra={"select": ["intensity"]})
        assert all(u.extra["select"] == ["intensity"] for u in units)

    def test_numpy_inputs(self, block_index):
        """numpy arrays are accepted as well as lists."""
        units = plan_queries(block_index, np.array([50.0]), np.array([50.0]), np.array([5.0]))
        assert len(units) == 1


class TestWorkUnit:
    """Tests for WorkUnit."""

    def test_negative_buffer(self):
        """A unit cannot carry a negative buffer."""
        with pytest.raises(ValidationError):
            WorkUnit("a", Circle(0, 0, 1), buffer=-1)

    def test_missing_tiles(self):
        """A unit needs a tile list, possibly empty."""
        with pytest.raises(ValidationError):
            WorkUnit("a", Circle(0, 0, 1), tiles=None)

    def test_paths(self, block_index):
        """paths lists the tile files of the unit."""
        unit = WorkUnit("a", Circle(0, 0, 1), tiles=block_index.records[:2])
        assert unit.paths == ["/data/tile_0.0_0.0.las", "/data/tile_0.0_100.0.las"]
