"""Spatial indexing, ROI extraction and retiling for catalogs of LAS/LAZ tiles."""

from .buffer_zones import BufferZone, classify_buffer
from .catalog import Catalog
from .clusters import Cluster, plan_clusters
from .dispatcher import UnitFailure, WorkerPool, dispatch, failures
from .errors import CatalogError, CatalogIndexError, ConflictError, ValidationError
from .geometry import AttributeFilter, Circle, Rectangle, SpatialFilter, parse_attribute_filter
from .las_io import PointBatch, WriteReport, read_points, write_cluster
from .planner import WorkUnit, plan_queries
from .tile_index import TileIndex, TileRecord

__version__ = "0.1.0"
