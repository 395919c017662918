"""
Exception types raised by the catalog tools.

Pre-flight problems (bad input, an occupied output folder, a broken
catalog) raise immediately, before any work is scheduled. Failures inside
a single work unit are never raised out of a batch; they are recorded as
UnitFailure entries in the result mapping (see dispatcher.py).
"""


class CatalogError(Exception):
    """Base class for all catalog errors."""


class ValidationError(CatalogError, ValueError):
    """Malformed user input: mismatched lengths, negative buffers, bad geometry."""


class ConflictError(CatalogError):
    """The output folder already contains point-cloud files."""


class CatalogIndexError(CatalogError, IndexError):
    """The tile index is malformed (duplicate paths or degenerate bounding boxes)."""
