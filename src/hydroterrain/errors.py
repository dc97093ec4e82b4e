"""
Exception types raised by the hydroterrain pipeline.

Failures fall into three groups:

- acquisition: a source or service is unreachable, or an expected file is missing
- geometry: an empty selection, an empty intersection or an invalid geometry
- consistency: CRS, extent or grid dimensions disagree between layers

Errors raised by an external renderer are not wrapped.
"""


class HydroTerrainError(Exception):
    """Base class for every pipeline error."""


# =============================================================================
# Acquisition
# =============================================================================


class AcquisitionFailure(HydroTerrainError):
    """A remote source or local file could not be obtained."""


class DataUnavailable(AcquisitionFailure):
    """Administrative boundary source failed or returned nothing."""


class SourceMissing(AcquisitionFailure, FileNotFoundError):
    """Dataset is absent locally and no fetch URL is configured."""


class AcquisitionError(AcquisitionFailure):
    """Elevation service request failed."""


# =============================================================================
# Geometry
# =============================================================================


class GeometryFailure(HydroTerrainError, ValueError):
    """A geometric operation produced an unusable result."""


class EmptySelection(GeometryFailure):
    """No administrative feature matched the region filter."""


class EmptyIntersection(GeometryFailure):
    """No river feature survived clipping to the boundary."""


class InvalidGeometry(GeometryFailure):
    """Geometry is empty, non-polygonal or could not be repaired."""


# =============================================================================
# Consistency
# =============================================================================


class ConsistencyFailure(HydroTerrainError, ValueError):
    """Layers disagree on CRS, extent or grid dimensions."""


class GridMismatch(ConsistencyFailure):
    """Grid dimensions or extents differ between layers."""


class CRSMismatch(ConsistencyFailure):
    """Layers are not in the same coordinate reference system."""


class ReprojectionError(ConsistencyFailure):
    """CRS transform is undefined over the raster extent."""
