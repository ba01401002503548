from .encoding import (
    HEADER_SIZE,
    GridHeader,
    GridLoader,
    delta_decode,
    delta_encode,
    from_bytes,
    to_bytes,
)
from .features import Feature, FeatureCollection, NonNumeric, Numeric, classify
from .grid import GridConfig, PixelBBox, build_grids

__all__ = [
    "HEADER_SIZE",
    "Feature",
    "FeatureCollection",
    "GridConfig",
    "GridHeader",
    "GridLoader",
    "NonNumeric",
    "Numeric",
    "PixelBBox",
    "build_grids",
    "classify",
    "delta_decode",
    "delta_encode",
    "from_bytes",
    "to_bytes",
]
