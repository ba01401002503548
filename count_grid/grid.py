from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np
from shapely.geometry import Point, Polygon
from tqdm import tqdm

from .encoding import pack_grid
from .features import Feature, FeatureCollection
from .helpers import (
    TILE_SIZE,
    lat_to_pixel,
    lon_to_pixel,
    pixel_bounds,
    pixels_in_polygon,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CONFIG
# ---------------------------------------------------------------------------

@dataclass
class GridConfig:
    tile_size: int = TILE_SIZE
    seed: Optional[int] = None
    show_progress: bool = False


@dataclass(frozen=True)
class PixelBBox:
    west: int
    north: int
    width: int
    height: int

    @property
    def east(self) -> int:
        return self.west + self.width

    @property
    def south(self) -> int:
        return self.north + self.height

    @property
    def size(self) -> int:
        return self.width * self.height

    def index(self, x, y):
        return (y - self.north) * self.width + (x - self.west)

    @classmethod
    def from_features(cls, geoms, zoom: int, tile_size: int = TILE_SIZE) -> "PixelBBox":
        # east/south are exclusive edges, so the pixels holding the east and
        # south extremes are part of the grid
        west, south, east, north = pixel_bounds(geoms, zoom, tile_size)
        return cls(west=west, north=north, width=east + 1 - west, height=south + 1 - north)


# ---------------------------------------------------------------------------
# ROUNDING
# ---------------------------------------------------------------------------

def round_half_away(value: float) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    mag = abs(value)
    whole = math.floor(mag)
    if mag - whole >= 0.5:
        whole += 1
    return -whole if value < 0 else whole


# ---------------------------------------------------------------------------
# PIXEL ATTRIBUTION
# ---------------------------------------------------------------------------

def feature_pixels(
    feat: Feature, bbox: PixelBBox, zoom: int, tile_size: int = TILE_SIZE
) -> Optional[np.ndarray]:
    """
    Linear grid indices covered by a feature, or None for unsupported
    geometry. Never empty for Point and Polygon.
    """
    g = feat.geometry

    if isinstance(g, Point):
        x = lon_to_pixel(g.x, zoom, tile_size)
        y = lat_to_pixel(g.y, zoom, tile_size)
        return np.array([bbox.index(x, y)], dtype=np.int64)

    if isinstance(g, Polygon):
        fwest, fsouth, feast, fnorth = pixel_bounds(g, zoom, tile_size)

        xs, ys = np.meshgrid(
            np.arange(fwest, feast + 1, dtype=np.int64),
            np.arange(fnorth, fsouth + 1, dtype=np.int64),
        )
        xs = xs.ravel()
        ys = ys.ravel()
        inside = pixels_in_polygon(g, xs, ys, zoom, tile_size)
        pixels = bbox.index(xs[inside], ys[inside])

        if pixels.size == 0:
            # polygon smaller than a pixel: use its northwest pixel
            logger.debug("Polygon covers no pixel corner, falling back to pixel (%d, %d)", fwest, fnorth)
            pixels = np.array([bbox.index(fwest, fnorth)], dtype=np.int64)
        return pixels

    logger.warning("Skipping feature with unsupported geometry type %s", g.geom_type)
    return None


# ---------------------------------------------------------------------------
# VALUE DISTRIBUTION
# ---------------------------------------------------------------------------

def distribute(cells: np.ndarray, pixels: np.ndarray, val: int, rng: np.random.Generator):
    """
    Add integer `val` across `pixels` of `cells` so the total grows by
    exactly `val`: an equal share to each pixel, then the remainder as unit
    steps on pixels drawn uniformly with replacement.
    """
    n = pixels.size
    share = abs(val) // n
    if val < 0:
        share = -share

    np.add.at(cells, pixels, share)

    remainder = val - share * n
    if remainder:
        picks = pixels[rng.integers(0, n, size=abs(remainder))]
        np.add.at(cells, picks, 1 if remainder > 0 else -1)


# ---------------------------------------------------------------------------
# PUBLIC API
# ---------------------------------------------------------------------------

def _as_collection(data) -> FeatureCollection:
    if isinstance(data, FeatureCollection):
        return data
    if isinstance(data, Mapping):
        return FeatureCollection.from_geojson(data)
    if hasattr(data, "geometry") and hasattr(data, "to_crs"):
        return FeatureCollection.from_geodataframe(data)
    raise TypeError(f"Cannot build grids from {type(data).__name__}")


def build_grids(
    data,
    zoom: int,
    rng: Optional[np.random.Generator] = None,
    config: Optional[GridConfig] = None,
) -> Dict[str, np.ndarray]:
    """
    Rasterize point/polygon counts onto the tile pixel grid at `zoom`.

    Returns a map from attribute name to an int32 buffer:
      [zoom, west, north, width, height, delta-coded cells (row-major)...]

    width and height include the pixels holding the east and south extremes
    of the data, so a single point yields a 1x1 grid.

    The attributes are the numeric properties of the first feature with
    properties, whether or not it has geometry. Features lacking geometry or
    properties are left out of the extent and contribute nothing. Each
    feature's rounded value is split over the pixels it covers so that grid
    totals match input totals exactly.
    """
    if isinstance(zoom, bool) or not isinstance(zoom, (int, np.integer)) or zoom < 0:
        raise ValueError(f"zoom must be a non-negative integer, got {zoom!r}")
    zoom = int(zoom)

    cfg = config or GridConfig()
    if rng is None:
        rng = np.random.default_rng(cfg.seed)

    source = _as_collection(data)
    keys: List[str] = source.schema()
    collection = source.valid()
    if not len(collection):
        logger.info("No features with geometry and properties, nothing to grid")
        return {}

    bbox = PixelBBox.from_features([f.geometry for f in collection], zoom, cfg.tile_size)
    logger.info(
        "n %d e %d s %d w %d width %d height %d",
        bbox.north, bbox.east, bbox.south, bbox.west, bbox.width, bbox.height,
    )

    cells = {key: np.zeros(bbox.size, dtype=np.int64) for key in keys}
    ignored = set()

    for feat in tqdm(collection, desc="Rasterizing features", disable=not cfg.show_progress):
        ignored.update(k for k in feat.numeric_keys() if k not in cells)

        pixels = feature_pixels(feat, bbox, zoom, cfg.tile_size)
        if pixels is None:
            continue

        for key, arr in cells.items():
            value = feat.numeric_value(key)
            if value is None:
                continue
            distribute(arr, pixels, round_half_away(value), rng)

    if ignored:
        logger.debug("Numeric keys missing from the first feature were ignored: %s", sorted(ignored))

    header = (zoom, bbox.west, bbox.north, bbox.width, bbox.height)
    out = {key: pack_grid(header, arr) for key, arr in cells.items()}
    logger.info("Built %d grids of %dx%d pixels at zoom %d", len(out), bbox.width, bbox.height, zoom)
    return out
