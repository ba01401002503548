import math
from functools import lru_cache

import numpy as np
import shapely
from shapely.geometry import Point
from pyproj import Transformer

WORLD_MINX = -20037508.342789244
WORLD_MINY = -20037508.342789244
WORLD_MAXX = 20037508.342789244
WORLD_MAXY = 20037508.342789244
WORLD_W = WORLD_MAXX - WORLD_MINX
WORLD_H = WORLD_MAXY - WORLD_MINY

TILE_SIZE = 256

# latitude at which the square Web Mercator world ends
MAX_LAT = 85.0511287798066


@lru_cache(maxsize=None)
def _to_3857():
    return Transformer.from_crs("EPSG:4326", "EPSG:3857", always_xy=True)


@lru_cache(maxsize=None)
def _from_3857():
    return Transformer.from_crs("EPSG:3857", "EPSG:4326", always_xy=True)


def world_pixels(zoom, tile_size=TILE_SIZE):
    """Width (and height) of the whole world in pixels at `zoom`."""
    return tile_size * 2 ** zoom


# ---------------------------------------------------------------------------
# COORDINATE MAPPER
# ---------------------------------------------------------------------------

def _clip_pixel(p, zoom, tile_size):
    return max(0, min(int(math.floor(p)), world_pixels(zoom, tile_size) - 1))


def lon_to_pixel(lon, zoom, tile_size=TILE_SIZE):
    X, _ = _to_3857().transform(lon, 0.0)
    return _clip_pixel((X - WORLD_MINX) / WORLD_W * world_pixels(zoom, tile_size), zoom, tile_size)


def lat_to_pixel(lat, zoom, tile_size=TILE_SIZE):
    # pixel y grows southward; poles are pinned to the first and last rows
    lat = max(-MAX_LAT, min(MAX_LAT, lat))
    _, Y = _to_3857().transform(0.0, lat)
    return _clip_pixel((WORLD_MAXY - Y) / WORLD_H * world_pixels(zoom, tile_size), zoom, tile_size)


def pixel_to_lon(x, zoom, tile_size=TILE_SIZE):
    """
    Longitude of the west edge of pixel column `x`. Accepts a scalar or a
    numpy array and returns the same kind.
    """
    xs = np.atleast_1d(np.asarray(x, dtype="float64"))
    X = WORLD_MINX + xs / world_pixels(zoom, tile_size) * WORLD_W
    lon, _ = _from_3857().transform(X, np.zeros_like(X))
    return _same_shape(x, lon)


def pixel_to_lat(y, zoom, tile_size=TILE_SIZE):
    """Latitude of the north edge of pixel row `y`. Scalar or array."""
    ys = np.atleast_1d(np.asarray(y, dtype="float64"))
    Y = WORLD_MAXY - ys / world_pixels(zoom, tile_size) * WORLD_H
    _, lat = _from_3857().transform(np.zeros_like(Y), Y)
    return _same_shape(y, lat)


def _same_shape(template, values):
    values = np.asarray(values, dtype="float64")
    if np.ndim(template) == 0:
        return float(values.reshape(-1)[0])
    return values.reshape(np.shape(template))


# ---------------------------------------------------------------------------
# EXTENT CALCULATOR
# ---------------------------------------------------------------------------

def extent(geoms):
    """
    Geographic bounding box (west, south, east, north) of a single shapely
    geometry or of an iterable of them.
    """
    if isinstance(geoms, shapely.Geometry):
        minx, miny, maxx, maxy = geoms.bounds
    else:
        arr = np.asarray(list(geoms), dtype=object)
        if arr.size == 0:
            raise ValueError("Cannot compute the extent of an empty collection")
        minx, miny, maxx, maxy = shapely.total_bounds(arr)

    if any(math.isnan(v) for v in (minx, miny, maxx, maxy)):
        raise ValueError("Cannot compute the extent of empty geometry")

    return float(minx), float(miny), float(maxx), float(maxy)


def pixel_bounds(geoms, zoom, tile_size=TILE_SIZE):
    """
    Inclusive pixel range (west, south, east, north) of the pixels touched by
    the extent of `geoms`.
    """
    w, s, e, n = extent(geoms)
    return (
        lon_to_pixel(w, zoom, tile_size),
        lat_to_pixel(s, zoom, tile_size),
        lon_to_pixel(e, zoom, tile_size),
        lat_to_pixel(n, zoom, tile_size),
    )


# ---------------------------------------------------------------------------
# CONTAINMENT TESTER
# ---------------------------------------------------------------------------

def point_in_polygon(lon, lat, polygon):
    """Boundary points count as inside."""
    return bool(polygon.intersects(Point(lon, lat)))


def pixels_in_polygon(polygon, xs, ys, zoom, tile_size=TILE_SIZE):
    """
    Vectorized form of `point_in_polygon` over the northwest corners of
    pixels (xs[i], ys[i]). Returns a boolean mask.
    """
    shapely.prepare(polygon)
    lons = pixel_to_lon(xs, zoom, tile_size)
    lats = pixel_to_lat(ys, zoom, tile_size)
    return shapely.intersects_xy(polygon, lons, lats)
