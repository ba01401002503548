import numpy as np
import pytest
from shapely.geometry import Point, box

from count_grid.features import Feature, FeatureCollection
from count_grid.helpers import pixel_to_lat, pixel_to_lon


ZOOM = 10


@pytest.fixture
def rng():
    return np.random.default_rng(12345)


def pixel_center(x, y, zoom=ZOOM):
    """Geographic coordinate of the middle of pixel (x, y)."""
    lon = (pixel_to_lon(x, zoom) + pixel_to_lon(x + 1, zoom)) / 2
    lat = (pixel_to_lat(y, zoom) + pixel_to_lat(y + 1, zoom)) / 2
    return lon, lat


@pytest.fixture
def mixed_collection():
    """Two points and a polygon around the equator / prime meridian."""
    return FeatureCollection([
        Feature(Point(0.0105, 0.0105), {"pop": 10, "jobs": 3.6, "name": "a"}),
        Feature(Point(0.0512, -0.0288), {"pop": 5, "jobs": 0, "name": "b"}),
        Feature(box(0.0201, -0.0199, 0.0402, 0.0003), {"pop": 250.5, "jobs": 41, "name": "c"}),
    ])
