import logging
import math

import geopandas as gpd
import numpy as np
import pytest
from shapely.geometry import LineString, Point, Polygon, box

from count_grid.features import (
    Feature,
    FeatureCollection,
    NonNumeric,
    Numeric,
    classify,
)


@pytest.mark.parametrize("value", [0, 1, -3, 2.5, np.float64(4.0), np.int32(7)])
def test_classify_numeric(value):
    tagged = classify(value)
    assert isinstance(tagged, Numeric)
    assert tagged.value == value


@pytest.mark.parametrize(
    "value", ["x", "3", None, True, False, math.nan, math.inf, -math.inf, [1], {"a": 1}]
)
def test_classify_non_numeric(value):
    assert isinstance(classify(value), NonNumeric)


def test_classify_is_idempotent():
    tagged = Numeric(3)
    assert classify(tagged) is tagged


def test_feature_numeric_access():
    f = Feature(Point(0, 0), {"a": 1, "b": "x", "c": math.nan, "d": 2.5})
    assert f.numeric_keys() == ["a", "d"]
    assert f.numeric_value("a") == 1
    assert f.numeric_value("b") is None
    assert f.numeric_value("c") is None
    assert f.numeric_value("missing") is None


def test_feature_validity():
    assert Feature(Point(0, 0), {}).is_valid
    assert not Feature(None, {"a": 1}).is_valid
    assert not Feature(Point(0, 0), None).is_valid
    assert not Feature(Polygon(), {"a": 1}).is_valid


def test_feature_from_geojson():
    f = Feature.from_geojson({
        "type": "Feature",
        "geometry": {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 0]]]},
        "properties": {"pop": 4},
    })
    assert isinstance(f.geometry, Polygon)
    assert f.properties == {"pop": Numeric(4)}


def test_feature_from_geojson_bad_geometry(caplog):
    with caplog.at_level(logging.WARNING, logger="count_grid.features"):
        f = Feature.from_geojson({"geometry": {"type": "Blob", "coordinates": []}, "properties": {"a": 1}})
    assert f.geometry is None
    assert not f.is_valid
    assert "Undecodable" in caplog.text


def test_feature_from_geojson_missing_parts():
    f = Feature.from_geojson({"type": "Feature"})
    assert f.geometry is None
    assert f.properties is None


def test_collection_valid_and_schema():
    fc = FeatureCollection([
        Feature(Point(0, 0), None),
        Feature(None, {"z": 9}),
        Feature(Point(1, 1), {"a": 1, "b": "x"}),
        Feature(Point(2, 2), {"a": 2, "c": 5}),
    ])
    assert len(fc) == 4
    assert len(fc.valid()) == 2
    # the first feature with properties decides, geometry or not
    assert fc.schema() == ["z"]
    assert fc.valid().schema() == ["a"]


def test_collection_schema_empty():
    assert FeatureCollection().schema() == []
    assert FeatureCollection([Feature(Point(0, 0), None)]).schema() == []


def test_collection_from_geojson():
    fc = FeatureCollection.from_geojson({
        "type": "FeatureCollection",
        "features": [
            {"type": "Feature", "geometry": {"type": "Point", "coordinates": [1, 2]}, "properties": {"a": 1}},
            {"type": "Feature", "geometry": None, "properties": {"a": 2}},
        ],
    })
    assert len(fc) == 2
    assert fc.features[0].geometry.equals(Point(1, 2))
    assert len(fc.valid()) == 1


def test_collection_from_geojson_wrong_type():
    with pytest.raises(ValueError):
        FeatureCollection.from_geojson({"type": "Feature"})


def test_collection_from_geodataframe():
    gdf = gpd.GeoDataFrame(
        {"pop": [1, 2], "name": ["a", "b"]},
        geometry=[Point(1, 2), box(0, 0, 1, 1)],
        crs="EPSG:4326",
    )
    fc = FeatureCollection.from_geodataframe(gdf)
    assert len(fc) == 2
    assert fc.schema() == ["pop"]
    assert fc.features[1].numeric_value("pop") == 2
    assert isinstance(fc.features[1].properties["name"], NonNumeric)


def test_collection_from_geodataframe_reprojects():
    gdf = gpd.GeoDataFrame({"pop": [1]}, geometry=[Point(10, 20)], crs="EPSG:4326").to_crs(3857)
    fc = FeatureCollection.from_geodataframe(gdf)
    g = fc.features[0].geometry
    assert g.x == pytest.approx(10)
    assert g.y == pytest.approx(20)


def test_collection_from_geodataframe_without_crs(caplog):
    gdf = gpd.GeoDataFrame({"pop": [1]}, geometry=[LineString([(0, 0), (1, 1)])])
    with caplog.at_level(logging.WARNING, logger="count_grid.features"):
        fc = FeatureCollection.from_geodataframe(gdf)
    assert "assuming EPSG:4326" in caplog.text
    assert len(fc) == 1


def test_collection_schema_ignores_geometry():
    fc = FeatureCollection([Feature(None, {"a": 1}), Feature(Point(0, 0), {"b": 2})])
    assert fc.schema() == ["a"]
    assert fc.valid().schema() == ["b"]
