from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from shapely.geometry import shape as shapely_shape
from shapely.geometry.base import BaseGeometry

logger = logging.getLogger(__name__)


# ------------------------- Property values ------------------------- #
@dataclass(frozen=True)
class Numeric:
    value: float


@dataclass(frozen=True)
class NonNumeric:
    raw: Any


PropertyValue = Union[Numeric, NonNumeric]


def classify(value: Any) -> PropertyValue:
    """
    Tag a raw property value. Only finite real numbers are numeric; booleans,
    strings, None, NaN and infinities are not.
    """
    if isinstance(value, (Numeric, NonNumeric)):
        return value
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return NonNumeric(value)
    if not math.isfinite(value):
        return NonNumeric(value)
    return Numeric(value)


# ------------------------- Features ------------------------- #
@dataclass
class Feature:
    geometry: Optional[BaseGeometry]
    properties: Optional[Dict[str, PropertyValue]] = None

    def __post_init__(self):
        if self.properties is not None:
            self.properties = {k: classify(v) for k, v in self.properties.items()}

    @property
    def is_valid(self) -> bool:
        return (
            self.properties is not None
            and self.geometry is not None
            and not self.geometry.is_empty
        )

    def numeric_keys(self) -> List[str]:
        if self.properties is None:
            return []
        return [k for k, v in self.properties.items() if isinstance(v, Numeric)]

    def numeric_value(self, key: str) -> Optional[float]:
        """Numeric value of `key`, or None when it is absent or non-numeric."""
        if self.properties is None:
            return None
        v = self.properties.get(key)
        return v.value if isinstance(v, Numeric) else None

    @classmethod
    def from_geojson(cls, feat: Mapping[str, Any]) -> "Feature":
        geom = feat.get("geometry", None)
        if geom is not None:
            try:
                geom = shapely_shape(geom)
            except Exception as e:
                logger.warning("Undecodable GeoJSON geometry dropped: %s", e)
                geom = None
        return cls(geometry=geom, properties=feat.get("properties", None))


@dataclass
class FeatureCollection:
    features: List[Feature] = field(default_factory=list)

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)

    def valid(self) -> "FeatureCollection":
        """Copy without features missing geometry or properties."""
        return FeatureCollection([f for f in self.features if f.is_valid])

    def schema(self) -> List[str]:
        """
        Attribute names to rasterize: the numeric keys of the first feature
        with properties, in its key order. That feature need not have
        geometry. Later features are not consulted.
        """
        for f in self.features:
            if f.properties is not None:
                return f.numeric_keys()
        return []

    # ---------------- adapters ---------------- #
    @classmethod
    def from_features(cls, features: Iterable[Feature]) -> "FeatureCollection":
        return cls(list(features))

    @classmethod
    def from_geojson(cls, data: Mapping[str, Any]) -> "FeatureCollection":
        if data.get("type") != "FeatureCollection":
            raise ValueError(f"Expected a GeoJSON FeatureCollection, got type {data.get('type')!r}")
        return cls([Feature.from_geojson(f) for f in data.get("features") or []])

    @classmethod
    def from_geodataframe(cls, gdf, geom_col: Optional[str] = None) -> "FeatureCollection":
        """
        Build features from a geopandas GeoDataFrame. Non-geometry columns
        become properties; the frame is reprojected to EPSG:4326 first.
        """
        if gdf.crs is None:
            logger.warning("No CRS found on GeoDataFrame, assuming EPSG:4326")
        elif gdf.crs.to_epsg() != 4326:
            logger.info("Reprojecting GeoDataFrame from %s to EPSG:4326", gdf.crs)
            gdf = gdf.to_crs(4326)

        geom_col = geom_col or gdf.geometry.name
        prop_cols = [c for c in gdf.columns if c != geom_col]

        features = []
        for geom, (_, row) in zip(gdf[geom_col], gdf[prop_cols].iterrows()):
            features.append(Feature(geometry=geom, properties=row.to_dict()))
        return cls(features)
