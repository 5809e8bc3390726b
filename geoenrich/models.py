"""Data classes shared by the fetchers, the reconciler and the CLI."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from shapely.geometry import Polygon, box

from .errors import ConfigError


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lon: float


@dataclass(frozen=True)
class ProjectedPoint:
    easting: float
    northing: float


@dataclass(frozen=True)
class BoundingBox:
    min: GeoPoint
    max: GeoPoint

    def __post_init__(self):
        if not (self.min.lat < self.max.lat and self.min.lon < self.max.lon):
            raise ConfigError(
                f"Invalid bounding box: min ({self.min.lat}, {self.min.lon}) "
                f"must lie south-west of max ({self.max.lat}, {self.max.lon})")

    @classmethod
    def from_edges(cls, south: float, west: float,
                   north: float, east: float) -> "BoundingBox":
        return cls(GeoPoint(south, west), GeoPoint(north, east))

    @property
    def north(self) -> float:
        return self.max.lat

    @property
    def south(self) -> float:
        return self.min.lat

    @property
    def east(self) -> float:
        return self.max.lon

    @property
    def west(self) -> float:
        return self.min.lon

    def corners(self) -> List[GeoPoint]:
        """SW, SE, NE, NW."""
        return [
            GeoPoint(self.south, self.west),
            GeoPoint(self.south, self.east),
            GeoPoint(self.north, self.east),
            GeoPoint(self.north, self.west),
        ]

    def to_polygon(self) -> Polygon:
        """Convert bounding box to shapely polygon (lon/lat order)."""
        return box(self.west, self.south, self.east, self.north)

    def describe(self) -> str:
        return (f"{self.south:.4f},{self.west:.4f} to "
                f"{self.north:.4f},{self.east:.4f}")


@dataclass(frozen=True)
class BuildingRecord:
    """One BBR building, located by its registered point in WGS84."""
    lat: float
    lon: float
    floor_count: Optional[int] = None
    wall_material_code: Optional[int] = None
    roof_material_code: Optional[int] = None
    use_code: Optional[int] = None


@dataclass
class ElevationGrid:
    """Renderer-ready height lookup table, indexed ``heights[z][x]``."""
    heights: np.ndarray
    width: int
    height: int
    sea_level_row: Optional[int] = None


@dataclass
class Footprint:
    """A renderer polygon: planar ``(x, z)`` vertices and a tag mapping.

    The reconciler only needs ``vertices`` and ``tags``, so any renderer
    object exposing those two attributes can be passed instead.
    """
    vertices: Sequence[Tuple[float, float]]
    tags: Dict[str, str] = field(default_factory=dict)


@dataclass
class EnrichmentStats:
    matched: int = 0
    enriched: int = 0
