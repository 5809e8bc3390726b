"""geoenrich — BBR building and DHM terrain enrichment for block-world renders."""

from geoenrich.builder import GeoEnricher, PipelineResult
from geoenrich.models import (
    BoundingBox, BuildingRecord, ElevationGrid, Footprint, GeoPoint,
    ProjectedPoint,
)
from geoenrich.reconcile import enrich
from geoenrich.registry import fetch_buildings
from geoenrich.terrain import fetch_elevation_grid
