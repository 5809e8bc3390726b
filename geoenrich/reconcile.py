"""Match renderer footprints to BBR buildings and apply BBR tags.

Renderer coordinates have no geodetic origin, so each footprint's centroid
is normalised against the planar extent of all building footprints and
mapped linearly onto the WGS84 bbox (planar z grows southwards).  This
assumes the renderer extent is axis-aligned with the bbox and uniformly
scaled per axis.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np
from scipy.spatial import cKDTree

from .codes import building_type, roof_tags, wall_material_colour
from .constants import BUILDING_KEYS, MATCH_THRESHOLD_DEG
from .models import BoundingBox, BuildingRecord, EnrichmentStats

logger = logging.getLogger(__name__)


def is_building(footprint) -> bool:
    return len(footprint.vertices) > 0 and any(
        key in footprint.tags for key in BUILDING_KEYS)


@dataclass(frozen=True)
class PlanarExtent:
    min_x: float
    max_x: float
    min_z: float
    max_z: float

    @classmethod
    def from_footprints(cls, footprints: Iterable) -> Optional["PlanarExtent"]:
        """Extent of all building vertices, or None if there are none."""
        xs, zs = [], []
        for fp in footprints:
            if not is_building(fp):
                continue
            for x, z in fp.vertices:
                xs.append(x)
                zs.append(z)
        if not xs:
            return None
        return cls(float(min(xs)), float(max(xs)),
                   float(min(zs)), float(max(zs)))

    @property
    def x_range(self) -> float:
        return max(self.max_x - self.min_x, 1.0)

    @property
    def z_range(self) -> float:
        return max(self.max_z - self.min_z, 1.0)

    def to_geodetic(self, x: float, z: float, bbox: BoundingBox):
        """Approximate (lat, lon) of a planar point inside this extent."""
        norm_x = (x - self.min_x) / self.x_range
        norm_z = (z - self.min_z) / self.z_range
        lon = bbox.west + norm_x * (bbox.east - bbox.west)
        lat = bbox.north - norm_z * (bbox.north - bbox.south)
        return lat, lon


def footprint_centroid(vertices: Sequence):
    """Centre of the vertex bounding box in planar coordinates."""
    xs = [v[0] for v in vertices]
    zs = [v[1] for v in vertices]
    return (min(xs) + max(xs)) / 2.0, (min(zs) + max(zs)) / 2.0


def apply_record(tags: dict, record: BuildingRecord) -> bool:
    """Overwrite tags from *record*; True if anything was written."""
    changed = False

    if record.floor_count is not None and record.floor_count >= 1:
        tags["building:levels"] = str(record.floor_count)
        changed = True

    if record.wall_material_code is not None:
        colour = wall_material_colour(record.wall_material_code)
        if colour:
            tags["building:colour"] = colour
            changed = True

    if record.roof_material_code is not None:
        for key, value in roof_tags(record.roof_material_code).items():
            tags[key] = value
            changed = True

    if record.use_code is not None:
        btype = building_type(record.use_code)
        if btype:
            tags["building"] = btype
            changed = True

    return changed


class RecordIndex:
    """Nearest-record lookup in (lat, lon) degree space."""

    def __init__(self, records: Sequence[BuildingRecord]):
        self.records = list(records)
        points = np.array([(r.lat, r.lon) for r in self.records],
                          dtype=np.float64).reshape(-1, 2)
        self._tree = cKDTree(points) if len(self.records) else None

    def nearest(self, lat: float, lon: float,
                threshold: float = MATCH_THRESHOLD_DEG,
                ) -> Optional[BuildingRecord]:
        """Closest record strictly within *threshold* degrees, or None."""
        if self._tree is None:
            return None
        dist, idx = self._tree.query((lat, lon), k=1)
        if not np.isfinite(dist) or dist * dist >= threshold * threshold:
            return None
        return self.records[int(idx)]


def enrich(footprints: Sequence, records: Sequence[BuildingRecord],
           bbox: BoundingBox,
           threshold: float = MATCH_THRESHOLD_DEG) -> EnrichmentStats:
    """Apply BBR attributes to matching building footprints in place."""
    stats = EnrichmentStats()
    if not records:
        logger.info("No BBR buildings to match.")
        return stats

    extent = PlanarExtent.from_footprints(footprints)
    if extent is None:
        logger.info("No building footprints with vertices; nothing to enrich.")
        return stats

    index = RecordIndex(records)
    for fp in footprints:
        if not is_building(fp):
            continue
        cx, cz = footprint_centroid(fp.vertices)
        lat, lon = extent.to_geodetic(cx, cz, bbox)
        record = index.nearest(lat, lon, threshold)
        if record is None:
            continue
        stats.matched += 1
        if apply_record(fp.tags, record):
            stats.enriched += 1

    logger.info(f"BBR enrichment: matched {stats.matched} buildings, "
                f"enriched {stats.enriched} with new tags.")
    return stats
