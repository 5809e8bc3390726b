"""GeoEnricher — thin orchestrator over the BBR and DHM fetchers."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import requests

from . import config
from .constants import DEFAULT_GROUND_LEVEL
from .errors import GeoEnrichError
from .models import BoundingBox, ElevationGrid, EnrichmentStats
from .reconcile import enrich
from .registry import fetch_buildings
from .terrain import fetch_elevation_grid

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    stats: EnrichmentStats = field(default_factory=EnrichmentStats)
    elevation: Optional[ElevationGrid] = None
    errors: List[str] = field(default_factory=list)


class GeoEnricher:
    def __init__(self, api_key=None, dhm_token=None,
                 session: Optional[requests.Session] = None):
        """
        api_key: Datafordeler key for BBR; falls back to the environment.
        dhm_token: Dataforsyningen token for DHM; falls back likewise.
        session: shared HTTP session, created on first use when omitted.
        """
        self.api_key = api_key if api_key is not None else config.bbr_api_key()
        self.dhm_token = (dhm_token if dhm_token is not None
                          else config.dhm_token())
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers["User-Agent"] = config.USER_AGENT
        return self._session

    def enrich_buildings(self, footprints: Sequence, bbox: BoundingBox,
                         progress_callback=None) -> EnrichmentStats:
        """Fetch BBR buildings for *bbox* and enrich *footprints* in place."""
        api_key = config.require_credential(self.api_key, "BBR API key")
        logger.info("Fetching BBR building data...")
        if progress_callback:
            progress_callback(8.0, "Fetching BBR building data...")

        records = fetch_buildings(bbox, api_key, session=self.session,
                                  progress_callback=progress_callback)
        if not records:
            logger.info("No BBR buildings found for this area.")
            return EnrichmentStats()

        logger.info(f"Found {len(records)} BBR buildings. Matching...")
        return enrich(footprints, records, bbox)

    def fetch_terrain(self, bbox: BoundingBox, scale: float = 1.0,
                      ground_level: int = DEFAULT_GROUND_LEVEL,
                      progress_callback=None) -> ElevationGrid:
        token = config.require_credential(self.dhm_token, "DHM token")
        return fetch_elevation_grid(bbox, scale, ground_level, token,
                                    session=self.session,
                                    progress_callback=progress_callback)

    def run(self, footprints: Sequence, bbox: BoundingBox,
            scale: float = 1.0, ground_level: int = DEFAULT_GROUND_LEVEL,
            with_terrain: bool = True,
            progress_callback=None) -> PipelineResult:
        """Run both stages; a failing stage does not stop the other."""
        result = PipelineResult()

        try:
            result.stats = self.enrich_buildings(
                footprints, bbox, progress_callback=progress_callback)
        except GeoEnrichError as e:
            logger.error(f"BBR enrichment failed: {e}")
            result.errors.append(f"BBR: {e}")

        if with_terrain:
            try:
                result.elevation = self.fetch_terrain(
                    bbox, scale, ground_level,
                    progress_callback=progress_callback)
            except GeoEnrichError as e:
                logger.error(f"DHM terrain failed: {e}")
                result.errors.append(f"DHM: {e}")

        return result
