"""BBR building registry download via the Datafordeler GraphQL API.

Buildings are requested page by page with a bitemporal "as of now" filter,
a status filter selecting erected buildings, and a ``within`` polygon in
EPSG:25832.  Each node's registered point is reprojected to WGS84 and its
coded attributes are parsed into a :class:`BuildingRecord`.
"""

import logging
import math
import time
from typing import Callable, List, Optional

import requests
from shapely import wkt as wkt_mod
from shapely.errors import ShapelyError

from . import config
from .constants import (
    BBR_MAX_PAGES, BBR_PAGE_SIZE, BBR_STATUS_ACTIVE, ERROR_BODY_CHARS,
    UTM32N_EPSG,
)
from .errors import DataError, NetworkError, ProtocolError
from .models import BoundingBox, BuildingRecord, ProjectedPoint
from .projection import to_geodetic, to_projected

logger = logging.getLogger(__name__)

_MONTH_DAYS = (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)


# ── Bitemporal "now" ────────────────────────────────────────────────────

def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def civil_date_from_epoch_days(days: int):
    """(year, month, day) for a count of days since 1970-01-01."""
    year = 1970
    remaining = days
    while True:
        days_in_year = 366 if _is_leap(year) else 365
        if remaining < days_in_year:
            break
        remaining -= days_in_year
        year += 1

    month = 1
    for i, month_days in enumerate(_MONTH_DAYS):
        if i == 1 and _is_leap(year):
            month_days += 1
        if remaining < month_days:
            break
        remaining -= month_days
        month += 1
    return year, month, remaining + 1


def bitemporal_timestamp(epoch_seconds: Optional[float] = None) -> str:
    """Midnight UTC of the current day, formatted for the BBR time filters."""
    if epoch_seconds is None:
        epoch_seconds = time.time()
    year, month, day = civil_date_from_epoch_days(int(epoch_seconds // 86400))
    return f"{year:04d}-{month:02d}-{day:02d}T00:00:00Z"


# ── Query construction ──────────────────────────────────────────────────

def bbox_polygon_wkt(bbox: BoundingBox) -> str:
    """Closed EPSG:25832 polygon of the bbox corners in integer metres."""
    ring = []
    for corner in bbox.corners():
        p = to_projected(corner)
        ring.append(f"{int(p.easting)} {int(p.northing)}")
    ring.append(ring[0])
    return f"POLYGON(({', '.join(ring)}))"


def build_query(bbox: BoundingBox, cursor: Optional[str] = None,
                now: Optional[str] = None) -> str:
    """GraphQL document for one page of buildings inside *bbox*."""
    now = now or bitemporal_timestamp()
    after = f', after: "{cursor}"' if cursor else ""
    polygon = bbox_polygon_wkt(bbox)
    return (
        "{\n"
        "  BBR_Bygning(\n"
        f"    first: {BBR_PAGE_SIZE}{after}\n"
        f"    registreringstid: \"{now}\"\n"
        f"    virkningstid: \"{now}\"\n"
        "    where: {\n"
        f"      status: {{ eq: \"{BBR_STATUS_ACTIVE}\" }}\n"
        "      byg404Koordinat: {\n"
        f"        within: {{ wkt: \"{polygon}\", crs: {UTM32N_EPSG} }}\n"
        "      }\n"
        "    }\n"
        "  ) {\n"
        "    pageInfo { hasNextPage endCursor }\n"
        "    nodes {\n"
        "      byg021BygningensAnvendelse\n"
        "      byg032YdervaeggensMateriale\n"
        "      byg033Tagdaekningsmateriale\n"
        "      byg054AntalEtager\n"
        "      byg404Koordinat { wkt }\n"
        "    }\n"
        "  }\n"
        "}"
    )


# ── Record parsing ──────────────────────────────────────────────────────

def parse_point_wkt(text):
    """Parse ``POINT (easting northing)`` in EPSG:25832 to WGS84 (lat, lon).

    Returns None for anything that is not a finite, non-empty point.
    """
    if not isinstance(text, str):
        return None
    try:
        geom = wkt_mod.loads(text)
    except (ShapelyError, ValueError):
        return None
    if geom is None or geom.geom_type != "Point" or geom.is_empty:
        return None
    easting, northing = geom.x, geom.y
    if not (math.isfinite(easting) and math.isfinite(northing)):
        return None
    g = to_geodetic(ProjectedPoint(easting, northing))
    return g.lat, g.lon


def _parse_code(value) -> Optional[int]:
    """Nullable string (or int) code; unparseable values become None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def parse_building(node) -> Optional[BuildingRecord]:
    if not isinstance(node, dict):
        return None
    coord = node.get("byg404Koordinat")
    if not isinstance(coord, dict):
        return None
    latlon = parse_point_wkt(coord.get("wkt"))
    if latlon is None:
        return None
    lat, lon = latlon
    return BuildingRecord(
        lat=lat,
        lon=lon,
        floor_count=_parse_code(node.get("byg054AntalEtager")),
        wall_material_code=_parse_code(node.get("byg032YdervaeggensMateriale")),
        roof_material_code=_parse_code(node.get("byg033Tagdaekningsmateriale")),
        use_code=_parse_code(node.get("byg021BygningensAnvendelse")),
    )


# ── Fetching ────────────────────────────────────────────────────────────

def _post_page(session, endpoint: str, api_key: str, query: str) -> dict:
    try:
        resp = session.post(endpoint, params={"apiKey": api_key},
                            json={"query": query},
                            timeout=config.HTTP_TIMEOUT)
    except requests.RequestException as e:
        raise NetworkError(f"BBR request failed: {e}") from e

    if not resp.ok:
        body = (resp.text or "")[:ERROR_BODY_CHARS]
        raise ProtocolError(
            f"BBR GraphQL API returned status {resp.status_code}: {body}",
            status_code=resp.status_code)

    try:
        body = resp.json()
    except ValueError as e:
        raise ProtocolError(f"BBR GraphQL returned invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise ProtocolError("BBR GraphQL returned a non-object payload")

    errors = body.get("errors")
    if errors:
        msgs = [str(err.get("message", err)) if isinstance(err, dict)
                else str(err) for err in errors]
        raise ProtocolError(f"BBR GraphQL errors: {'; '.join(msgs)}")

    data = body.get("data")
    if data is not None and not isinstance(data, dict):
        raise ProtocolError("BBR GraphQL returned malformed data")
    result = (data or {}).get("BBR_Bygning")
    if not result:
        raise DataError("BBR GraphQL returned no data")
    if not isinstance(result, dict):
        raise ProtocolError("BBR GraphQL returned malformed building list")
    return result


def fetch_buildings(bbox: BoundingBox, api_key: str,
                    session: Optional[requests.Session] = None,
                    endpoint: Optional[str] = None,
                    progress_callback: Optional[Callable] = None,
                    ) -> List[BuildingRecord]:
    """Fetch every active BBR building inside *bbox*.

    Parameters
    ----------
    bbox : BoundingBox
        WGS84 area of interest.
    api_key : str
        Datafordeler API key, sent as the ``apiKey`` query parameter.
    session : requests.Session, optional
        Reused for every page; a new one is created when omitted.
    endpoint : str, optional
        GraphQL URL, defaults to ``config.BBR_ENDPOINT``.
    progress_callback : callable(pct, msg), optional

    Returns
    -------
    list[BuildingRecord]
        Possibly truncated at ``BBR_MAX_PAGES`` pages, in which case a
        warning is logged.
    """
    session = session or requests.Session()
    endpoint = endpoint or config.BBR_ENDPOINT
    now = bitemporal_timestamp()

    records: List[BuildingRecord] = []
    skipped = 0
    cursor = None
    page = 0

    while True:
        page += 1
        query = build_query(bbox, cursor, now=now)
        result = _post_page(session, endpoint, api_key, query)

        nodes = result.get("nodes")
        for node in nodes if isinstance(nodes, list) else []:
            record = parse_building(node)
            if record is None:
                skipped += 1
                continue
            records.append(record)

        logger.debug(f"BBR page {page}: {len(records)} buildings so far")
        if progress_callback and page % 10 == 0:
            progress_callback(8.0, f"Fetched {len(records)} BBR buildings...")

        page_info = result.get("pageInfo")
        if not isinstance(page_info, dict) or not page_info.get("hasNextPage"):
            break
        cursor = page_info.get("endCursor")
        if not cursor:
            break

        if page >= BBR_MAX_PAGES:
            logger.warning(
                f"BBR pagination limit reached ({BBR_MAX_PAGES} pages, "
                f"{BBR_MAX_PAGES * BBR_PAGE_SIZE} buildings). "
                f"Some buildings may be missing.")
            break

    if skipped:
        logger.info(f"Skipped {skipped} BBR buildings without a usable coordinate")
    logger.info(f"Fetched {len(records)} BBR buildings in {page} page(s)")
    return records
