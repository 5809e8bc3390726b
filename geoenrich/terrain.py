"""High-resolution terrain from DHM (Danmarks Højdemodel) via WCS.

Provides functions for:
1. Sizing the renderer grid from the geodesic extent of the bbox
2. Downloading a GeoTIFF coverage with round/attempt retries
3. Decoding, nearest-neighbour resampling and Gaussian smoothing
4. Mapping real elevations into the renderer's vertical range
"""

import logging
import math
import time
from typing import Callable, Optional, Tuple

import numpy as np
import requests
from pyproj import Geod
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile
from scipy.ndimage import convolve1d

from . import config
from .constants import (
    BLUR_SIGMA_BASE, DHM_COVERAGE, DHM_MAX_REQUEST_PX, DHM_NODATA,
    ERROR_BODY_CHARS, MAX_Y, SEA_LEVEL_THRESHOLD_M, TERRAIN_HEIGHT_BUFFER,
    UTM32N_EPSG,
)
from .errors import DecodeError, ProtocolError, SizeError
from .models import BoundingBox, ElevationGrid
from .projection import to_projected
from .retry import RetrySchedule, TransientError, run_with_retry

logger = logging.getLogger(__name__)

_GEOD = Geod(ellps="WGS84")

SUPPORTED_DTYPES = frozenset({
    "float32", "float64", "uint8", "int8", "uint16", "int16",
})


# ── Grid sizing ─────────────────────────────────────────────────────────

def geodesic_extent(bbox: BoundingBox) -> Tuple[float, float]:
    """(width_m, height_m) of the bbox measured on the WGS84 ellipsoid."""
    mid_lat = (bbox.south + bbox.north) / 2.0
    _, _, width = _GEOD.inv(bbox.west, mid_lat, bbox.east, mid_lat)
    _, _, height = _GEOD.inv(bbox.west, bbox.south, bbox.west, bbox.north)
    return abs(width), abs(height)


def grid_dimensions(bbox: BoundingBox, scale: float) -> Tuple[int, int]:
    """Renderer grid (width, height) in cells; raises SizeError if empty."""
    width_m, height_m = geodesic_extent(bbox)
    width = int(math.floor(width_m) * scale)
    height = int(math.floor(height_m) * scale)
    if width <= 0 or height <= 0:
        raise SizeError(f"Grid dimensions are zero ({width}x{height})")
    return width, height


# ── Download ────────────────────────────────────────────────────────────

def coverage_params(bbox: BoundingBox, width: int, height: int,
                    token: str) -> dict:
    """WCS 1.0.0 GetCoverage parameters for *bbox* in EPSG:25832."""
    projected = [to_projected(c) for c in bbox.corners()]
    min_e = min(p.easting for p in projected)
    max_e = max(p.easting for p in projected)
    min_n = min(p.northing for p in projected)
    max_n = max(p.northing for p in projected)
    crs = f"EPSG:{UTM32N_EPSG}"
    return {
        "SERVICE": "WCS",
        "REQUEST": "GetCoverage",
        "VERSION": "1.0.0",
        "COVERAGE": DHM_COVERAGE,
        "CRS": crs,
        "RESPONSE_CRS": crs,
        "BBOX": f"{min_e:.2f},{min_n:.2f},{max_e:.2f},{max_n:.2f}",
        "WIDTH": str(width),
        "HEIGHT": str(height),
        "FORMAT": "GTiff",
        "token": token,
    }


def _truncated_text(resp) -> str:
    return (resp.text or "")[:ERROR_BODY_CHARS]


def download_coverage(session, endpoint: str, params: dict,
                      schedule: Optional[RetrySchedule] = None,
                      sleep: Callable[[float], None] = time.sleep,
                      ) -> Tuple[str, bytes]:
    """GET the coverage, retrying transport errors, 5xx and 429.

    Returns ``(content_type, body)``.  Other non-success statuses raise
    ProtocolError at once.
    """
    def attempt():
        try:
            resp = session.get(endpoint, params=params,
                               timeout=config.HTTP_TIMEOUT)
        except requests.RequestException as e:
            raise TransientError(f"Request failed: {e}") from e

        status = resp.status_code
        if status >= 500 or status == 429:
            raise TransientError(
                f"DHM WCS returned status {status}: {_truncated_text(resp)}")
        if not resp.ok:
            raise ProtocolError(
                f"DHM WCS returned status {status}: {_truncated_text(resp)}",
                status_code=status)

        try:
            body = resp.content
        except requests.RequestException as e:
            raise TransientError(f"Failed to read response body: {e}") from e
        return resp.headers.get("content-type", ""), body

    return run_with_retry(attempt, schedule, sleep=sleep, label="DHM request")


def check_payload(content_type: str, data: bytes):
    """Reject XML error documents served with a success status."""
    if "xml" in (content_type or "").lower() or (
            len(data) > 5 and data[:1] == b"<"):
        text = data[:ERROR_BODY_CHARS].decode("utf-8", errors="replace")
        raise ProtocolError(f"DHM WCS returned error: {text}")


# ── Decoding / resampling ───────────────────────────────────────────────

def decode_raster(data: bytes) -> Tuple[np.ndarray, Optional[float]]:
    """Read band 1 of a GeoTIFF payload as float64 plus its nodata value."""
    if not data:
        raise DecodeError("DHM WCS returned an empty payload")
    try:
        with MemoryFile(data) as mem:
            with mem.open() as ds:
                dtype = ds.dtypes[0]
                if dtype not in SUPPORTED_DTYPES:
                    raise DecodeError(f"Unsupported TIFF pixel format: {dtype}")
                band = ds.read(1).astype(np.float64)
                nodata = ds.nodata
    except (RasterioError, ValueError) as e:
        raise DecodeError(f"Failed to decode GeoTIFF: {e}") from e
    return band, nodata


def resample_nearest(src: np.ndarray, width: int, height: int,
                     nodata: Optional[float] = None) -> np.ndarray:
    """Nearest-neighbour resample of *src* onto a (height, width) grid.

    Target cell ``i`` reads source index ``floor(i / size * src_size)``,
    clamped.  Nodata samples (the -9999 sentinel, the declared nodata, and
    non-finite values) become 0, i.e. sea level.
    """
    src_h, src_w = src.shape
    cols = np.minimum(np.arange(width) * src_w // width, src_w - 1)
    rows = np.minimum(np.arange(height) * src_h // height, src_h - 1)
    out = src[np.ix_(rows, cols)].astype(np.float64)

    invalid = ~np.isfinite(out) | (out <= DHM_NODATA)
    if nodata is not None and math.isfinite(nodata):
        invalid |= out == nodata
    out[invalid] = 0.0
    return out


# ── Smoothing ───────────────────────────────────────────────────────────

def blur_sigma(width: int, height: int) -> float:
    grid_size = max(float(min(width, height)), 1.0)
    return BLUR_SIGMA_BASE * math.sqrt(grid_size / 100.0)


def gaussian_kernel(sigma: float) -> np.ndarray:
    """Normalised 1-D kernel with radius ``ceil(3 * sigma)``."""
    radius = int(math.ceil(sigma * 3.0))
    x = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-x * x / (2.0 * sigma * sigma))
    return kernel / kernel.sum()


def gaussian_blur(grid: np.ndarray, sigma: float) -> np.ndarray:
    """Separable blur, horizontal pass then vertical, edges clamped.

    Smooths the sub-metre micro relief of DHM so buildings and roads do
    not clip into small bumps.
    """
    if grid.size == 0:
        return grid.copy()
    kernel = gaussian_kernel(sigma)
    tmp = convolve1d(grid, kernel, axis=1, mode="nearest")
    return convolve1d(tmp, kernel, axis=0, mode="nearest")


# ── Vertical mapping ────────────────────────────────────────────────────

def _round_half_away(values):
    return np.sign(values) * np.floor(np.abs(values) + 0.5)


def scaled_height_range(height_range: float, scale: float,
                        ground_level: int) -> float:
    """Vertical span in renderer units, compressed to fit under MAX_Y."""
    available = float(MAX_Y - TERRAIN_HEIGHT_BUFFER - ground_level)
    ideal = height_range * scale
    if ideal <= available:
        return ideal
    logger.info(f"Compressing terrain: {ideal:.0f} blocks needed, "
                f"{available:.0f} available")
    return available


def to_renderer_heights(grid: np.ndarray, scale: float, ground_level: int,
                        ) -> Tuple[np.ndarray, Optional[int]]:
    """Map metres to renderer Y; also return the sea-level row if any."""
    top = MAX_Y - TERRAIN_HEIGHT_BUFFER
    min_h = float(grid.min())
    max_h = float(grid.max())
    height_range = max_h - min_h
    scaled_range = scaled_height_range(height_range, scale, ground_level)

    if height_range > 0.0:
        relative = (grid - min_h) / height_range
    else:
        relative = np.zeros_like(grid)
    ys = _round_half_away(ground_level + relative * scaled_range)
    heights = np.clip(ys, ground_level, top).astype(np.int32)

    sea_level_row = None
    if height_range > 0.0 and min_h < SEA_LEVEL_THRESHOLD_M:
        sea = ground_level + (0.0 - min_h) / height_range * scaled_range
        sea_level_row = int(min(max(
            _round_half_away(np.float64(sea)), ground_level), top))
    return heights, sea_level_row


# ── Entry point ─────────────────────────────────────────────────────────

def fetch_elevation_grid(bbox: BoundingBox, scale: float, ground_level: int,
                         token: str,
                         session: Optional[requests.Session] = None,
                         endpoint: Optional[str] = None,
                         sleep: Callable[[float], None] = time.sleep,
                         schedule: Optional[RetrySchedule] = None,
                         progress_callback: Optional[Callable] = None,
                         ) -> ElevationGrid:
    """Download DHM terrain for *bbox* as a renderer-ready height grid.

    Parameters
    ----------
    bbox : BoundingBox
    scale : float
        Renderer cells per metre, horizontally and vertically.
    ground_level : int
        Renderer Y of the lowest terrain point.
    token : str
        Dataforsyningen token.

    Returns
    -------
    ElevationGrid with ``heights`` of shape (height, width).
    """
    def _progress(pct, msg):
        if progress_callback:
            progress_callback(pct, msg)

    logger.info("Fetching DHM high-resolution terrain...")
    _progress(12.0, "Fetching DHM terrain data...")

    width, height = grid_dimensions(bbox, scale)
    req_width = min(width, DHM_MAX_REQUEST_PX)
    req_height = min(height, DHM_MAX_REQUEST_PX)

    session = session or requests.Session()
    params = coverage_params(bbox, req_width, req_height, token)
    content_type, data = download_coverage(
        session, endpoint or config.DHM_ENDPOINT, params,
        schedule=schedule, sleep=sleep)
    check_payload(content_type, data)

    logger.info(f"Received {len(data)} bytes of DHM terrain data. Parsing...")
    _progress(15.0, "Processing DHM terrain...")

    src, nodata = decode_raster(data)
    logger.info(f"DHM TIFF: {src.shape[1]}x{src.shape[0]} pixels, "
                f"resampling to {width}x{height} grid...")
    grid = resample_nearest(src, width, height, nodata)

    sigma = blur_sigma(width, height)
    logger.info(f"Smoothing DHM terrain (sigma={sigma:.1f})...")
    grid = gaussian_blur(grid, sigma)

    logger.info(f"DHM elevation range: {grid.min():.1f}m to {grid.max():.1f}m "
                f"({grid.max() - grid.min():.1f}m total)")
    heights, sea_level_row = to_renderer_heights(grid, scale, ground_level)
    if sea_level_row is not None:
        logger.info(f"DHM sea level at renderer Y={sea_level_row}")

    logger.info(f"DHM terrain ready: {width}x{height} grid")
    return ElevationGrid(heights=heights, width=width, height=height,
                         sea_level_row=sea_level_row)
