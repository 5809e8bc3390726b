"""Error taxonomy for the registry and terrain fetchers."""

from typing import Optional


class GeoEnrichError(Exception):
    """Base class for every failure raised by geoenrich."""


class NetworkError(GeoEnrichError):
    """Transport failure, timeout, or retries exhausted."""


class ProtocolError(GeoEnrichError):
    """Non-success status or an error payload from a remote service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DataError(GeoEnrichError):
    """The response carried no usable data."""


class DecodeError(DataError):
    """Raster payload could not be decoded (unsupported sample type etc.)."""


class SizeError(DataError):
    """Target elevation grid would be empty."""


class ConfigError(GeoEnrichError):
    """Invalid bounding box or missing credential."""
