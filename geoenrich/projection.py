"""WGS84 <-> ETRS89 / UTM zone 32N (EPSG:25832) transverse Mercator.

The BBR registry stores building points and evaluates spatial filters in
EPSG:25832, and the DHM coverage is served in the same system.  The series
below are the classic USGS (Snyder) expansions: the meridional arc is
truncated at e^6 and the footpoint latitude at e1^4, which keeps the
forward/inverse round trip well below a centimetre across Denmark.
"""

import math

from .constants import (
    CENTRAL_MERIDIAN, FALSE_EASTING, FLATTENING, SCALE_FACTOR,
    SEMI_MAJOR_AXIS,
)
from .models import GeoPoint, ProjectedPoint

_A = SEMI_MAJOR_AXIS
_K0 = SCALE_FACTOR
_E2 = 2.0 * FLATTENING - FLATTENING * FLATTENING
_E4 = _E2 * _E2
_E6 = _E4 * _E2
_EP2 = _E2 / (1.0 - _E2)
_E1 = (1.0 - math.sqrt(1.0 - _E2)) / (1.0 + math.sqrt(1.0 - _E2))
_LON0 = math.radians(CENTRAL_MERIDIAN)

# Meridional arc coefficients
_M0 = 1.0 - _E2 / 4.0 - 3.0 * _E4 / 64.0 - 5.0 * _E6 / 256.0
_M2 = 3.0 * _E2 / 8.0 + 3.0 * _E4 / 32.0 + 45.0 * _E6 / 1024.0
_M4 = 15.0 * _E4 / 256.0 + 45.0 * _E6 / 1024.0
_M6 = 35.0 * _E6 / 3072.0

# Footpoint latitude coefficients
_P2 = 3.0 * _E1 / 2.0 - 27.0 * _E1 ** 3 / 32.0
_P4 = 21.0 * _E1 ** 2 / 16.0 - 55.0 * _E1 ** 4 / 32.0
_P6 = 151.0 * _E1 ** 3 / 96.0
_P8 = 1097.0 * _E1 ** 4 / 512.0


def _meridional_arc(phi: float) -> float:
    return _A * (_M0 * phi
                 - _M2 * math.sin(2.0 * phi)
                 + _M4 * math.sin(4.0 * phi)
                 - _M6 * math.sin(6.0 * phi))


def to_projected(point: GeoPoint) -> ProjectedPoint:
    """Project a WGS84 point to EPSG:25832 easting/northing in metres."""
    phi = math.radians(point.lat)
    sin_phi = math.sin(phi)
    cos_phi = math.cos(phi)

    n = _A / math.sqrt(1.0 - _E2 * sin_phi ** 2)
    t = math.tan(phi) ** 2
    c = _EP2 * cos_phi ** 2
    a = (math.radians(point.lon) - _LON0) * cos_phi
    m = _meridional_arc(phi)

    easting = _K0 * n * (
        a
        + (1.0 - t + c) * a ** 3 / 6.0
        + (5.0 - 18.0 * t + t * t + 72.0 * c - 58.0 * _EP2) * a ** 5 / 120.0
    ) + FALSE_EASTING

    northing = _K0 * (m + n * math.tan(phi) * (
        a ** 2 / 2.0
        + (5.0 - t + 9.0 * c + 4.0 * c * c) * a ** 4 / 24.0
        + (61.0 - 58.0 * t + t * t + 600.0 * c - 330.0 * _EP2)
        * a ** 6 / 720.0
    ))

    return ProjectedPoint(easting, northing)


def to_geodetic(point: ProjectedPoint) -> GeoPoint:
    """Inverse of :func:`to_projected`."""
    x = point.easting - FALSE_EASTING
    mu = point.northing / _K0 / (_A * _M0)

    phi1 = (mu
            + _P2 * math.sin(2.0 * mu)
            + _P4 * math.sin(4.0 * mu)
            + _P6 * math.sin(6.0 * mu)
            + _P8 * math.sin(8.0 * mu))

    sin_phi1 = math.sin(phi1)
    cos_phi1 = math.cos(phi1)
    w = 1.0 - _E2 * sin_phi1 ** 2
    n1 = _A / math.sqrt(w)
    r1 = _A * (1.0 - _E2) / w ** 1.5
    t1 = math.tan(phi1) ** 2
    c1 = _EP2 * cos_phi1 ** 2
    d = x / (n1 * _K0)

    lat = phi1 - (n1 * math.tan(phi1) / r1) * (
        d ** 2 / 2.0
        - (5.0 + 3.0 * t1 + 10.0 * c1 - 4.0 * c1 * c1 - 9.0 * _EP2)
        * d ** 4 / 24.0
        + (61.0 + 90.0 * t1 + 298.0 * c1 + 45.0 * t1 * t1
           - 252.0 * _EP2 - 3.0 * c1 * c1) * d ** 6 / 720.0
    )

    lon = (d
           - (1.0 + 2.0 * t1 + c1) * d ** 3 / 6.0
           + (5.0 - 2.0 * c1 + 28.0 * t1 - 3.0 * c1 * c1 + 8.0 * _EP2
              + 24.0 * t1 * t1) * d ** 5 / 120.0) / cos_phi1

    return GeoPoint(math.degrees(lat), math.degrees(lon) + CENTRAL_MERIDIAN)


def wgs84_to_utm32n(lat: float, lon: float):
    """Tuple convenience wrapper: ``(lat, lon)`` -> ``(easting, northing)``."""
    p = to_projected(GeoPoint(lat, lon))
    return p.easting, p.northing


def utm32n_to_wgs84(easting: float, northing: float):
    """Tuple convenience wrapper: ``(easting, northing)`` -> ``(lat, lon)``."""
    g = to_geodetic(ProjectedPoint(easting, northing))
    return g.lat, g.lon
