"""Fixed numeric parameters shared by the fetchers and the reconciler."""

# ── ETRS89 / UTM zone 32N (EPSG:25832) ──────────────────────────────────
# ETRS89 uses GRS80; the difference to the WGS84 flattening is far below
# the accuracy of the series expansion, so WGS84 parameters are used.
SEMI_MAJOR_AXIS = 6378137.0
FLATTENING = 1.0 / 298.257223563
SCALE_FACTOR = 0.9996
CENTRAL_MERIDIAN = 9.0
FALSE_EASTING = 500000.0
UTM32N_EPSG = 25832

# ── BBR registry (Datafordeler GraphQL) ─────────────────────────────────
BBR_PAGE_SIZE = 500
BBR_MAX_PAGES = 100          # 50 000 buildings
BBR_STATUS_ACTIVE = "6"      # "Bygning opført"

# ── DHM terrain (Dataforsyningen WCS) ───────────────────────────────────
DHM_COVERAGE = "dhm_terraen"
DHM_MAX_REQUEST_PX = 2048    # native 0.4 m resolution gets huge quickly
DHM_NODATA = -9999.0
DHM_QUICK_RETRIES = 3
DHM_MAX_ROUNDS = 5
DHM_ROUND_WAIT_S = 60.0
ERROR_BODY_CHARS = 500

# ── Renderer vertical budget ────────────────────────────────────────────
MAX_Y = 319
TERRAIN_HEIGHT_BUFFER = 15
DEFAULT_GROUND_LEVEL = -62
SEA_LEVEL_THRESHOLD_M = 0.5

# Gaussian smoothing: sigma = BLUR_SIGMA_BASE * sqrt(grid_size / 100)
BLUR_SIGMA_BASE = 7.0

# ── Reconciliation ──────────────────────────────────────────────────────
# ~30 m; generous to absorb the error of reverse-mapping renderer coords
MATCH_THRESHOLD_DEG = 0.00027
BUILDING_KEYS = ("building", "building:part")
