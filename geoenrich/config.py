import os

from dotenv import load_dotenv

from .errors import ConfigError

# Load environment variables
load_dotenv()

BBR_ENDPOINT = os.environ.get(
    "GEOENRICH_BBR_ENDPOINT", "https://graphql.datafordeler.dk/BBR/v1")
DHM_ENDPOINT = os.environ.get(
    "GEOENRICH_DHM_ENDPOINT", "https://api.dataforsyningen.dk/dhm_wcs_DAF")

# Per request, not per fetch
HTTP_TIMEOUT = float(os.environ.get("GEOENRICH_HTTP_TIMEOUT", "120"))

USER_AGENT = "geoenrich/0.1"


def bbr_api_key():
    return os.environ.get("GEOENRICH_BBR_API_KEY", "").strip()


def dhm_token():
    return os.environ.get("GEOENRICH_DHM_TOKEN", "").strip()


def require_credential(value, name: str) -> str:
    """Return *value* stripped, or raise ``ConfigError`` when it is empty."""
    value = (value or "").strip()
    if not value:
        raise ConfigError(
            f"Missing {name}; set it in the environment or in .env")
    return value
