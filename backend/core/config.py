import os

from dotenv import load_dotenv

# Load environment variables from .env file
# Load .env.local first (for local development), then .env (fallback)
load_dotenv(".env.local", override=True)  # Local development overrides
load_dotenv()  # Load .env if exists (won't override existing vars)
# General config in a central place


def _env_bool(name: str, default: str = "false") -> bool:
    """Parse a boolean-like environment variable.

    Accepts a broad set of truthy values to be user-friendly.
    """
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on", "y"}


# File ingestion

# Accepted GeoJSON file suffixes. The browser tool matched them case-sensitively,
# set GEOJSON_SUFFIX_CASE_SENSITIVE=false to also accept e.g. "FLOOR.GEOJSON".
GEOJSON_SUFFIXES = (".json", ".geojson")
GEOJSON_SUFFIX_CASE_SENSITIVE = _env_bool("GEOJSON_SUFFIX_CASE_SENSITIVE", default="true")

# File size limit per uploaded file (100MB)
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB in bytes


# Merge

# Name of the downloadable merge artifact
RESULT_FILENAME = os.getenv("RESULT_FILENAME", "result.txt")


# CORS configuration
# Comma-separated list of allowed origins; if empty, allow all (not recommended with credentials)
RAW_ALLOWED_ORIGINS = os.getenv("ALLOWED_CORS_ORIGINS", "")
ALLOWED_CORS_ORIGINS = [o.strip() for o in RAW_ALLOWED_ORIGINS.split(",") if o.strip()]

# Cookie Security Configuration
# The working set of each browser is keyed by the session_id cookie.
# Set COOKIE_SECURE=false when serving over plain HTTP (local development).
COOKIE_SECURE = _env_bool("COOKIE_SECURE", default="true")
COOKIE_HTTPONLY = _env_bool("COOKIE_HTTPONLY", default="true")
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")  # "lax", "strict", or "none"
SESSION_COOKIE_MAX_AGE = 60 * 60 * 24 * 30

# Seconds a session's working set is kept after its last use
WORKING_SET_TTL = int(os.getenv("WORKING_SET_TTL", str(SESSION_COOKIE_MAX_AGE)))


def get_key_mapping_variant() -> str:
    """Return the configured key mapping variant ("extended" or "base").

    "extended" adds store_numb -> store_number on top of the base table.

    Exposed as a function so tests can override the environment at runtime
    and re-query the value without needing to reload this module.
    """
    return os.getenv("KEY_MAPPING_VARIANT", "extended").strip().lower()
