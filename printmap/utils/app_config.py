"""Application configuration helpers."""

import os


DEFAULT_OVERPASS_SERVERS = [
    "https://overpass-api.de/api/interpreter",
    "https://overpass.kumi.systems/api/interpreter",
    "https://overpass.openstreetmap.ru/api/interpreter",
]
DEFAULT_MODEL_SIZE_MM = 200.0


def parse_env_bool(value, default=False):
    """Parse a boolean-like environment value with a fallback default."""
    if value is None:
        return default
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def get_cors_origins():
    """
    Return CORS origins from env, or localhost-only defaults.

    `PRINTMAP_CORS_ORIGINS` supports a comma-separated list.
    """
    raw = os.getenv('PRINTMAP_CORS_ORIGINS', '')
    if raw.strip():
        return [origin.strip() for origin in raw.split(',') if origin.strip()]
    return [r"^http://localhost(:\d+)?$", r"^http://127\.0\.0\.1(:\d+)?$"]


def parse_env_int(name, default):
    """Parse an integer environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        return default


def parse_env_float(name, default):
    """Parse a float environment value with fallback."""
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        return default


def get_debug_enabled():
    return parse_env_bool(os.getenv('PRINTMAP_DEBUG'), default=False)


def get_export_folder():
    return os.getenv('PRINTMAP_EXPORT_FOLDER', '/app/exports')


def get_file_ttl_seconds():
    return max(60, parse_env_int('PRINTMAP_FILE_TTL_SECONDS', 24 * 3600))


def get_overpass_servers():
    raw = os.getenv('PRINTMAP_OVERPASS_SERVERS', '')
    if raw.strip():
        return [server.strip() for server in raw.split(',') if server.strip()]
    return list(DEFAULT_OVERPASS_SERVERS)


def get_overpass_timeout_seconds():
    return max(1, parse_env_int('PRINTMAP_OVERPASS_TIMEOUT_SECONDS', 45))


def get_osm_cache_max_age_seconds():
    return max(0, parse_env_int('PRINTMAP_OSM_CACHE_MAX_AGE_SECONDS', 6 * 3600))


def get_default_model_size_mm():
    """Default printed size of the model's longest side."""
    size = parse_env_float('PRINTMAP_DEFAULT_MODEL_SIZE_MM', DEFAULT_MODEL_SIZE_MM)
    if size <= 0:
        return DEFAULT_MODEL_SIZE_MM
    return size
