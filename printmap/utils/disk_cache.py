"""
JSON disk cache keyed by request parameters.

Entries are stored as ``{"saved_at", "key", "value"}`` envelopes, so expiry
does not depend on file modification times and a digest collision can never
return another request's data.
"""

import hashlib
import json
import os
import time


def default_cache_dir():
    return os.getenv("PRINTMAP_CACHE_DIR", "/app/exports/cache")


def cache_key_digest(key_payload):
    serialized = json.dumps(key_payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def cache_path(namespace, key_payload, cache_dir=None):
    directory = cache_dir or default_cache_dir()
    return os.path.join(directory, f"{namespace}_{cache_key_digest(key_payload)}.json")


def load_json_cache(namespace, key_payload, max_age_seconds=None, cache_dir=None):
    """Return the cached value, or None when missing, expired or unreadable."""
    path = cache_path(namespace, key_payload, cache_dir=cache_dir)
    try:
        with open(path, "r", encoding="utf-8") as f:
            entry = json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        print(f"[WARN] Ignoring unreadable cache file {path}: {e}")
        return None

    if not isinstance(entry, dict) or entry.get("key") != key_payload:
        return None
    if max_age_seconds is not None:
        if time.time() - entry.get("saved_at", 0) > max_age_seconds:
            return None
    return entry.get("value")


def save_json_cache(namespace, key_payload, value, cache_dir=None):
    """Persist a JSON-serializable value; the file is replaced atomically."""
    directory = cache_dir or default_cache_dir()
    os.makedirs(directory, exist_ok=True)
    path = cache_path(namespace, key_payload, cache_dir=directory)

    tmp_path = f"{path}.tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump({"saved_at": time.time(), "key": key_payload, "value": value}, f)
    os.replace(tmp_path, path)
    return path
