"""OpenStreetMap data fetching utilities using Overpass API."""

import requests

from .app_config import (
    get_osm_cache_max_age_seconds,
    get_overpass_servers,
    get_overpass_timeout_seconds,
)
from .disk_cache import load_json_cache, save_json_cache
from .models import GeoElement, RelationMember


def build_overpass_query(north, south, east, west):
    """
    Build one Overpass QL query for every feature the model renders.

    Node recursion (``(._;>;);``) returns the nodes referenced by ways and
    the ways referenced by relations.
    """
    bbox = f"{south},{west},{north},{east}"
    return f"""
    [out:json][timeout:30];
    (
      way[building]({bbox});
      relation[building]({bbox});
      way[highway]({bbox});
      way[leisure=park]({bbox});
      relation[leisure=park]({bbox});
      way[natural=water]({bbox});
      relation[natural=water]({bbox});
      way[natural=sand]({bbox});
      relation[natural=sand]({bbox});
    );
    (._;>;);
    out;
    """


def fetch_osm_elements(north, south, east, west, use_cache=True):
    """
    Fetch raw OSM elements for a bounding box.

    Args:
        north: Northern latitude bound
        south: Southern latitude bound
        east: Eastern longitude bound
        west: Western longitude bound
        use_cache: Reuse a recent response for the same bounds

    Returns:
        list: Raw element dicts as returned by Overpass
    """
    cache_key = {"north": north, "south": south, "east": east, "west": west}
    if use_cache:
        cached = load_json_cache("overpass", cache_key,
                                 max_age_seconds=get_osm_cache_max_age_seconds())
        if cached is not None:
            print(f"[INFO] Overpass cache hit ({len(cached)} elements)")
            return cached

    elements = query_overpass(build_overpass_query(north, south, east, west))

    if use_cache and elements:
        try:
            save_json_cache("overpass", cache_key, elements)
        except OSError as e:
            print(f"[WARN] Could not cache Overpass response: {e}")
    return elements


def query_overpass(query):
    """
    Execute an Overpass API query with fallback servers.

    Args:
        query: Overpass QL query string

    Returns:
        list: Elements from the response, empty if every server failed
    """
    last_error = None
    timeout = get_overpass_timeout_seconds()

    for server in get_overpass_servers():
        try:
            print(f"Trying Overpass server: {server}")
            response = requests.post(
                server,
                data={'data': query},
                timeout=timeout
            )
            response.raise_for_status()
            data = response.json()
            elements = data.get('elements', [])
            print(f"Success! Got {len(elements)} elements")
            return elements

        except requests.exceptions.Timeout:
            print(f"Timeout on {server}")
            last_error = "timeout"
            continue
        except requests.exceptions.RequestException as e:
            print(f"Error on {server}: {e}")
            last_error = str(e)
            continue
        except ValueError as e:
            print(f"Invalid JSON from {server}: {e}")
            last_error = str(e)
            continue

    print(f"All Overpass servers failed. Last error: {last_error}")
    return []


def parse_elements(elements):
    """
    Parse raw Overpass elements into GeoElements.

    Elements of unknown type or without an id are dropped; missing tags,
    node lists and coordinates are tolerated.

    Args:
        elements: List of raw element dicts

    Returns:
        list: GeoElement instances
    """
    parsed = []

    for element in elements or []:
        if not isinstance(element, dict):
            continue
        kind = element.get('type')
        element_id = element.get('id')
        if kind not in ('node', 'way', 'relation') or element_id is None:
            continue

        tags = element.get('tags')
        if not isinstance(tags, dict):
            tags = {}
        tags = {str(k): str(v) for k, v in tags.items()}

        if kind == 'node':
            lat = _as_float(element.get('lat'))
            lon = _as_float(element.get('lon'))
            parsed.append(GeoElement('node', element_id, tags, lat=lat, lon=lon))
        elif kind == 'way':
            node_refs = tuple(element.get('nodes') or ())
            parsed.append(GeoElement('way', element_id, tags, node_refs=node_refs))
        else:
            members = tuple(
                RelationMember(m.get('type', ''), m.get('ref'), m.get('role', ''))
                for m in element.get('members') or ()
                if isinstance(m, dict) and m.get('ref') is not None
            )
            parsed.append(GeoElement('relation', element_id, tags, members=members))

    return parsed


def _as_float(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
