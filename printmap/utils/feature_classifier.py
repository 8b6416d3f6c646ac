"""OSM feature classification and building height estimation."""

import math
import re

from .models import ClassifiedFeature, HeightStats

DEFAULT_BUILDING_HEIGHT_M = 5.0
METERS_PER_LEVEL = 3.0

CATEGORIES = ('building', 'highway', 'park', 'water', 'sand', 'ignored')

# Leading number, like JavaScript's parseFloat ("12 m" -> 12.0)
_LEADING_FLOAT = re.compile(r'^\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?')


def parse_float_tag(value):
    """
    Parse the leading number of a tag value.

    Returns:
        float or None: None when the value has no numeric prefix
    """
    if value is None:
        return None
    match = _LEADING_FLOAT.match(str(value))
    if not match:
        return None
    parsed = float(match.group(0))
    if math.isnan(parsed) or math.isinf(parsed):
        return None
    return parsed


def estimate_building_height(tags):
    """Height in meters: explicit height, then levels * 3, then the default."""
    height = parse_float_tag(tags.get('height'))
    if height is not None:
        return height

    levels = parse_float_tag(tags.get('building:levels'))
    if levels is not None:
        return levels * METERS_PER_LEVEL

    return DEFAULT_BUILDING_HEIGHT_M


def categorize(element):
    """Return the feature category of a single element."""
    tags = element.tags or {}
    if element.kind not in ('way', 'relation'):
        return 'ignored'

    if tags.get('building'):
        return 'building'
    if element.kind == 'way' and tags.get('highway'):
        return 'highway'
    if tags.get('leisure') == 'park':
        return 'park'
    if tags.get('natural') == 'sand':
        return 'sand'
    if tags.get('natural') == 'water':
        return 'water'
    return 'ignored'


def classify(elements):
    """
    Classify raw elements and collect building height statistics.

    Args:
        elements: Iterable of GeoElement

    Returns:
        tuple: (list of ClassifiedFeature, HeightStats)
    """
    features = []
    min_height = float('inf')
    max_height = 0.0

    for element in elements:
        category = categorize(element)
        real_height = None

        if category == 'building':
            real_height = estimate_building_height(element.tags or {})
            if real_height > 0:
                min_height = min(min_height, real_height)
                max_height = max(max_height, real_height)

        features.append(ClassifiedFeature(element, category, real_height))

    return features, HeightStats(min_height, max_height)


def index_elements(elements):
    """Split elements into node and way lookup tables keyed by id."""
    nodes = {}
    ways = {}
    for element in elements:
        if element.kind == 'node' and element.lat is not None and element.lon is not None:
            nodes[element.id] = element
        elif element.kind == 'way':
            ways[element.id] = element
    return nodes, ways


def resolve_coordinates(element, nodes, ways):
    """
    Resolve an element to an ordered list of (lat, lon) pairs.

    Dangling node references are dropped. A relation resolves to the node
    chain of its first outer way; holes and additional outers are ignored.
    """
    node_refs = ()
    if element.kind == 'way':
        node_refs = element.node_refs
    elif element.kind == 'relation':
        for member in element.members:
            if member.type == 'way' and member.role == 'outer' and member.ref in ways:
                node_refs = ways[member.ref].node_refs
                break

    coordinates = []
    for ref in node_refs:
        node = nodes.get(ref)
        if node is not None:
            coordinates.append((node.lat, node.lon))
    return coordinates
