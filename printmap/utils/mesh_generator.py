"""3D model generation: layered solids from classified OSM features."""

import math
import time

import numpy as np

from .feature_classifier import classify, index_elements, resolve_coordinates
from .models import CityModel, Layer, Material, MeshGeometry, SolidPiece
from .projection import project, project_bounds
from .scale_planner import MAX_PRINT_HEIGHT_MM, building_print_height, plan_scale
from .shape_clipper import RectangleClipper

ROAD_WIDTH = 1.0             # display units, scaled by display_vertical_scale
MIN_ROAD_SEGMENT_M = 0.1     # shorter road segments are not emitted
MIN_POLYGON_AREA = 1e-9
EAR_EPSILON = 1e-12


def hex_to_rgb(hex_color):
    """
    Convert hex color string to RGB tuple.

    Args:
        hex_color: Hex color string (e.g., "#aabbcc" or "aabbcc")

    Returns:
        tuple: (r, g, b) values 0-255
    """
    hex_color = hex_color.lstrip('#')
    return tuple(int(hex_color[i:i+2], 16) for i in (0, 2, 4))


def rgb_to_hex(color):
    r, g, b = color
    return f'#{r:02X}{g:02X}{b:02X}'


# Offsets stack base < water < grass < road; buildings rise from the base top.
LAYERS = {
    'base': Layer('base', hex_to_rgb('#CCCCCC'), 0.6, 0.0),
    'water': Layer('water', hex_to_rgb('#2196F3'), 0.1, 0.6),
    'grass': Layer('grass', hex_to_rgb('#4CAF50'), 0.2, 0.8),
    'road': Layer('road', hex_to_rgb('#222222'), 0.2, 1.1),
    'building': Layer('building', hex_to_rgb('#888888'), MAX_PRINT_HEIGHT_MM, 0.6),
}

# Ground cover sits in the grass band: (color, height_mm)
GROUND_COVER = {
    'park': (hex_to_rgb('#4CAF50'), 0.2),
    'sand': (hex_to_rgb('#F4E4BC'), 0.1),
}


def generate_model(elements, bounds, target_size_mm):
    """
    Run the full pipeline from raw OSM elements to a layered model.

    Args:
        elements: List of GeoElement
        bounds: BoundingBox of the selected region
        target_size_mm: Printed size of the model's longest side

    Returns:
        CityModel

    Raises:
        BoundaryError: if the region has zero width or depth
    """
    t_start = time.time()

    window = project_bounds(bounds)
    plan = plan_scale(window.width, window.depth, target_size_mm)
    features, stats = classify(elements)
    nodes, ways = index_elements(elements)

    model = build_model(features, stats, window, plan, nodes, ways)

    print(f"[PERF] generate_model() built {len(model.pieces)} pieces "
          f"from {len(features)} elements in {time.time() - t_start:.3f}s")
    if model.skipped:
        skipped = ', '.join(f"{k}={v}" for k, v in sorted(model.skipped.items()))
        print(f"[INFO] Skipped degenerate features: {skipped}")
    return model


def build_model(features, stats, window, plan, nodes, ways):
    """
    Build the layered solids for one region.

    Args:
        features: List of ClassifiedFeature
        stats: HeightStats over all buildings
        window: BoundaryWindow (also carries the projection center)
        plan: ScalePlan
        nodes: Node lookup by id
        ways: Way lookup by id (for relation outer rings)

    Returns:
        CityModel with base, water, building, road and ground cover pieces
    """
    model = CityModel(window=window, plan=plan, stats=stats, layers=dict(LAYERS))
    dvs = plan.display_vertical_scale
    clipper = RectangleClipper(window)

    materials = {}
    for name in ('base', 'water', 'building', 'road'):
        layer = LAYERS[name]
        materials[name] = model.add_material(Material(name, layer.color))
    for name, (color, _) in GROUND_COVER.items():
        materials[name] = model.add_material(Material(name, color))

    _add_base(model, materials['base'], dvs)
    _add_water(model, materials['water'], dvs)

    for feature in features:
        category = feature.category
        if category in ('ignored', 'water'):
            continue

        element = feature.element
        points = [
            project(lat, lon, window.center_lat, window.center_lon)
            for lat, lon in resolve_coordinates(element, nodes, ways)
        ]
        if len(points) < 2:
            model.skipped[category] += 1
            continue

        if category == 'building':
            added = _add_building(model, feature, points, clipper, materials['building'], dvs)
        elif category == 'highway':
            added = _add_road(model, element, points, clipper, materials['road'], dvs)
        else:
            added = _add_ground_cover(model, element, category, points, clipper,
                                      materials[category], dvs)

        if not added:
            model.skipped[category] += 1

    return model


def _add_base(model, material, dvs):
    layer = LAYERS['base']
    ring = [(p.x, p.z) for p in model.window.loop]
    geometry = extrude_polygon(ring, layer.offset_mm * dvs, layer.top_mm * dvs)
    model.add_piece(SolidPiece('base', model.add_geometry(geometry), material,
                               layer.height_mm, layer.offset_mm))


def _add_water(model, material, dvs):
    # One plane over the whole window; individual water features are not extruded.
    layer = LAYERS['water']
    window = model.window
    geometry = create_flat_plane(window.min_x, window.max_x, window.min_z, window.max_z,
                                 layer.top_mm * dvs)
    model.add_piece(SolidPiece('water', model.add_geometry(geometry), material,
                               layer.height_mm, layer.offset_mm))


def _add_building(model, feature, points, clipper, material, dvs):
    clipped = clipper.clip_polygon(_open_ring(points))
    if clipped is None:
        return False

    layer = LAYERS['building']
    print_mm = building_print_height(feature.real_height_m, model.stats)
    geometry = extrude_polygon(
        [(p.x, p.z) for p in clipped],
        layer.offset_mm * dvs,
        (layer.offset_mm + print_mm) * dvs,
    )
    if geometry is None:
        return False

    model.add_piece(SolidPiece('building', model.add_geometry(geometry), material,
                               print_mm, layer.offset_mm, feature.element.id))
    return True


def _add_road(model, element, points, clipper, material, dvs):
    layer = LAYERS['road']
    width = ROAD_WIDTH * dvs
    added = 0

    # Every sub-path is extruded independently, one box per segment.
    for line in clipper.clip_linestring(points):
        for start, end in zip(line[:-1], line[1:]):
            if math.hypot(end.x - start.x, end.z - start.z) <= MIN_ROAD_SEGMENT_M:
                continue
            geometry = create_oriented_box(
                (start.x, start.z), (end.x, end.z), width,
                layer.offset_mm * dvs, layer.top_mm * dvs,
            )
            model.add_piece(SolidPiece('road', model.add_geometry(geometry), material,
                                       layer.height_mm, layer.offset_mm, element.id))
            added += 1

    return added > 0


def _add_ground_cover(model, element, category, points, clipper, material, dvs):
    clipped = clipper.clip_polygon(_open_ring(points))
    if clipped is None:
        return False

    layer = LAYERS['grass']
    _, height_mm = GROUND_COVER[category]
    geometry = extrude_polygon(
        [(p.x, p.z) for p in clipped],
        layer.offset_mm * dvs,
        (layer.offset_mm + height_mm) * dvs,
    )
    if geometry is None:
        return False

    model.add_piece(SolidPiece('grass', model.add_geometry(geometry), material,
                               height_mm, layer.offset_mm, element.id))
    return True


def _open_ring(points):
    """Drop the repeated closing node of a closed OSM way."""
    if len(points) > 1 and points[0].x == points[-1].x and points[0].z == points[-1].z:
        return points[:-1]
    return points


def extrude_polygon(ring, y_bottom, y_top):
    """
    Extrude a 2D ring in the XZ plane into a closed prism.

    The ring is normalized to clockwise order in (x, z) so that, with Y up,
    caps and walls face outward.

    Args:
        ring: Sequence of (x, z) pairs, not closed
        y_bottom: Y of the bottom cap
        y_top: Y of the top cap

    Returns:
        MeshGeometry or None if the ring is degenerate
    """
    points = np.asarray(ring, dtype=np.float64)
    n = len(points)
    if n < 3:
        return None

    signed_area = 0.5 * np.sum(points[:, 0] * np.roll(points[:, 1], -1)
                               - np.roll(points[:, 0], -1) * points[:, 1])
    if abs(signed_area) < MIN_POLYGON_AREA:
        return None
    if signed_area > 0:
        points = points[::-1]

    bottom = np.column_stack([points[:, 0], np.full(n, y_bottom), points[:, 1]])
    top = np.column_stack([points[:, 0], np.full(n, y_top), points[:, 1]])
    vertices = np.vstack([bottom, top])

    faces = []
    for a, b, c in triangulate_polygon(points):
        faces.append([n + a, n + b, n + c])  # top, facing +Y
        faces.append([a, c, b])              # bottom, facing -Y

    for i in range(n):
        j = (i + 1) % n
        faces.append([i, j, n + j])
        faces.append([i, n + j, n + i])

    return MeshGeometry(vertices, np.array(faces, dtype=np.int64))


def create_oriented_box(start, end, width, y_bottom, y_top):
    """
    Create a box along a road segment.

    The box is built around the origin with its long axis on local X, rotated
    so that axis matches the normalized segment direction, then moved to the
    segment midpoint.

    Args:
        start: (x, z) segment start
        end: (x, z) segment end
        width: Box width across the segment
        y_bottom: Y of the box bottom
        y_top: Y of the box top

    Returns:
        MeshGeometry
    """
    start = np.asarray(start, dtype=np.float64)
    end = np.asarray(end, dtype=np.float64)
    delta = end - start
    length = np.linalg.norm(delta)
    direction = delta / length

    rotation = np.array([
        [direction[0], -direction[1]],
        [direction[1], direction[0]],
    ])
    half_l = length / 2.0
    half_w = width / 2.0
    local_corners = np.array([
        [-half_l, -half_w],
        [half_l, -half_w],
        [half_l, half_w],
        [-half_l, half_w],
    ])
    midpoint = (start + end) / 2.0
    corners = local_corners @ rotation.T + midpoint

    return extrude_polygon(corners, y_bottom, y_top)


def create_flat_plane(min_x, max_x, min_z, max_z, y):
    """Create an upward-facing rectangle at height ``y``."""
    vertices = np.array([
        [min_x, y, min_z],
        [min_x, y, max_z],
        [max_x, y, max_z],
        [max_x, y, min_z],
    ], dtype=np.float64)
    faces = np.array([[0, 1, 2], [0, 2, 3]], dtype=np.int64)
    return MeshGeometry(vertices, faces)


def triangulate_polygon(points_2d):
    """
    Ear-clipping triangulation of a simple polygon.

    Triangles keep the winding of the input ring. A vertex touching a
    candidate ear blocks it; if no ear is left (self-touching ring) the
    remainder is closed as a fan.

    Args:
        points_2d: Nx2 sequence of ring points, not closed

    Returns:
        List of [a, b, c] index triplets into points_2d
    """
    points = np.asarray(points_2d, dtype=np.float64)
    n = len(points)
    if n < 3:
        return []

    x, y = points[:, 0], points[:, 1]
    orientation = 1.0 if np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y) > 0 else -1.0

    def turn(a, b, c):
        # Positive when a-b-c turns the same way as the ring
        return orientation * ((x[b] - x[a]) * (y[c] - y[a]) - (y[b] - y[a]) * (x[c] - x[a]))

    def blocks(p, a, b, c):
        return (turn(a, b, p) >= -EAR_EPSILON and turn(b, c, p) >= -EAR_EPSILON
                and turn(c, a, p) >= -EAR_EPSILON)

    remaining = list(range(n))
    triangles = []
    while len(remaining) > 3:
        m = len(remaining)
        for pos in range(m):
            a, b, c = remaining[pos - 1], remaining[pos], remaining[(pos + 1) % m]
            if turn(a, b, c) <= EAR_EPSILON:
                continue
            if any(blocks(p, a, b, c) for p in remaining if p not in (a, b, c)):
                continue
            triangles.append([a, b, c])
            del remaining[pos]
            break
        else:
            triangles.extend([remaining[0], remaining[i], remaining[i + 1]] for i in range(1, m - 1))
            return triangles

    triangles.append(remaining)
    return triangles


def model_to_dict(model):
    """
    Serialize a model for the preview client.

    Vertices are in preview space (meters, Y exaggerated by
    ``display_vertical_scale``); ``height_mm`` is the printed height.
    """
    pieces = []
    for piece in model.pieces:
        geometry = model.geometries[piece.geometry]
        material = model.materials[piece.material]
        pieces.append({
            'type': piece.kind,
            'material': material.name,
            'id': piece.feature_id,
            'color': rgb_to_hex(material.color),
            'height_mm': piece.height_mm,
            'offset_mm': piece.offset_mm,
            'vertices': geometry.vertices.tolist(),
            'faces': geometry.faces.tolist(),
        })

    window = model.window
    stats = model.stats
    counts = {}
    for piece in model.pieces:
        counts[piece.kind] = counts.get(piece.kind, 0) + 1

    return {
        'layers': [
            {
                'kind': layer.kind,
                'color': rgb_to_hex(layer.color),
                'height_mm': layer.height_mm,
                'offset_mm': layer.offset_mm,
            }
            for layer in model.layers.values()
        ],
        'pieces': pieces,
        'bounds': {
            'min_x': window.min_x,
            'max_x': window.max_x,
            'min_z': window.min_z,
            'max_z': window.max_z,
        },
        'scale': {
            'horizontal': model.plan.horizontal_scale,
            'display_vertical': model.plan.display_vertical_scale,
            'size_mm': model.plan.target_size_mm,
        },
        'metadata': {
            'pieces_count': len(model.pieces),
            'pieces_by_layer': counts,
            'skipped': dict(model.skipped),
            'height_stats': {
                'min_m': None if stats.min_building_height_m == float('inf') else stats.min_building_height_m,
                'max_m': stats.max_building_height_m,
            },
        },
    }
