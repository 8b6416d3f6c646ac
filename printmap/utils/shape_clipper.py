"""Clipping of projected features against the rectangular model boundary."""

import numpy as np

from .models import ProjectedPoint

# Cohen-Sutherland outcodes
INSIDE = 0
LEFT = 1
RIGHT = 2
BOTTOM = 4
TOP = 8


def _is_inside(point, edge_start, edge_end):
    """Strict half-plane test: point lies left of the directed edge."""
    return ((edge_end.x - edge_start.x) * (point.z - edge_start.z)
            > (edge_end.z - edge_start.z) * (point.x - edge_start.x))


def _edge_intersection(s, e, edge_start, edge_end):
    """
    Intersection of segment s-e with the infinite line through a clip edge.

    Only called on inside/outside transitions, so the lines are never parallel.
    The Y value of the segment start is carried over.
    """
    dc_x = edge_start.x - edge_end.x
    dc_z = edge_start.z - edge_end.z
    dp_x = s.x - e.x
    dp_z = s.z - e.z
    n1 = edge_start.x * edge_end.z - edge_start.z * edge_end.x
    n2 = s.x * e.z - s.z * e.x
    n3 = 1.0 / (dc_x * dp_z - dc_z * dp_x)
    return ProjectedPoint(
        (n1 * dp_x - n2 * dc_x) * n3,
        s.y,
        (n1 * dp_z - n2 * dc_z) * n3,
    )


def clip_polygon(subject, window_loop):
    """
    Clip a closed polygon to a convex window (Sutherland-Hodgman).

    Args:
        subject: Sequence of ProjectedPoint forming an open ring
        window_loop: Window corners, interior left of every edge

    Returns:
        list: Clipped ring. Fewer than 3 points means the polygon is outside.
    """
    output = list(subject)
    count = len(window_loop)

    for i in range(count):
        edge_start = window_loop[i]
        edge_end = window_loop[(i + 1) % count]

        candidates = output
        output = []
        if not candidates:
            break

        s = candidates[-1]
        for e in candidates:
            s_inside = _is_inside(s, edge_start, edge_end)
            e_inside = _is_inside(e, edge_start, edge_end)

            if e_inside:
                if not s_inside:
                    output.append(_edge_intersection(s, e, edge_start, edge_end))
                output.append(e)
            elif s_inside:
                output.append(_edge_intersection(s, e, edge_start, edge_end))
            s = e

    return output


def _window_extent(window_loop):
    xs = [p.x for p in window_loop]
    zs = [p.z for p in window_loop]
    return min(xs), max(xs), min(zs), max(zs)


def outcode(point, min_x, max_x, min_z, max_z):
    """4-bit region code of a point relative to the window."""
    code = INSIDE
    if point.x < min_x:
        code |= LEFT
    elif point.x > max_x:
        code |= RIGHT
    if point.z < min_z:
        code |= BOTTOM
    elif point.z > max_z:
        code |= TOP
    return code


def clip_segment(p1, p2, min_x, max_x, min_z, max_z):
    """
    Clip one segment to the window (Cohen-Sutherland).

    Returns:
        tuple or None: (start, end) of the visible part, None if rejected
    """
    code1 = outcode(p1, min_x, max_x, min_z, max_z)
    code2 = outcode(p2, min_x, max_x, min_z, max_z)

    while True:
        if code1 == INSIDE and code2 == INSIDE:
            return p1, p2
        if code1 & code2:
            return None

        code_out = code1 if code1 != INSIDE else code2
        if code_out & TOP:
            x = p1.x + (p2.x - p1.x) * (max_z - p1.z) / (p2.z - p1.z)
            z = max_z
        elif code_out & BOTTOM:
            x = p1.x + (p2.x - p1.x) * (min_z - p1.z) / (p2.z - p1.z)
            z = min_z
        elif code_out & RIGHT:
            z = p1.z + (p2.z - p1.z) * (max_x - p1.x) / (p2.x - p1.x)
            x = max_x
        else:
            z = p1.z + (p2.z - p1.z) * (min_x - p1.x) / (p2.x - p1.x)
            x = min_x

        if code_out == code1:
            p1 = ProjectedPoint(x, p1.y, z)
            code1 = outcode(p1, min_x, max_x, min_z, max_z)
        else:
            p2 = ProjectedPoint(x, p2.y, z)
            code2 = outcode(p2, min_x, max_x, min_z, max_z)


def _same_position(a, b):
    return a.x == b.x and a.z == b.z


def clip_polyline(points, window_loop):
    """
    Clip an open polyline to the window, preserving continuity.

    Consecutive visible segments sharing an endpoint are merged; any gap
    starts a new polyline. Segments that collapse to a point on the boundary
    are dropped.

    Returns:
        list: Disjoint polylines, each a list of ProjectedPoint
    """
    min_x, max_x, min_z, max_z = _window_extent(window_loop)
    polylines = []
    current = []

    for i in range(len(points) - 1):
        clipped = clip_segment(points[i], points[i + 1], min_x, max_x, min_z, max_z)
        if clipped is not None and _same_position(clipped[0], clipped[1]):
            # Repeated node inside the path: nothing to add, path continues
            if current and _same_position(current[-1], clipped[0]):
                continue
            clipped = None

        if clipped is None:
            if current:
                polylines.append(current)
                current = []
            continue

        start, end = clipped
        if current and not _same_position(current[-1], start):
            polylines.append(current)
            current = []
        if not current:
            current.append(start)
        current.append(end)

    if current:
        polylines.append(current)
    return polylines


class RectangleClipper:
    """Axis-aligned rectangle clipper bound to one model window."""

    def __init__(self, window):
        """
        Initialize rectangle clipper.

        Args:
            window: BoundaryWindow in projected space
        """
        self.window = window
        self.loop = window.loop
        self.min_x, self.max_x = window.min_x, window.max_x
        self.min_z, self.max_z = window.min_z, window.max_z

    def is_inside(self, x, z):
        """Test if point(s) are inside the rectangle (boundary included)."""
        return ((np.asarray(x) >= self.min_x) & (np.asarray(x) <= self.max_x) &
                (np.asarray(z) >= self.min_z) & (np.asarray(z) <= self.max_z))

    def outcode(self, point):
        return outcode(point, self.min_x, self.max_x, self.min_z, self.max_z)

    def clip_polygon(self, points):
        """Clip a ring; returns None when fewer than 3 points survive."""
        clipped = _drop_repeated(clip_polygon(points, self.loop))
        if len(clipped) < 3:
            return None
        return clipped

    def clip_linestring(self, points):
        """Clip a path into its visible sub-paths (each with >= 2 points)."""
        return [line for line in clip_polyline(points, self.loop) if len(line) >= 2]


def _drop_repeated(ring):
    """Remove consecutive duplicate vertices, including the closing one."""
    cleaned = []
    for point in ring:
        if cleaned and _same_position(cleaned[-1], point):
            continue
        cleaned.append(point)
    while len(cleaned) > 1 and _same_position(cleaned[0], cleaned[-1]):
        cleaned.pop()
    return cleaned
