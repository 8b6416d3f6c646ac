import unittest

import numpy as np

from printmap.utils.models import BoundaryWindow, ProjectedPoint
from printmap.utils.shape_clipper import (
    BOTTOM,
    INSIDE,
    LEFT,
    RIGHT,
    TOP,
    RectangleClipper,
    clip_polygon,
    clip_polyline,
    clip_segment,
    outcode,
)


def _p(x, z):
    return ProjectedPoint(x, 0.0, z)


def _window():
    # Corners given the way the projection produces them (negated axes)
    return BoundaryWindow(_p(10.0, 10.0), _p(-10.0, -10.0))


class ClipPolygonTests(unittest.TestCase):
    def setUp(self):
        self.loop = _window().loop

    def test_inside_polygon_is_unchanged(self):
        polygon = [_p(-5, -5), _p(5, -5), _p(5, 5), _p(-5, 5)]
        self.assertEqual(clip_polygon(polygon, self.loop), polygon)

    def test_outside_polygon_is_rejected(self):
        polygon = [_p(20, 20), _p(30, 20), _p(30, 30), _p(20, 30)]
        self.assertLess(len(clip_polygon(polygon, self.loop)), 3)

    def test_partial_overlap_is_cut_at_the_boundary(self):
        polygon = [_p(5, 5), _p(15, 5), _p(15, 15), _p(5, 15)]
        clipped = clip_polygon(polygon, self.loop)
        corners = {(round(p.x, 6), round(p.z, 6)) for p in clipped}
        self.assertEqual(corners, {(5.0, 5.0), (10.0, 5.0), (10.0, 10.0), (5.0, 10.0)})

    def test_window_covering_polygon_clips_to_window(self):
        polygon = [_p(-50, -50), _p(50, -50), _p(50, 50), _p(-50, 50)]
        clipped = clip_polygon(polygon, self.loop)
        for point in clipped:
            self.assertLessEqual(abs(point.x), 10.0 + 1e-9)
            self.assertLessEqual(abs(point.z), 10.0 + 1e-9)
        self.assertEqual(len(clipped), 4)


class CohenSutherlandTests(unittest.TestCase):
    def test_outcodes(self):
        self.assertEqual(outcode(_p(0, 0), -10, 10, -10, 10), INSIDE)
        self.assertEqual(outcode(_p(-20, 0), -10, 10, -10, 10), LEFT)
        self.assertEqual(outcode(_p(20, 0), -10, 10, -10, 10), RIGHT)
        self.assertEqual(outcode(_p(0, -20), -10, 10, -10, 10), BOTTOM)
        self.assertEqual(outcode(_p(-20, 20), -10, 10, -10, 10), LEFT | TOP)
        self.assertEqual(outcode(_p(10, 10), -10, 10, -10, 10), INSIDE)

    def test_trivial_reject(self):
        self.assertIsNone(clip_segment(_p(20, -5), _p(30, 5), -10, 10, -10, 10))

    def test_crossing_segment_is_shortened(self):
        start, end = clip_segment(_p(-20, 0), _p(20, 0), -10, 10, -10, 10)
        self.assertEqual((start.x, start.z), (-10.0, 0.0))
        self.assertEqual((end.x, end.z), (10.0, 0.0))


class ClipPolylineTests(unittest.TestCase):
    def setUp(self):
        self.loop = _window().loop

    def test_outside_then_inside_segment(self):
        a, b, c = _p(-30, 0), _p(-10, 0), _p(5, 0)
        self.assertEqual(clip_polyline([a, b, c], self.loop), [[b, c]])

    def test_inside_polyline_is_one_path(self):
        points = [_p(-5, 0), _p(0, 5), _p(5, 0)]
        self.assertEqual(clip_polyline(points, self.loop), [points])

    def test_outside_excursion_splits_the_path(self):
        points = [_p(-5, 0), _p(0, 0), _p(0, 20), _p(5, 0)]
        lines = clip_polyline(points, self.loop)

        self.assertEqual(len(lines), 2)
        self.assertEqual(lines[0][:2], points[:2])
        self.assertEqual((lines[0][-1].x, lines[0][-1].z), (0.0, 10.0))
        self.assertEqual((lines[1][0].x, lines[1][0].z), (2.5, 10.0))
        self.assertEqual(lines[1][-1], points[-1])

    def test_no_point_leaves_the_window(self):
        points = [_p(-40, -3), _p(40, 3), _p(0, 40), _p(-15, -15), _p(15, 15)]
        for line in clip_polyline(points, self.loop):
            for point in line:
                self.assertLessEqual(abs(point.x), 10.0 + 1e-9)
                self.assertLessEqual(abs(point.z), 10.0 + 1e-9)

    def test_repeated_node_keeps_path_whole(self):
        points = [_p(-5, 0), _p(0, 0), _p(0, 0), _p(5, 0)]
        lines = clip_polyline(points, self.loop)
        self.assertEqual(lines, [[_p(-5, 0), _p(0, 0), _p(5, 0)]])

    def test_path_touching_boundary_before_leaving_stays_one_line(self):
        points = [_p(0, 0), _p(10, 0), _p(10, 0), _p(20, 0)]
        self.assertEqual(clip_polyline(points, self.loop), [[_p(0, 0), _p(10, 0)]])

    def test_fully_outside_polyline(self):
        points = [_p(20, 20), _p(30, 30), _p(40, 20)]
        self.assertEqual(clip_polyline(points, self.loop), [])


class RectangleClipperTests(unittest.TestCase):
    def setUp(self):
        self.clipper = RectangleClipper(_window())

    def test_is_inside_includes_boundary(self):
        inside = self.clipper.is_inside(np.array([0.0, 10.0, 10.1]), np.array([0.0, -10.0, 0.0]))
        self.assertEqual(inside.tolist(), [True, True, False])

    def test_clip_polygon_rejects_outside(self):
        self.assertIsNone(self.clipper.clip_polygon([_p(20, 20), _p(30, 20), _p(30, 30)]))

    def test_clip_polygon_accepts_inside(self):
        polygon = [_p(0, 0), _p(1, 1), _p(2, 0)]
        self.assertEqual(self.clipper.clip_polygon(polygon), polygon)

    def test_clip_linestring(self):
        lines = self.clipper.clip_linestring([_p(-30, 0), _p(-10, 0), _p(5, 0)])
        self.assertEqual(lines, [[_p(-10, 0), _p(5, 0)]])


if __name__ == "__main__":
    unittest.main()
