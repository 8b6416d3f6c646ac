"""Local tangent-plane projection from WGS84 to model meters."""

import math

from .models import BoundaryError, BoundaryWindow, ProjectedPoint

METERS_PER_DEGREE_LON = 111320.0  # at the equator, scaled by cos(lat)
METERS_PER_DEGREE_LAT = 110574.0


def project(lat, lon, center_lat, center_lon):
    """
    Project a geographic coordinate to local planar meters.

    Both axes are negated so the planar frame matches the preview's
    north-up, east-right camera. Only valid for small regions.

    Returns:
        ProjectedPoint: (x, 0, z) relative to the region center
    """
    x = -(lon - center_lon) * METERS_PER_DEGREE_LON * math.cos(math.radians(lat))
    z = -(lat - center_lat) * METERS_PER_DEGREE_LAT
    return ProjectedPoint(x, 0.0, z)


def region_center(bounds):
    """Return (center_lat, center_lon) of a BoundingBox."""
    return (bounds.south + bounds.north) / 2, (bounds.west + bounds.east) / 2


def project_bounds(bounds):
    """
    Project a BoundingBox into a clip window.

    Raises:
        BoundaryError: if the projected region has zero width or depth
    """
    center_lat, center_lon = region_center(bounds)
    south_west = project(bounds.south, bounds.west, center_lat, center_lon)
    north_east = project(bounds.north, bounds.east, center_lat, center_lon)
    window = BoundaryWindow(south_west, north_east, center_lat, center_lon)

    if not (window.width > 0 and window.depth > 0):
        raise BoundaryError(
            f"Selected region is empty ({window.width:.3f}m x {window.depth:.3f}m)"
        )
    return window
