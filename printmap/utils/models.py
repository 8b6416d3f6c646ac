"""Data classes shared by the model generation pipeline."""

from collections import Counter
from dataclasses import dataclass, field
from typing import NamedTuple, Optional

import numpy as np


class PrintmapError(Exception):
    """Base class for model generation errors."""


class BoundaryError(PrintmapError, ValueError):
    """The selected region has zero width or depth."""


class ExportError(PrintmapError, ValueError):
    """A model could not be serialized."""


class ProjectedPoint(NamedTuple):
    """Position in local planar meters around the region centroid (Y is up)."""
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class RelationMember:
    type: str
    ref: int
    role: str = ''


@dataclass(frozen=True)
class GeoElement:
    """Raw OSM element as returned by Overpass."""
    kind: str
    id: int
    tags: dict = field(default_factory=dict)
    node_refs: tuple = ()
    lat: Optional[float] = None
    lon: Optional[float] = None
    members: tuple = ()


@dataclass(frozen=True)
class ClassifiedFeature:
    element: GeoElement
    category: str
    real_height_m: Optional[float] = None


@dataclass(frozen=True)
class HeightStats:
    min_building_height_m: float = float('inf')
    max_building_height_m: float = 0.0

    @property
    def is_degenerate(self):
        return not self.max_building_height_m > self.min_building_height_m


@dataclass(frozen=True)
class BoundingBox:
    north: float
    south: float
    east: float
    west: float

    @classmethod
    def from_dict(cls, bounds):
        """Build from a ``{'north', 'south', 'east', 'west'}`` mapping."""
        missing = [k for k in ('north', 'south', 'east', 'west') if k not in bounds]
        if missing:
            raise ValueError(f"Invalid bounds provided, missing: {', '.join(missing)}")
        return cls(
            north=float(bounds['north']),
            south=float(bounds['south']),
            east=float(bounds['east']),
            west=float(bounds['west']),
        )


@dataclass(frozen=True)
class BoundaryWindow:
    """
    Axis-aligned clip window in projected space.

    ``south_west`` and ``north_east`` are the projected region corners. The
    projection negates both axes, so the corners are normalized into
    min/max extents before use.
    """
    south_west: ProjectedPoint
    north_east: ProjectedPoint
    center_lat: float = 0.0
    center_lon: float = 0.0

    @property
    def min_x(self):
        return min(self.south_west.x, self.north_east.x)

    @property
    def max_x(self):
        return max(self.south_west.x, self.north_east.x)

    @property
    def min_z(self):
        return min(self.south_west.z, self.north_east.z)

    @property
    def max_z(self):
        return max(self.south_west.z, self.north_east.z)

    @property
    def width(self):
        return self.max_x - self.min_x

    @property
    def depth(self):
        return self.max_z - self.min_z

    @property
    def loop(self):
        """Closed corner loop with the interior on the left of every edge."""
        return (
            ProjectedPoint(self.min_x, 0.0, self.min_z),
            ProjectedPoint(self.max_x, 0.0, self.min_z),
            ProjectedPoint(self.max_x, 0.0, self.max_z),
            ProjectedPoint(self.min_x, 0.0, self.max_z),
        )


@dataclass(frozen=True)
class ScalePlan:
    """Horizontal print scale and preview exaggeration for one region."""
    horizontal_scale: float
    display_vertical_scale: float
    target_size_mm: float

    @property
    def mm_per_meter(self):
        return 1.0 / self.horizontal_scale


@dataclass(frozen=True)
class Layer:
    """Vertical band of the printed model, in millimeters."""
    kind: str
    color: tuple
    height_mm: float
    offset_mm: float

    @property
    def top_mm(self):
        return self.offset_mm + self.height_mm


@dataclass(frozen=True)
class Material:
    name: str
    color: tuple
    alpha: float = 1.0


@dataclass(frozen=True, eq=False)
class MeshGeometry:
    """Indexed triangle mesh in preview space (meters, exaggerated Y)."""
    vertices: np.ndarray
    faces: np.ndarray
    colors: Optional[np.ndarray] = None

    @property
    def triangle_count(self):
        return 0 if self.faces is None else len(self.faces)


@dataclass(frozen=True)
class SolidPiece:
    """
    One emitted solid.

    ``height_mm`` and ``offset_mm`` are the canonical printed band of the
    piece; export rescales from these rather than from the preview geometry.
    """
    kind: str
    geometry: int
    material: int
    height_mm: float
    offset_mm: float
    feature_id: Optional[int] = None


@dataclass
class CityModel:
    """Flat collection of solid pieces grouped by layer."""
    window: BoundaryWindow
    plan: ScalePlan
    stats: HeightStats
    layers: dict = field(default_factory=dict)
    pieces: list = field(default_factory=list)
    geometries: list = field(default_factory=list)
    materials: list = field(default_factory=list)
    skipped: Counter = field(default_factory=Counter)

    def add_geometry(self, geometry):
        """Store a geometry and return its handle."""
        self.geometries.append(geometry)
        return len(self.geometries) - 1

    def add_material(self, material):
        """Store a material and return its handle."""
        self.materials.append(material)
        return len(self.materials) - 1

    def add_piece(self, piece):
        self.pieces.append(piece)
        return piece

    def pieces_by_layer(self):
        grouped = {kind: [] for kind in self.layers}
        for piece in self.pieces:
            grouped.setdefault(piece.kind, []).append(piece)
        return grouped

    def color_of(self, piece):
        return self.materials[piece.material].color
