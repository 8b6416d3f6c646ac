"""3MF and STL export of generated city models.

Every solid piece is rescaled independently before serialization:
horizontal meters are divided by the plan's ``horizontal_scale`` (meters per
printed millimeter) and the vertical axis is rebuilt from the piece's
canonical ``offset_mm``/``height_mm``, so preview exaggeration never reaches
the exported file.

Output uses the 3MF frame (millimeters, Z up, X east, Y north).
"""

import io
import zipfile
from dataclasses import dataclass, field
from typing import Optional
from xml.sax.saxutils import escape, quoteattr

import numpy as np
from stl import mesh

from .mesh_generator import rgb_to_hex
from .models import ExportError

THREE_MF_MIME = 'application/vnd.ms-package.3dmanufacturing-3dmodel+xml'
THREE_MF_EXTENSION = '3mf'

NS_CORE = "http://schemas.microsoft.com/3dmanufacturing/core/2015/02"
NS_MAT = "http://schemas.microsoft.com/3dmanufacturing/material/2015/02"

CONTENT_TYPES = '''<?xml version="1.0" encoding="UTF-8"?>
<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">
  <Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>
  <Default Extension="model" ContentType="application/vnd.ms-package.3dmanufacturing-3dmodel+xml"/>
  <Default Extension="png" ContentType="application/vnd.ms-package.3dmanufacturing-3dmodeltexture"/>
</Types>'''

RELS = '''<?xml version="1.0" encoding="UTF-8"?>
<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">
  <Relationship Target="/3D/3dmodel.model" Id="rel0" Type="http://schemas.microsoft.com/3dmanufacturing/2013/01/3dmodel"/>
</Relationships>'''

FLAT_EPSILON = 1e-9


@dataclass(frozen=True)
class ExportMaterial:
    index: int
    name: str
    color: str


@dataclass(frozen=True)
class ExportTexture:
    path: str
    data: bytes
    content_type: str = 'image/png'


@dataclass(frozen=True, eq=False)
class ExportGeometry:
    """Flat triangle soup: vertices 3i, 3i+1, 3i+2 form triangle i."""
    index: int
    name: str
    vertices: np.ndarray
    material: int
    colors: Optional[np.ndarray] = None

    @property
    def triangle_count(self):
        return len(self.vertices) // 3


@dataclass
class ExportDocument:
    materials: list = field(default_factory=list)
    textures: list = field(default_factory=list)
    geometries: list = field(default_factory=list)
    components: list = field(default_factory=list)  # geometry index per piece
    transform: tuple = (1, 0, 0, 0, 1, 0, 0, 0, 1, 0, 0, 0)

    @property
    def triangle_count(self):
        return sum(g.triangle_count for g in self.geometries)


def material_color(material):
    """3MF display color, with an alpha suffix only when translucent."""
    color = rgb_to_hex(material.color)
    alpha = int(round(material.alpha * 255))
    if alpha < 255:
        color += f'{alpha:02X}'
    return color


def rescale_piece(piece, geometry, plan):
    """
    Convert one piece's preview geometry to printed millimeters.

    Returns:
        tuple: (vertices (N,3) in the print frame, faces with reversed winding)
    """
    if geometry.vertices is None or len(geometry.vertices) == 0:
        raise ExportError(f"Geometry {piece.geometry} ({piece.kind}) has no position data")
    if geometry.faces is None or len(geometry.faces) == 0:
        raise ExportError(f"Geometry {piece.geometry} ({piece.kind}) has no triangles")

    vertices = np.asarray(geometry.vertices, dtype=np.float64)
    mm_per_meter = plan.mm_per_meter

    y = vertices[:, 1]
    y_min, y_max = y.min(), y.max()
    if y_max - y_min > FLAT_EPSILON:
        up = piece.offset_mm + (y - y_min) / (y_max - y_min) * piece.height_mm
    else:
        # Flat pieces sit on top of their band
        up = np.full(len(vertices), piece.offset_mm + piece.height_mm)

    # Preview frame has X west and Z south; flip both into X east, Y north.
    printed = np.column_stack([
        -vertices[:, 0] * mm_per_meter,
        -vertices[:, 2] * mm_per_meter,
        up,
    ])
    # The axis change is a reflection, so triangle winding is reversed.
    faces = np.asarray(geometry.faces, dtype=np.int64)[:, [0, 2, 1]]
    return printed, faces


def build_3mf_document(model, textures=None):
    """
    Build the export document for a model.

    Materials and geometries are interned by their model handle and emitted
    once in first-seen order; pieces sharing a geometry, material and band
    reuse the same exported object.

    Raises:
        ExportError: if any referenced geometry lacks position data
    """
    if not model.pieces:
        raise ExportError("No mesh data to export")

    document = ExportDocument(textures=list(textures or []))
    material_index = {}
    geometry_index = {}

    for piece in model.pieces:
        if piece.material not in material_index:
            material = model.materials[piece.material]
            material_index[piece.material] = len(document.materials)
            document.materials.append(ExportMaterial(
                len(document.materials), material.name, material_color(material)))

        key = (piece.geometry, piece.material, piece.height_mm, piece.offset_mm)
        if key not in geometry_index:
            geometry = model.geometries[piece.geometry]
            vertices, faces = rescale_piece(piece, geometry, model.plan)
            colors = None
            if geometry.colors is not None:
                colors = np.asarray(geometry.colors)[faces].reshape(-1, 3)
            geometry_index[key] = len(document.geometries)
            document.geometries.append(ExportGeometry(
                index=len(document.geometries),
                name=f"{piece.kind}_{piece.feature_id if piece.feature_id is not None else piece.geometry}",
                vertices=vertices[faces].reshape(-1, 3),
                material=material_index[piece.material],
                colors=colors,
            ))

        document.components.append(geometry_index[key])

    # Move the window's minimum corner to the build plate origin
    mm_per_meter = model.plan.mm_per_meter
    document.transform = (
        1, 0, 0,
        0, 1, 0,
        0, 0, 1,
        model.window.max_x * mm_per_meter, model.window.max_z * mm_per_meter, 0,
    )
    return document


def _format_number(value):
    text = f'{value:.6f}'.rstrip('0').rstrip('.')
    return '0' if text in ('', '-0') else text


def serialize_3mf_model(document, name='printmap'):
    """Build the 3MF model XML for a document."""
    xml_parts = [f'''<?xml version="1.0" encoding="UTF-8"?>
<model unit="millimeter" xml:lang="en-US" xmlns="{NS_CORE}" xmlns:m="{NS_MAT}">
  <metadata name="Application">printmap</metadata>
  <metadata name="Title">{escape(str(name))}</metadata>
  <resources>''']

    next_id = 1
    base_materials_id = next_id
    next_id += 1
    xml_parts.append(f'    <basematerials id="{base_materials_id}">')
    for material in document.materials:
        xml_parts.append(f'      <base name={quoteattr(material.name)} displaycolor="{material.color}"/>')
    xml_parts.append('    </basematerials>')

    for texture in document.textures:
        xml_parts.append(f'    <m:texture2d id="{next_id}" path={quoteattr(texture.path)} '
                         f'contenttype={quoteattr(texture.content_type)}/>')
        next_id += 1

    object_ids = []
    for geometry in document.geometries:
        color_group_id = None
        if geometry.colors is not None:
            color_group_id = next_id
            next_id += 1
            xml_parts.append(f'    <m:colorgroup id="{color_group_id}">')
            for r, g, b in np.asarray(geometry.colors, dtype=int):
                xml_parts.append(f'      <m:color color="{rgb_to_hex((r, g, b))}"/>')
            xml_parts.append('    </m:colorgroup>')

        obj_id = next_id
        next_id += 1
        object_ids.append(obj_id)
        xml_parts.extend(_object_xml(obj_id, geometry, base_materials_id, color_group_id))

    root_id = next_id
    xml_parts.append(f'    <object id="{root_id}" name={quoteattr(name)} type="model">')
    xml_parts.append('      <components>')
    for geometry_idx in document.components:
        xml_parts.append(f'        <component objectid="{object_ids[geometry_idx]}"/>')
    xml_parts.append('      </components>')
    xml_parts.append('    </object>')
    xml_parts.append('  </resources>')

    transform = ' '.join(_format_number(v) for v in document.transform)
    xml_parts.append('  <build>')
    xml_parts.append(f'    <item objectid="{root_id}" transform="{transform}"/>')
    xml_parts.append('  </build>')
    xml_parts.append('</model>')

    return '\n'.join(xml_parts)


def _object_xml(obj_id, geometry, base_materials_id, color_group_id):
    parts = [f'    <object id="{obj_id}" name={quoteattr(geometry.name)} type="model" '
             f'pid="{base_materials_id}" pindex="{geometry.material}">',
             '      <mesh>',
             '        <vertices>']
    for x, y, z in geometry.vertices:
        parts.append(f'          <vertex x="{x:.6f}" y="{y:.6f}" z="{z:.6f}"/>')
    parts.append('        </vertices>')

    parts.append('        <triangles>')
    for i in range(0, len(geometry.vertices), 3):
        if color_group_id is None:
            parts.append(f'          <triangle v1="{i}" v2="{i + 1}" v3="{i + 2}"/>')
        else:
            parts.append(f'          <triangle v1="{i}" v2="{i + 1}" v3="{i + 2}" '
                         f'pid="{color_group_id}" p1="{i}" p2="{i + 1}" p3="{i + 2}"/>')
    parts.append('        </triangles>')
    parts.append('      </mesh>')
    parts.append('    </object>')
    return parts


def export_to_3mf(model, target, name='printmap', textures=None):
    """
    Export a model to a 3MF package.

    The document is fully built before anything is written, so a failing
    export leaves no partial file behind.

    Args:
        model: CityModel
        target: Output file path or writable binary file object
        name: Model title
        textures: Optional ExportTexture list packaged under 3D/Textures

    Returns:
        dict: Export summary
    """
    document = build_3mf_document(model, textures=textures)
    model_xml = serialize_3mf_model(document, name=name)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as zf:
        zf.writestr('[Content_Types].xml', CONTENT_TYPES)
        zf.writestr('_rels/.rels', RELS)
        zf.writestr('3D/3dmodel.model', model_xml)
        for texture in document.textures:
            zf.writestr(texture.path.lstrip('/'), texture.data)
    payload = buffer.getvalue()

    if hasattr(target, 'write'):
        target.write(payload)
    else:
        with open(target, 'wb') as f:
            f.write(payload)

    print(f"[INFO] 3MF: {len(document.geometries)} objects, "
          f"{document.triangle_count:,} triangles, {len(payload) / 1024:.1f} KB")

    return {
        'success': True,
        'objects': len(document.geometries),
        'materials': len(document.materials),
        'triangles': document.triangle_count,
        'size_bytes': len(payload),
    }


def export_to_stl(model, filepath):
    """
    Export a model to a single binary STL in printed millimeters.

    Args:
        model: CityModel
        filepath: Output STL file path
    """
    document = build_3mf_document(model)

    offset = np.array(document.transform[9:12], dtype=np.float64)
    soup = []
    for geometry_idx in document.components:
        soup.append(document.geometries[geometry_idx].vertices + offset)
    triangles = np.vstack(soup).reshape(-1, 3, 3)

    stl_mesh = mesh.Mesh(np.zeros(len(triangles), dtype=mesh.Mesh.dtype))
    stl_mesh.vectors[:] = triangles
    stl_mesh.save(filepath)

    return {
        'success': True,
        'filepath': filepath,
        'faces': len(triangles),
    }
