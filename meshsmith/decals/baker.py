"""
Decal baker.

Composites decals into a model's OWN albedo texture before atlasing. The atlas
layout is not known while decals are placed, so baking always targets the
source texture in the model's original UV space; the atlas engine then carries
the baked pixels along like any other texture.

Footprint sizing is a documented approximation: the decal's size in UV units is
scale / (largest bounding-box dimension of the target mesh) * 0.5. This ignores
non-uniform UV density across a mesh, and is kept so decal footprints match
what users see in the viewer.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from meshsmith.decals.projector import nearest_triangle, resolve_decal_uv, UVProjection
from meshsmith.geometry.attributes import to_non_indexed
from meshsmith.geometry.transform_utils import apply_matrix_to_geometry
from meshsmith.schema.options import DecalBakeOptions
from meshsmith.scene import DecalInstance, Geometry, MaterialRecord, MeshRecord, ModelAsset
from meshsmith.texturing.image_utils import (
    composite_clipped,
    create_solid_color_image,
    multiply_alpha,
    resize_image,
    uv_to_pixel,
)

logger = logging.getLogger(__name__)

# UV footprint per unit of scale, relative to the mesh's largest extent
FOOTPRINT_RATIO = 0.5
# UV footprint per unit of scale when the mesh has no extent
DEGENERATE_FOOTPRINT = 0.1


@dataclass
class DecalPlacement:
    """A decal resolved to a UV centre on a specific mesh."""
    decal: DecalInstance
    u: float
    v: float
    extent: float  # largest bounding-box dimension of the target mesh


def model_local_geometry(mesh: MeshRecord) -> Geometry:
    """Non-indexed copy of a mesh's geometry in model-local space."""
    geometry = to_non_indexed(mesh.geometry.clone())
    return apply_matrix_to_geometry(geometry, mesh.matrix)


def max_extent(geometry: Geometry) -> float:
    if geometry.vertex_count == 0:
        return 0.0
    low, high = geometry.bounding_box()
    return float(np.max(high - low))


def decal_size_in_uv(extent: float, scale: float) -> float:
    """Footprint of one scale axis in UV units."""
    if extent <= 0:
        return scale * DEGENERATE_FOOTPRINT
    return scale / extent * FOOTPRINT_RATIO


def _draw_decal(canvas: Image.Image, placement: DecalPlacement, options: DecalBakeOptions) -> None:
    decal = placement.decal
    width, height = canvas.size

    cx, cy = uv_to_pixel(placement.u, placement.v, width, height)
    w = int(round(decal_size_in_uv(placement.extent, decal.scale[0]) * width)) - 2 * options.padding
    h = int(round(decal_size_in_uv(placement.extent, decal.scale[1]) * height)) - 2 * options.padding
    if w <= 0 or h <= 0:
        logger.warning(f"Decal {decal.id} footprint is empty ({w}x{h} px); skipping")
        return

    stamp = resize_image(decal.image, w, h)
    angle = -math.degrees(decal.rotation[2])
    if angle:
        stamp = stamp.rotate(angle, resample=Image.Resampling.BILINEAR, expand=True)
    stamp = multiply_alpha(stamp, decal.opacity)

    x = int(round(cx - stamp.width / 2))
    y = int(round(cy - stamp.height / 2))
    logger.debug(f"Decal {decal.id}: uv=({placement.u:.4f}, {placement.v:.4f}) -> rect ({x}, {y}, {stamp.width}x{stamp.height})")
    composite_clipped(canvas, stamp, x, y, options.blend_mode)


def bake_decals(
    base: Optional[Image.Image],
    placements: List[DecalPlacement],
    options: Optional[DecalBakeOptions] = None,
    fallback_color: Tuple[float, float, float] = (1.0, 1.0, 1.0)
) -> Image.Image:
    """
    Composite decals onto a copy of a base texture.

    Args:
        base: Source albedo image (never modified). None uses a solid
              fallback_color image.
        placements: Decals with their UV centres, drawn in list order
        options: Padding, blend mode and optional target canvas size
        fallback_color: Base color used when there is no base image

    Returns:
        New RGBA image
    """
    options = options or DecalBakeOptions()
    if base is None:
        base = create_solid_color_image(fallback_color)

    if options.target_texture_size:
        size = (options.target_texture_size, options.target_texture_size)
    else:
        size = base.size

    canvas = resize_image(base, *size).copy()

    for placement in placements:
        if placement.decal.image is None:
            logger.warning(f"Decal {placement.decal.id} has no image; skipping")
            continue
        _draw_decal(canvas, placement, options)

    logger.info(f"Baked {len(placements)} decals into {canvas.width}x{canvas.height} texture")
    return canvas


def _target_mesh(
    meshes: List[MeshRecord],
    local_geometries: List[Geometry],
    decal: DecalInstance
) -> Tuple[int, UVProjection]:
    """Pick the mesh a decal lands on and its UV there."""
    if decal.uv is not None:
        index = next((i for i, m in enumerate(meshes) if m.material.get_map('albedo') is not None), 0)
        return index, resolve_decal_uv(decal, local_geometries[index])

    point = np.asarray(decal.position, dtype=np.float64)
    best_index, best_distance = -1, math.inf
    for i, geometry in enumerate(local_geometries):
        if geometry.vertex_count < 3 or 'uv' not in geometry.attributes:
            continue
        _, distance = nearest_triangle(geometry.attributes['position'].astype(np.float64), point)
        if distance < best_distance:
            best_index, best_distance = i, distance

    if best_index < 0:
        return 0, UVProjection(0.0, 0.0, False)
    return best_index, resolve_decal_uv(decal, local_geometries[best_index])


def bake_model_decals(
    model: ModelAsset,
    decals: List[DecalInstance],
    options: Optional[DecalBakeOptions] = None
) -> Dict[MaterialRecord, MaterialRecord]:
    """
    Bake all decals targeting one model.

    Args:
        model: Target model (not modified)
        decals: Decals in insertion order
        options: Bake options

    Returns:
        Mapping of source material -> copy whose albedo is the baked image.
        Materials without decals are absent.
    """
    decals = [d for d in decals if d.target_model_id == model.id]
    if not decals or not model.meshes:
        return {}

    local_geometries = [model_local_geometry(mesh) for mesh in model.meshes]
    extents = [max_extent(g) for g in local_geometries]

    by_material: Dict[MaterialRecord, List[DecalPlacement]] = {}
    for decal in decals:
        index, projection = _target_mesh(model.meshes, local_geometries, decal)
        if not projection.valid:
            logger.warning(f"Decal {decal.id} projection invalid, skipping")
            continue
        material = model.meshes[index].material
        placement = DecalPlacement(decal=decal, u=projection.u, v=projection.v, extent=extents[index])
        by_material.setdefault(material, []).append(placement)

    baked: Dict[MaterialRecord, MaterialRecord] = {}
    for material, placements in by_material.items():
        image = bake_decals(material.get_map('albedo'), placements, options, fallback_color=material.color)
        baked[material] = material.with_map('albedo', image)

    logger.info(f"Model '{model.name}': baked {len(decals)} decals into {len(baked)} materials")
    return baked
