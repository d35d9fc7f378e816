"""
Texture atlas engine.

Packs one source image per material into a square atlas for every enabled
channel and rewrites the merged geometry's UVs to address the packed regions.

The layout is computed ONCE from the albedo source sizes and reused for every
channel, so all channel atlases stay pixel-aligned and share one UV set.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from meshsmith.schema.options import AtlasMode, MaterialOverrides
from meshsmith.scene import AtlasResult, Geometry, MaterialMapping, MaterialRecord, PackedRect
from meshsmith.texturing.image_utils import (
    FLAT_NORMAL,
    create_solid_color_image,
    create_solid_grayscale_image,
    pixel_to_uv,
    resize_image,
)
from meshsmith.texturing.rect_packer import pack_into_atlas

logger = logging.getLogger(__name__)


def albedo_source(material: MaterialRecord) -> Image.Image:
    """Albedo map of a material, or a solid image of its base color."""
    image = material.get_map('albedo')
    if image is not None and image.width > 0 and image.height > 0:
        return image
    return create_solid_color_image(material.color)


def channel_source(material: MaterialRecord, channel: str, size: Tuple[int, int]) -> Image.Image:
    """
    Source image of a material for one channel.

    Missing maps are synthesized from the material's scalar fallback, sized
    to match the material's albedo box.
    """
    if channel == 'albedo':
        return albedo_source(material)

    image = material.get_map(channel)
    if image is not None and image.width > 0 and image.height > 0:
        return image

    if channel == 'normal':
        return create_solid_color_image(FLAT_NORMAL, size)
    if channel == 'roughness':
        return create_solid_grayscale_image(material.roughness, size)
    if channel == 'metalness':
        return create_solid_grayscale_image(material.metalness, size)
    if channel == 'emissive':
        return create_solid_color_image(material.emissive, size)
    if channel == 'ambient_occlusion':
        return create_solid_grayscale_image(1.0, size)
    raise ValueError(f"Unknown texture channel: {channel}")


def extract_textures_by_channel(
    materials: List[MaterialRecord],
    channels: List[str]
) -> Dict[str, List[Image.Image]]:
    """Collect one source image per material for each requested channel."""
    sizes = [albedo_source(mat).size for mat in materials]
    result: Dict[str, List[Image.Image]] = {}
    for channel in channels:
        result[channel] = [channel_source(mat, channel, size) for mat, size in zip(materials, sizes)]
    return result


def generate_packing_layout(materials: List[MaterialRecord], atlas_size: int) -> List[PackedRect]:
    """Pack the albedo source sizes (one box per material) and scale to the atlas."""
    sizes = [albedo_source(mat).size for mat in materials]
    for i, (w, h) in enumerate(sizes):
        logger.debug(f"Material {i} source size: {w}x{h}")
    layout = pack_into_atlas(sizes, atlas_size)
    for i, box in enumerate(layout):
        logger.debug(f"Material {i} packed at ({box.x}, {box.y}) size {box.w}x{box.h}")
    return layout


def create_atlas(
    sources: List[Image.Image],
    layout: List[PackedRect],
    atlas_size: int,
    quality: float = 0.9
) -> Image.Image:
    """
    Composite source images into a transparent atlas at their packed rects.

    Args:
        sources: One image per material, index-aligned with layout
        layout: Packed rects in atlas pixels
        atlas_size: Atlas edge length
        quality: Resampling quality (0-1)

    Returns:
        New RGBA atlas image
    """
    atlas = Image.new('RGBA', (atlas_size, atlas_size), (0, 0, 0, 0))

    for i, (source, box) in enumerate(zip(sources, layout)):
        if box.w <= 0 or box.h <= 0:
            logger.warning(f"Material {i} packed to an empty rect ({box.w}x{box.h}); skipping")
            continue
        atlas.paste(resize_image(source, box.w, box.h, quality), (box.x, box.y))

    return atlas


def remap_uvs(
    geometry: Geometry,
    materials: List[MaterialRecord],
    material_mapping: MaterialMapping,
    layout: List[PackedRect],
    atlas_size: int
) -> Geometry:
    """
    Rewrite UVs so each material's triangles address its atlas rect.

    u' = u * (w / S) + x / S
    v' = v * (h / S) + y / S

    Returns:
        New geometry; the input is not modified
    """
    result = geometry.clone()
    uv = result.attributes.get('uv')
    if uv is None:
        logger.warning("Geometry has no UV attribute; nothing to remap")
        return result

    uv = uv.astype(np.float64)
    for material, box in zip(materials, layout):
        triangles = material_mapping.get(material)
        if not triangles:
            continue

        scale = np.array([box.w / atlas_size, box.h / atlas_size])
        offset = np.array(pixel_to_uv(box.x, box.y, atlas_size, atlas_size))

        vertices = (np.asarray(triangles, dtype=np.int64)[:, np.newaxis] * 3 + np.arange(3)).ravel()
        vertices = vertices[vertices < len(uv)]
        uv[vertices] = uv[vertices] * scale + offset

    result.attributes['uv'] = uv.astype(np.float32)
    return result


def average_material_properties(
    materials: List[MaterialRecord],
    overrides: Optional[MaterialOverrides] = None
) -> Dict[str, object]:
    """
    Scalar properties of the merged material.

    Every override field that is set wins; every other field is the
    arithmetic mean over the source materials.
    """
    count = len(materials)
    props = {
        'color': tuple(float(c) for c in np.mean([m.color for m in materials], axis=0)),
        'roughness': sum(m.roughness for m in materials) / count,
        'metalness': sum(m.metalness for m in materials) / count,
        'emissive': tuple(float(c) for c in np.mean([m.emissive for m in materials], axis=0)),
        'emissive_intensity': sum(m.emissive_intensity for m in materials) / count,
    }
    if overrides is not None:
        for key, value in overrides.model_dump(exclude_none=True).items():
            props[key] = value
    return props


def generate_atlas(
    materials: List[MaterialRecord],
    atlas_size: int,
    atlas_mode: Optional[AtlasMode] = None,
    quality: float = 0.9,
    material_overrides: Optional[MaterialOverrides] = None,
    max_workers: int = 1
) -> AtlasResult:
    """
    Build atlases for every enabled channel plus the merged material.

    Args:
        materials: Unique materials, index-aligned with the layout
        atlas_size: Atlas edge length in pixels
        atlas_mode: Enabled channels (albedo only by default)
        quality: Resampling quality (0-1)
        material_overrides: Optional scalar overrides for the merged material
        max_workers: Threads used to build channel atlases concurrently

    Returns:
        AtlasResult with per-channel atlases, the layout and merged material
    """
    if not materials:
        raise ValueError("No materials to atlas")

    atlas_mode = atlas_mode or AtlasMode()
    channels = atlas_mode.enabled_channels()

    logger.info(f"Generating {atlas_size}x{atlas_size} atlas for {len(materials)} materials, channels: {channels}")

    layout = generate_packing_layout(materials, atlas_size)
    textures = extract_textures_by_channel(materials, channels)

    def build(channel: str) -> Image.Image:
        return create_atlas(textures[channel], layout, atlas_size, quality)

    if max_workers > 1 and len(channels) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            atlases = dict(zip(channels, pool.map(build, channels)))
    else:
        atlases = {channel: build(channel) for channel in channels}

    props = average_material_properties(materials, material_overrides)
    merged = MaterialRecord(name="MergedMaterial", maps=dict(atlases), **props)

    return AtlasResult(atlases=atlases, layout=layout, material=merged, atlas_size=atlas_size)
