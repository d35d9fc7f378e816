"""
Texturing utilities: rectangle packing, atlas generation and image helpers.
"""
from .rect_packer import pack_boxes, fit_to_atlas, pack_into_atlas
from .atlas import generate_atlas, remap_uvs, create_atlas
from .image_utils import uv_to_pixel, pixel_to_uv

__all__ = [
    'pack_boxes',
    'fit_to_atlas',
    'pack_into_atlas',
    'generate_atlas',
    'remap_uvs',
    'create_atlas',
    'uv_to_pixel',
    'pixel_to_uv',
]
