"""
Image utilities for atlas building and decal baking.

UV ORIGIN CONVENTION:
Texture coordinate v = 0 is the TOP row of the image and v = 1 the bottom
(glTF convention, same as Pillow's row order). The atlas compositor, the UV
rewrite and the decal baker all go through uv_to_pixel()/pixel_to_uv() so the
three can never disagree about the vertical axis.
"""

import logging
from typing import Tuple

from PIL import Image, ImageChops

logger = logging.getLogger(__name__)

RGB = Tuple[float, float, float]

# Solid fallback textures are this size unless matched to another image
DEFAULT_FALLBACK_SIZE = 256

# Flat tangent-space normal (0.5, 0.5, 1.0)
FLAT_NORMAL: RGB = (0.5, 0.5, 1.0)


def uv_to_pixel(u: float, v: float, width: int, height: int) -> Tuple[float, float]:
    """Map a UV coordinate to (x, y) pixel space of a width x height image."""
    return u * width, v * height


def pixel_to_uv(x: float, y: float, width: int, height: int) -> Tuple[float, float]:
    """Inverse of uv_to_pixel()."""
    return x / width, y / height


def to_rgba(image: Image.Image) -> Image.Image:
    return image if image.mode == 'RGBA' else image.convert('RGBA')


def color_to_rgba8(color: RGB, alpha: int = 255) -> Tuple[int, int, int, int]:
    """Convert an RGB float triple (0-1) to an 8-bit RGBA tuple."""
    r, g, b = (max(0, min(255, int(c * 255))) for c in color)
    return (r, g, b, alpha)


def create_solid_color_image(color: RGB, size: Tuple[int, int] = (DEFAULT_FALLBACK_SIZE, DEFAULT_FALLBACK_SIZE)) -> Image.Image:
    """
    Create a solid color RGBA image.

    Args:
        color: RGB floats in [0, 1]
        size: (width, height) in pixels

    Returns:
        New RGBA image
    """
    return Image.new('RGBA', size, color_to_rgba8(color))


def create_solid_grayscale_image(value: float, size: Tuple[int, int] = (DEFAULT_FALLBACK_SIZE, DEFAULT_FALLBACK_SIZE)) -> Image.Image:
    """Create a solid gray RGBA image for scalar channels (roughness, metalness, AO)."""
    return create_solid_color_image((value, value, value), size)


def resampling_filter(quality: float) -> int:
    """Pick a Pillow resampling filter for a 0-1 quality value."""
    return Image.Resampling.NEAREST if quality < 0.5 else Image.Resampling.BILINEAR


def resize_image(image: Image.Image, width: int, height: int, quality: float = 0.9) -> Image.Image:
    """Resize to width x height as RGBA. Returns the image itself when no resize is needed."""
    image = to_rgba(image)
    if image.size == (width, height):
        return image
    return image.resize((width, height), resampling_filter(quality))


def multiply_alpha(image: Image.Image, factor: float) -> Image.Image:
    """Return a copy of an RGBA image with alpha scaled by factor (0-1)."""
    image = to_rgba(image).copy()
    if factor >= 1.0:
        return image
    alpha = image.getchannel('A').point(lambda a: int(round(a * factor)))
    image.putalpha(alpha)
    return image


def composite_clipped(
    base: Image.Image,
    overlay: Image.Image,
    x: int,
    y: int,
    blend_mode: str = 'normal'
) -> None:
    """
    Alpha-composite overlay onto base at (x, y), IN PLACE.

    The overlay may extend past any edge of base (including negative offsets);
    only the overlapping part is drawn.

    Args:
        base: RGBA destination
        overlay: RGBA source (its alpha drives the blend)
        x, y: Top-left position of overlay in base pixels
        blend_mode: 'normal', 'multiply' or 'overlay'
    """
    left = max(0, x)
    top = max(0, y)
    right = min(base.width, x + overlay.width)
    bottom = min(base.height, y + overlay.height)
    if right <= left or bottom <= top:
        logger.debug(f"Overlay at ({x}, {y}) lies outside {base.width}x{base.height} canvas")
        return

    src = overlay.crop((left - x, top - y, right - x, bottom - y))
    region = base.crop((left, top, right, bottom))

    if blend_mode == 'normal':
        layer = src
    else:
        blend = ImageChops.multiply if blend_mode == 'multiply' else ImageChops.overlay
        layer = blend(region.convert('RGB'), src.convert('RGB')).convert('RGBA')
        layer.putalpha(src.getchannel('A'))

    region.alpha_composite(layer)
    base.paste(region, (left, top))
