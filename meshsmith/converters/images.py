"""
Image codec helpers.

Textures travel through the pipeline as Pillow images and are serialized as
PNG only when a model is exported.
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import Union

from PIL import Image, UnidentifiedImageError

from meshsmith.exceptions import ImageCodecError

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path, Image.Image]


def decode_image(data: bytes) -> Image.Image:
    """
    Decode encoded image bytes (PNG, JPEG, ...) into an RGBA image.

    Raises:
        ImageCodecError: If Pillow cannot read the data
    """
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageCodecError(f"Failed to decode image ({len(data)} bytes): {e}") from e
    return image.convert('RGBA')


def encode_image(image: Image.Image, format: str = 'PNG') -> bytes:
    """Encode an image to bytes (PNG by default)."""
    buffer = BytesIO()
    try:
        image.save(buffer, format=format)
    except (OSError, ValueError, KeyError) as e:
        raise ImageCodecError(f"Failed to encode {image.width}x{image.height} image as {format}: {e}") from e
    return buffer.getvalue()


def load_image(source: ImageSource) -> Image.Image:
    """
    Load an image from bytes, a file path or an existing Pillow image.

    Pillow images are converted to RGBA copies so callers can keep using the
    original.
    """
    if isinstance(source, Image.Image):
        return source.convert('RGBA')
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise ImageCodecError(f"Image file not found: {path}")
        return decode_image(path.read_bytes())
    return decode_image(bytes(source))
