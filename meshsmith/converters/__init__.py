"""Format converters for meshsmith models"""

from meshsmith.converters.gltf.importer import import_glb
from meshsmith.converters.gltf.exporter import export_glb
from meshsmith.converters.images import decode_image, encode_image, load_image

__all__ = [
    "import_glb",
    "export_glb",
    "decode_image",
    "encode_image",
    "load_image",
]
