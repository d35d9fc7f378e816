"""
Merged mesh -> GLB exporter (pygltflib-based)

Writes a single node / single mesh / single primitive GLB with every atlas
embedded as a PNG in the binary chunk.

Texture slots:
    albedo                  -> pbrMetallicRoughness.baseColorTexture
    roughness + metalness   -> pbrMetallicRoughness.metallicRoughnessTexture (G, B)
    normal                  -> normalTexture
    emissive                -> emissiveTexture
    ambient_occlusion       -> occlusionTexture (R)
"""

import logging
import os
import tempfile
from typing import Optional

import numpy as np
from PIL import Image
from pygltflib import (
    GLTF2, Asset, Scene, Node, Mesh, Primitive, Attributes,
    Accessor, BufferView, Buffer,
    Material as GltfMaterial, PbrMetallicRoughness,
    Image as GltfImage, Texture as GltfTexture,
    Sampler as GltfSampler, TextureInfo, NormalMaterialTexture, OcclusionTextureInfo,
)
from pygltflib import FLOAT, UNSIGNED_INT, SCALAR, VEC2, VEC3, VEC4
from pygltflib import ELEMENT_ARRAY_BUFFER, ARRAY_BUFFER

from meshsmith.converters.images import encode_image
from meshsmith.scene import Geometry, MaterialRecord
from meshsmith.texturing.image_utils import color_to_rgba8, to_rgba

logger = logging.getLogger(__name__)

GENERATOR = "meshsmith"
EMISSIVE_STRENGTH = 'KHR_materials_emissive_strength'

# Sampler constants
LINEAR = 9729
LINEAR_MIPMAP_LINEAR = 9987
CLAMP_TO_EDGE = 33071

# geometry attribute -> (glTF attribute, allowed widths)
EXPORTED_ATTRIBUTES = {
    'position': ('POSITION', {3: VEC3}),
    'normal': ('NORMAL', {3: VEC3}),
    'tangent': ('TANGENT', {4: VEC4}),
    'uv': ('TEXCOORD_0', {2: VEC2}),
    'uv1': ('TEXCOORD_1', {2: VEC2}),
    'color': ('COLOR_0', {3: VEC3, 4: VEC4}),
}


class _GLBWriter:
    """Accumulates buffer views, accessors and textures for one GLB."""

    def __init__(self, generate_mipmaps: bool):
        self.gltf = GLTF2(asset=Asset(version="2.0", generator=GENERATOR))
        self.gltf.bufferViews = []
        self.gltf.accessors = []
        self.gltf.images = []
        self.gltf.textures = []
        self.gltf.samplers = [GltfSampler(
            magFilter=LINEAR,
            minFilter=LINEAR_MIPMAP_LINEAR if generate_mipmaps else LINEAR,
            wrapS=CLAMP_TO_EDGE,
            wrapT=CLAMP_TO_EDGE,
        )]
        self.bin_data = bytearray()

    def _append(self, payload: bytes, target: Optional[int] = None) -> int:
        offset = len(self.bin_data)
        self.bin_data.extend(payload)
        # Pad to 4-byte alignment
        while len(self.bin_data) % 4 != 0:
            self.bin_data.append(0)

        view_index = len(self.gltf.bufferViews)
        self.gltf.bufferViews.append(BufferView(
            buffer=0, byteOffset=offset, byteLength=len(payload), target=target,
        ))
        return view_index

    def accessor(self, array: np.ndarray, accessor_type: str, with_bounds: bool = False) -> int:
        data = np.ascontiguousarray(array, dtype=np.float32)
        view_index = self._append(data.tobytes(), ARRAY_BUFFER)

        accessor = Accessor(bufferView=view_index, componentType=FLOAT, count=len(data), type=accessor_type)
        if with_bounds and len(data):
            accessor.min = data.min(axis=0).tolist()
            accessor.max = data.max(axis=0).tolist()

        self.gltf.accessors.append(accessor)
        return len(self.gltf.accessors) - 1

    def indices(self, index: np.ndarray) -> int:
        data = np.ascontiguousarray(index, dtype=np.uint32).ravel()
        view_index = self._append(data.tobytes(), ELEMENT_ARRAY_BUFFER)
        self.gltf.accessors.append(Accessor(
            bufferView=view_index, componentType=UNSIGNED_INT, count=len(data), type=SCALAR,
        ))
        return len(self.gltf.accessors) - 1

    def texture(self, image: Image.Image) -> int:
        png = encode_image(to_rgba(image), 'PNG')
        view_index = self._append(png)

        self.gltf.images.append(GltfImage(bufferView=view_index, mimeType="image/png"))
        self.gltf.textures.append(GltfTexture(sampler=0, source=len(self.gltf.images) - 1))
        logger.debug(f"Embedded {image.width}x{image.height} texture ({len(png) / 1024:.0f} KB) -> tex[{len(self.gltf.textures) - 1}]")
        return len(self.gltf.textures) - 1

    def finish(self) -> bytes:
        self.gltf.buffers = [Buffer(byteLength=len(self.bin_data))]
        self.gltf.set_binary_blob(bytes(self.bin_data))

        with tempfile.NamedTemporaryFile(suffix=".glb", delete=False) as f:
            tmp_path = f.name
        try:
            self.gltf.save_binary(tmp_path)
            with open(tmp_path, "rb") as f:
                return f.read()
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)


def combine_metallic_roughness(material: MaterialRecord) -> Optional[Image.Image]:
    """
    Pack roughness (G) and metalness (B) maps into one glTF texture.

    A missing map is filled with the material's scalar. Returns None when the
    material has neither map.
    """
    roughness = material.get_map('roughness')
    metalness = material.get_map('metalness')
    if roughness is None and metalness is None:
        return None

    size = (roughness if roughness is not None else metalness).size

    def band(image: Optional[Image.Image], scalar: float) -> Image.Image:
        if image is None:
            return Image.new('L', size, color_to_rgba8((scalar, scalar, scalar))[0])
        return to_rgba(image).resize(size).getchannel('R')

    zero = Image.new('L', size, 0)
    return Image.merge('RGB', (zero, band(roughness, material.roughness), band(metalness, material.metalness)))


def _material(writer: _GLBWriter, material: MaterialRecord) -> GltfMaterial:
    pbr = PbrMetallicRoughness(
        baseColorFactor=[*material.color, 1.0],
        metallicFactor=material.metalness,
        roughnessFactor=material.roughness,
    )
    result = GltfMaterial(name=material.name, pbrMetallicRoughness=pbr)

    albedo = material.get_map('albedo')
    if albedo is not None:
        pbr.baseColorTexture = TextureInfo(index=writer.texture(albedo))
        # Atlas pixels already carry each source material's color
        pbr.baseColorFactor = [1.0, 1.0, 1.0, 1.0]

    metal_rough = combine_metallic_roughness(material)
    if metal_rough is not None:
        pbr.metallicRoughnessTexture = TextureInfo(index=writer.texture(metal_rough))
        pbr.metallicFactor = 1.0
        pbr.roughnessFactor = 1.0

    normal = material.get_map('normal')
    if normal is not None:
        result.normalTexture = NormalMaterialTexture(index=writer.texture(normal))

    emissive = material.get_map('emissive')
    if emissive is not None:
        result.emissiveTexture = TextureInfo(index=writer.texture(emissive))
        result.emissiveFactor = [1.0, 1.0, 1.0]
    else:
        result.emissiveFactor = list(material.emissive)

    occlusion = material.get_map('ambient_occlusion')
    if occlusion is not None:
        result.occlusionTexture = OcclusionTextureInfo(index=writer.texture(occlusion))

    if material.emissive_intensity != 1.0:
        result.extensions = {EMISSIVE_STRENGTH: {"emissiveStrength": material.emissive_intensity}}
        writer.gltf.extensionsUsed = [EMISSIVE_STRENGTH]

    return result


def export_glb(geometry: Geometry, material: MaterialRecord, generate_mipmaps: bool = True) -> bytes:
    """
    Encode a merged geometry and its material as GLB bytes.

    Args:
        geometry: Geometry with at least 'position'
        material: Material whose maps are embedded as PNG textures
        generate_mipmaps: Use mipmapped minification filtering

    Returns:
        GLB file contents

    Raises:
        ValueError: If the geometry has no vertices
    """
    if geometry.vertex_count == 0:
        raise ValueError("Cannot export geometry with no vertices")

    writer = _GLBWriter(generate_mipmaps)

    attributes = Attributes()
    for name, (gltf_name, widths) in EXPORTED_ATTRIBUTES.items():
        array = geometry.attributes.get(name)
        if array is None:
            continue
        accessor_type = widths.get(array.shape[1])
        if accessor_type is None:
            logger.warning(f"Attribute '{name}' has unsupported width {array.shape[1]}; not exported")
            continue
        setattr(attributes, gltf_name, writer.accessor(array, accessor_type, with_bounds=(name == 'position')))

    primitive = Primitive(attributes=attributes, material=0)
    if geometry.index is not None:
        primitive.indices = writer.indices(geometry.index)

    writer.gltf.materials = [_material(writer, material)]
    writer.gltf.meshes = [Mesh(name="MergedMesh", primitives=[primitive])]
    writer.gltf.nodes = [Node(name="MergedMesh", mesh=0)]
    writer.gltf.scenes = [Scene(nodes=[0])]
    writer.gltf.scene = 0

    data = writer.finish()
    logger.info(f"Exported GLB: {geometry.vertex_count} vertices, {len(writer.gltf.textures)} textures, {len(data) / 1024:.0f} KB")
    return data
