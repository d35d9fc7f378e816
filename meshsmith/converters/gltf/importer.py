"""
GLB -> MeshRecord importer (pygltflib-based)

Reads every triangle primitive reachable from the default scene and returns
one MeshRecord per primitive, with the node hierarchy flattened into each
record's matrix.

Attribute names:
    POSITION -> position      NORMAL -> normal       TANGENT -> tangent
    TEXCOORD_0 -> uv          TEXCOORD_1 -> uv1      COLOR_0 -> color

Material channels:
    baseColorTexture          -> albedo
    normalTexture             -> normal
    metallicRoughnessTexture  -> roughness (G) and metalness (B)
    emissiveTexture           -> emissive
    occlusionTexture          -> ambient_occlusion (R)
"""

import logging
import os
import tempfile
from typing import Dict, List, Optional

import numpy as np
from PIL import Image
from pygltflib import GLTF2

from meshsmith.converters.gltf.format_utils import (
    TRIANGLES,
    decode_data_uri,
    get_field,
    node_matrix,
    read_accessor,
    scene_roots,
)
from meshsmith.converters.images import decode_image
from meshsmith.scene import Geometry, MaterialRecord, MeshRecord

logger = logging.getLogger(__name__)

GLB_MAGIC = b'glTF'
EMISSIVE_STRENGTH = 'KHR_materials_emissive_strength'

ATTRIBUTE_NAMES = {
    'POSITION': 'position',
    'NORMAL': 'normal',
    'TANGENT': 'tangent',
    'TEXCOORD_0': 'uv',
    'TEXCOORD_1': 'uv1',
    'COLOR_0': 'color',
}


def load_gltf(data: bytes) -> GLTF2:
    """Parse GLB bytes into a GLTF2 document."""
    if data[:4] != GLB_MAGIC:
        raise ValueError("Not a GLB file (missing 'glTF' magic)")

    with tempfile.NamedTemporaryFile(suffix=".glb", delete=False) as f:
        f.write(data)
        tmp_path = f.name
    try:
        return GLTF2.load_binary(tmp_path)
    finally:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)


class _GLBReader:
    """Decodes one GLB document; caches materials and images by index."""

    def __init__(self, gltf: GLTF2):
        self.gltf = gltf
        self.blob = gltf.binary_blob() or b''
        self._materials: Dict[Optional[int], MaterialRecord] = {}
        self._images: Dict[int, Optional[Image.Image]] = {}

    def texture_image(self, texture_info) -> Optional[Image.Image]:
        """Decoded image behind a textureInfo, or None."""
        texture_index = get_field(texture_info, 'index')
        if texture_index is None:
            return None
        source = get_field(self.gltf.textures[texture_index], 'source')
        if source is None:
            return None
        if source not in self._images:
            self._images[source] = self._decode_image(source)
        return self._images[source]

    def _decode_image(self, index: int) -> Optional[Image.Image]:
        image = self.gltf.images[index]
        view_index = get_field(image, 'bufferView')
        if view_index is not None:
            view = self.gltf.bufferViews[view_index]
            start = get_field(view, 'byteOffset', 0)
            return decode_image(self.blob[start:start + view.byteLength])

        payload = decode_data_uri(get_field(image, 'uri', ''))
        if payload is None:
            logger.warning(f"Image {index} references external file '{get_field(image, 'uri')}'; skipping")
            return None
        return decode_image(payload)

    def material(self, index: Optional[int]) -> MaterialRecord:
        if index not in self._materials:
            self._materials[index] = self._build_material(index)
        return self._materials[index]

    def _build_material(self, index: Optional[int]) -> MaterialRecord:
        if index is None:
            return MaterialRecord(name="default")

        src = self.gltf.materials[index]
        pbr = get_field(src, 'pbrMetallicRoughness')
        maps: Dict[str, Optional[Image.Image]] = {}

        albedo = self.texture_image(get_field(pbr, 'baseColorTexture'))
        if albedo is not None:
            maps['albedo'] = albedo

        metal_rough = self.texture_image(get_field(pbr, 'metallicRoughnessTexture'))
        if metal_rough is not None:
            maps['roughness'] = _channel_as_gray(metal_rough, 'G')
            maps['metalness'] = _channel_as_gray(metal_rough, 'B')

        normal = self.texture_image(get_field(src, 'normalTexture'))
        if normal is not None:
            maps['normal'] = normal

        emissive = self.texture_image(get_field(src, 'emissiveTexture'))
        if emissive is not None:
            maps['emissive'] = emissive

        occlusion = self.texture_image(get_field(src, 'occlusionTexture'))
        if occlusion is not None:
            maps['ambient_occlusion'] = _channel_as_gray(occlusion, 'R')

        base_color = get_field(pbr, 'baseColorFactor', [1.0, 1.0, 1.0, 1.0])
        strength = get_field(get_field(src, 'extensions', {}), EMISSIVE_STRENGTH, {})

        return MaterialRecord(
            name=get_field(src, 'name', f"material_{index}"),
            maps=maps,
            color=tuple(float(c) for c in base_color[:3]),
            roughness=float(get_field(pbr, 'roughnessFactor', 1.0)),
            metalness=float(get_field(pbr, 'metallicFactor', 1.0)),
            emissive=tuple(float(c) for c in get_field(src, 'emissiveFactor', [0.0, 0.0, 0.0])),
            emissive_intensity=float(get_field(strength, 'emissiveStrength', 1.0)),
        )

    def geometry(self, primitive) -> Optional[Geometry]:
        attributes = get_field(primitive, 'attributes')
        attrs: Dict[str, np.ndarray] = {}
        for gltf_name, name in ATTRIBUTE_NAMES.items():
            accessor = get_field(attributes, gltf_name)
            if accessor is not None:
                attrs[name] = read_accessor(self.gltf, self.blob, accessor).astype(np.float32)

        if 'position' not in attrs:
            return None

        index = None
        indices = get_field(primitive, 'indices')
        if indices is not None:
            index = read_accessor(self.gltf, self.blob, indices).ravel().astype(np.int64)

        return Geometry(attributes=attrs, index=index)

    def meshes(self) -> List[MeshRecord]:
        records: List[MeshRecord] = []
        stack = [(root, np.eye(4)) for root in reversed(scene_roots(self.gltf))]

        while stack:
            node_index, parent = stack.pop()
            node = self.gltf.nodes[node_index]
            world = parent @ node_matrix(node)

            mesh_index = get_field(node, 'mesh')
            if mesh_index is not None:
                records.extend(self._mesh_records(mesh_index, world, get_field(node, 'name')))

            for child in reversed(get_field(node, 'children', [])):
                stack.append((child, world))

        return records

    def _mesh_records(self, mesh_index: int, matrix: np.ndarray, node_name: Optional[str]) -> List[MeshRecord]:
        mesh = self.gltf.meshes[mesh_index]
        base_name = get_field(mesh, 'name') or node_name or f"mesh_{mesh_index}"
        records = []
        for p, primitive in enumerate(get_field(mesh, 'primitives', [])):
            mode = get_field(primitive, 'mode', TRIANGLES)
            if mode != TRIANGLES:
                logger.warning(f"Mesh '{base_name}' primitive {p}: mode {mode} is not TRIANGLES; skipping")
                continue
            geometry = self.geometry(primitive)
            if geometry is None:
                logger.warning(f"Mesh '{base_name}' primitive {p} has no POSITION; skipping")
                continue
            records.append(MeshRecord(
                geometry=geometry,
                material=self.material(get_field(primitive, 'material')),
                matrix=matrix.copy(),
                name=base_name if p == 0 else f"{base_name}_{p}",
            ))
        return records


def _channel_as_gray(image: Image.Image, channel: str) -> Image.Image:
    band = image.convert('RGBA').getchannel(channel)
    return Image.merge('RGB', (band, band, band)).convert('RGBA')


def import_glb(data: bytes) -> List[MeshRecord]:
    """
    Decode GLB bytes into mesh records.

    Args:
        data: GLB file contents

    Returns:
        One MeshRecord per triangle primitive, in scene traversal order

    Raises:
        ValueError: If data is not a GLB file
    """
    gltf = load_gltf(data)
    records = _GLBReader(gltf).meshes()
    logger.info(f"Imported {len(records)} meshes, {len(get_field(gltf, 'materials', []))} materials")
    return records
