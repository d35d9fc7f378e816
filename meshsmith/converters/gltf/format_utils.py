"""
GLTF Format Utilities

Helpers for reading pygltflib documents: optional fields, typed accessor
data, node matrices and embedded images.
"""

import base64
from typing import Any, List, Optional

import numpy as np
from scipy.spatial.transform import Rotation

# glTF componentType -> numpy dtype (little endian)
COMPONENT_DTYPES = {
    5120: np.dtype('<i1'),  # BYTE
    5121: np.dtype('<u1'),  # UNSIGNED_BYTE
    5122: np.dtype('<i2'),  # SHORT
    5123: np.dtype('<u2'),  # UNSIGNED_SHORT
    5125: np.dtype('<u4'),  # UNSIGNED_INT
    5126: np.dtype('<f4'),  # FLOAT
}

TYPE_WIDTHS = {
    'SCALAR': 1,
    'VEC2': 2,
    'VEC3': 3,
    'VEC4': 4,
    'MAT2': 4,
    'MAT3': 9,
    'MAT4': 16,
}

TRIANGLES = 4


def get_field(obj: Any, field_name: str, default: Any = None) -> Any:
    """
    Get field from either dict or object format

    pygltflib leaves unset optional fields as None; those return default too.
    """
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(field_name, default)
    else:
        value = getattr(obj, field_name, default)
    return default if value is None else value


def read_accessor(gltf, blob: bytes, index: int) -> np.ndarray:
    """
    Read an accessor into an (count, width) array.

    Handles interleaved buffer views (byteStride) and normalized integer
    components, which are mapped to [0, 1] or [-1, 1] floats. Accessors without
    a buffer view read as zeros.

    Args:
        gltf: Loaded GLTF2 document
        blob: GLB binary chunk
        index: Accessor index

    Returns:
        float32 array for float or normalized data, otherwise the raw integer dtype
    """
    accessor = gltf.accessors[index]
    dtype = COMPONENT_DTYPES[accessor.componentType]
    width = TYPE_WIDTHS[accessor.type]
    count = accessor.count

    if accessor.bufferView is None:
        return np.zeros((count, width), dtype=np.float32)

    view = gltf.bufferViews[accessor.bufferView]
    offset = get_field(view, 'byteOffset', 0) + get_field(accessor, 'byteOffset', 0)
    item_size = dtype.itemsize * width
    stride = get_field(view, 'byteStride', 0) or item_size

    if stride == item_size:
        data = np.frombuffer(blob, dtype=dtype, count=count * width, offset=offset).reshape(count, width)
    else:
        rows = [np.frombuffer(blob, dtype=dtype, count=width, offset=offset + i * stride) for i in range(count)]
        data = np.array(rows, dtype=dtype).reshape(count, width)

    if dtype.kind == 'f':
        return data.astype(np.float32)
    if get_field(accessor, 'normalized', False):
        scaled = data.astype(np.float32) / np.float32(np.iinfo(dtype).max)
        return np.maximum(scaled, -1.0)
    return data.copy()


def node_matrix(node) -> np.ndarray:
    """Local 4x4 matrix of a node (explicit matrix, or T @ R @ S)."""
    matrix = get_field(node, 'matrix')
    if matrix is not None and len(matrix) == 16:
        # glTF matrices are column-major
        return np.array(matrix, dtype=np.float64).reshape(4, 4).T

    result = np.eye(4)
    rotation = get_field(node, 'rotation')
    scale = get_field(node, 'scale', [1.0, 1.0, 1.0])
    if rotation is not None:
        # glTF quaternions are (x, y, z, w), same as scipy
        result[:3, :3] = Rotation.from_quat(rotation).as_matrix()
    result[:3, :3] = result[:3, :3] * np.asarray(scale, dtype=np.float64)[np.newaxis, :]
    result[:3, 3] = get_field(node, 'translation', [0.0, 0.0, 0.0])
    return result


def scene_roots(gltf) -> List[int]:
    """Root node indices of the default scene, or all parentless nodes."""
    scenes = get_field(gltf, 'scenes', [])
    if scenes:
        scene = scenes[get_field(gltf, 'scene', 0)]
        return list(get_field(scene, 'nodes', []))

    children = {child for node in get_field(gltf, 'nodes', []) for child in get_field(node, 'children', [])}
    return [i for i in range(len(get_field(gltf, 'nodes', []))) if i not in children]


def decode_data_uri(uri: str) -> Optional[bytes]:
    """Payload of a base64 data URI, or None for external references."""
    if not uri.startswith('data:') or ';base64,' not in uri:
        return None
    return base64.b64decode(uri.split(';base64,', 1)[1])
