"""
Centralized matrix utilities for model and mesh transforms.

Key principles:
- Fixed intrinsic 'XYZ' Euler order, angles in radians
- Matrices are 4x4 column-vector convention: p' = M @ [x, y, z, 1]
- Composition order is Translation * Rotation * Scale
- Normals transform by the inverse-transpose of the upper 3x3
"""

import logging
from typing import Sequence

import numpy as np
from scipy.spatial.transform import Rotation

from meshsmith.scene import Geometry

logger = logging.getLogger(__name__)

# Fixed rotation order for all conversions
EULER_ORDER = 'XYZ'


def compose_matrix(
    position: Sequence[float] = (0.0, 0.0, 0.0),
    rotation: Sequence[float] = (0.0, 0.0, 0.0),
    scale: Sequence[float] = (1.0, 1.0, 1.0)
) -> np.ndarray:
    """
    Compose a 4x4 transform from position, Euler rotation and scale.

    Args:
        position: Translation [x, y, z]
        rotation: Euler angles in radians [x, y, z], intrinsic XYZ order
        scale: Per-axis scale [x, y, z]

    Returns:
        4x4 float64 matrix equal to T @ R @ S
    """
    matrix = np.eye(4)
    rot = Rotation.from_euler(EULER_ORDER, list(rotation)).as_matrix()
    matrix[:3, :3] = rot * np.asarray(scale, dtype=np.float64)[np.newaxis, :]
    matrix[:3, 3] = np.asarray(position, dtype=np.float64)
    return matrix


def compose_transform(transform) -> np.ndarray:
    """Compose the matrix of a Transform (position/rotation/scale attributes)."""
    return compose_matrix(transform.position, transform.rotation, transform.scale)


def normal_matrix(matrix: np.ndarray) -> np.ndarray:
    """
    Inverse-transpose of the upper 3x3.

    Falls back to the plain upper 3x3 when it is singular (zero scale on an
    axis), which still yields usable directions for the non-collapsed axes.
    """
    linear = matrix[:3, :3]
    try:
        return np.linalg.inv(linear).T
    except np.linalg.LinAlgError:
        logger.warning("Singular transform; normals transformed without inverse-transpose")
        return linear


def apply_matrix_to_geometry(geometry: Geometry, matrix: np.ndarray) -> Geometry:
    """
    Transform positions, normals and tangents of a geometry IN PLACE.

    Args:
        geometry: Geometry to modify
        matrix: 4x4 transform

    Returns:
        The same geometry (for chaining)
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    attrs = geometry.attributes

    if 'position' in attrs:
        pos = attrs['position'].astype(np.float64)
        attrs['position'] = (pos @ matrix[:3, :3].T + matrix[:3, 3]).astype(np.float32)

    if 'normal' in attrs:
        normals = attrs['normal'].astype(np.float64) @ normal_matrix(matrix).T
        attrs['normal'] = _normalize_rows(normals).astype(np.float32)

    if 'tangent' in attrs:
        tangent = attrs['tangent'].astype(np.float64)
        xyz = _normalize_rows(tangent[:, :3] @ matrix[:3, :3].T)
        attrs['tangent'] = np.concatenate([xyz, tangent[:, 3:]], axis=1).astype(np.float32)

    return geometry


def _normalize_rows(vectors: np.ndarray) -> np.ndarray:
    lengths = np.linalg.norm(vectors, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    return vectors / lengths
