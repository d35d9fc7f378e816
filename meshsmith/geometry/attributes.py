"""
Geometry attribute reconciliation.

Geometries can only be concatenated when they carry the same attribute set with
the same item widths. normalize_attributes() enforces that: it keeps the
attributes every geometry shares and guarantees 'uv' and 'normal' exist.

Known degenerate case: if any geometry lacks 'uv', the shared set has no 'uv'
and every vertex gets (0, 0). After atlasing all triangles then sample the
same atlas pixel. This is accepted behavior and only logged.
"""

import logging
from typing import List

import numpy as np

from meshsmith.exceptions import InvalidAttributeError
from meshsmith.scene import Geometry

logger = logging.getLogger(__name__)

REQUIRED_ATTRIBUTE = 'position'


def to_non_indexed(geometry: Geometry) -> Geometry:
    """
    Expand an indexed geometry into one vertex per triangle corner.

    Returns the geometry unchanged when it has no index.
    """
    if geometry.index is None:
        return geometry
    index = np.asarray(geometry.index, dtype=np.int64)
    return Geometry(
        attributes={name: arr[index] for name, arr in geometry.attributes.items()},
        index=None,
        morph_attributes={name: [a[index] for a in arrs] for name, arrs in geometry.morph_attributes.items()},
    )


def compute_vertex_normals(geometry: Geometry) -> np.ndarray:
    """
    Flat normals for a non-indexed geometry.

    Each vertex gets the normal of the triangle it belongs to. Degenerate
    triangles get a zero normal.
    """
    position = geometry.attributes['position'].astype(np.float64)
    tris = position[: len(position) // 3 * 3].reshape(-1, 3, 3)
    face = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    lengths = np.linalg.norm(face, axis=1, keepdims=True)
    lengths[lengths == 0] = 1.0
    face = face / lengths
    normals = np.zeros_like(position)
    normals[: len(tris) * 3] = np.repeat(face, 3, axis=0)
    return normals.astype(np.float32)


def normalize_attributes(geometries: List[Geometry]) -> None:
    """
    Make all geometries share one attribute set, IN PLACE.

    Steps:
    1. Every geometry must have 'position' (InvalidAttributeError otherwise)
    2. Keep only attribute names present in all geometries with equal width
    3. Zero-fill 'uv' if it did not survive
    4. Compute 'normal' if it did not survive
    5. Drop morph attributes
    """
    if not geometries:
        return

    for i, geo in enumerate(geometries):
        if REQUIRED_ATTRIBUTE not in geo.attributes or geo.attributes[REQUIRED_ATTRIBUTE].size == 0:
            raise InvalidAttributeError(f"Geometry {i} has no position data")

    common = set(geometries[0].attributes)
    for geo in geometries[1:]:
        common &= set(geo.attributes)

    for name in sorted(common):
        widths = {geo.attributes[name].shape[1] for geo in geometries}
        if len(widths) > 1:
            logger.warning(f"Dropping attribute '{name}': item widths differ {sorted(widths)}")
            common.discard(name)

    for geo in geometries:
        dropped = [name for name in geo.attributes if name not in common]
        for name in dropped:
            del geo.attributes[name]
        if dropped:
            logger.debug(f"Dropped non-shared attributes: {dropped}")

        geo.morph_attributes = {}

    if 'uv' not in common:
        logger.warning("Not every geometry has UVs; filling with (0, 0). Atlas lookups will collapse to one texel.")
        for geo in geometries:
            geo.attributes['uv'] = np.zeros((geo.vertex_count, 2), dtype=np.float32)

    if 'normal' not in common:
        logger.info("Computing flat normals for merged geometry")
        for geo in geometries:
            geo.attributes['normal'] = compute_vertex_normals(geo)


def concatenate(geometries: List[Geometry]) -> Geometry:
    """Concatenate non-indexed geometries that share one attribute set."""
    names = list(geometries[0].attributes)
    return Geometry(
        attributes={
            name: np.concatenate([geo.attributes[name] for geo in geometries], axis=0).astype(np.float32)
            for name in names
        }
    )
