"""
Decal projector: 3D surface point -> UV coordinate.

The nearest triangle is chosen by centroid distance (a cheap proxy for true
point-triangle distance), then the point is expressed in barycentric
coordinates of that triangle's plane, clamped to [0, 1], renormalized, and
used to interpolate the triangle's UVs. Cost is O(triangles) per point.

A UV hint captured by a surface pick is always preferred over projection.
"""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from meshsmith.geometry.attributes import to_non_indexed
from meshsmith.scene import DecalInstance, Geometry

logger = logging.getLogger(__name__)


@dataclass
class UVProjection:
    """Result of projecting a point to UV space."""
    u: float
    v: float
    valid: bool
    triangle: int = -1


def barycentric_coords(point: np.ndarray, a: np.ndarray, b: np.ndarray, c: np.ndarray) -> np.ndarray:
    """
    Barycentric weights (wa, wb, wc) of point relative to triangle abc.

    The point is implicitly projected to the triangle's plane. Weights are
    clamped to [0, 1] and renormalized to sum to 1. Degenerate triangles
    give equal weights.
    """
    edge0 = b - a
    edge1 = c - a
    to_point = point - a

    dot00 = edge0 @ edge0
    dot01 = edge0 @ edge1
    dot02 = edge0 @ to_point
    dot11 = edge1 @ edge1
    dot12 = edge1 @ to_point

    denom = dot00 * dot11 - dot01 * dot01
    if abs(denom) < 1e-20:
        return np.full(3, 1.0 / 3.0)

    u = (dot11 * dot02 - dot01 * dot12) / denom
    v = (dot00 * dot12 - dot01 * dot02) / denom
    w = 1.0 - u - v

    weights = np.clip(np.array([w, u, v]), 0.0, 1.0)
    total = weights.sum()
    if total == 0:
        return np.full(3, 1.0 / 3.0)
    return weights / total


def nearest_triangle(positions: np.ndarray, point: np.ndarray) -> Tuple[int, float]:
    """Index and centroid distance of the triangle whose centroid is nearest point."""
    tris = positions[: len(positions) // 3 * 3].reshape(-1, 3, 3)
    centroids = tris.mean(axis=1)
    distances = np.linalg.norm(centroids - point, axis=1)
    index = int(np.argmin(distances))
    return index, float(distances[index])


def project_to_uv(geometry: Geometry, point: Sequence[float]) -> UVProjection:
    """
    Project a point (in the geometry's space) to the nearest surface UV.

    Args:
        geometry: Mesh geometry (indexed or not) with 'position' and 'uv'
        point: [x, y, z]

    Returns:
        UVProjection; valid=False when the geometry has no positions, UVs or
        triangles
    """
    if 'position' not in geometry.attributes or 'uv' not in geometry.attributes:
        logger.warning("project_to_uv: missing uv or position attributes")
        return UVProjection(0.0, 0.0, False)

    flat = to_non_indexed(geometry)
    positions = flat.attributes['position'].astype(np.float64)
    uvs = flat.attributes['uv'].astype(np.float64)
    if len(positions) < 3:
        return UVProjection(0.0, 0.0, False)

    target = np.asarray(point, dtype=np.float64)
    tri, distance = nearest_triangle(positions, target)
    a, b, c = positions[tri * 3: tri * 3 + 3]
    weights = barycentric_coords(target, a, b, c)
    u, v = weights @ uvs[tri * 3: tri * 3 + 3]

    logger.debug(f"Projected {list(target)} onto triangle {tri} (centroid distance {distance:.4f}): uv=({u:.4f}, {v:.4f})")
    return UVProjection(float(np.clip(u, 0.0, 1.0)), float(np.clip(v, 0.0, 1.0)), True, tri)


def resolve_decal_uv(decal: DecalInstance, geometry: Geometry) -> UVProjection:
    """UV for a decal: its captured hint verbatim if present, else projection of its position."""
    if decal.uv is not None:
        return UVProjection(float(decal.uv[0]), float(decal.uv[1]), True)
    return project_to_uv(geometry, decal.position)
