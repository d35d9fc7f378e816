"""
Geometry utilities: transforms, attribute reconciliation and mesh merging.
"""
from .transform_utils import compose_matrix, compose_transform, apply_matrix_to_geometry
from .attributes import normalize_attributes, to_non_indexed, compute_vertex_normals
from .merger import merge_geometries

__all__ = [
    'compose_matrix',
    'compose_transform',
    'apply_matrix_to_geometry',
    'normalize_attributes',
    'to_non_indexed',
    'compute_vertex_normals',
    'merge_geometries',
]
