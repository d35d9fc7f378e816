"""
Geometry merge engine.

Consolidates the meshes of many models into one non-indexed buffer while
recording which merged triangles use which material.

Triangle indexing: triangle t of the merged buffer owns vertices 3t, 3t+1, 3t+2.
"""

import logging
from typing import Dict, List, Sequence, Tuple

from meshsmith.exceptions import InvalidAttributeError, NoGeometryError
from meshsmith.geometry.attributes import to_non_indexed, normalize_attributes, concatenate
from meshsmith.geometry.transform_utils import apply_matrix_to_geometry, compose_transform
from meshsmith.scene import Geometry, MaterialRecord, MaterialMapping, ModelAsset

logger = logging.getLogger(__name__)

SubstitutionKey = Tuple[str, MaterialRecord]


def merge_geometries(
    models: Sequence[ModelAsset],
    material_substitutions: Dict[SubstitutionKey, MaterialRecord] = None
) -> Tuple[Geometry, List[MaterialRecord], MaterialMapping]:
    """
    Merge every mesh of every model into one geometry.

    Args:
        models: Models in merge order; each mesh is baked with
                model_matrix @ mesh.matrix
        material_substitutions: Optional (model id, source material) ->
                replacement, used for decal-baked copies. A material shared
                by two models may be replaced differently in each.

    Returns:
        Tuple of:
        - merged non-indexed geometry
        - unique materials in first-seen order
        - material mapping: material -> merged triangle indices

    Raises:
        NoGeometryError: If there are no meshes at all
        InvalidAttributeError: If a mesh has no position data
    """
    material_substitutions = material_substitutions or {}
    geometries: List[Geometry] = []
    material_mapping: MaterialMapping = {}
    triangle_offset = 0

    for model in models:
        model_matrix = compose_transform(model.transform)

        for mesh in model.meshes:
            geometry = to_non_indexed(mesh.geometry.clone())
            if 'position' not in geometry.attributes:
                raise InvalidAttributeError(f"Mesh '{mesh.name}' in model '{model.name}' has no position attribute")
            triangle_count = geometry.vertex_count // 3
            if triangle_count == 0:
                logger.warning(f"Skipping empty mesh '{mesh.name}' in model '{model.name}'")
                continue
            if geometry.vertex_count != triangle_count * 3:
                logger.warning(f"Mesh '{mesh.name}' has a partial trailing triangle; dropping it")
                geometry.attributes = {name: arr[: triangle_count * 3] for name, arr in geometry.attributes.items()}

            apply_matrix_to_geometry(geometry, model_matrix @ mesh.matrix)

            material = material_substitutions.get((model.id, mesh.material), mesh.material)
            triangles = list(range(triangle_offset, triangle_offset + triangle_count))
            if material in material_mapping:
                material_mapping[material].extend(triangles)
            else:
                material_mapping[material] = triangles

            triangle_offset += triangle_count
            geometries.append(geometry)
            logger.debug(f"Appended {model.name}/{mesh.name}: {triangle_count} triangles")

    if not geometries:
        raise NoGeometryError("No meshes found in models")

    normalize_attributes(geometries)
    merged = concatenate(geometries)

    logger.info(
        f"Merged {len(geometries)} meshes into {merged.vertex_count} vertices "
        f"({triangle_offset} triangles, {len(material_mapping)} materials)"
    )
    return merged, list(material_mapping), material_mapping
