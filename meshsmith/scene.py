"""
Value types shared by the merge pipeline.

Geometry arrays are numpy float32, one row per vertex. Images are Pillow
images (RGBA once they enter the atlas or baker). Materials are compared by
identity: two MaterialRecords are the same material only if they are the same
object, which is what the material mapping keys on.
"""

from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image

from meshsmith.schema.options import Transform, CHANNELS

RGB = Tuple[float, float, float]


@dataclass
class Geometry:
    """
    Vertex attribute buffers for one triangle mesh.

    Attributes:
        attributes: name -> (N, k) float32 array ('position', 'normal', 'uv', ...)
        index: Optional flat integer array, 3 entries per triangle
        morph_attributes: Morph target buffers (dropped when merging)
    """
    attributes: Dict[str, np.ndarray] = field(default_factory=dict)
    index: Optional[np.ndarray] = None
    morph_attributes: Dict[str, List[np.ndarray]] = field(default_factory=dict)

    @property
    def vertex_count(self) -> int:
        position = self.attributes.get('position')
        return 0 if position is None else len(position)

    @property
    def triangle_count(self) -> int:
        if self.index is not None:
            return len(self.index) // 3
        return self.vertex_count // 3

    def clone(self) -> "Geometry":
        return Geometry(
            attributes={name: np.array(arr, copy=True) for name, arr in self.attributes.items()},
            index=None if self.index is None else np.array(self.index, copy=True),
            morph_attributes={name: [np.array(a, copy=True) for a in arrs]
                              for name, arrs in self.morph_attributes.items()},
        )

    def bounding_box(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (min, max) corners of the positions."""
        position = self.attributes['position']
        return position.min(axis=0), position.max(axis=0)


@dataclass(eq=False)
class MaterialRecord:
    """
    PBR material with optional texture maps per channel.

    Scalars are used when the channel has no texture.
    """
    name: str = "material"
    maps: Dict[str, Optional[Image.Image]] = field(default_factory=dict)
    color: RGB = (1.0, 1.0, 1.0)
    roughness: float = 1.0
    metalness: float = 0.0
    emissive: RGB = (0.0, 0.0, 0.0)
    emissive_intensity: float = 1.0

    def get_map(self, channel: str) -> Optional[Image.Image]:
        if channel not in CHANNELS:
            raise ValueError(f"Unknown texture channel: {channel}")
        return self.maps.get(channel)

    def with_map(self, channel: str, image: Optional[Image.Image]) -> "MaterialRecord":
        """Copy of this material with one channel map replaced."""
        if channel not in CHANNELS:
            raise ValueError(f"Unknown texture channel: {channel}")
        maps = dict(self.maps)
        maps[channel] = image
        return replace(self, maps=maps)


@dataclass
class MeshRecord:
    """One triangle mesh of a model, with its local-to-model matrix."""
    geometry: Geometry
    material: MaterialRecord
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4))
    name: str = "mesh"


@dataclass
class ModelAsset:
    """A registered model: id, transform and the meshes it owns."""
    id: str
    meshes: List[MeshRecord]
    transform: Transform = field(default_factory=Transform)
    name: str = "model"

    @property
    def materials(self) -> List[MaterialRecord]:
        """Unique materials in first-seen order."""
        seen = OrderedDict()
        for mesh in self.meshes:
            seen.setdefault(id(mesh.material), mesh.material)
        return list(seen.values())


@dataclass
class DecalInstance:
    """
    Image placed on a model surface.

    position/rotation/scale are in the target model's local space; rotation is
    Euler radians. uv is the optional hint captured by a surface pick.
    """
    id: str
    target_model_id: str
    image: Optional[Image.Image]
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    scale: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    opacity: float = 1.0
    uv: Optional[Tuple[float, float]] = None
    source: str = "image"

    def copy(self, **changes) -> "DecalInstance":
        return replace(self, **changes)


# Material -> triangle indices in the merged buffer (dict keeps first-seen order)
MaterialMapping = Dict[MaterialRecord, List[int]]


@dataclass
class PackedRect:
    """Atlas rectangle in pixels, index-aligned with the material list."""
    x: int
    y: int
    w: int
    h: int


@dataclass
class AtlasResult:
    """Finished atlases per channel, the shared layout and the merged material."""
    atlases: Dict[str, Image.Image]
    layout: List[PackedRect]
    material: MaterialRecord
    atlas_size: int


@dataclass
class MergeResult:
    """Output of MeshMerger.merge()."""
    geometry: Geometry
    material: MaterialRecord
    materials: List[MaterialRecord]
    material_mapping: MaterialMapping
    atlas: AtlasResult

    @property
    def vertex_count(self) -> int:
        return self.geometry.vertex_count
