"""
meshsmith - Merge independently authored 3D models into one mesh

Combines many textured models into a single geometry with a single material,
packing every source texture into a shared atlas and baking image decals into
the models' own textures first.
"""

from meshsmith.client import MeshMerger, ProgressSink
from meshsmith.scene import MergeResult

__version__ = "0.1.0"
__all__ = ["MeshMerger", "ProgressSink", "MergeResult"]
