"""
GLB import/export via pygltflib.

Usage:
    meshes = import_glb(Path("model.glb").read_bytes())
    data = export_glb(result.geometry, result.material)
"""
from .importer import import_glb
from .exporter import export_glb

__all__ = ["import_glb", "export_glb"]
