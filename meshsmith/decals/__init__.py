"""
Decals: storage, surface-to-UV projection and texture baking.
"""
from .store import DecalStore
from .projector import project_to_uv, resolve_decal_uv, UVProjection
from .baker import bake_decals, bake_model_decals, DecalPlacement

__all__ = [
    'DecalStore',
    'project_to_uv',
    'resolve_decal_uv',
    'UVProjection',
    'bake_decals',
    'bake_model_decals',
    'DecalPlacement',
]
