"""Option schema definitions."""
from .options import (
    Transform,
    AtlasMode,
    MaterialOverrides,
    DecalBakeOptions,
    DecalOptions,
    MergeOptions,
    resolve_merge_options,
    parse_color,
    CHANNELS,
)

__all__ = [
    "Transform",
    "AtlasMode",
    "MaterialOverrides",
    "DecalBakeOptions",
    "DecalOptions",
    "MergeOptions",
    "resolve_merge_options",
    "parse_color",
    "CHANNELS",
]
