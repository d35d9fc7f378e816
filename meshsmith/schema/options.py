"""
Merge configuration schema.

All options accepted by MeshMerger are validated here with pydantic. Field
names are snake_case; the camelCase spellings used by the JavaScript viewer
(atlasSize, textureQuality, atlasMode, materialOverrides, aoMap ...) are
accepted as aliases so option dicts can be passed through unchanged.

COLORS:
Colors are normalized to RGB float triples in [0, 1]. Accepted inputs:
- Hex strings: "#ff8800", "ff8800", "#f80"
- Integers: 0xff8800
- Sequences of three floats in [0, 1]

ROTATIONS:
Euler angles are in RADIANS, applied in intrinsic XYZ order.
"""

from __future__ import annotations
from typing import List, Optional, Tuple, Literal, Union, Any
from pydantic import BaseModel, Field, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

# Type aliases for better readability
Vec3 = Tuple[float, float, float]
RGB = Tuple[float, float, float]

CHANNELS = ("albedo", "normal", "roughness", "metalness", "emissive", "ambient_occlusion")


def parse_color(value: Any) -> RGB:
    """
    Normalize a color value to an RGB float triple.

    Args:
        value: Hex string, 24-bit integer or sequence of 3 floats (0-1)

    Returns:
        (r, g, b) floats in [0, 1]

    Raises:
        ValueError: If the value cannot be interpreted as a color
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid color: {value!r}")
    if isinstance(value, int):
        if not 0 <= value <= 0xFFFFFF:
            raise ValueError(f"Color integer out of range: {value}")
        return ((value >> 16 & 0xFF) / 255.0, (value >> 8 & 0xFF) / 255.0, (value & 0xFF) / 255.0)
    if isinstance(value, str):
        hex_str = value.strip().lstrip('#')
        if len(hex_str) == 3:
            hex_str = ''.join(c * 2 for c in hex_str)
        if len(hex_str) != 6:
            raise ValueError(f"Invalid hex color: {value!r}")
        try:
            return parse_color(int(hex_str, 16))
        except ValueError:
            raise ValueError(f"Invalid hex color: {value!r}")
    if isinstance(value, (list, tuple)) and len(value) == 3:
        rgb = tuple(float(c) for c in value)
        if any(c < 0.0 or c > 1.0 for c in rgb):
            raise ValueError(f"Color components must be in [0, 1]: {value!r}")
        return rgb
    raise ValueError(f"Invalid color: {value!r}")


class _Options(BaseModel):
    model_config = ConfigDict(extra='forbid', alias_generator=to_camel, populate_by_name=True)


class Transform(_Options):
    """Model or decal transform. Missing components default to identity."""
    position: Vec3 = Field(default=(0.0, 0.0, 0.0), description="Translation.")
    rotation: Vec3 = Field(default=(0.0, 0.0, 0.0), description="Euler XYZ rotation in radians.")
    scale: Vec3 = Field(default=(1.0, 1.0, 1.0), description="Per-axis scale.")

    def updated(self, **changes: Optional[Vec3]) -> "Transform":
        """Return a validated copy with the given non-None components replaced."""
        values = {k: v for k, v in changes.items() if v is not None}
        return Transform.model_validate({**self.model_dump(), **values})


class AtlasMode(_Options):
    """Which texture channels are packed into atlases."""
    albedo: bool = True
    normal: bool = False
    roughness: bool = False
    metalness: bool = False
    emissive: bool = False
    ambient_occlusion: bool = Field(default=False, alias='aoMap')

    def enabled_channels(self) -> List[str]:
        return [channel for channel in CHANNELS if getattr(self, channel)]


class MaterialOverrides(_Options):
    """Scalar/color values forced onto the merged material."""
    roughness: Optional[float] = Field(None, ge=0.0, le=1.0)
    metalness: Optional[float] = Field(None, ge=0.0, le=1.0)
    color: Optional[RGB] = None
    emissive: Optional[RGB] = None
    emissive_intensity: Optional[float] = Field(None, ge=0.0)

    @field_validator('color', 'emissive', mode='before')
    @classmethod
    def _parse_colors(cls, v):
        if v is None:
            return v
        return parse_color(v)


class DecalBakeOptions(_Options):
    """Options for compositing decals into a model's albedo texture."""
    padding: int = Field(default=2, ge=0, description="Pixels trimmed from each side of a decal footprint.")
    blend_mode: Literal['normal', 'multiply', 'overlay'] = 'normal'
    target_texture_size: Optional[int] = Field(
        None, gt=0, description="Bake canvas size (square). None keeps the source texture size."
    )


class DecalOptions(_Options):
    """Placement of a single decal (all fields optional)."""
    position: Optional[Vec3] = None
    rotation: Optional[Vec3] = None
    scale: Optional[Vec3] = None
    opacity: Optional[float] = None
    uv: Optional[Tuple[float, float]] = Field(None, description="UV hint captured from a surface pick.")


class MergeOptions(_Options):
    """Options for MeshMerger.merge()."""
    atlas_size: int = Field(default=2048, gt=0, strict=True, description="Atlas edge length in pixels.")
    texture_quality: float = Field(default=0.9, ge=0.0, le=1.0, description="Resampling quality (0-1).")
    generate_mipmaps: bool = Field(default=True, description="Request mipmapped filtering on export.")
    atlas_mode: AtlasMode = Field(default_factory=AtlasMode)
    material_overrides: Optional[MaterialOverrides] = None
    bake: DecalBakeOptions = Field(default_factory=DecalBakeOptions)
    max_workers: int = Field(default=1, ge=1, description="Threads used for per-channel/per-model work.")


OptionsLike = Union[MergeOptions, dict, None]


def resolve_merge_options(options: OptionsLike) -> MergeOptions:
    """Accept a MergeOptions, a plain dict (snake or camel case) or None."""
    if options is None:
        return MergeOptions()
    if isinstance(options, MergeOptions):
        return options
    return MergeOptions.model_validate(options)
