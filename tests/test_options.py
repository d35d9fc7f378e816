"""
Tests for option validation and color parsing.
"""

import pytest
from pydantic import ValidationError

from meshsmith.schema.options import (
    AtlasMode,
    DecalBakeOptions,
    MaterialOverrides,
    MergeOptions,
    Transform,
    parse_color,
    resolve_merge_options,
)


class TestParseColor:
    """Hex, integer and float-triple colors"""

    def test_hex_string(self):
        assert parse_color("#ff0000") == (1.0, 0.0, 0.0)
        assert parse_color("00ff00") == (0.0, 1.0, 0.0)

    def test_short_hex(self):
        assert parse_color("#00f") == (0.0, 0.0, 1.0)

    def test_integer(self):
        assert parse_color(0xFFFFFF) == (1.0, 1.0, 1.0)

    def test_float_triple(self):
        assert parse_color([0.5, 0.25, 0.0]) == (0.5, 0.25, 0.0)

    @pytest.mark.parametrize("value", ["#12", "zzzzzz", 0x1000000, (2.0, 0.0, 0.0), True, None])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_color(value)


class TestMergeOptions:
    """Defaults, aliases and validation"""

    def test_defaults(self):
        options = MergeOptions()
        assert options.atlas_size == 2048
        assert options.texture_quality == 0.9
        assert options.generate_mipmaps is True
        assert options.atlas_mode.enabled_channels() == ['albedo']
        assert options.material_overrides is None
        assert options.bake.padding == 2
        assert options.bake.blend_mode == 'normal'

    def test_camel_case_aliases(self):
        options = resolve_merge_options({
            "atlasSize": 512,
            "textureQuality": 0.5,
            "atlasMode": {"albedo": True, "aoMap": True},
            "materialOverrides": {"roughness": 0.3, "color": "#ff0000"},
        })
        assert options.atlas_size == 512
        assert options.texture_quality == 0.5
        assert options.atlas_mode.enabled_channels() == ['albedo', 'ambient_occlusion']
        assert options.material_overrides.color == (1.0, 0.0, 0.0)

    def test_snake_case_names(self):
        options = resolve_merge_options({"atlas_size": 256, "atlas_mode": {"normal": True}})
        assert options.atlas_size == 256
        assert options.atlas_mode.normal is True

    def test_none_and_instance_pass_through(self):
        options = MergeOptions(atlas_size=64)
        assert resolve_merge_options(options) is options
        assert resolve_merge_options(None).atlas_size == 2048

    @pytest.mark.parametrize("size", [0, -4, "2048", 10.5])
    def test_invalid_atlas_size(self, size):
        with pytest.raises(ValidationError):
            MergeOptions(atlas_size=size)

    def test_quality_range(self):
        with pytest.raises(ValidationError):
            MergeOptions(texture_quality=1.5)

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            resolve_merge_options({"atlasSizee": 64})

    def test_override_ranges(self):
        with pytest.raises(ValidationError):
            MaterialOverrides(roughness=2.0)
        with pytest.raises(ValidationError):
            MaterialOverrides(color="not-a-color")

    def test_blend_mode_choices(self):
        assert DecalBakeOptions(blend_mode='overlay').blend_mode == 'overlay'
        with pytest.raises(ValidationError):
            DecalBakeOptions(blend_mode='screen')


class TestTransform:
    def test_defaults_are_identity(self):
        transform = Transform()
        assert transform.position == (0.0, 0.0, 0.0)
        assert transform.rotation == (0.0, 0.0, 0.0)
        assert transform.scale == (1.0, 1.0, 1.0)

    def test_updated_replaces_given_components(self):
        transform = Transform(position=(1, 2, 3)).updated(scale=(2, 2, 2), rotation=None)
        assert transform.position == (1.0, 2.0, 3.0)
        assert transform.scale == (2.0, 2.0, 2.0)
        assert transform.rotation == (0.0, 0.0, 0.0)

    def test_atlas_mode_order(self):
        mode = AtlasMode(emissive=True, normal=True)
        assert mode.enabled_channels() == ['albedo', 'normal', 'emissive']
