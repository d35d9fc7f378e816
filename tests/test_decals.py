"""
Tests for the decal store, projector and baker.
"""

import math

import numpy as np
import pytest
from PIL import Image

from meshsmith.decals.baker import (
    DecalPlacement,
    bake_decals,
    bake_model_decals,
    decal_size_in_uv,
)
from meshsmith.decals.projector import barycentric_coords, project_to_uv, resolve_decal_uv
from meshsmith.decals.store import DecalStore
from meshsmith.exceptions import NotFoundError, UnknownTargetError
from meshsmith.scene import DecalInstance, Geometry, MaterialRecord, MeshRecord, ModelAsset
from meshsmith.schema.options import DecalBakeOptions, DecalOptions

WHITE = (255, 255, 255, 255)
MAGENTA = (255, 0, 255, 255)


def flat_quad():
    """Two triangles covering the unit square; uv = xy."""
    position = np.array([
        [0, 0, 0], [1, 0, 0], [1, 1, 0],
        [0, 0, 0], [1, 1, 0], [0, 1, 0],
    ], dtype=np.float32)
    return Geometry(attributes={'position': position, 'uv': position[:, :2].copy()})


def magenta_decal(uv=(0.5, 0.5), **changes):
    decal = DecalInstance(
        id="d1",
        target_model_id="m1",
        image=Image.new('RGBA', (16, 16), MAGENTA),
        uv=uv,
    )
    return decal.copy(**changes)


@pytest.fixture
def store():
    return DecalStore(model_exists=lambda model_id: model_id == "m1")


class TestDecalStore:
    """CRUD and validation"""

    def test_add_applies_defaults(self, store):
        decal = store.get(store.add("m1", None))
        assert decal.position == (0.0, 0.0, 0.0)
        assert decal.rotation == (0.0, 0.0, 0.0)
        assert decal.scale == (1.0, 1.0, 1.0)
        assert decal.opacity == 1.0
        assert decal.uv is None

    def test_unknown_target(self, store):
        with pytest.raises(UnknownTargetError):
            store.add("nope", None)
        assert len(store) == 0

    def test_ids_unique(self, store):
        assert store.add("m1", None) != store.add("m1", None)

    def test_opacity_clamped_on_add(self, store):
        low = store.get(store.add("m1", None, DecalOptions(opacity=-0.5)))
        high = store.get(store.add("m1", None, DecalOptions(opacity=5)))
        assert low.opacity == 0.0
        assert high.opacity == 1.0

    def test_opacity_clamped_on_update(self, store):
        decal_id = store.add("m1", None)
        assert store.update_opacity(decal_id, -0.5).opacity == 0.0
        assert store.update_opacity(decal_id, 5).opacity == 1.0
        assert store.update_opacity(decal_id, 0.25).opacity == 0.25

    def test_partial_transform_update(self, store):
        decal_id = store.add("m1", None, DecalOptions(position=(1, 2, 3), scale=(2, 2, 2)))
        updated = store.update_transform(decal_id, rotation=(0, 0, 1))
        assert updated.position == (1.0, 2.0, 3.0)
        assert updated.rotation == (0.0, 0.0, 1.0)
        assert updated.scale == (2.0, 2.0, 2.0)
        assert store.get(decal_id) is updated

    def test_remove(self, store):
        decal_id = store.add("m1", None)
        store.remove(decal_id)
        assert decal_id not in store
        with pytest.raises(NotFoundError):
            store.remove(decal_id)
        with pytest.raises(NotFoundError):
            store.get(decal_id)

    def test_list_for_model_is_a_filter(self, store):
        first = store.add("m1", None)
        second = store.add("m1", None)
        assert [d.id for d in store.list_for_model("m1")] == [first, second]
        assert store.list_for_model("other") == []

    def test_remove_for_model(self, store):
        store.add("m1", None)
        store.add("m1", None)
        assert store.remove_for_model("m1") == 2
        assert len(store) == 0

    def test_clone(self, store):
        original = store.add("m1", None, DecalOptions(uv=(0.1, 0.2)))
        copy = store.clone(original)
        assert copy != original
        assert store.get(copy).uv == (0.1, 0.2)

    def test_clear(self, store):
        store.add("m1", None)
        store.clear()
        assert store.list() == []


class TestProjector:
    """Surface point -> UV"""

    def test_point_on_surface(self):
        projection = project_to_uv(flat_quad(), (0.75, 0.25, 0.0))
        assert projection.valid
        assert projection.triangle == 0
        assert projection.u == pytest.approx(0.75)
        assert projection.v == pytest.approx(0.25)

    def test_point_off_plane_projects_onto_it(self):
        projection = project_to_uv(flat_quad(), (0.25, 0.75, 3.0))
        assert (projection.u, projection.v) == pytest.approx((0.25, 0.75))

    def test_idempotent(self):
        geometry = flat_quad()
        first = project_to_uv(geometry, (0.3, 0.6, 0.1))
        second = project_to_uv(geometry, (0.3, 0.6, 0.1))
        assert (first.u, first.v, first.triangle) == (second.u, second.v, second.triangle)

    def test_point_outside_is_clamped(self):
        projection = project_to_uv(flat_quad(), (5.0, -5.0, 0.0))
        assert projection.valid
        assert 0.0 <= projection.u <= 1.0
        assert 0.0 <= projection.v <= 1.0

    def test_indexed_geometry(self, make_quad):
        projection = project_to_uv(make_quad(), (0.75, 0.25, 0.0))
        assert (projection.u, projection.v) == pytest.approx((0.75, 0.25))

    def test_missing_uv_invalid(self):
        geometry = Geometry(attributes={'position': np.zeros((3, 3), dtype=np.float32)})
        assert not project_to_uv(geometry, (0, 0, 0)).valid

    def test_no_triangles_invalid(self):
        geometry = Geometry(attributes={
            'position': np.zeros((2, 3), dtype=np.float32),
            'uv': np.zeros((2, 2), dtype=np.float32),
        })
        assert not project_to_uv(geometry, (0, 0, 0)).valid

    def test_hint_used_verbatim(self):
        projection = resolve_decal_uv(magenta_decal(uv=(0.1, 0.9)), flat_quad())
        assert (projection.u, projection.v) == (0.1, 0.9)

    def test_degenerate_triangle_equal_weights(self):
        a = np.zeros(3)
        weights = barycentric_coords(np.ones(3), a, a, a)
        assert np.allclose(weights, [1 / 3, 1 / 3, 1 / 3])

    def test_weights_sum_to_one(self):
        a, b, c = np.array([0, 0, 0.]), np.array([1, 0, 0.]), np.array([0, 1, 0.])
        weights = barycentric_coords(np.array([2.0, 2.0, 0.0]), a, b, c)
        assert weights.sum() == pytest.approx(1.0)
        assert np.all(weights >= 0)


class TestBakeDecals:
    """Compositing into a model's own texture"""

    def test_decal_drawn_at_uv_centre(self):
        base = Image.new('RGBA', (256, 256), WHITE)
        placement = DecalPlacement(decal=magenta_decal(), u=0.5, v=0.5, extent=1.0)

        baked = bake_decals(base, [placement])

        assert baked.getpixel((128, 128)) == MAGENTA
        assert baked.getpixel((5, 5)) == WHITE
        assert base.getpixel((128, 128)) == WHITE

    def test_footprint_minus_padding(self):
        """scale 1 / extent 1 * 0.5 * 256 = 128 px, minus 2 px per side"""
        base = Image.new('RGBA', (256, 256), WHITE)
        placement = DecalPlacement(decal=magenta_decal(), u=0.5, v=0.5, extent=1.0)
        baked = bake_decals(base, [placement], DecalBakeOptions(padding=2))

        assert baked.getpixel((66, 128)) == MAGENTA
        assert baked.getpixel((189, 128)) == MAGENTA
        assert baked.getpixel((65, 128)) == WHITE
        assert baked.getpixel((190, 128)) == WHITE

    def test_v_zero_is_top(self):
        base = Image.new('RGBA', (256, 256), WHITE)
        placement = DecalPlacement(decal=magenta_decal(scale=(0.2, 0.2, 1.0)), u=0.5, v=0.1, extent=1.0)
        baked = bake_decals(base, [placement])
        assert baked.getpixel((128, 26)) == MAGENTA
        assert baked.getpixel((128, 230)) == WHITE

    def test_zero_opacity_leaves_base(self):
        base = Image.new('RGBA', (64, 64), WHITE)
        placement = DecalPlacement(decal=magenta_decal(opacity=0.0), u=0.5, v=0.5, extent=1.0)
        assert bake_decals(base, [placement]).tobytes() == base.tobytes()

    def test_target_texture_size(self):
        base = Image.new('RGBA', (64, 64), WHITE)
        baked = bake_decals(base, [], DecalBakeOptions(target_texture_size=128))
        assert baked.size == (128, 128)

    def test_missing_base_uses_color(self):
        baked = bake_decals(None, [], fallback_color=(0.0, 0.0, 1.0))
        assert baked.size == (256, 256)
        assert baked.getpixel((0, 0)) == (0, 0, 255, 255)

    def test_decal_without_image_skipped(self):
        base = Image.new('RGBA', (64, 64), WHITE)
        placement = DecalPlacement(decal=magenta_decal(image=None), u=0.5, v=0.5, extent=1.0)
        assert bake_decals(base, [placement]).tobytes() == base.tobytes()

    def test_later_decals_draw_on_top(self):
        base = Image.new('RGBA', (256, 256), WHITE)
        green = magenta_decal(image=Image.new('RGBA', (4, 4), (0, 255, 0, 255)))
        placements = [
            DecalPlacement(decal=magenta_decal(), u=0.5, v=0.5, extent=1.0),
            DecalPlacement(decal=green, u=0.5, v=0.5, extent=1.0),
        ]
        assert bake_decals(base, placements).getpixel((128, 128)) == (0, 255, 0, 255)

    def test_rotation_keeps_centre(self):
        base = Image.new('RGBA', (256, 256), WHITE)
        decal = magenta_decal(rotation=(0.0, 0.0, math.pi / 4))
        baked = bake_decals(base, [DecalPlacement(decal=decal, u=0.5, v=0.5, extent=1.0)])
        assert baked.getpixel((128, 128)) == MAGENTA
        # Corner of the unrotated footprint falls outside the rotated one
        assert baked.getpixel((70, 70)) == WHITE

    def test_degenerate_extent(self):
        assert decal_size_in_uv(0.0, 2.0) == pytest.approx(0.2)
        assert decal_size_in_uv(4.0, 2.0) == pytest.approx(0.25)


class TestBakeModelDecals:
    """Per-model baking into material copies"""

    def test_baked_copy_replaces_albedo(self):
        material = MaterialRecord(name="wood", maps={'albedo': Image.new('RGBA', (256, 256), WHITE)})
        model = ModelAsset(id="m1", meshes=[MeshRecord(flat_quad(), material)])

        baked = bake_model_decals(model, [magenta_decal()])

        assert list(baked) == [material]
        copy = baked[material]
        assert copy is not material
        assert copy.get_map('albedo').getpixel((128, 128)) == MAGENTA
        assert material.get_map('albedo').getpixel((128, 128)) == WHITE

    def test_projection_without_hint(self):
        material = MaterialRecord(maps={'albedo': Image.new('RGBA', (256, 256), WHITE)})
        model = ModelAsset(id="m1", meshes=[MeshRecord(flat_quad(), material)])
        decal = magenta_decal(uv=None, position=(0.25, 0.75, 0.0), scale=(0.2, 0.2, 1.0))

        image = bake_model_decals(model, [decal])[material].get_map('albedo')

        assert image.getpixel((64, 192)) == MAGENTA
        assert image.getpixel((192, 64)) == WHITE

    def test_hint_wins_over_position(self):
        material = MaterialRecord(maps={'albedo': Image.new('RGBA', (256, 256), WHITE)})
        model = ModelAsset(id="m1", meshes=[MeshRecord(flat_quad(), material)])
        decal = magenta_decal(uv=(0.25, 0.25), position=(0.75, 0.75, 0.0), scale=(0.2, 0.2, 1.0))

        image = bake_model_decals(model, [decal])[material].get_map('albedo')

        assert image.getpixel((64, 64)) == MAGENTA
        assert image.getpixel((192, 192)) == WHITE

    def test_material_without_texture_gets_solid_base(self):
        material = MaterialRecord(color=(0.0, 0.0, 1.0))
        model = ModelAsset(id="m1", meshes=[MeshRecord(flat_quad(), material)])

        image = bake_model_decals(model, [magenta_decal()])[material].get_map('albedo')

        assert image.size == (256, 256)
        assert image.getpixel((128, 128)) == MAGENTA
        assert image.getpixel((2, 2)) == (0, 0, 255, 255)

    def test_other_models_decals_ignored(self):
        material = MaterialRecord()
        model = ModelAsset(id="m1", meshes=[MeshRecord(flat_quad(), material)])
        assert bake_model_decals(model, [magenta_decal(target_model_id="m2")]) == {}
