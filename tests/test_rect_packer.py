"""
Tests for the shelf rectangle packer.
"""

import pytest

from meshsmith.scene import PackedRect
from meshsmith.texturing.rect_packer import ShelfPacker, fit_to_atlas, pack_boxes, pack_into_atlas


def overlaps(a: PackedRect, b: PackedRect) -> bool:
    return a.x < b.x + b.w and b.x < a.x + a.w and a.y < b.y + b.h and b.y < a.y + a.h


class TestPackBoxes:
    """Shelf packing into a bounding box"""

    def test_empty(self):
        assert pack_boxes([]) == ([], 0, 0)

    def test_single_box(self):
        rects, width, height = pack_boxes([(64, 32)])
        assert rects == [PackedRect(0, 0, 64, 32)]
        assert (width, height) == (64, 32)

    def test_two_equal_boxes_stack(self):
        """Shelf width ceil(sqrt(8)) = 3 leaves no room beside the first 2x2"""
        rects, width, height = pack_boxes([(2, 2), (2, 2)])
        assert rects == [PackedRect(0, 0, 2, 2), PackedRect(0, 2, 2, 2)]
        assert (width, height) == (2, 4)

    def test_tallest_box_placed_first(self):
        rects, _, _ = pack_boxes([(4, 1), (1, 4)])
        assert rects[1] == PackedRect(0, 0, 1, 4)
        assert rects[0] == PackedRect(0, 4, 4, 1)

    def test_results_index_aligned_and_sized(self):
        sizes = [(10, 20), (30, 5), (8, 8), (16, 16), (3, 40)]
        rects, _, _ = pack_boxes(sizes)
        assert [(r.w, r.h) for r in rects] == sizes

    def test_no_overlaps(self):
        sizes = [(10, 20), (30, 5), (8, 8), (16, 16), (3, 40), (12, 12), (7, 19)]
        rects, width, height = pack_boxes(sizes)
        for i, a in enumerate(rects):
            assert a.x + a.w <= width and a.y + a.h <= height
            for b in rects[i + 1:]:
                assert not overlaps(a, b)

    def test_deterministic(self):
        sizes = [(5, 9), (9, 5), (5, 5), (1, 1), (9, 9)]
        assert pack_boxes(sizes) == pack_boxes(list(sizes))

    def test_rejects_empty_box(self):
        with pytest.raises(ValueError):
            pack_boxes([(0, 4)])


class TestShelfPacker:
    def test_first_fit_reuses_shelf(self):
        packer = ShelfPacker(10)
        assert packer.pack(4, 4) == (0, 0)
        assert packer.pack(4, 2) == (4, 0)
        assert packer.pack(4, 4) == (0, 4)
        assert packer.height == 8


class TestFitToAtlas:
    """Uniform scaling into the square atlas"""

    def test_identity_when_layout_fills_atlas(self):
        assert pack_into_atlas([(64, 64)], 64) == [PackedRect(0, 0, 64, 64)]

    def test_uses_smaller_axis_scale(self):
        rects = fit_to_atlas([PackedRect(0, 0, 2, 2), PackedRect(0, 2, 2, 2)], 2, 4, 4)
        assert rects == [PackedRect(0, 0, 2, 2), PackedRect(0, 2, 2, 2)]

    def test_floors_coordinates(self):
        rects = fit_to_atlas([PackedRect(1, 1, 2, 2)], 3, 3, 5)
        assert rects == [PackedRect(1, 1, 3, 3)]

    def test_scales_up(self):
        assert pack_into_atlas([(2, 2)], 8) == [PackedRect(0, 0, 8, 8)]
