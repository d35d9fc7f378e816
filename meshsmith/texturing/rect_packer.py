"""
Shelf Rectangle Packer

Packs texture boxes into a compact bounding box, then scales the layout to a
square atlas. Not optimal, but deterministic: the same ordered list of sizes
always produces the same layout.
"""

import math
from typing import List, Tuple, Dict, Optional

from meshsmith.scene import PackedRect


class ShelfPacker:
    """Packs rectangles using a greedy first-fit shelf algorithm with unbounded height."""

    def __init__(self, width: int):
        self.width = width
        self.shelves: List[Dict] = []

    @property
    def height(self) -> int:
        return sum(s['height'] for s in self.shelves)

    def pack(self, width: int, height: int) -> Tuple[int, int]:
        """Place a rect and return its (x, y)."""
        # Try existing shelves
        for shelf in self.shelves:
            if width <= self.width - shelf['x'] and height <= shelf['height']:
                x = shelf['x']
                y = shelf['y']
                shelf['x'] += width
                return x, y

        # New shelf
        new_y = self.height
        self.shelves.append({
            'y': new_y,
            'height': height,
            'x': width
        })
        return 0, new_y


def pack_boxes(sizes: List[Tuple[int, int]]) -> Tuple[List[PackedRect], int, int]:
    """
    Pack boxes into a near-square bounding box.

    Args:
        sizes: List of (width, height) tuples

    Returns:
        Tuple of:
        - PackedRects index-aligned with sizes
        - Bounding box width
        - Bounding box height
    """
    if not sizes:
        return [], 0, 0

    for w, h in sizes:
        if w <= 0 or h <= 0:
            raise ValueError(f"Box sizes must be positive, got {w}x{h}")

    # Sort by height (tallest first); input index breaks ties
    order = sorted(range(len(sizes)), key=lambda i: (-sizes[i][1], -sizes[i][0], i))

    total_area = sum(w * h for w, h in sizes)
    shelf_width = max(max(w for w, _ in sizes), math.ceil(math.sqrt(total_area)))

    packer = ShelfPacker(shelf_width)
    placed: List[Optional[PackedRect]] = [None] * len(sizes)
    for i in order:
        w, h = sizes[i]
        x, y = packer.pack(w, h)
        placed[i] = PackedRect(x=x, y=y, w=w, h=h)

    bound_w = max(r.x + r.w for r in placed)
    bound_h = max(r.y + r.h for r in placed)
    return placed, bound_w, bound_h


def fit_to_atlas(rects: List[PackedRect], width: int, height: int, atlas_size: int) -> List[PackedRect]:
    """
    Uniformly scale a packed layout into a square atlas.

    scale = min(atlas_size / width, atlas_size / height); all coordinates and
    sizes are multiplied and floored to whole pixels.
    """
    if not rects:
        return []
    scale = min(atlas_size / width, atlas_size / height)
    return [
        PackedRect(
            x=math.floor(r.x * scale),
            y=math.floor(r.y * scale),
            w=math.floor(r.w * scale),
            h=math.floor(r.h * scale),
        )
        for r in rects
    ]


def pack_into_atlas(sizes: List[Tuple[int, int]], atlas_size: int) -> List[PackedRect]:
    """Pack sizes and scale the layout to atlas_size (convenience wrapper)."""
    rects, width, height = pack_boxes(sizes)
    return fit_to_atlas(rects, width, height, atlas_size)
