"""
Shared fixtures: small geometries, solid-color images and mesh factories.
"""

import numpy as np
import pytest
from PIL import Image

from meshsmith.scene import Geometry, MaterialRecord, MeshRecord

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
WHITE = (255, 255, 255, 255)
MAGENTA = (255, 0, 255, 255)


def triangle_geometry(offset=(0.0, 0.0, 0.0), with_uv=True):
    """Unit right triangle in the XY plane; uv = xy."""
    position = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype=np.float32) + np.asarray(offset, dtype=np.float32)
    attrs = {'position': position}
    if with_uv:
        attrs['uv'] = np.array([[0, 0], [1, 0], [0, 1]], dtype=np.float32)
    return Geometry(attributes=attrs)


def quad_geometry():
    """Indexed unit square in the XY plane; uv = xy."""
    position = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float32)
    uv = position[:, :2].copy()
    normal = np.tile(np.array([0, 0, 1], dtype=np.float32), (4, 1))
    return Geometry(
        attributes={'position': position, 'uv': uv, 'normal': normal},
        index=np.array([0, 1, 2, 0, 2, 3], dtype=np.int64),
    )


def solid_image(color, size=(2, 2)):
    return Image.new('RGBA', size, color)


@pytest.fixture
def make_triangle():
    return triangle_geometry


@pytest.fixture
def make_quad():
    return quad_geometry


@pytest.fixture
def make_image():
    return solid_image


@pytest.fixture
def make_mesh():
    def factory(material=None, geometry=None, name="mesh", matrix=None):
        return MeshRecord(
            geometry=geometry if geometry is not None else triangle_geometry(),
            material=material if material is not None else MaterialRecord(),
            matrix=np.eye(4) if matrix is None else matrix,
            name=name,
        )
    return factory


@pytest.fixture
def red_material():
    return MaterialRecord(name="red", maps={'albedo': solid_image(RED)})


@pytest.fixture
def blue_material():
    return MaterialRecord(name="blue", maps={'albedo': solid_image(BLUE)})
