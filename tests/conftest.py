"""
Pytest configuration and fixtures.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import imageio.v3 as iio
import numpy as np
import pytest

from cleanplate.grid import Bounds, PixelGrid


@pytest.fixture
def solid_grid():
    """Create a grid filled with a single RGBA16 pixel."""
    def _create(pixel=(1000, 2000, 500, 65535), height=4, width=5, origin=(0, 0)):
        bounds = Bounds(origin[0], origin[1], origin[0] + width, origin[1] + height)
        return PixelGrid.filled(bounds, pixel)

    return _create


@pytest.fixture
def random_grids():
    """Create a stack of random RGBA16 grids."""
    def _create(n_images=5, height=6, width=7, origin=(0, 0), seed=42):
        rng = np.random.default_rng(seed)
        return [
            PixelGrid(
                data=rng.integers(0, 65536, (height, width, 4)).astype(np.uint16),
                origin=origin,
            )
            for _ in range(n_images)
        ]

    return _create


@pytest.fixture
def street_scene():
    """
    Static background photographed with a pedestrian crossing the frame.

    Returns the stack and the background grid. Each image has a bright block
    ("pedestrian") at a different position, plus small sensor noise on the
    background.
    """
    def _create(n_images=6, height=12, width=16, seed=7):
        rng = np.random.default_rng(seed)
        background = np.zeros((height, width, 4), dtype=np.uint16)
        background[..., 0] = 20000
        background[..., 1] = 30000
        background[..., 2] = 25000
        background[..., 3] = 65535

        grids = []
        for i in range(n_images):
            data = background.copy()
            noise = rng.integers(-50, 51, (height, width, 3))
            data[..., :3] = (data[..., :3].astype(np.int64) + noise).astype(np.uint16)
            col = 2 * i
            data[2:8, col:col + 2, :3] = (60000, 5000, 5000)
            grids.append(PixelGrid(data=data))

        return grids, PixelGrid(data=background)

    return _create


@pytest.fixture
def png_stack(tmp_path):
    """Write a stack of small RGB PNG files and return their directory."""
    def _create(values=(10, 10, 10, 200), height=4, width=5, subdir="input"):
        folder = tmp_path / subdir
        folder.mkdir(exist_ok=True)
        for i, v in enumerate(values):
            image = np.full((height, width, 3), v, dtype=np.uint8)
            iio.imwrite(folder / f"img_{i:02d}.png", image)
        return folder

    return _create
