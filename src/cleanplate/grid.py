"""
Pixel grid data model.

A grid is an ``(height, width, 4)`` uint16 RGBA array anchored at an
arbitrary origin, so bounds need not start at (0, 0).

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

# 16 bits per channel, the common range every decoder normalises into
PIXEL_DTYPE = np.uint16
MAX_VALUE = 65535
N_CHANNELS = 4
CHANNEL_NAMES = ("R", "G", "B", "A")


@dataclass(frozen=True)
class Bounds:
    """Rectangle with inclusive minimum and exclusive maximum corners."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    def __str__(self) -> str:
        return f"({self.min_x},{self.min_y})-({self.max_x},{self.max_y})"


@dataclass
class PixelGrid:
    """RGBA16 pixel grid."""

    data: np.ndarray
    """Array of shape (height, width, 4), dtype uint16."""

    origin: tuple[int, int] = (0, 0)
    """Absolute (x, y) coordinate of ``data[0, 0]``."""

    def __post_init__(self):
        if self.data.ndim != 3 or self.data.shape[2] != N_CHANNELS:
            raise ValueError(
                f"Expected pixel data of shape (H, W, {N_CHANNELS}), got {self.data.shape}"
            )
        if self.data.dtype != PIXEL_DTYPE:
            raise ValueError(f"Expected {np.dtype(PIXEL_DTYPE).name} pixel data, got {self.data.dtype}")
        self.origin = (int(self.origin[0]), int(self.origin[1]))

    @classmethod
    def blank(cls, bounds: Bounds) -> "PixelGrid":
        """Allocate a zero-filled grid covering ``bounds``."""
        data = np.zeros((bounds.height, bounds.width, N_CHANNELS), dtype=PIXEL_DTYPE)
        return cls(data=data, origin=(bounds.min_x, bounds.min_y))

    @classmethod
    def filled(cls, bounds: Bounds, pixel) -> "PixelGrid":
        """Allocate a grid covering ``bounds`` with every pixel set to ``pixel``."""
        grid = cls.blank(bounds)
        grid.data[:, :] = np.asarray(pixel, dtype=PIXEL_DTYPE)
        return grid

    @property
    def height(self) -> int:
        return self.data.shape[0]

    @property
    def width(self) -> int:
        return self.data.shape[1]

    @property
    def bounds(self) -> Bounds:
        x0, y0 = self.origin
        return Bounds(x0, y0, x0 + self.width, y0 + self.height)

    def at(self, x: int, y: int) -> tuple[int, int, int, int]:
        """Return the pixel at absolute coordinates (x, y)."""
        b = self.bounds
        if not (b.min_x <= x < b.max_x and b.min_y <= y < b.max_y):
            raise IndexError(f"({x}, {y}) outside bounds {b}")
        r, g, bl, a = self.data[y - b.min_y, x - b.min_x]
        return int(r), int(g), int(bl), int(a)
