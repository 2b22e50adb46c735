from __future__ import annotations

from typing import NamedTuple

import numpy as np

from .lattice import Lattice

MARGIN = 10  # cells of padding around the touched region


class Extent(NamedTuple):
    """Rectangle of the lattice worth redrawing: origin plus size, in cells."""

    min_x: int
    min_y: int
    width: int
    height: int

    @property
    def max_x(self) -> int:
        return self.min_x + self.width - 1

    @property
    def max_y(self) -> int:
        return self.min_y + self.height - 1

    def contains(self, x: int, y: int) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


def find_extent(lattice: Lattice, margin: int = MARGIN) -> Extent:
    """
    Bounding box of every touched cell, padded by ``margin`` and clamped to
    the lattice.

    The box starts collapsed onto the centre cell, so an untouched lattice
    still yields a small region around the centre.
    """
    if margin < 0:
        raise ValueError(f"margin must be non-negative, got {margin}")
    cx, cy = lattice.center_xy()
    min_x = max_x = cx
    min_y = max_y = cy

    idx = np.flatnonzero(lattice.touched)
    if idx.size:
        ys, xs = np.divmod(idx, lattice.width)
        min_x = min(min_x, int(xs.min()))
        max_x = max(max_x, int(xs.max()))
        min_y = min(min_y, int(ys.min()))
        max_y = max(max_y, int(ys.max()))

    min_x = max(0, min_x - margin)
    min_y = max(0, min_y - margin)
    max_x = min(lattice.width - 1, max_x + margin)
    max_y = min(lattice.height - 1, max_y + margin)
    return Extent(min_x, min_y, max_x - min_x + 1, max_y - min_y + 1)
