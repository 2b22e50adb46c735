from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from .errors import LatticeOverflowError

CRITICAL = 4  # grains that make a cell topple
INT64_MAX = int(np.iinfo(np.int64).max)
TOPPLE_MAX = int(np.iinfo(np.uint16).max)  # saturation cap of the topple counter


def checked_size(width: int, height: int) -> int:
    """Return width * height, refusing dimensions an int64 index cannot address."""
    for name, value in (("width", width), ("height", height)):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise LatticeOverflowError(f"{name} must be an integer, got {value!r}")
        if value <= 0:
            raise LatticeOverflowError(f"{name} must be positive, got {value}")
    size = int(width) * int(height)
    if size > INT64_MAX:
        raise LatticeOverflowError(f"Table too big: {width} x {height} cells")
    return size


@dataclass
class Lattice:
    """
    Flat, row-major grid of sandpile cells.

    Cell ``idx`` lives at ``(x, y) = (idx % width, idx // width)``. Each cell
    carries its grain count, whether it has ever received a grain, and a
    saturating count of how often it toppled.
    """

    width: int
    height: int
    grains: np.ndarray = field(default=None, repr=False)  # type: ignore[assignment]
    touched: np.ndarray = field(default=None, repr=False)  # type: ignore[assignment]
    topples: np.ndarray = field(default=None, repr=False)  # type: ignore[assignment]

    def __post_init__(self) -> None:
        size = checked_size(self.width, self.height)
        self.width = int(self.width)
        self.height = int(self.height)
        if self.grains is None:
            self.grains = np.zeros(size, dtype=np.uint8)
        if self.touched is None:
            self.touched = np.zeros(size, dtype=np.bool_)
        if self.topples is None:
            self.topples = np.zeros(size, dtype=np.uint16)
        for name, arr, dtype in (
            ("grains", self.grains, np.uint8),
            ("touched", self.touched, np.bool_),
            ("topples", self.topples, np.uint16),
        ):
            if arr.shape != (size,) or arr.dtype != dtype:
                raise ValueError(
                    f"{name} must be a flat {np.dtype(dtype).name} array of "
                    f"{size} cells, got {arr.dtype} {arr.shape}"
                )

    @property
    def size(self) -> int:
        return self.width * self.height

    # ------------------------------------------------------------ addressing
    def xy_to_idx(self, x: int, y: int) -> int:
        """Cell index of (x, y). No bounds checking."""
        return y * self.width + x

    def idx_to_xy(self, idx: int) -> Tuple[int, int]:
        """(x, y) coordinates of cell ``idx``."""
        y, x = divmod(int(idx), self.width)
        return x, y

    def contains(self, idx: int) -> bool:
        return 0 <= idx < self.size

    def contains_xy(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def center_index(self) -> int:
        """
        Index of the cell treated as the centre of the table.

        With an even height the centre sits on row ``height / 2``; the column
        is ``width / 2`` for even widths and ``(width - 1) / 2`` for odd ones.
        With an odd height it is simply the middle cell of the flat array.
        """
        size = self.size
        if self.height % 2 == 0:
            if self.width % 2 == 0:
                return size // 2 + self.width // 2
            return size // 2 + (self.width - 1) // 2
        return (size - 1) // 2

    def center_xy(self) -> Tuple[int, int]:
        return self.idx_to_xy(self.center_index())

    # ---------------------------------------------------------------- views
    def grid(self) -> np.ndarray:
        """(height, width) view of the grain counts."""
        return self.grains.reshape(self.height, self.width)

    def touched_grid(self) -> np.ndarray:
        return self.touched.reshape(self.height, self.width)

    def grains_on_lattice(self) -> int:
        return int(self.grains.sum(dtype=np.int64))

    def is_stable(self) -> bool:
        """True when no cell holds CRITICAL or more grains."""
        return bool(self.grains.max() < CRITICAL)

    def copy(self) -> "Lattice":
        return Lattice(
            self.width,
            self.height,
            grains=self.grains.copy(),
            touched=self.touched.copy(),
            topples=self.topples.copy(),
        )
