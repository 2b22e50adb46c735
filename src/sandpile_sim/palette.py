"""
Cell colours keyed by grain count.

Renderers map every cell to one of six buckets: never touched, or holding
0, 1, 2, 3 or 4+ grains. Only the mapping lives here; drawing does not.
"""

from __future__ import annotations

from dataclasses import astuple, dataclass, fields
from typing import Optional, Sequence

import numpy as np

from .lattice import CRITICAL, Lattice

UNTOUCHED, ZERO, ONE, TWO, THREE, FOUR = range(6)
N_BUCKETS = 6
CHANNELS = 4


@dataclass(frozen=True)
class Color:
    r: float
    g: float
    b: float
    a: float

    def __post_init__(self) -> None:
        for name in ("r", "g", "b", "a"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"colour channel {name}={value} outside 0..1")


@dataclass
class Palette:
    untouched: Color
    zero_grains: Color
    one_grain: Color
    two_grains: Color
    three_grains: Color
    four_grains: Color  # only reachable mid-avalanche with CRITICAL == 4

    @classmethod
    def default(cls) -> "Palette":
        return cls(
            untouched=Color(0.00, 0.00, 0.00, 0.00),
            zero_grains=Color(0.00, 0.47, 0.95, 1.00),
            one_grain=Color(0.00, 0.89, 0.19, 1.00),
            two_grains=Color(0.99, 0.98, 0.00, 1.00),
            # transparent threes leave the 0/1/2 "threads" visible
            three_grains=Color(0.00, 0.00, 0.00, 0.00),
            four_grains=Color(0.90, 0.16, 0.22, 1.00),
        )

    @classmethod
    def random(cls, seed: Optional[int] = None) -> "Palette":
        """Opaque random colours for 0..3 grains; untouched stays transparent."""
        rng = np.random.default_rng(seed)
        rgb = rng.random((4, 3))
        return cls(
            Color(0.0, 0.0, 0.0, 0.0),
            *(Color(float(r), float(g), float(b), 1.0) for r, g, b in rgb),
            Color(1.0, 0.0, 0.0, 1.0),
        )

    def colors(self) -> list[Color]:
        return [getattr(self, f.name) for f in fields(self)]

    def to_flat(self) -> list[float]:
        """All six colours as 24 floats, r g b a per bucket."""
        return [channel for color in self.colors() for channel in astuple(color)]

    @classmethod
    def from_flat(cls, values: Sequence[float]) -> "Palette":
        if len(values) != N_BUCKETS * CHANNELS:
            raise ValueError(
                f"palette needs {N_BUCKETS * CHANNELS} values, got {len(values)}"
            )
        return cls(
            *(
                Color(*(float(v) for v in values[i : i + CHANNELS]))
                for i in range(0, N_BUCKETS * CHANNELS, CHANNELS)
            )
        )

    def color_for(self, grains: int, touched: bool) -> Color:
        return self.colors()[bucket_of(grains, touched)]

    def rgba(self) -> np.ndarray:
        """(6, 4) float32 lookup table indexed by bucket."""
        return np.asarray(self.to_flat(), dtype=np.float32).reshape(N_BUCKETS, CHANNELS)


def bucket_of(grains: int, touched: bool) -> int:
    if not touched:
        return UNTOUCHED
    return ZERO + min(int(grains), CRITICAL)


def classify(lattice: Lattice) -> np.ndarray:
    """Palette bucket of every cell, as a flat uint8 array."""
    buckets = np.minimum(lattice.grains, CRITICAL).astype(np.uint8) + ZERO
    buckets[~lattice.touched] = UNTOUCHED
    return buckets
