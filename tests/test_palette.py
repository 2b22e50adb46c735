"""
Unit tests for palette buckets and colours.
"""

import numpy as np
import pytest

from sandpile_sim import Color, Lattice, Palette, classify
from sandpile_sim.palette import UNTOUCHED, ZERO, bucket_of


def test_default_palette_values():
    palette = Palette.default()
    assert palette.untouched == Color(0.0, 0.0, 0.0, 0.0)
    assert palette.zero_grains == Color(0.0, 0.47, 0.95, 1.0)
    assert palette.three_grains.a == 0.0
    assert len(palette.to_flat()) == 24


def test_random_palette_is_seeded():
    a = Palette.random(1234)
    b = Palette.random(1234)
    assert a == b
    assert a != Palette.random(1235)
    assert a.untouched.a == 0.0
    assert all(c.a == 1.0 for c in a.colors()[1:])
    assert a.four_grains == Color(1.0, 0.0, 0.0, 1.0)


def test_flat_round_trip():
    palette = Palette.random(7)
    assert Palette.from_flat(palette.to_flat()) == palette
    with pytest.raises(ValueError):
        Palette.from_flat([0.0] * 23)


def test_color_channels_bounded():
    with pytest.raises(ValueError):
        Color(1.5, 0.0, 0.0, 1.0)


def test_bucket_of():
    assert bucket_of(0, False) == UNTOUCHED
    assert bucket_of(0, True) == ZERO
    assert bucket_of(3, True) == ZERO + 3
    assert bucket_of(9, True) == ZERO + 4


def test_classify_separates_untouched_from_zero():
    lattice = Lattice(5, 1)
    lattice.touched[1:] = True
    lattice.grains[:] = [0, 0, 1, 3, 4]
    assert classify(lattice).tolist() == [0, 1, 2, 4, 5]

    palette = Palette.default()
    rgba = palette.rgba()[classify(lattice)]
    assert rgba.shape == (5, 4)
    np.testing.assert_allclose(rgba[1], [0.0, 0.47, 0.95, 1.0], rtol=1e-6)
    assert palette.color_for(0, False) == palette.untouched
