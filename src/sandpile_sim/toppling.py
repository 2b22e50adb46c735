"""
Numba toppling kernels for the Abelian sandpile.

A grain dropped on a cell that reaches ``CRITICAL`` grains makes it topple:
the cell loses four grains and each of its four orthogonal neighbours
(up, down, left, right) gains one. A neighbour that reaches the threshold
topples in turn before the next direction of its parent is visited, so an
avalanche is a depth-first traversal. Grains pushed past the edge of the
table are lost.

The traversal runs on an explicit work-list of ``(cell, next_direction)``
frames instead of recursion, so avalanche depth is bounded by memory and
not by the call stack. The visiting order is identical to the recursive
formulation, which keeps ``avalanche`` counts reproducible.
"""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np
from numba import njit

from .lattice import CRITICAL, TOPPLE_MAX, Lattice

logger = logging.getLogger(__name__)

UP, DOWN, LEFT, RIGHT = 0, 1, 2, 3
N_DIRECTIONS = 4
INITIAL_WORKLIST = 1024

###############################################################################
# Kernels
###############################################################################


@njit(cache=True)
def _grow(stack: np.ndarray) -> np.ndarray:
    bigger = np.empty(stack.shape[0] * 2, dtype=np.int64)
    bigger[: stack.shape[0]] = stack
    return bigger


@njit(cache=True)
def _collapse(grains, topples, idx):
    grains[idx] -= CRITICAL
    if topples[idx] < TOPPLE_MAX:
        topples[idx] += 1


@njit(cache=True)
def topple_from(grains, touched, topples, width, size, start, cells, dirs):
    """
    Resolve the avalanche started by ``start``, which holds CRITICAL grains.

    ``cells``/``dirs`` are the work-list buffers; they are grown on demand and
    returned so the caller can reuse them.

    Returns ``(avalanche, lost, cells, dirs)``.
    """
    avalanche = 1
    lost = 0
    _collapse(grains, topples, start)
    cells[0] = start
    dirs[0] = UP
    top = 1

    while top > 0:
        c = cells[top - 1]
        d = dirs[top - 1]
        if d == N_DIRECTIONS:
            top -= 1
            continue
        dirs[top - 1] = d + 1

        if d == UP:
            if c < width:
                lost += 1
                continue
            n = c - width
        elif d == DOWN:
            if c + width >= size:
                lost += 1
                continue
            n = c + width
        elif d == LEFT:
            if c % width == 0:
                lost += 1
                continue
            n = c - 1
        else:
            if (c + 1) % width == 0:
                lost += 1
                continue
            n = c + 1

        grains[n] += 1
        touched[n] = True
        if grains[n] == CRITICAL:
            avalanche += 1
            _collapse(grains, topples, n)
            if top == cells.shape[0]:
                cells = _grow(cells)
                dirs = _grow(dirs)
            cells[top] = n
            dirs[top] = UP
            top += 1

    return avalanche, lost, cells, dirs


@njit(cache=True)
def drop_grain(grains, touched, topples, width, size, idx, cells, dirs):
    """Add one grain to ``idx`` and resolve any avalanche it causes."""
    grains[idx] += 1
    touched[idx] = True
    if grains[idx] >= CRITICAL:
        return topple_from(grains, touched, topples, width, size, idx, cells, dirs)
    return 0, 0, cells, dirs


###############################################################################
# Engine
###############################################################################


class Toppler:
    """Owns the work-list buffers and drives the kernels for one lattice."""

    def __init__(self, initial_capacity: int = INITIAL_WORKLIST) -> None:
        self.cells = np.zeros(max(1, initial_capacity), dtype=np.int64)
        self.dirs = np.zeros_like(self.cells)

    @property
    def capacity(self) -> int:
        return int(self.cells.shape[0])

    def drop(self, lattice: Lattice, idx: int) -> Tuple[int, int]:
        """
        Drop one grain on ``idx`` of ``lattice``.

        Returns ``(avalanche, lost)``: the number of topples this grain caused
        and the number of grains that fell off the table.
        """
        before = self.capacity
        avalanche, lost, self.cells, self.dirs = drop_grain(
            lattice.grains,
            lattice.touched,
            lattice.topples,
            lattice.width,
            lattice.size,
            idx,
            self.cells,
            self.dirs,
        )
        if self.capacity != before:
            logger.debug("Toppling work-list grew to %d frames", self.capacity)
        return int(avalanche), int(lost)
