from __future__ import annotations

import logging
from typing import Iterator, Sequence

import numpy as np

from .errors import CapacityExceeded, InvalidSource

logger = logging.getLogger(__name__)

MAX_DROPS = 32  # maximum number of concurrent drop cells


class SourceScheduler:
    """
    Round-robin selector over the active drop cells.

    ``drop_cells[:active_cells]`` hold lattice indices in registration order;
    the remaining slots stay zero and are never handed out.
    """

    def __init__(self, size: int) -> None:
        self.size = int(size)
        self.drop_cells = np.zeros(MAX_DROPS, dtype=np.int64)
        self.active_cells = 0
        self.cursor = 0

    def __len__(self) -> int:
        return self.active_cells

    @property
    def is_full(self) -> bool:
        return self.active_cells >= MAX_DROPS

    def sources(self) -> list[int]:
        return [int(i) for i in self.drop_cells[: self.active_cells]]

    def register_source(self, index: int) -> int:
        """Append a drop cell and return its slot number."""
        index = int(index)
        if not 0 <= index < self.size:
            raise InvalidSource(f"source index {index} outside lattice of {self.size} cells")
        if self.is_full:
            logger.warning("Maximum number of drop cells (%d) reached", MAX_DROPS)
            raise CapacityExceeded(f"Maximum number of drop cells ({MAX_DROPS}) reached")
        slot = self.active_cells
        self.drop_cells[slot] = index
        self.active_cells += 1
        return slot

    def next(self) -> int:
        """Return the current source and advance the cursor, wrapping around."""
        if self.active_cells == 0:
            raise LookupError("no active drop cells")
        source = int(self.drop_cells[self.cursor])
        self.cursor = self.cursor + 1 if self.cursor + 1 < self.active_cells else 0
        return source

    def batch(self, count: int) -> Iterator[int]:
        """Yield ``count`` sources, one grain per source per round."""
        for _ in range(count):
            yield self.next()

    def restore(self, drop_cells: Sequence[int], active_cells: int) -> None:
        """Replace the scheduler state with ``MAX_DROPS`` saved slots."""
        if len(drop_cells) != MAX_DROPS:
            raise ValueError(f"expected {MAX_DROPS} drop cells, got {len(drop_cells)}")
        if not 0 <= active_cells <= MAX_DROPS:
            raise ValueError(f"active_cells must be in 0..{MAX_DROPS}, got {active_cells}")
        cells = np.array(drop_cells, dtype=np.int64)
        active = cells[:active_cells]
        if np.any((active < 0) | (active >= self.size)):
            raise InvalidSource("drop cell outside lattice")
        if np.any(cells[active_cells:]):
            logger.debug("Clearing unused drop slots beyond %d", active_cells)
        cells[active_cells:] = 0
        self.drop_cells = cells
        self.active_cells = int(active_cells)
        self.cursor = 0
