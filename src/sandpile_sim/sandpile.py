"""
Abelian sandpile simulator.

Grains fall one at a time on a set of drop cells. A cell that collects four
grains topples and passes one grain to each orthogonal neighbour, which may
topple in turn; grains pushed past the edge of the table are lost. After
every grain the table is stable again (every cell holds 0..3 grains), and

    total_grains == grains on the table + lost_grains

holds between grains.

The toppling itself runs in the Numba kernels of :mod:`.toppling`; this
module owns the state around them: the lattice, the drop-cell scheduler,
the counters and the colour palette.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from . import utils
from .errors import InvalidSource
from .extent import MARGIN, Extent, find_extent
from .lattice import Lattice
from .palette import Palette
from .scheduler import MAX_DROPS, SourceScheduler
from .snapshot import Snapshot, read_snapshot, write_snapshot
from .toppling import Toppler

logger = logging.getLogger(__name__)

###############################################################################
# Constants
###############################################################################

MODEL_WIDTH = 3_000  # a 3000 x 3000 table holds a single 16M-grain pile
MODEL_HEIGHT = 3_000
DEFAULT_INTERVAL = 1_024
MAX_INTERVAL = 16_384  # grains per tick before a tick stops feeling interactive
INTERVAL_STEP = 4
MAX_GRAINS = 16_777_216


@dataclass
class SandpileConfig:
    """Size of the table and pacing of the simulation."""

    width: int = MODEL_WIDTH
    height: int = MODEL_HEIGHT
    interval: int = DEFAULT_INTERVAL
    margin: int = MARGIN
    max_grains: Optional[int] = MAX_GRAINS
    palette: Optional[Palette] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.interval < 1:
            raise ValueError(f"interval must be at least 1, got {self.interval}")
        if self.margin < 0:
            raise ValueError(f"margin must be non-negative, got {self.margin}")
        if self.max_grains is not None and self.max_grains < 0:
            raise ValueError(f"max_grains must be non-negative, got {self.max_grains}")

    @classmethod
    def from_dict(cls, params: Dict[str, Any]) -> "SandpileConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")
        params = dict(params)
        if params.get("palette") is not None:
            params["palette"] = Palette.from_flat(params["palette"])
        return cls(**params)


def load_config(path: str | os.PathLike[str]) -> SandpileConfig:
    """Read a :class:`SandpileConfig` from a JSON or TOML file."""
    return SandpileConfig.from_dict(utils.load_params(path))


class SandpileSimulator:
    """
    The model.

    Responsibilities:
    1. Own the lattice and the counters.
    2. Pick drop cells round-robin and feed grains to the toppling kernel.
    3. Save and restore the whole state as a snapshot.
    """

    def __init__(self, config: SandpileConfig | None = None) -> None:
        self.config = config or SandpileConfig()
        self.reset()

    def reset(self) -> None:
        """Replace the table with a fresh one and zero every counter."""
        cfg = self.config
        self.lattice = Lattice(cfg.width, cfg.height)
        self.scheduler = SourceScheduler(self.lattice.size)
        self.toppler = Toppler()
        self.total_grains = 0
        self.lost_grains = 0
        self.avalanche = 0
        self.interval = cfg.interval
        self.palette = cfg.palette or Palette.default()

    # ------------------------------------------------------------------ state
    @property
    def width(self) -> int:
        return self.lattice.width

    @property
    def height(self) -> int:
        return self.lattice.height

    @property
    def active_cells(self) -> int:
        return self.scheduler.active_cells

    @property
    def drop_cells(self):
        return self.scheduler.drop_cells

    @property
    def saturated(self) -> bool:
        """True once ``max_grains`` grains have been dropped."""
        cap = self.config.max_grains
        return cap is not None and self.total_grains >= cap

    def mass_balance(self) -> Tuple[int, int, int]:
        """``(total_grains, grains on the table, lost_grains)``."""
        return self.total_grains, self.lattice.grains_on_lattice(), self.lost_grains

    def is_conserved(self) -> bool:
        total, on_table, lost = self.mass_balance()
        return total == on_table + lost

    def is_stable(self) -> bool:
        return self.lattice.is_stable()

    # ---------------------------------------------------------------- sources
    def register_source(self, index: int) -> int:
        """Add a drop cell; raises CapacityExceeded when all slots are used."""
        return self.scheduler.register_source(index)

    def register_source_xy(self, x: int, y: int) -> int:
        if not self.lattice.contains_xy(x, y):
            raise InvalidSource(f"({x}, {y}) is off the {self.width} x {self.height} table")
        return self.register_source(self.lattice.xy_to_idx(x, y))

    # --------------------------------------------------------------- dynamics
    def add_grain(self, source_index: int) -> int:
        """
        Drop one grain on ``source_index`` and let the table settle.

        Returns the avalanche size: the number of topples this grain caused.
        """
        if not self.lattice.contains(source_index):
            raise InvalidSource(f"source index {source_index} outside lattice")
        self.total_grains += 1
        self.avalanche, lost = self.toppler.drop(self.lattice, source_index)
        self.lost_grains += lost
        return self.avalanche

    def tick(self) -> int:
        """
        Drop one batch of ``interval`` grains, cycling through the drop cells.

        Returns the number of grains dropped (0 without drop cells).
        """
        if self.scheduler.active_cells == 0:
            return 0
        for source in self.scheduler.batch(self.interval):
            self.add_grain(source)
        return self.interval

    def run(self, ticks: int) -> int:
        """Run up to ``ticks`` ticks, stopping at ``max_grains``. Returns ticks run."""
        done = 0
        while done < ticks and not self.saturated:
            if self.tick() == 0:
                break
            done += 1
        if self.saturated:
            logger.info(
                "Reached %d grains; pausing simulation", self.config.max_grains
            )
        return done

    def increase_interval(self) -> int:
        if self.interval < MAX_INTERVAL:
            self.interval = min(self.interval * INTERVAL_STEP, MAX_INTERVAL)
        return self.interval

    def decrease_interval(self) -> int:
        if self.interval > 1:
            self.interval = max(self.interval // INTERVAL_STEP, 1)
        return self.interval

    # ------------------------------------------------------------ appearance
    def find_extent(self) -> Extent:
        return find_extent(self.lattice, self.config.margin)

    def randomize_palette(self) -> Palette:
        self.palette = Palette.random(self.total_grains)
        return self.palette

    def reset_palette(self) -> Palette:
        self.palette = Palette.default()
        return self.palette

    # ------------------------------------------------------------ snapshots
    def snapshot(self) -> Snapshot:
        return Snapshot(
            lattice=self.lattice,
            total_grains=self.total_grains,
            lost_grains=self.lost_grains,
            interval=self.interval,
            active_cells=self.scheduler.active_cells,
            avalanche=self.avalanche,
            drop_cells=[int(i) for i in self.scheduler.drop_cells],
            palette=self.palette,
        )

    def curate(self, path: str | os.PathLike[str] | None = None) -> str:
        """Save the simulation; returns the path written."""
        if path is None:
            path = utils.snapshot_name(self.total_grains)
        write_snapshot(path, self.snapshot())
        return os.fspath(path)

    def uncurate(self, path: str | os.PathLike[str] = utils.DEFAULT_SNAPSHOT) -> None:
        """
        Replace the whole simulation with a saved one.

        The current state is left untouched if the file cannot be read or
        parsed.
        """
        snap = read_snapshot(path)
        scheduler = SourceScheduler(snap.lattice.size)
        scheduler.restore(snap.drop_cells, snap.active_cells)

        self.lattice = snap.lattice
        self.scheduler = scheduler
        self.toppler = Toppler()
        self.total_grains = snap.total_grains
        self.lost_grains = snap.lost_grains
        self.avalanche = snap.avalanche
        self.interval = snap.interval
        self.palette = snap.palette
        if not self.is_conserved():
            logger.warning(
                "Snapshot %s does not balance: %d grains dropped, %d on table, %d lost",
                os.fspath(path),
                *self.mass_balance(),
            )


__all__ = [
    "MAX_DROPS",
    "MAX_INTERVAL",
    "SandpileConfig",
    "SandpileSimulator",
    "load_config",
]
