"""
Sandpile Simulation Library

Abelian sandpile (chip-firing) model on a fixed rectangular table:
- Lattice: flat row-major grid of cells with grain counts and touch flags
- SandpileSimulator: drop cells, toppling cascades and grain accounting
- Snapshots: run-length encoded text save/restore of the whole simulation
"""

from .errors import (
    CapacityExceeded,
    InvalidSource,
    LatticeOverflowError,
    SandpileError,
    SnapshotError,
    SnapshotFormatError,
    SnapshotLoadError,
)
from .extent import Extent, find_extent
from .lattice import CRITICAL, Lattice
from .palette import Color, Palette, classify
from .sandpile import MAX_INTERVAL, SandpileConfig, SandpileSimulator, load_config
from .scheduler import MAX_DROPS, SourceScheduler
from .snapshot import Snapshot, read_snapshot, write_snapshot
from . import utils

__all__ = [
    # Simulator
    "SandpileSimulator",
    "SandpileConfig",
    "load_config",
    # Components
    "Lattice",
    "SourceScheduler",
    "Extent",
    "find_extent",
    "Color",
    "Palette",
    "classify",
    "Snapshot",
    "read_snapshot",
    "write_snapshot",
    # Constants
    "CRITICAL",
    "MAX_DROPS",
    "MAX_INTERVAL",
    # Errors
    "SandpileError",
    "LatticeOverflowError",
    "CapacityExceeded",
    "InvalidSource",
    "SnapshotError",
    "SnapshotLoadError",
    "SnapshotFormatError",
    # Utilities
    "utils",
]
