"""Exceptions raised by the sandpile simulator."""

from __future__ import annotations


class SandpileError(Exception):
    """Base class for every error raised by sandpile_sim."""


class LatticeOverflowError(SandpileError):
    """Lattice dimensions are invalid or their product overflows int64."""


class CapacityExceeded(SandpileError):
    """All MAX_DROPS source slots are already in use."""


class InvalidSource(SandpileError, ValueError):
    """A source index that does not address a lattice cell."""


class SnapshotError(SandpileError):
    """Base class for snapshot save/load failures."""


class SnapshotLoadError(SnapshotError):
    """The snapshot file could not be opened or read."""


class SnapshotFormatError(SnapshotError, ValueError):
    """The snapshot file is malformed."""

    def __init__(self, message: str, line_no: int | None = None) -> None:
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)
