"""
Text snapshots of a sandpile simulation.

Layout, one record per line, fields separated by commas::

    sandpile,1,<width>,<height>,<total>,<lost>,<interval>,<active>,<avalanche>
    drops,<32 cell indices>
    palette,<24 floats: r,g,b,a for each of the six buckets>
    <n>,f                  n consecutive untouched cells
    <n>,t,<n digits>       n consecutive touched cells, one grain digit each
    ...
    Checksum: <cells encoded> of <lattice size> cells recorded

Cell runs alternate between untouched and touched cells in index order.
Stable cells hold at most three grains, so a single digit per cell suffices.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Tuple

import numpy as np

from .errors import (
    LatticeOverflowError,
    SnapshotFormatError,
    SnapshotLoadError,
)
from .lattice import CRITICAL, Lattice, checked_size
from .palette import Palette
from .scheduler import MAX_DROPS

logger = logging.getLogger(__name__)

TAG = "sandpile"
FORMAT_VERSION = "1"
DROPS_TAG = "drops"
PALETTE_TAG = "palette"
CHECKSUM_TAG = "Checksum:"
UNTOUCHED_RUN = "f"
TOUCHED_RUN = "t"

_ZERO = np.uint8(ord("0"))


@dataclass
class Snapshot:
    """Everything a snapshot file records."""

    lattice: Lattice
    total_grains: int = 0
    lost_grains: int = 0
    interval: int = 1
    active_cells: int = 0
    avalanche: int = 0
    drop_cells: List[int] = field(default_factory=lambda: [0] * MAX_DROPS)
    palette: Palette = field(default_factory=Palette.default)


###############################################################################
# Cell runs
###############################################################################


def iter_runs(touched: np.ndarray) -> Iterator[Tuple[int, int, bool]]:
    """Yield ``(start, stop, touched)`` for each maximal run of equal flags."""
    n = touched.size
    if n == 0:
        return
    change = np.flatnonzero(touched[1:] != touched[:-1]) + 1
    starts = np.concatenate(([0], change))
    stops = np.concatenate((change, [n]))
    for start, stop in zip(starts, stops):
        yield int(start), int(stop), bool(touched[start])


def encode_cells(lattice: Lattice) -> Iterator[str]:
    """Run-length encode the cells of ``lattice``, one line per run."""
    for start, stop, touched in iter_runs(lattice.touched):
        count = stop - start
        if not touched:
            yield f"{count},{UNTOUCHED_RUN}"
        else:
            digits = (lattice.grains[start:stop] + _ZERO).tobytes().decode("ascii")
            yield f"{count},{TOUCHED_RUN},{digits}"


def _decode_run(line: str, line_no: int) -> Tuple[int, np.ndarray | None]:
    """Return the run length and, for touched runs, its grain counts."""
    pieces = line.split(",")
    if len(pieces) < 2:
        raise SnapshotFormatError(f"unrecognised record {line!r}", line_no)
    count = _parse_int(pieces[0], "run length", line_no)
    kind = pieces[1]
    if kind == UNTOUCHED_RUN and len(pieces) == 2:
        return count, None
    if kind == TOUCHED_RUN and len(pieces) == 3:
        digits = pieces[2]
        if len(digits) != count:
            raise SnapshotFormatError(
                f"run of {count} touched cells carries {len(digits)} digits", line_no
            )
        try:
            raw = digits.encode("ascii")
        except UnicodeEncodeError:
            raise SnapshotFormatError("non-ASCII grain digits", line_no) from None
        grains = np.frombuffer(raw, dtype=np.uint8) - _ZERO
        # non-digits wrap around to large values
        if grains.size and grains.max() >= CRITICAL:
            raise SnapshotFormatError(
                f"grain digits must be 0..{CRITICAL - 1}", line_no
            )
        return count, grains
    raise SnapshotFormatError(f"unrecognised record {line!r}", line_no)


###############################################################################
# Writing
###############################################################################


def format_snapshot(snap: Snapshot) -> Iterator[str]:
    """Yield the lines (without newlines) of the snapshot file."""
    lattice = snap.lattice
    yield ",".join(
        str(v)
        for v in (
            TAG,
            FORMAT_VERSION,
            lattice.width,
            lattice.height,
            snap.total_grains,
            snap.lost_grains,
            snap.interval,
            snap.active_cells,
            snap.avalanche,
        )
    )
    yield ",".join([DROPS_TAG, *(str(int(i)) for i in snap.drop_cells)])
    yield ",".join([PALETTE_TAG, *(repr(float(v)) for v in snap.palette.to_flat())])
    recorded = 0
    for line in encode_cells(lattice):
        recorded += int(line.split(",", 1)[0])
        yield line
    yield f"{CHECKSUM_TAG} {recorded} of {lattice.size} cells recorded"


def write_snapshot(path: str | os.PathLike[str], snap: Snapshot) -> None:
    """Write ``snap`` to ``path``. I/O errors propagate to the caller."""
    if len(snap.drop_cells) != MAX_DROPS:
        raise ValueError(f"expected {MAX_DROPS} drop cells, got {len(snap.drop_cells)}")
    with open(path, "w", encoding="ascii", newline="\n") as fh:
        for line in format_snapshot(snap):
            fh.write(line)
            fh.write("\n")
    logger.info("Saved snapshot %s (%d grains)", os.fspath(path), snap.total_grains)


###############################################################################
# Reading
###############################################################################


def _parse_int(text: str, what: str, line_no: int) -> int:
    # int() would also take signs, blanks and underscores
    if not (text.isascii() and text.isdigit()):
        raise SnapshotFormatError(f"{what} is not a non-negative integer: {text!r}", line_no)
    return int(text)


def _parse_header(line: str, line_no: int) -> dict:
    pieces = line.split(",")
    if pieces[0] != TAG:
        raise SnapshotFormatError(f"missing {TAG!r} header", line_no)
    if len(pieces) != 9:
        raise SnapshotFormatError(f"header needs 9 fields, got {len(pieces)}", line_no)
    if pieces[1] != FORMAT_VERSION:
        raise SnapshotFormatError(f"unsupported format version {pieces[1]!r}", line_no)
    names = ("width", "height", "total_grains", "lost_grains", "interval",
             "active_cells", "avalanche")
    header = {name: _parse_int(text, name, line_no) for name, text in zip(names, pieces[2:])}
    if header["active_cells"] > MAX_DROPS:
        raise SnapshotFormatError(
            f"active_cells {header['active_cells']} exceeds {MAX_DROPS}", line_no
        )
    if header["interval"] < 1:
        raise SnapshotFormatError("interval must be at least 1", line_no)
    return header


def _parse_drops(line: str, line_no: int) -> List[int]:
    pieces = line.split(",")
    if pieces[0] != DROPS_TAG:
        raise SnapshotFormatError(f"expected {DROPS_TAG!r} record", line_no)
    if len(pieces) != MAX_DROPS + 1:
        raise SnapshotFormatError(
            f"{DROPS_TAG} needs {MAX_DROPS} indices, got {len(pieces) - 1}", line_no
        )
    return [_parse_int(text, "drop cell", line_no) for text in pieces[1:]]


def _parse_palette(line: str, line_no: int) -> Palette:
    pieces = line.split(",")
    if pieces[0] != PALETTE_TAG:
        raise SnapshotFormatError(f"expected {PALETTE_TAG!r} record", line_no)
    try:
        return Palette.from_flat([float(text) for text in pieces[1:]])
    except ValueError as exc:
        raise SnapshotFormatError(f"bad palette: {exc}", line_no) from None


def _check_counts(claimed: int, of: int, decoded: int, size: int, source: str) -> None:
    if claimed != of or claimed != decoded or of != size:
        logger.warning(
            "Checksum error in %s: %d of %d cells recorded, %d decoded, lattice has %d",
            source,
            claimed,
            of,
            decoded,
            size,
        )


def parse_snapshot(lines: Iterable[str], source: str = "<snapshot>") -> Snapshot:
    """
    Build a :class:`Snapshot` from snapshot lines.

    Structural problems raise :class:`SnapshotFormatError`. A cell count
    that disagrees with the checksum or with the lattice size is only
    logged; missing cells are left untouched and surplus cells dropped.
    """
    numbered = ((n, line.rstrip("\r\n")) for n, line in enumerate(lines, start=1))
    numbered = ((n, line) for n, line in numbered if line.strip())

    try:
        n, line = next(numbered)
        header = _parse_header(line, n)
        n, line = next(numbered)
        drop_cells = _parse_drops(line, n)
        n, line = next(numbered)
        palette = _parse_palette(line, n)
    except StopIteration:
        raise SnapshotFormatError(f"{source} is truncated before the cell records") from None

    try:
        size = checked_size(header["width"], header["height"])
    except LatticeOverflowError as exc:
        raise SnapshotFormatError(str(exc), 1) from None

    active = header["active_cells"]
    for i in drop_cells[:active]:
        if i >= size:
            raise SnapshotFormatError(f"drop cell {i} outside lattice of {size} cells", 2)

    try:
        lattice = Lattice(header["width"], header["height"])
    except (MemoryError, ValueError) as exc:
        raise SnapshotFormatError(
            f"cannot allocate a {header['width']} x {header['height']} table: {exc}", 1
        ) from exc
    pos = 0
    checksum = None
    for n, line in numbered:
        if checksum is not None:
            raise SnapshotFormatError("records after the checksum line", n)
        if line.startswith(CHECKSUM_TAG):
            pieces = line.split(" ")
            if len(pieces) < 4:
                raise SnapshotFormatError(f"malformed checksum {line!r}", n)
            checksum = (
                _parse_int(pieces[1], "checksum", n),
                _parse_int(pieces[3], "checksum", n),
            )
            continue
        count, grains = _decode_run(line, n)
        stop = min(pos + count, size)
        if stop > pos:
            lattice.touched[pos:stop] = grains is not None
            if grains is not None:
                lattice.grains[pos:stop] = grains[: stop - pos]
        pos += count

    if checksum is None:
        logger.warning("Checksum missing from %s; %d of %d cells decoded", source, pos, size)
    else:
        _check_counts(checksum[0], checksum[1], pos, size, source)

    return Snapshot(
        lattice=lattice,
        total_grains=header["total_grains"],
        lost_grains=header["lost_grains"],
        interval=header["interval"],
        active_cells=active,
        avalanche=header["avalanche"],
        drop_cells=drop_cells,
        palette=palette,
    )


def read_snapshot(path: str | os.PathLike[str]) -> Snapshot:
    """Load a snapshot written by :func:`write_snapshot`."""
    try:
        with open(path, "r", encoding="ascii", newline="") as fh:
            snap = parse_snapshot(fh, source=os.fspath(path))
    except OSError as exc:
        raise SnapshotLoadError(f"Unable to open snapshot {os.fspath(path)}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise SnapshotFormatError(f"{os.fspath(path)} is not an ASCII snapshot: {exc}") from None
    logger.info("Loaded snapshot %s (%d grains)", os.fspath(path), snap.total_grains)
    return snap


__all__ = [
    "Snapshot",
    "encode_cells",
    "format_snapshot",
    "iter_runs",
    "parse_snapshot",
    "read_snapshot",
    "write_snapshot",
]
