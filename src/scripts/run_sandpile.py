#!/usr/bin/env python3
"""
Sandpile Simulation Runner

Drops grains on one or more drop cells, then writes a snapshot that can be
reloaded with --load.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add the package source directory to path
SRC = Path(__file__).resolve().parents[1]
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from sandpile_sim import (
    CapacityExceeded,
    SandpileConfig,
    SandpileSimulator,
    SnapshotError,
    load_config,
)
from sandpile_sim.logging_config import setup_logging

logger = logging.getLogger("sandpile_sim.run")


def parse_xy(text: str) -> tuple:
    """Parse an ``X,Y`` pair."""
    try:
        x, y = (int(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected X,Y, got {text!r}") from None
    return x, y


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run an Abelian sandpile simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON/TOML config file")
    parser.add_argument("--width", type=int, default=None, help="table width in cells")
    parser.add_argument("--height", type=int, default=None, help="table height in cells")
    parser.add_argument("--interval", type=int, default=None, help="grains per tick")
    parser.add_argument("--ticks", type=int, default=100, help="number of ticks to run")
    parser.add_argument(
        "--source",
        type=parse_xy,
        action="append",
        default=None,
        help="drop cell as X,Y (repeatable, default: table centre)",
    )
    parser.add_argument("--load", type=str, default=None, help="snapshot to resume from")
    parser.add_argument(
        "--out",
        type=str,
        default=None,
        help="snapshot file to write (auto-named from the grain count if omitted)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging verbosity (default: INFO)",
    )
    parser.add_argument("--log-file", type=str, default=None, help="also append logs to this file")
    return parser


def make_config(args: argparse.Namespace) -> SandpileConfig:
    params = {}
    if args.config:
        params = vars(load_config(args.config)).copy()
    for key in ("width", "height", "interval"):
        value = getattr(args, key)
        if value is not None:
            params[key] = value
    return SandpileConfig(**params)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, log_file=args.log_file)

    sim = SandpileSimulator(make_config(args))

    if args.load:
        try:
            sim.uncurate(args.load)
        except SnapshotError as exc:
            logger.error("%s", exc)
            return 1

    sources = args.source
    if sources is None and sim.active_cells == 0:
        sources = [sim.lattice.center_xy()]
    for x, y in sources or []:
        try:
            sim.register_source_xy(x, y)
        except CapacityExceeded as exc:
            logger.warning("Skipping drop cell (%d, %d): %s", x, y, exc)

    print(
        f"Running sandpile: {sim.width}x{sim.height}, {sim.active_cells} drop cell(s), "
        f"interval={sim.interval}, ticks={args.ticks}"
    )
    start_time = time.time()
    ticks = sim.run(args.ticks)
    elapsed_time = time.time() - start_time

    total, on_table, lost = sim.mass_balance()
    extent = sim.find_extent()
    print(f"Ran {ticks} tick(s) in {elapsed_time:.2f}s")
    print(f"Grains: {total} dropped, {on_table} on table, {lost} lost")
    print(
        f"Extent: x={extent.min_x} y={extent.min_y} "
        f"{extent.width}x{extent.height}"
    )

    path = sim.curate(args.out)
    print(f"✅ Snapshot saved to {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
