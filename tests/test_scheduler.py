"""
Unit tests for the drop-cell scheduler and batched injection.
"""

import logging
from collections import Counter

import pytest

from sandpile_sim import (
    MAX_DROPS,
    CapacityExceeded,
    InvalidSource,
    SandpileConfig,
    SandpileSimulator,
    SourceScheduler,
)


def test_round_robin_in_registration_order():
    scheduler = SourceScheduler(100)
    for idx in (42, 7, 99):
        scheduler.register_source(idx)
    assert list(scheduler.batch(6)) == [42, 7, 99, 42, 7, 99]
    assert scheduler.cursor == 0


def test_cursor_carries_over_between_batches():
    scheduler = SourceScheduler(100)
    for idx in (1, 2, 3):
        scheduler.register_source(idx)
    assert list(scheduler.batch(4)) == [1, 2, 3, 1]
    assert list(scheduler.batch(2)) == [2, 3]


def test_tick_spreads_interval_over_sources():
    """Three drop cells and interval 6 give each cell exactly two grains."""
    sim = SandpileSimulator(SandpileConfig(width=20, height=20, interval=6))
    sources = [sim.lattice.xy_to_idx(x, 10) for x in (3, 10, 16)]
    for s in sources:
        sim.register_source(s)

    assert sim.tick() == 6
    assert sim.total_grains == 6
    for s in sources:
        assert sim.lattice.grains[s] == 2
    assert int(sim.lattice.grains.sum()) == 6


def test_tick_order_recorded():
    sim = SandpileSimulator(SandpileConfig(width=20, height=20, interval=6))
    for s in (5, 50, 150):
        sim.register_source(s)
    seen = []
    real_add = sim.add_grain
    sim.add_grain = lambda idx: seen.append(idx) or real_add(idx)
    sim.tick()
    assert seen == [5, 50, 150, 5, 50, 150]
    assert Counter(seen) == {5: 2, 50: 2, 150: 2}


def test_capacity_exceeded():
    scheduler = SourceScheduler(1_000)
    for i in range(MAX_DROPS):
        assert scheduler.register_source(i) == i
    assert scheduler.is_full
    with pytest.raises(CapacityExceeded):
        scheduler.register_source(500)
    assert scheduler.active_cells == MAX_DROPS
    assert 500 not in scheduler.sources()


def test_unused_slots_never_scheduled():
    scheduler = SourceScheduler(50)
    scheduler.register_source(10)
    scheduler.register_source(20)
    assert set(scheduler.batch(100)) == {10, 20}
    assert scheduler.drop_cells[2:].tolist() == [0] * (MAX_DROPS - 2)


def test_invalid_source_rejected():
    scheduler = SourceScheduler(25)
    with pytest.raises(InvalidSource):
        scheduler.register_source(25)
    assert scheduler.active_cells == 0


def test_next_without_sources():
    with pytest.raises(LookupError):
        SourceScheduler(10).next()


def test_tick_without_sources_is_noop():
    sim = SandpileSimulator(SandpileConfig(width=10, height=10))
    assert sim.tick() == 0
    assert sim.run(5) == 0
    assert sim.total_grains == 0


def test_register_source_xy():
    sim = SandpileSimulator(SandpileConfig(width=10, height=8))
    sim.register_source_xy(3, 4)
    assert sim.scheduler.sources() == [43]
    with pytest.raises(InvalidSource):
        sim.register_source_xy(10, 0)


def test_run_stops_at_grain_cap():
    sim = SandpileSimulator(SandpileConfig(width=15, height=15, interval=16, max_grains=40))
    sim.register_source(sim.lattice.center_index())
    assert sim.run(10) == 3
    assert sim.total_grains == 48
    assert sim.saturated
    assert sim.run(10) == 0


def test_interval_steps_by_four_within_bounds():
    sim = SandpileSimulator(SandpileConfig(width=5, height=5, interval=1))
    assert sim.decrease_interval() == 1
    values = [sim.increase_interval() for _ in range(9)]
    assert values == [4, 16, 64, 256, 1024, 4096, 16384, 16384, 16384]
    assert sim.decrease_interval() == 4096


def test_restore_validates_slots():
    scheduler = SourceScheduler(10)
    cells = [3, 4] + [0] * (MAX_DROPS - 2)
    scheduler.restore(cells, 2)
    assert scheduler.sources() == [3, 4]
    with pytest.raises(ValueError):
        scheduler.restore(cells[:-1], 2)
    with pytest.raises(InvalidSource):
        scheduler.restore([11] + [0] * (MAX_DROPS - 1), 1)


def test_restore_clears_unused_slots_with_debug_log(caplog):
    scheduler = SourceScheduler(10)
    cells = [3, 4, 9] + [0] * (MAX_DROPS - 3)
    with caplog.at_level(logging.DEBUG, logger="sandpile_sim"):
        scheduler.restore(cells, 2)
    assert "Clearing unused drop slots beyond 2" in caplog.text
    assert scheduler.drop_cells[2] == 0
    assert scheduler.sources() == [3, 4]
    assert cells[2] == 9


def test_restore_with_clean_slots_logs_nothing(caplog):
    scheduler = SourceScheduler(10)
    with caplog.at_level(logging.DEBUG, logger="sandpile_sim"):
        scheduler.restore([3, 4] + [0] * (MAX_DROPS - 2), 2)
    assert "Clearing unused drop slots" not in caplog.text
