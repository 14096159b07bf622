from __future__ import annotations

import numpy as np
import pytest

from planetsim.config import HydrologyConfig
from planetsim.errors import SimulationError
from planetsim.hydrology import HydrologyEngine, default_lake_table, steepness_for_drop, trace_outflow
from planetsim.tiles import LAKE, LAND, RIVER_BIG, RIVER_NONE, SEA, TileField
from planetsim.topology import Grid, Topology, WrapMode


def _ramp_with_pit(wateronland: int = 50) -> tuple[Grid, TileField, HydrologyEngine, int]:
    """Land rising eastward from a sea column, with one deep pit in the middle."""

    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = 100 + 10 * grid.xs
    tiles.terrain[:] = LAND
    coast = grid.xs == 0
    tiles.elevation[coast] = 0
    tiles.terrain[coast] = SEA
    pit = grid.index(8, 8)
    tiles.elevation[pit] = 50
    tiles.wetness[tiles.terrain == LAND] = 100
    lakes = default_lake_table(grid, HydrologyConfig())
    engine = HydrologyEngine(grid, tiles, lakes, sea_height=0, wateronland=wateronland)
    return grid, tiles, engine, pit


def test_steepness_is_log_of_drop() -> None:
    assert steepness_for_drop(np.array([-5, 0, 1, 2, 3, 4, 1000])).tolist() == [0, 0, 1, 2, 2, 3, 10]


def test_outflow_prefers_sea_and_lowest_neighbour() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    engine.reset()
    engine.find_outflows()

    assert tiles.outflow[grid.index(1, 3)] == 0
    assert tiles.outflow[grid.index(5, 3)] == 0
    assert tiles.outflow[grid.index(9, 8)] == 0
    assert tiles.outflow[grid.index(8, 7)] == 3
    assert np.all(tiles.outflow[tiles.terrain == SEA] == -1)
    # 110 m above a sea at 0 m.
    assert tiles.steepness[grid.index(1, 3)] == 7


def test_pit_floods_into_a_lake_with_an_outflow() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    engine.reset()
    engine.find_outflows()
    engine.accumulate()

    roots = engine.lakes.roots()
    assert len(roots) == 1
    lake = roots[0]
    assert lake.members == [pit]
    assert lake.outflow == grid.index(7, 8)
    assert tiles.terrain[pit] == LAKE
    assert tiles.outflow[grid.index(7, 8)] == 0
    assert tiles.waterflow[grid.index(7, 8)] > tiles.waterflow[grid.index(7, 2)]
    assert int(tiles.waterflow[tiles.terrain == SEA].sum()) > 0


def test_every_land_tile_drains_to_sea() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    engine.run()
    outlets = {lake.handle: lake.outflow for lake in engine.lakes.roots()}
    for idx in np.flatnonzero(tiles.terrain != SEA):
        path = trace_outflow(grid, tiles.terrain, tiles.outflow, tiles.lake, outlets, int(idx))
        assert tiles.terrain[path[-1]] == SEA


def test_rivers_are_marked_by_flow() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    stats = engine.run()

    assert stats.river_tiles > 0
    assert stats.big_river_tiles > 0
    big = tiles.river == RIVER_BIG
    small_or_none = (tiles.river != RIVER_BIG) & (tiles.terrain == LAND)
    assert int(tiles.waterflow[big].min()) >= int(tiles.waterflow[small_or_none].min())
    assert np.all(tiles.river[tiles.terrain == SEA] == RIVER_NONE)


def test_shallow_lake_without_rivers_is_dissolved() -> None:
    grid, tiles, engine, pit = _ramp_with_pit(wateronland=0)
    engine.reset()
    engine.find_outflows()
    engine.accumulate()
    top = engine.rank_rivers()

    dissolved = engine.thin_lakes(top)

    assert top.size == 0
    assert dissolved == 1
    assert tiles.terrain[pit] == LAND
    assert tiles.elevation[pit] == 170
    assert tiles.lake[pit] == -1
    assert tiles.outflow[pit] == 0
    assert engine.mass_borrowed == 120
    assert engine.lakes.roots() == []


def test_landlocked_basin_keeps_a_terminal_lake() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.XY)
    tiles = TileField.empty(grid.size)
    tiles.terrain[:] = LAND
    tiles.elevation[:] = 500 + 5 * grid.sqdist_field(8, 8).astype(np.int32)
    tiles.wetness[:] = 200
    lakes = default_lake_table(grid, HydrologyConfig())
    engine = HydrologyEngine(grid, tiles, lakes, sea_height=0, wateronland=50)

    stats = engine.run()

    assert stats.lakes_active >= 1
    assert stats.terminal_lakes >= 1
    assert int(np.count_nonzero(tiles.terrain == LAKE)) == stats.lake_tiles
    for lake in engine.lakes.roots():
        assert all(tiles.lake[m] == lake.handle for m in lake.members)


def test_trace_outflow_rejects_loops() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.X)
    terrain = np.full(grid.size, LAND, dtype=np.uint8)
    outflow = np.full(grid.size, 1, dtype=np.int8)
    lake_ids = np.full(grid.size, -1, dtype=np.int32)
    with pytest.raises(SimulationError):
        trace_outflow(grid, terrain, outflow, lake_ids, {}, 0)


def test_trace_outflow_requires_outflow_on_land() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    terrain = np.full(grid.size, LAND, dtype=np.uint8)
    outflow = np.full(grid.size, -1, dtype=np.int8)
    lake_ids = np.full(grid.size, -1, dtype=np.int32)
    with pytest.raises(SimulationError):
        trace_outflow(grid, terrain, outflow, lake_ids, {}, 5)


def test_dry_pit_is_still_routed() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    tiles.wetness[:] = 0
    engine.reset()
    engine.find_outflows()
    engine.accumulate()

    roots = engine.lakes.roots()
    assert [lake.members for lake in roots] == [[pit]]
    assert roots[0].outflow == grid.index(7, 8)
    assert int(tiles.waterflow.sum()) == 0

    engine.mark_rivers()
    outlets = {lake.handle: lake.outflow for lake in engine.lakes.roots()}
    for idx in np.flatnonzero(tiles.terrain != SEA):
        path = trace_outflow(grid, tiles.terrain, tiles.outflow, tiles.lake, outlets, int(idx))
        assert tiles.terrain[path[-1]] == SEA


def test_dry_basin_without_sea_terminates() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.XY)
    tiles = TileField.empty(grid.size)
    tiles.terrain[:] = LAND
    tiles.elevation[:] = 500 + 5 * grid.sqdist_field(8, 8).astype(np.int32)
    lakes = default_lake_table(grid, HydrologyConfig())
    engine = HydrologyEngine(grid, tiles, lakes, sea_height=0, wateronland=50)

    stats = engine.run()

    assert stats.terminal_lakes >= 1
    outlets = {lake.handle: lake.outflow for lake in engine.lakes.roots()}
    for idx in range(grid.size):
        trace_outflow(grid, tiles.terrain, tiles.outflow, tiles.lake, outlets, idx)


def test_pit_next_to_level_lake_drains_without_new_lake() -> None:
    grid, tiles, engine, pit = _ramp_with_pit()
    engine.reset()
    engine.find_outflows()
    neighbour = grid.index(8, 7)
    handle = engine.lakes.create(serial=99, level=50)
    lake = engine.lakes[handle]
    lake.members.append(neighbour)
    lake.count = 1
    lake.outflow = grid.index(7, 7)
    tiles.elevation[neighbour] = 50
    tiles.terrain[neighbour] = LAKE
    tiles.lake[neighbour] = handle

    assert engine.flood_lake(pit, serial=1) == -1

    assert engine.lakes_created == 0
    assert len(engine.lakes) == 1
    assert tiles.outflow[pit] == grid.direction_to(pit, neighbour)
    assert tiles.lake[pit] == -1
