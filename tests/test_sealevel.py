from __future__ import annotations

import numpy as np
import pytest

from planetsim.erosion import MassBalance
from planetsim.heightfield import synthesize_heights
from planetsim.rng import RngStream
from planetsim.sealevel import fill_small_seas, fix_single_tile_islands, recompute_sea_level
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid, Topology, WrapMode


def _separated(tiles: TileField, sea_height: int) -> bool:
    sea = tiles.terrain == SEA
    return bool(np.all(tiles.elevation[sea] <= sea_height) and np.all(tiles.elevation[~sea] > sea_height))


@pytest.mark.parametrize("land", [0, 10, 30, 50, 99])
def test_rank_cut_gives_exact_sea_count(land: int) -> None:
    grid = Grid(24, 16, Topology.HEX, WrapMode.X)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = synthesize_heights(grid, RngStream(11).stage("heights"))

    level = recompute_sea_level(tiles, land)

    expected_sea = grid.size - land * grid.size // 100
    assert level.sea_tiles == expected_sea
    assert int(np.count_nonzero(tiles.terrain == SEA)) == expected_sea
    assert _separated(tiles, level.height)


def test_ties_at_the_cut_are_lifted() -> None:
    tiles = TileField.empty(10)
    tiles.elevation[:] = 500
    level = recompute_sea_level(tiles, 50)

    assert level.height == 500
    assert level.sea_tiles == 5
    assert level.raised_mass == 5
    assert _separated(tiles, level.height)


def test_all_land_puts_sea_below_lowest_tile() -> None:
    tiles = TileField.empty(8)
    tiles.elevation[:] = np.arange(100, 900, 100)
    level = recompute_sea_level(tiles, 100)

    assert level.sea_tiles == 0
    assert level.height == 99
    assert np.all(tiles.terrain == LAND)


def _ocean_with_pond() -> tuple[Grid, TileField, int]:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = 100
    tiles.terrain[:] = LAND
    ocean = grid.xs < 8
    tiles.elevation[ocean] = 0
    tiles.terrain[ocean] = SEA
    pond = grid.index(12, 8)
    tiles.elevation[pond] = 0
    tiles.terrain[pond] = SEA
    return grid, tiles, pond


def test_small_landlocked_sea_is_filled() -> None:
    grid, tiles, pond = _ocean_with_pond()
    balance = MassBalance()

    filled = fill_small_seas(grid, tiles, 0, 13, balance)

    assert filled == 1
    assert tiles.terrain[pond] == LAND
    assert tiles.elevation[pond] == 1
    assert balance.borrowed == 1
    assert int(np.count_nonzero(tiles.terrain == SEA)) == 128


def test_largest_sea_is_never_filled() -> None:
    grid, tiles, _ = _ocean_with_pond()
    filled = fill_small_seas(grid, tiles, 0, 10_000, MassBalance())
    assert filled == 1
    assert int(np.count_nonzero(tiles.terrain == SEA)) == 128


def test_single_tile_island_is_drowned_or_grown() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.XY)
    for seed in range(6):
        tiles = TileField.empty(grid.size)
        tiles.terrain[:] = SEA
        tiles.elevation[:] = 0
        island = grid.index(8, 8)
        tiles.terrain[island] = LAND
        tiles.elevation[island] = 50
        balance = MassBalance()

        changed = fix_single_tile_islands(grid, tiles, 0, np.random.default_rng(seed), balance)

        assert changed == 1
        if tiles.terrain[island] == SEA:
            assert tiles.elevation[island] == 0
            assert balance.borrowed == -50
        else:
            grown = [n for n in grid.all_neighbours(island) if tiles.terrain[n] == LAND]
            assert len(grown) == 1
            assert tiles.elevation[grown[0]] == 50
            assert balance.borrowed == 50


def test_corner_island_is_always_fixed() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    for seed in range(8):
        tiles = TileField.empty(grid.size)
        tiles.terrain[:] = SEA
        corner = grid.index(0, 0)
        tiles.terrain[corner] = LAND
        tiles.elevation[corner] = 40

        changed = fix_single_tile_islands(grid, tiles, 0, np.random.default_rng(seed), MassBalance())

        assert changed == 1
        land = np.flatnonzero(tiles.terrain == LAND)
        assert land.size in (0, 2)
