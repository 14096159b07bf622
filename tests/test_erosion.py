from __future__ import annotations

import numpy as np

from planetsim.climate import build_weather
from planetsim.config import ErosionConfig, HydrologyConfig, ImpactConfig
from planetsim.erosion import (
    MassBalance,
    apply_erosion,
    compute_erosion,
    diffuse_undersea,
    landslide,
    transport_rocks,
)
from planetsim.heightfield import synthesize_heights
from planetsim.hydrology import default_lake_table, run_hydrology
from planetsim.impacts import asteroid_strike
from planetsim.rng import RngStream
from planetsim.sealevel import recompute_sea_level
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid, Topology, WrapMode


def _drained_planet(topology: Topology = Topology.SQUARE, wrap: WrapMode = WrapMode.X):
    grid = Grid(24, 16, topology, wrap)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = synthesize_heights(grid, RngStream(21).stage("heights"))
    level = recompute_sea_level(tiles, 45)
    tiles.wetness[tiles.terrain == LAND] = 2000
    lakes = default_lake_table(grid, HydrologyConfig())
    run_hydrology(grid, tiles, lakes, level.height, 50)
    return grid, tiles, level.height


def _mass(tiles: TileField) -> int:
    return int(tiles.elevation.astype(np.int64).sum() + tiles.rocks.sum())


def test_mass_balance_tracks_outstanding() -> None:
    balance = MassBalance()
    balance.borrow(300)
    balance.borrow(-50)
    balance.repay(100)
    assert balance.outstanding == 150


def test_compute_erosion_only_touches_land_and_is_capped() -> None:
    grid, tiles, _ = _drained_planet()
    weather = build_weather(grid, 50)
    total = compute_erosion(grid, tiles, weather)

    assert total == int(tiles.pending_erosion.sum())
    assert total > 0
    assert np.all(tiles.pending_erosion[tiles.terrain != LAND] == 0)
    assert int(tiles.pending_erosion.max()) <= ErosionConfig().max_erosion_m
    assert int(tiles.pending_erosion.min()) >= 0


def test_erosion_and_transport_conserve_mass() -> None:
    for topology in Topology:
        grid, tiles, _ = _drained_planet(topology, WrapMode.XY)
        tiles.sediment[:] = np.minimum(tiles.elevation, 30)
        land = tiles.terrain == LAND
        tiles.pending_erosion[land] = 50
        before = _mass(tiles)

        removed = apply_erosion(tiles)
        assert removed > 0
        assert _mass(tiles) == before
        assert int(tiles.elevation.min()) >= 0

        deposited = transport_rocks(grid, tiles)
        assert deposited == removed
        assert _mass(tiles) == before
        assert int(tiles.rocks.sum()) == 0
        assert int(tiles.rockflow.sum()) >= removed


def test_sediment_erodes_before_bedrock() -> None:
    tiles = TileField.empty(3)
    tiles.elevation[:] = [1000, 1000, 10]
    tiles.sediment[:] = [300, 30, 0]
    tiles.pending_erosion[:] = [50, 50, 50]

    apply_erosion(tiles)

    # 150 m of soft sediment for 50 m of erosion.
    assert tiles.elevation[0] == 850
    assert tiles.sediment[0] == 150
    # 30 m of sediment costs 10 m, bedrock takes the other 40.
    assert tiles.elevation[1] == 930
    assert tiles.sediment[1] == 0
    assert tiles.elevation[2] == 0
    assert tiles.rocks.tolist() == [150, 70, 10]


def test_undersea_diffusion_conserves_and_flattens() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.XY)
    tiles = TileField.empty(grid.size)
    tiles.terrain[:] = SEA
    tiles.elevation[:] = 100
    tiles.elevation[grid.index(4, 4)] = 1700
    land = grid.index(10, 10)
    tiles.terrain[land] = LAND
    tiles.elevation[land] = 5000
    before = int(tiles.elevation.sum())

    moved = diffuse_undersea(grid, tiles)

    assert moved == 6 * 100
    assert int(tiles.elevation.sum()) == before
    assert tiles.elevation[grid.index(4, 4)] == 1100
    assert tiles.elevation[land] == 5000


def test_landslide_repays_without_sinking_coast() -> None:
    grid, tiles, sea_height = _drained_planet()
    balance = MassBalance(borrowed=5000)
    before = tiles.elevation.copy()

    repaid = landslide(grid, tiles, sea_height, np.random.default_rng(2), balance)

    assert 0 < repaid <= 5000
    assert balance.repaid == repaid
    assert int(before.sum() - tiles.elevation.sum()) == repaid
    changed = tiles.elevation != before
    assert np.all(tiles.elevation[changed] >= sea_height + 1)


def test_landslide_idle_without_debt() -> None:
    grid, tiles, sea_height = _drained_planet()
    assert landslide(grid, tiles, sea_height, np.random.default_rng(2), MassBalance()) == 0


def test_asteroid_strike_conserves_mass() -> None:
    grid = Grid(16, 16, Topology.ISO_SQUARE, WrapMode.XY)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = synthesize_heights(grid, RngStream(8).stage("heights"))
    before = int(tiles.elevation.sum())

    radius = asteroid_strike(grid, tiles, np.random.default_rng(1), ImpactConfig(chance=1.0))

    assert 1 <= radius <= 3
    assert int(tiles.elevation.sum()) == before
    assert int(tiles.elevation.min()) >= 0


def test_asteroid_strike_can_miss() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = 1000
    assert asteroid_strike(grid, tiles, np.random.default_rng(1), ImpactConfig(chance=0.0)) == 0
    assert int(tiles.elevation.sum()) == 1000 * grid.size
