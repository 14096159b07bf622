from __future__ import annotations

import numpy as np

from planetsim.config import PlateConfig
from planetsim.heightfield import synthesize_heights
from planetsim.plates import advance_plates, assign_tiles, mountain_check, place_plates, plate_count_for
from planetsim.rng import RngStream
from planetsim.tiles import MAX_HEIGHT_M, TileField
from planetsim.topology import Grid, Topology, WrapMode


def _world(width: int, height: int, topology: Topology, wrap: WrapMode, seed: int = 1) -> tuple[Grid, TileField]:
    grid = Grid(width, height, topology, wrap)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = synthesize_heights(grid, RngStream(seed).stage("heights"))
    return grid, tiles


def test_plate_count_scales_with_map() -> None:
    cfg = PlateConfig()
    assert plate_count_for(Grid(16, 16, 0, 0), cfg) == 3
    assert plate_count_for(Grid(64, 64, 0, 0), cfg) == 12
    assert plate_count_for(Grid(64, 64, 0, 0), PlateConfig(max_plates=5)) == 5


def test_place_plates_keeps_separation() -> None:
    grid = Grid(64, 48, Topology.SQUARE, WrapMode.X)
    cfg = PlateConfig()
    plates = place_plates(grid, RngStream(5).stage("plates"), rounds=64, config=cfg)

    assert 1 <= len(plates) <= plate_count_for(grid, cfg)
    assert [p.ident for p in plates] == list(range(1, len(plates) + 1))
    for i, a in enumerate(plates):
        assert abs(a.vx) <= cfg.max_travel_tiles / 64
        assert abs(a.vy) <= cfg.max_travel_tiles / 64
        for b in plates[i + 1 :]:
            assert grid.sqdist(a.cx, a.cy, b.cx, b.cy) >= cfg.min_separation_sq


def test_small_map_still_gets_a_plate() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.NONE)
    plates = place_plates(grid, RngStream(1).stage("plates"), rounds=16)
    assert len(plates) >= 1


def test_assign_tiles_gives_every_tile_an_owner() -> None:
    grid, tiles = _world(32, 32, Topology.ISO_HEX, WrapMode.XY)
    plates = place_plates(grid, RngStream(2).stage("plates"), rounds=32)
    assign_tiles(grid, tiles, plates)

    idents = {p.ident for p in plates}
    assert set(np.unique(tiles.plate).tolist()) <= idents
    for plate in plates:
        assert plate.radius_x >= 1
        assert plate.radius_y >= 1


def test_mountain_check_spills_over_ceiling_and_conserves_mass() -> None:
    grid = Grid(16, 16, Topology.SQUARE, WrapMode.NONE)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = 2000
    peak = grid.index(8, 8)
    tiles.elevation[peak] = 12000
    before = int(tiles.elevation.sum())

    spills = mountain_check(grid, tiles, peak, np.random.default_rng(0))

    assert spills >= 1
    assert int(tiles.elevation.max()) <= MAX_HEIGHT_M
    assert int(tiles.elevation.sum()) == before


def test_mountain_check_ignores_tiles_under_ceiling() -> None:
    grid = Grid(16, 16, Topology.HEX, WrapMode.X)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = 9500
    snapshot = tiles.elevation.copy()
    assert mountain_check(grid, tiles, 5, np.random.default_rng(0)) == 0
    assert np.array_equal(tiles.elevation, snapshot)


def test_plate_drift_keeps_heights_in_range() -> None:
    grid, tiles = _world(32, 32, Topology.SQUARE, WrapMode.X, seed=9)
    rng = RngStream(9).stage("plates")
    plates = place_plates(grid, rng, rounds=8)
    # Fast plates so several move events fire.
    for plate in plates:
        plate.vx *= 8
        plate.vy *= 8
    assign_tiles(grid, tiles, plates)

    moves = 0
    for _ in range(8):
        moves += advance_plates(grid, tiles, plates, rng)

    assert moves > 0
    assert int(tiles.elevation.min()) >= 0
    assert int(tiles.elevation.max()) <= MAX_HEIGHT_M
