"""Sea level from the land percentage, plus coastline corrections."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.sparse.csgraph import connected_components
import structlog

from planetsim.erosion import MassBalance
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


@dataclass(frozen=True)
class SeaLevel:
    height: int
    sea_tiles: int
    raised_mass: int


def recompute_sea_level(tiles: TileField, land_percent: int) -> SeaLevel:
    """Rank-cut the tiles by height so ``land_percent`` of them are land.

    Land tiles tied with the highest sea tile are lifted by one meter so
    every sea tile stays strictly below every land tile.
    """

    size = tiles.size
    land_tiles = land_percent * size // 100
    sea_tiles = size - land_tiles
    order = np.argsort(tiles.elevation, kind="stable")

    tiles.terrain[:] = LAND
    if sea_tiles == 0:
        return SeaLevel(height=int(tiles.elevation.min()) - 1, sea_tiles=0, raised_mass=0)

    level = int(tiles.elevation[order[sea_tiles - 1]])
    tiles.terrain[order[:sea_tiles]] = SEA
    land_idx = order[sea_tiles:]
    tied = land_idx[tiles.elevation[land_idx] <= level]
    raised = int((level + 1 - tiles.elevation[tied]).sum())
    tiles.elevation[tied] = level + 1
    return SeaLevel(height=level, sea_tiles=sea_tiles, raised_mass=raised)


def fill_small_seas(
    grid: Grid,
    tiles: TileField,
    sea_height: int,
    min_size: int,
    balance: MassBalance,
) -> int:
    """Lift landlocked sea bodies smaller than ``min_size`` above sea level.

    The largest sea body is never filled. Returns the number of tiles lifted.
    """

    sea = tiles.sea_mask()
    sea_idx = np.flatnonzero(sea)
    if sea_idx.size == 0:
        return 0
    graph = grid.adjacency_graph()[sea_idx][:, sea_idx]
    count, labels = connected_components(graph, directed=False)
    if count <= 1:
        return 0
    sizes = np.bincount(labels, minlength=count)
    largest = int(np.argmax(sizes))
    small = (sizes < min_size)
    small[largest] = False
    doomed = sea_idx[small[labels]]
    if doomed.size == 0:
        return 0
    lift = sea_height + 1 - tiles.elevation[doomed]
    balance.borrow(int(lift.sum()))
    tiles.elevation[doomed] = sea_height + 1
    tiles.terrain[doomed] = LAND
    logger.debug("Small seas filled", tiles=int(doomed.size), bodies=int(small.sum()))
    return int(doomed.size)


def fix_single_tile_islands(
    grid: Grid,
    tiles: TileField,
    sea_height: int,
    rng: np.random.Generator,
    balance: MassBalance,
) -> int:
    """Drown or grow land tiles whose every neighbour is sea.

    Half of the draws drown the island down to sea level; the other half
    raise a drawn on-map neighbour to the island's height.
    Returns the number of islands changed.
    """

    table = grid.neighbour_table
    valid = table >= 0
    neighbour_sea = np.where(valid, tiles.terrain[np.where(valid, table, 0)] == SEA, True)
    candidates = np.flatnonzero((tiles.terrain == LAND) & neighbour_sea.all(axis=1))
    changed = 0
    for idx in candidates:
        idx = int(idx)
        if tiles.terrain[idx] != LAND:
            continue
        row = table[idx]
        if not np.all((row < 0) | (tiles.terrain[np.where(row >= 0, row, 0)] == SEA)):
            continue
        on_map = row[row >= 0]
        pick = int(rng.integers(0, 2 * on_map.size))
        if pick >= on_map.size:
            removed = int(tiles.elevation[idx]) - sea_height
            tiles.elevation[idx] = sea_height
            tiles.terrain[idx] = SEA
            balance.borrow(-removed)
            changed += 1
            continue
        target = int(on_map[pick])
        raised = max(int(tiles.elevation[idx]), sea_height + 1)
        balance.borrow(raised - int(tiles.elevation[target]))
        tiles.elevation[target] = raised
        tiles.terrain[target] = LAND
        changed += 1
    if changed:
        logger.debug("Single-tile islands fixed", count=changed)
    return changed
