"""Erosion, rock transport, sediment deposition and the mass ledger.

Height is only ever moved, not created: erosion turns height into loose
``rocks``, transport carries rocks downstream and drops them back as
``sediment``. Corrections that do create or destroy height (sea-level ties,
filled seas, island fixes, lake thinning) are recorded in a ``MassBalance``
and repaid by landslides along the coast.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from planetsim.climate import WeatherCells
from planetsim.config import ErosionConfig
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


@dataclass
class MassBalance:
    """Height created by corrections, and how much of it landslides have removed."""

    borrowed: int = 0
    repaid: int = 0

    def borrow(self, amount: int) -> None:
        self.borrowed += int(amount)

    def repay(self, amount: int) -> None:
        self.repaid += int(amount)

    @property
    def outstanding(self) -> int:
        return self.borrowed - self.repaid


def compute_erosion(
    grid: Grid,
    tiles: TileField,
    weather: WeatherCells,
    config: ErosionConfig | None = None,
) -> int:
    """Set next round's pending erosion on every land tile; return the total.

    Rivers cut in proportion to the square root of their flow, dragged rocks
    grind the bed, and waves attack land facing open sea. Coastal erosion
    grows with the fetch of sea behind the wave and doubles when the wind
    blows onto the shore.
    """

    cfg = config or ErosionConfig()
    steep = np.maximum(tiles.steepness.astype(np.int64), 0)
    river = np.trunc(cfg.river_factor * np.sqrt(tiles.waterflow.astype(np.float64)) * steep).astype(np.int64)
    rock = tiles.rockflow * steep // cfg.rock_divisor
    pending = river + rock + coastal_exposure(grid, tiles, weather, cfg)

    land = tiles.terrain == LAND
    pending = np.where(land, np.minimum(pending, cfg.max_erosion_m), 0)
    tiles.pending_erosion[:] = pending
    return int(pending.sum())


def coastal_exposure(
    grid: Grid,
    tiles: TileField,
    weather: WeatherCells,
    config: ErosionConfig | None = None,
) -> np.ndarray:
    cfg = config or ErosionConfig()
    table = grid.neighbour_table
    sea = tiles.terrain == SEA
    land = tiles.terrain == LAND
    idx = np.arange(tiles.size)
    exposure = np.zeros(tiles.size, dtype=np.int64)

    for direction in range(grid.adjacent_count):
        shore = table[:, direction]
        hits = sea & (shore >= 0)
        hits[hits] = land[shore[hits]]
        if not np.any(hits):
            continue
        back = grid.opposite[direction]
        position = idx.copy()
        alive = hits.copy()
        fetch = np.zeros(tiles.size, dtype=np.int64)
        for _ in range(cfg.coastal_fetch):
            position = np.where(alive, table[position, back], position)
            alive &= position >= 0
            alive[alive] = sea[position[alive]]
            fetch += alive
        onshore = (weather.strength > 0) & ((weather.wind1 == direction) | (weather.wind2 == direction))
        fetch = np.where(onshore, fetch * cfg.coastal_wind_bonus, fetch)
        np.add.at(exposure, shore[hits], fetch[hits] * cfg.coastal_factor)
    return exposure


def apply_erosion(tiles: TileField, config: ErosionConfig | None = None) -> int:
    """Turn pending erosion into loose rocks; return the height removed.

    Sediment goes first and erodes ``sediment_softness`` times faster than
    bedrock. No tile is cut below 0.
    """

    cfg = config or ErosionConfig()
    soft = cfg.sediment_softness
    pending = tiles.pending_erosion
    elevation = tiles.elevation.astype(np.int64)
    sediment = tiles.sediment.astype(np.int64)

    loose = np.minimum(sediment, soft * pending)
    spent = -((-loose) // soft)
    bedrock = np.clip(pending - spent, 0, None)
    bedrock = np.minimum(bedrock, np.maximum(elevation - loose, 0))
    removed = np.minimum(loose + bedrock, np.maximum(elevation, 0))

    tiles.elevation[:] = (elevation - removed).astype(np.int32)
    tiles.sediment[:] = np.minimum(sediment - loose, tiles.elevation).astype(np.int32)
    tiles.rocks += removed
    tiles.pending_erosion[:] = 0
    total = int(removed.sum())
    logger.debug("Erosion applied", removed_m=total)
    return total


def _deposit(tiles: TileField, idx: int, amount: int) -> None:
    if amount <= 0:
        return
    tiles.elevation[idx] += amount
    tiles.sediment[idx] += amount


def transport_rocks(grid: Grid, tiles: TileField, config: ErosionConfig | None = None) -> int:
    """Carry loose rocks downstream and drop them as sediment.

    Land is processed highest first so rocks cascade down each river in a
    single pass. Each tile keeps what its flow cannot carry, and flat
    ground sheds an extra share as flood deposits. Water tiles settle part
    of what reaches them and scatter the rest to neighbouring water.
    Returns the amount deposited; ``elevation + rocks`` is unchanged.
    """

    cfg = config or ErosionConfig()
    table = grid.neighbour_table
    deposited = 0

    land = np.flatnonzero(tiles.terrain == LAND)
    order = land[np.argsort(-tiles.elevation[land].astype(np.int64), kind="stable")]
    for idx in order:
        idx = int(idx)
        load = int(tiles.rocks[idx])
        if load <= 0:
            continue
        tiles.rocks[idx] = 0
        tiles.rockflow[idx] += load
        steep = max(int(tiles.steepness[idx]), 0)
        capacity = cfg.carry_factor * int(tiles.waterflow[idx]) * steep
        drop = max(load - capacity, 0)
        if steep <= cfg.flat_steepness:
            drop += (load - drop) // cfg.flood_divisor
        direction = int(tiles.outflow[idx])
        target = int(table[idx, direction]) if direction >= 0 else -1
        if target < 0:
            drop = load
        _deposit(tiles, idx, drop)
        deposited += drop
        if load > drop:
            tiles.rocks[target] += load - drop

    water = np.flatnonzero(tiles.terrain != LAND)
    is_water = tiles.terrain != LAND
    for idx in water:
        idx = int(idx)
        load = int(tiles.rocks[idx])
        if load <= 0:
            continue
        tiles.rocks[idx] = 0
        settle = int(load * cfg.permanent_fraction)
        rest = load - settle
        neighbours = [int(n) for n in grid.adjacent_neighbours(idx) if is_water[n]]
        if neighbours:
            share = rest // len(neighbours)
            for n in neighbours:
                tiles.rocks[n] += share
            settle += rest - share * len(neighbours)
        else:
            settle = load
        _deposit(tiles, idx, settle)
        deposited += settle

    # Rocks handed to tiles already visited this pass settle where they are.
    leftover = np.flatnonzero(tiles.rocks > 0)
    for idx in leftover:
        amount = int(tiles.rocks[idx])
        tiles.rocks[idx] = 0
        _deposit(tiles, int(idx), amount)
        deposited += amount

    logger.debug("Rocks transported", deposited_m=deposited)
    return deposited


def diffuse_undersea(grid: Grid, tiles: TileField, config: ErosionConfig | None = None) -> int:
    """Let sea floors slump toward lower neighbouring sea floor.

    Every sea tile sends ``(h - h_neighbour) // undersea_divisor`` to each
    lower adjacent sea tile, computed from the heights before the pass.
    Returns the total height moved.
    """

    cfg = config or ErosionConfig()
    table = grid.neighbour_table
    sea = tiles.terrain == SEA
    elevation = tiles.elevation.astype(np.int64)
    delta = np.zeros(tiles.size, dtype=np.int64)
    moved = 0
    for direction in range(grid.adjacent_count):
        other = table[:, direction]
        pair = sea & (other >= 0)
        pair[pair] = sea[other[pair]]
        src = np.flatnonzero(pair)
        dst = other[src]
        amount = (elevation[src] - elevation[dst]) // cfg.undersea_divisor
        downhill = amount > 0
        src, dst, amount = src[downhill], dst[downhill], amount[downhill]
        np.add.at(delta, src, -amount)
        np.add.at(delta, dst, amount)
        moved += int(amount.sum())
    tiles.elevation[:] = (elevation + delta).astype(np.int32)
    return moved


def landslide(
    grid: Grid,
    tiles: TileField,
    sea_height: int,
    rng: np.random.Generator,
    balance: MassBalance,
    config: ErosionConfig | None = None,
) -> int:
    """Collapse random coastal land to pay back borrowed mass; return the amount repaid.

    A slide never takes a tile below ``sea_height + 1``.
    """

    cfg = config or ErosionConfig()
    if balance.outstanding <= 0:
        return 0
    table = grid.neighbour_table[:, : grid.adjacent_count]
    valid = table >= 0
    touches_sea = (valid & (tiles.terrain[np.where(valid, table, 0)] == SEA)).any(axis=1)
    coast = np.flatnonzero((tiles.terrain == LAND) & touches_sea)
    if coast.size == 0:
        return 0

    picks = rng.integers(0, coast.size, size=cfg.landslide_attempts)
    repaid = 0
    for pick in picks:
        remaining = balance.outstanding
        if remaining <= 0:
            break
        idx = int(coast[pick])
        room = int(tiles.elevation[idx]) - (sea_height + 1)
        amount = min(cfg.landslide_max_m, room, remaining)
        if amount <= 0:
            continue
        tiles.elevation[idx] -= amount
        tiles.sediment[idx] = min(int(tiles.sediment[idx]), int(tiles.elevation[idx]))
        balance.repay(amount)
        repaid += amount
    if repaid:
        logger.debug("Landslides", repaid_m=repaid, outstanding_m=balance.outstanding)
    return repaid
