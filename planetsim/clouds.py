"""Layered atmosphere: evaporation, cloud movement and rain."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from planetsim.climate import WeatherCells
from planetsim.config import CloudConfig
from planetsim.tiles import LAND, SEA, TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


@dataclass
class AirColumn:
    """Water held per (layer, tile), plus water moving between them this round."""

    water: np.ndarray
    transit: np.ndarray

    @classmethod
    def empty(cls, layers: int, size: int) -> "AirColumn":
        return cls(
            water=np.zeros((layers, size), dtype=np.int64),
            transit=np.zeros((layers, size), dtype=np.int64),
        )

    @property
    def layers(self) -> int:
        return int(self.water.shape[0])

    def lift_buried(self, ground_layer: np.ndarray) -> int:
        """Move water out of layers that are now underground; return the amount."""

        tiles = np.arange(self.water.shape[1])
        moved = 0
        for layer in range(self.layers):
            buried = layer < ground_layer
            if not np.any(buried):
                continue
            amount = self.water[layer, buried]
            moved += int(amount.sum())
            np.add.at(self.water, (ground_layer[buried], tiles[buried]), amount)
            self.water[layer, buried] = 0
        return moved

    def commit(self) -> None:
        self.water += self.transit
        self.transit[:] = 0

    def total(self) -> int:
        return int(self.water.sum() + self.transit.sum())


def height_above_sea(tiles: TileField, sea_height: int) -> np.ndarray:
    return np.maximum(tiles.elevation.astype(np.int64) - sea_height, 0)


def ground_layers(above_sea: np.ndarray, config: CloudConfig) -> np.ndarray:
    """Lowest layer at or above the ground for every tile."""

    layers = np.asarray(config.layer_heights_m, dtype=np.int64)
    return np.minimum(np.searchsorted(layers, above_sea, side="left"), len(layers) - 1)


def air_temperature(height_m, ground_m, ground_temp, config: CloudConfig | None = None) -> np.ndarray:
    """Air cools 6.5 C per km above ground up to the tropopause."""

    cfg = config or CloudConfig()
    height_m = np.minimum(np.asarray(height_m, dtype=np.float64), cfg.tropopause_m)
    ground_m = np.asarray(ground_m, dtype=np.float64)
    ground_temp = np.asarray(ground_temp, dtype=np.float64)
    cooled = np.trunc(ground_temp - cfg.lapse_rate_c_per_km * (height_m - ground_m) / 1000.0)
    return np.where(ground_m > cfg.tropopause_m, ground_temp, cooled).astype(np.int64)


def cloud_capacity(height_m, ground_m, ground_temp, config: CloudConfig | None = None) -> np.ndarray:
    """Water an air box can hold; about 8% more per degree."""

    cfg = config or CloudConfig()
    temp = air_temperature(height_m, ground_m, ground_temp, cfg)
    capacity = cfg.capacity_at_reference * np.power(cfg.capacity_growth, (temp - cfg.reference_temp_c).astype(np.float64))
    return np.trunc(capacity).astype(np.int64)


def evaporate(
    air: AirColumn,
    tiles: TileField,
    sea_height: int,
    config: CloudConfig | None = None,
) -> int:
    """Fill each tile's lowest open air box up to its capacity.

    Water surfaces evaporate freely; land gives at most half its wetness.
    """

    cfg = config or CloudConfig()
    above = height_above_sea(tiles, sea_height)
    ground = ground_layers(above, cfg)
    idx = np.arange(tiles.size)
    room = cloud_capacity(above, above, tiles.temperature, cfg) - air.water[ground, idx]
    room = np.maximum(room, 0)
    land = tiles.terrain == LAND
    room = np.where(land, np.minimum(room, tiles.wetness // cfg.land_evaporation_divisor), room)
    room = np.maximum(room, 0)
    air.water[ground, idx] += room
    tiles.wetness[land] -= room[land]
    return int(room.sum())


def transport(
    grid: Grid,
    air: AirColumn,
    tiles: TileField,
    weather: WeatherCells,
    sea_height: int,
    rng: np.random.Generator,
    config: CloudConfig | None = None,
) -> None:
    """Move clouds: rising, sea breeze, random scatter and prevailing wind.

    Outgoing amounts are taken from the water present at the start of the
    round and parked in ``transit``; a cloud pushed onto higher ground
    enters the first layer above that ground and stays there for the rest
    of its trip.
    """

    cfg = config or CloudConfig()
    above = height_above_sea(tiles, sea_height)
    ground = ground_layers(above, cfg)
    heights = np.asarray(cfg.layer_heights_m, dtype=np.int64)
    table = grid.neighbour_table
    k = grid.direction_count
    size = tiles.size
    idx = np.arange(size)
    land = tiles.terrain == LAND
    strength = weather.strength.astype(np.int64)
    scatter_reps = 3 - strength

    for layer in range(air.layers):
        open_air = heights[layer] >= above
        water = air.water[layer]

        if layer + 1 < air.layers:
            rising = np.where(open_air, water // cfg.rise_divisor, 0)
            water -= rising
            air.transit[layer + 1] += rising

        amount = np.where(open_air, water // cfg.breeze_divisor, 0)

        if layer == 0:
            for direction in range(k):
                target = table[:, direction]
                breeze = open_air & ~land & (target >= 0) & land[np.where(target >= 0, target, 0)]
                _push(air, water, idx[breeze], target[breeze], amount[breeze], layer, ground)

        draws = rng.integers(0, k, size=(3, size))
        for rep in range(3):
            target = table[idx, draws[rep]]
            scatter = open_air & (scatter_reps > rep) & (target >= 0)
            _push(air, water, idx[scatter], target[scatter], amount[scatter], layer, ground)

        windy = open_air & (strength > 0)
        if not np.any(windy):
            continue
        share = np.where(windy, water // cfg.prevailing_divisor // np.maximum(strength, 1), 0)
        for wind in (weather.wind1, weather.wind2):
            position = idx.copy()
            level = np.full(size, layer, dtype=np.int64)
            alive = windy.copy()
            for step in range(3):
                alive &= strength > step
                nxt = table[position, wind.astype(np.int64)]
                alive &= nxt >= 0
                if not np.any(alive):
                    break
                position = np.where(alive, nxt, position)
                level = np.where(alive, np.maximum(level, ground[position]), level)
                src = idx[alive]
                water[src] -= share[alive]
                np.add.at(air.transit, (level[alive], position[alive]), share[alive])

    air.commit()


def _push(
    air: AirColumn,
    water: np.ndarray,
    sources: np.ndarray,
    targets: np.ndarray,
    amounts: np.ndarray,
    layer: int,
    ground: np.ndarray,
) -> None:
    if sources.size == 0:
        return
    water[sources] -= amounts
    levels = np.maximum(layer, ground[targets])
    np.add.at(air.transit, (levels, targets), amounts)


def precipitate(
    air: AirColumn,
    tiles: TileField,
    sea_height: int,
    config: CloudConfig | None = None,
) -> int:
    """Rain a small share of every cloud, plus a third of any excess over capacity.

    Half of the excess rain also sinks to the layer below when that layer is
    above ground. Rain wets land and lakes; rain on open sea is lost.
    Returns the amount of rain that reached the ground.
    """

    cfg = config or CloudConfig()
    above = height_above_sea(tiles, sea_height)
    heights = cfg.layer_heights_m
    wet = tiles.terrain != SEA
    fallen = 0
    for layer in range(air.layers):
        open_air = heights[layer] >= above
        water = air.water[layer]
        rain = np.where(open_air, water // cfg.rain_divisor, 0)
        water -= rain
        capacity = cloud_capacity(heights[layer], above, tiles.temperature, cfg)
        excess = np.where(open_air & (capacity < water), (water - capacity) // cfg.excess_rain_divisor, 0)
        water -= excess
        total = rain + excess
        tiles.wetness[wet] += total[wet]
        fallen += int(total[wet].sum())
        if layer > 0:
            sink = open_air & (heights[layer - 1] > above)
            migrate = np.where(sink, excess // 2, 0)
            water -= migrate
            air.water[layer - 1] += migrate
    return fallen
