"""Round-based planet simulation pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

import numpy as np
import structlog

from planetsim.climate import apply_temperatures, build_weather
from planetsim.clouds import AirColumn, evaporate, ground_layers, height_above_sea, precipitate, transport
from planetsim.config import GeneratorConfig, WorldParams
from planetsim.erosion import (
    MassBalance,
    apply_erosion,
    compute_erosion,
    diffuse_undersea,
    landslide,
    transport_rocks,
)
from planetsim.errors import SimulationError
from planetsim.heightfield import synthesize_heights
from planetsim.hydrology import HydrologyStats, default_lake_table, run_hydrology
from planetsim.impacts import asteroid_strike
from planetsim.metrics import PlanetMetrics, summarize
from planetsim.plates import advance_plates, assign_tiles, place_plates
from planetsim.rng import RngStream
from planetsim.sealevel import fill_small_seas, fix_single_tile_islands, recompute_sea_level
from planetsim.tiles import MAX_HEIGHT_M, TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


class SimulationPhase(Enum):
    INITIALIZING = "initializing"
    TECTONIC_ROUND = "tectonic_round"
    OUTPUT = "output"


ProgressCallback = Callable[[SimulationPhase, int, int], None]


@dataclass(frozen=True)
class LakeSummary:
    handle: int
    outflow_x: int
    outflow_y: int
    size: int
    height: int


@dataclass(frozen=True)
class PlanetResult:
    """Final tile fields, shaped ``(height, width)``, plus run summaries."""

    params: WorldParams
    width: int
    height: int
    rounds: int
    sea_height: int
    elevation: np.ndarray
    terrain: np.ndarray
    temperature: np.ndarray
    wetness: np.ndarray
    waterflow: np.ndarray
    steepness: np.ndarray
    outflow: np.ndarray
    river: np.ndarray
    lake_id: np.ndarray
    sediment: np.ndarray
    plate_ids: np.ndarray
    lakes: tuple[LakeSummary, ...]
    plate_count: int
    mass_borrowed: int
    mass_repaid: int
    hydrology: HydrologyStats
    metrics: PlanetMetrics


def generate_planet(
    params: WorldParams,
    *,
    config: GeneratorConfig | None = None,
    rng: RngStream | None = None,
    progress: ProgressCallback | None = None,
) -> PlanetResult:
    """Run the whole simulation for ``params``.

    Each round drifts plates and reshapes the surface, then recomputes sea
    level, climate, clouds and drainage on the new surface. The final round
    moves no plates and erodes nothing; its coastline corrections run before
    drainage, so the returned river and lake network matches the returned
    heights.
    """

    params.validate()
    cfg = config or GeneratorConfig()
    rng = rng or RngStream(params.seed)
    rounds = params.rounds

    def report(phase: SimulationPhase, step: int) -> None:
        if progress is not None:
            progress(phase, step, rounds)

    report(SimulationPhase.INITIALIZING, 0)
    grid = Grid(params.width, params.height, params.topology, params.wrap)
    tiles = TileField.empty(grid.size)
    tiles.elevation[:] = synthesize_heights(grid, rng.stage("heights"), cfg.height)

    plate_rng = rng.stage("plates")
    plates = place_plates(grid, plate_rng, rounds, cfg.plates)
    assign_tiles(grid, tiles, plates)

    weather = build_weather(grid, params.tempered)
    air = AirColumn.empty(len(cfg.clouds.layer_heights_m), grid.size)
    lakes = default_lake_table(grid, cfg.hydrology)
    balance = MassBalance()

    impact_rng = rng.stage("impacts")
    island_rng = rng.stage("islands")
    cloud_rng = rng.stage("clouds")
    slide_rng = rng.stage("landslides")

    sea_height = 0
    stats: HydrologyStats | None = None
    for round_no in range(rounds):
        report(SimulationPhase.TECTONIC_ROUND, round_no + 1)
        final = round_no == rounds - 1

        if not final:
            advance_plates(grid, tiles, plates, plate_rng, cfg.plates)
            asteroid_strike(grid, tiles, impact_rng, cfg.impacts, cfg.plates)
            apply_erosion(tiles, cfg.erosion)
            diffuse_undersea(grid, tiles, cfg.erosion)
            landslide(grid, tiles, sea_height, slide_rng, balance, cfg.erosion)

        level = recompute_sea_level(tiles, params.land)
        sea_height = level.height
        balance.borrow(level.raised_mass)
        if cfg.sealevel.fix_islands:
            fix_single_tile_islands(grid, tiles, sea_height, island_rng, balance)
        if cfg.sealevel.fill_small_seas:
            fill_small_seas(grid, tiles, sea_height, cfg.sealevel.min_sea_size, balance)
        apply_temperatures(grid, tiles, weather, sea_height, cfg.climate)

        air.lift_buried(ground_layers(height_above_sea(tiles, sea_height), cfg.clouds))
        evaporate(air, tiles, sea_height, cfg.clouds)
        transport(grid, air, tiles, weather, sea_height, cloud_rng, cfg.clouds)
        fallen = precipitate(air, tiles, sea_height, cfg.clouds)

        stats, borrowed = run_hydrology(grid, tiles, lakes, sea_height, params.wateronland, cfg.hydrology)
        balance.borrow(borrowed)

        if not final:
            transport_rocks(grid, tiles, cfg.erosion)
            _clamp_heights(tiles, balance)
            compute_erosion(grid, tiles, weather, cfg.erosion)

        logger.debug(
            "Round complete",
            round=round_no + 1,
            rounds=rounds,
            sea_height=sea_height,
            rain=fallen,
            lakes=stats.lakes_active,
            rivers=stats.river_tiles,
            outstanding_mass=balance.outstanding,
        )

    report(SimulationPhase.OUTPUT, rounds)
    if stats is None:
        raise SimulationError("no simulation rounds were run")
    metrics = summarize(grid, tiles, sea_height, balance)
    shape = (grid.height, grid.width)
    summaries = []
    for lake in lakes.roots():
        ox, oy = grid.coords(lake.outflow) if lake.outflow >= 0 else (-1, -1)
        summaries.append(LakeSummary(handle=lake.handle, outflow_x=ox, outflow_y=oy, size=lake.count, height=lake.level))

    logger.info(
        "Planet generated",
        width=grid.width,
        height=grid.height,
        rounds=rounds,
        sea_height=sea_height,
        plates=len(plates),
        lakes=len(summaries),
        river_tiles=stats.river_tiles,
        mass_borrowed=balance.borrowed,
        mass_repaid=balance.repaid,
    )
    return PlanetResult(
        params=params,
        width=grid.width,
        height=grid.height,
        rounds=rounds,
        sea_height=sea_height,
        elevation=tiles.elevation.reshape(shape).copy(),
        terrain=tiles.terrain.reshape(shape).copy(),
        temperature=tiles.temperature.reshape(shape).copy(),
        wetness=tiles.wetness.reshape(shape).copy(),
        waterflow=tiles.waterflow.reshape(shape).copy(),
        steepness=tiles.steepness.reshape(shape).copy(),
        outflow=tiles.outflow.reshape(shape).copy(),
        river=tiles.river.reshape(shape).copy(),
        lake_id=tiles.lake.reshape(shape).copy(),
        sediment=tiles.sediment.reshape(shape).copy(),
        plate_ids=tiles.plate.reshape(shape).copy(),
        lakes=tuple(summaries),
        plate_count=len(plates),
        mass_borrowed=balance.borrowed,
        mass_repaid=balance.repaid,
        hydrology=stats,
        metrics=metrics,
    )


def _clamp_heights(tiles: TileField, balance: MassBalance) -> None:
    over = np.clip(tiles.elevation.astype(np.int64) - MAX_HEIGHT_M, 0, None)
    if np.any(over):
        balance.borrow(-int(over.sum()))
        tiles.elevation[:] = np.minimum(tiles.elevation, MAX_HEIGHT_M)
