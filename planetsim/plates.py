"""Tectonic plates: placement, drift, collision uplift and rifting."""

from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np
import structlog

from planetsim.config import PlateConfig
from planetsim.tiles import TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


@dataclass
class Plate:
    """A drifting plate. ``anchor`` is the centre position at the last move."""

    ident: int
    cx: float
    cy: float
    anchor_x: float
    anchor_y: float
    vx: float
    vy: float
    radius_x: int = 0
    radius_y: int = 0


def plate_count_for(grid: Grid, config: PlateConfig) -> int:
    return min(3 * (grid.width + grid.height) // 32, config.max_plates)


def place_plates(
    grid: Grid,
    rng: np.random.Generator,
    rounds: int,
    config: PlateConfig | None = None,
) -> list[Plate]:
    """Scatter plate centres keeping a minimum separation between them.

    A plate that finds no free spot within its retry budget ends the
    attempt; the whole placement is retried while fewer than
    ``min_plates`` plates fit, keeping the best attempt.
    """

    cfg = config or PlateConfig()
    target = plate_count_for(grid, cfg)
    wanted = min(cfg.min_plates, target)
    speed = cfg.max_travel_tiles / max(rounds, 1)
    best: list[Plate] = []

    for _ in range(cfg.placement_rounds):
        placed: list[Plate] = []
        for ident in range(1, target + 1):
            plate = _try_place(grid, rng, placed, ident, speed, cfg)
            if plate is None:
                break
            placed.append(plate)
        if len(placed) > len(best):
            best = placed
        if len(best) >= wanted:
            break

    logger.info("Plates placed", count=len(best), requested=target)
    return best


def _try_place(
    grid: Grid,
    rng: np.random.Generator,
    placed: list[Plate],
    ident: int,
    speed: float,
    cfg: PlateConfig,
) -> Plate | None:
    for _ in range(cfg.placement_retries):
        x = float(rng.uniform(0.0, grid.width))
        y = float(rng.uniform(0.0, grid.height))
        if any(grid.sqdist(x, y, p.cx, p.cy) < cfg.min_separation_sq for p in placed):
            continue
        vx, vy = rng.uniform(-speed, speed, size=2)
        return Plate(ident=ident, cx=x, cy=y, anchor_x=x, anchor_y=y, vx=float(vx), vy=float(vy))
    return None


def assign_tiles(grid: Grid, tiles: TileField, plates: list[Plate]) -> None:
    """Give every tile to its nearest plate centre."""

    if not plates:
        return
    distances = np.stack([grid.sqdist_field(p.cx, p.cy) for p in plates], axis=0)
    nearest = np.argmin(distances, axis=0)
    idents = np.asarray([p.ident for p in plates], dtype=np.int16)
    tiles.plate[:] = idents[nearest]
    update_radii(grid, tiles, plates)


def update_radii(grid: Grid, tiles: TileField, plates: list[Plate]) -> None:
    """Recompute each plate's bounding half-extent around its centre."""

    for plate in plates:
        owned = np.flatnonzero(tiles.plate == plate.ident)
        if owned.size == 0:
            plate.radius_x = plate.radius_y = 0
            continue
        cx = math.floor(plate.cx) % grid.width if grid.wrap_x else math.floor(plate.cx)
        cy = math.floor(plate.cy) % grid.height if grid.wrap_y else math.floor(plate.cy)
        rx = grid.wrapped_axis_distance(grid.xs[owned], cx, axis="x")
        ry = grid.wrapped_axis_distance(grid.ys[owned], cy, axis="y")
        # One extra tile covers ground claimed during the last move.
        plate.radius_x = int(rx.max()) + 1
        plate.radius_y = int(ry.max()) + 1


def advance_plates(
    grid: Grid,
    tiles: TileField,
    plates: list[Plate],
    rng: np.random.Generator,
    config: PlateConfig | None = None,
) -> int:
    """Drift every plate one round; return the number of move events fired."""

    cfg = config or PlateConfig()
    moves = 0
    for plate in plates:
        plate.cx += plate.vx
        plate.cy += plate.vy
        stay = (plate.anchor_x - plate.cx) ** 2 + (plate.anchor_y - plate.cy) ** 2
        for direction in reversed(range(grid.direction_count)):
            ux, uy = grid.vectors[direction]
            moved = (plate.anchor_x + ux - plate.cx) ** 2 + (plate.anchor_y + uy - plate.cy) ** 2
            if moved < stay:
                move_plate(grid, tiles, plate, direction, rng, cfg)
                plate.anchor_x += float(ux)
                plate.anchor_y += float(uy)
                stay = moved
                moves += 1
    update_radii(grid, tiles, plates)
    return moves


def _sweep_axis(centre: int, radius: int, size: int, wraps: bool, descending: bool) -> list[int]:
    if wraps:
        if 2 * radius + 1 >= size:
            span = list(range(size))
        else:
            span = [(centre + d) % size for d in range(-radius, radius + 1)]
    else:
        span = list(range(max(centre - radius, 0), min(centre + radius, size - 1) + 1))
    if descending:
        span.reverse()
    return span


def move_plate(
    grid: Grid,
    tiles: TileField,
    plate: Plate,
    direction: int,
    rng: np.random.Generator,
    config: PlateConfig | None = None,
) -> None:
    """Shift all of a plate's tiles one step in ``direction``.

    Tiles ahead in the travel direction are handled first so each tile can
    be copied over its successor. Leading edges pile their height onto the
    tile they run into; trailing edges keep part of their height and leave
    the rest behind as a rift.
    """

    cfg = config or PlateConfig()
    odd_dx, odd_dy = grid.offsets(1)[direction]
    even_dx, even_dy = grid.offsets(0)[direction]
    cx = math.floor(plate.cx) % grid.width if grid.wrap_x else math.floor(plate.cx)
    cy = math.floor(plate.cy) % grid.height if grid.wrap_y else math.floor(plate.cy)
    xs = _sweep_axis(cx, plate.radius_x, grid.width, grid.wrap_x, odd_dx > 0 or even_dx > 0)
    ys = _sweep_axis(cy, plate.radius_y, grid.height, grid.wrap_y, odd_dy > 0 or even_dy > 0)

    elevation = tiles.elevation
    owner = tiles.plate
    sediment = tiles.sediment
    table = grid.neighbour_table
    low, high = cfg.rift_retention

    for x in xs:
        for y in ys:
            this = y * grid.width + x
            if owner[this] != plate.ident:
                continue
            nxt = int(table[this, direction])
            if nxt < 0:
                continue
            back = grid.step_back(x, y, direction)
            trailing = back is None or owner[back[1] * grid.width + back[0]] != plate.ident

            split = int(elevation[this])
            if trailing:
                elevation[this] = int(elevation[this] * rng.uniform(low, high))
                split -= int(elevation[this])

            if owner[nxt] != plate.ident:
                elevation[nxt] += elevation[this]
                mountain_check(grid, tiles, nxt, rng, cfg)
                if owner[nxt] == 0:
                    if rng.integers(0, cfg.claim_unclaimed_odds) != 0:
                        owner[nxt] = plate.ident
                elif rng.integers(0, cfg.claim_owned_odds) == 0:
                    owner[nxt] = plate.ident
            else:
                elevation[nxt] = elevation[this]
                sediment[nxt] = sediment[this]
                owner[nxt] = owner[this]

            if trailing:
                elevation[this] = split
                sediment[this] = min(int(sediment[this]), split)
                if rng.integers(0, cfg.keep_trailing_odds) != 0:
                    owner[this] = 0


def mountain_check(
    grid: Grid,
    tiles: TileField,
    start: int,
    rng: np.random.Generator,
    config: PlateConfig | None = None,
) -> int:
    """Spill height over the ceiling onto neighbours until nothing exceeds it.

    Returns the number of spills performed.
    """

    cfg = config or PlateConfig()
    elevation = tiles.elevation
    pending = [start]
    spills = 0
    while pending:
        idx = pending.pop()
        if elevation[idx] <= cfg.height_ceiling_m:
            continue
        neighbours = grid.all_neighbours(idx)
        excess = int(elevation[idx]) - cfg.spill_floor_m + int(rng.integers(0, cfg.spill_jitter_m))
        share = excess // len(neighbours)
        elevation[idx] -= share * len(neighbours)
        for n in neighbours[::-1]:
            elevation[n] += share
            pending.append(int(n))
        spills += 1
    return spills
