"""Latitude, prevailing winds and surface temperatures."""

from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np
import structlog

from planetsim.config import ClimateConfig
from planetsim.tiles import SEA, TileField
from planetsim.topology import Grid, WrapMode


logger = structlog.get_logger()


@dataclass(frozen=True)
class WeatherCells:
    """Per-tile climate baseline, fixed for the whole simulation."""

    latitude: np.ndarray
    sea_temp: np.ndarray
    land_temp: np.ndarray
    wind1: np.ndarray
    wind2: np.ndarray
    strength: np.ndarray


@dataclass(frozen=True)
class TemperatureRange:
    sea_min: int
    sea_max: int
    land_min: int
    land_max: int


def _trunc_div(a: int, b: int) -> int:
    return int(a / b)


def temperature_range(tempered: int) -> TemperatureRange:
    """Baseline extremes; 0 gives an ice planet, 100 a hot one."""

    return TemperatureRange(
        sea_min=_trunc_div(-14 * (100 - tempered), 100) + 2,
        sea_max=_trunc_div(20 * tempered, 100) + 20,
        land_min=_trunc_div(-55 * (100 - tempered), 100) + 15,
        land_max=_trunc_div(20 * tempered, 100) + 50,
    )


def temperature_baselines(latitude: np.ndarray, tempered: int) -> tuple[np.ndarray, np.ndarray]:
    """Sea and land temperatures at sea level, linear in |latitude|."""

    rng = temperature_range(tempered)
    warmth = (90.0 - np.abs(latitude)) / 90.0
    sea = np.trunc(warmth * (rng.sea_max - rng.sea_min) + rng.sea_min).astype(np.int16)
    land = np.trunc(warmth * (rng.land_max - rng.land_min) + rng.land_min).astype(np.int16)
    return sea, land


def latitude_fields(grid: Grid) -> tuple[np.ndarray, np.ndarray]:
    """Latitude in degrees and the local "east" angle for every tile.

    Maps wrapped on both axes have two round poles, one at the corner and
    one at the map centre. Latitude comes from the relative distance to
    them and east is perpendicular to the nearer pole's radius. One
    quadrant is computed and mirrored into the other three.
    """

    latitude = np.zeros((grid.height, grid.width), dtype=np.float64)
    east = np.zeros((grid.height, grid.width), dtype=np.float64)

    if grid.wrap != WrapMode.XY:
        rows = np.arange(grid.height, dtype=np.float64) / (grid.height - 1) * 180.0 - 90.0
        latitude[:] = rows[:, None]
        return latitude.ravel(), east.ravel()

    w, h = grid.width, grid.height
    for x in range((w + 1) // 2):
        for y in range((h + 1) // 2):
            dx1 = x / w
            dx2 = (w // 2 - x) / w
            dy1 = y / h
            dy2 = (h // 2 - y) / h
            r1 = math.hypot(dx1, dy1)
            r2 = math.hypot(dx2, dy2)
            lat = r1 / (r1 + r2) * 180.0 - 90.0
            if r1 < r2:
                angle = 180.0 * math.atan2(dy1, dx1) / math.pi + 90.0
            else:
                angle = 180.0 - 180.0 * math.atan2(dy2, dx2) / math.pi + 90.0
            for qx, qy, qeast in (
                (x, y, angle),
                (w - x - 1, y, 180.0 - angle),
                (x, h - y - 1, 360.0 - angle),
                (w - x - 1, h - y - 1, 179.9 + angle),
            ):
                latitude[qy, qx] = lat
                east[qy, qx] = qeast
    return latitude.ravel(), east.ravel()


def wind_angle(latitude: float) -> tuple[float, int]:
    """Direction the air moves (0 right, 90 down) and strength 0..3."""

    if latitude < -65.0:
        return 108.0 - latitude * 1.8, 2  # south polar easterlies
    if latitude < -60.0:
        return 0.0, 0
    if latitude < -35.0:
        return 153.0 + latitude * 1.8, 2  # westerlies
    if latitude < -30.0:
        return 0.0, 0  # subtropical high
    if latitude < -5.0:
        return 198.0 - 2.4 * latitude, 3  # trade winds
    if latitude < 5.0:
        return 180.0 - 5.0 * latitude, 1  # doldrums
    if latitude < 30.0:
        return 162.0 - 2.4 * latitude, 3
    if latitude < 35.0:
        return 0.0, 0
    if latitude < 60.0:
        return 207.0 + latitude * 1.8, 2
    if latitude < 65.0:
        return 0.0, 0
    return 252.0 - 1.8 * latitude, 2


def nearest_directions(grid: Grid, angle: float) -> tuple[int, int]:
    """The one or two grid directions bracketing ``angle``."""

    limit = 360.0 / grid.direction_count
    ranked = sorted(
        (min(abs(angle - a) % 360.0, 360.0 - abs(angle - a) % 360.0), n) for n, a in enumerate(grid.angles)
    )
    (best_diff, best), (second_diff, second) = ranked[0], ranked[1]
    if best_diff == 0.0 or second_diff >= limit:
        return best, best
    return best, second


def prevailing_wind(grid: Grid, latitude: float, east: float) -> tuple[int, int, int]:
    angle, strength = wind_angle(latitude)
    if strength == 0:
        return 0, 0, 0
    angle = (angle + east) % 360.0
    first, second = nearest_directions(grid, angle)
    return first, second, strength


def build_weather(grid: Grid, tempered: int) -> WeatherCells:
    latitude, east = latitude_fields(grid)
    sea, land = temperature_baselines(latitude, tempered)
    wind1 = np.zeros(grid.size, dtype=np.int8)
    wind2 = np.zeros(grid.size, dtype=np.int8)
    strength = np.zeros(grid.size, dtype=np.int8)
    cache: dict[tuple[float, float], tuple[int, int, int]] = {}
    for idx in range(grid.size):
        key = (float(latitude[idx]), float(east[idx]))
        if key not in cache:
            cache[key] = prevailing_wind(grid, *key)
        wind1[idx], wind2[idx], strength[idx] = cache[key]
    logger.debug("Weather cells built", tempered=tempered, windless=int((strength == 0).sum()))
    return WeatherCells(
        latitude=latitude,
        sea_temp=sea,
        land_temp=land,
        wind1=wind1,
        wind2=wind2,
        strength=strength,
    )


def apply_temperatures(
    grid: Grid,
    tiles: TileField,
    weather: WeatherCells,
    sea_height: int,
    config: ClimateConfig | None = None,
) -> None:
    """Sea or land baseline, elevation lapse, then neighbour smoothing."""

    cfg = config or ClimateConfig()
    above = tiles.elevation.astype(np.int64) - sea_height
    land_temp = weather.land_temp.astype(np.int64) - np.trunc(above / cfg.meters_per_degree).astype(np.int64)
    temp = np.where(tiles.terrain == SEA, weather.sea_temp.astype(np.int64), land_temp)
    for _ in range(cfg.smoothing_passes):
        temp = _smooth_rounded(grid, temp)
    tiles.temperature[:] = np.clip(temp, -128, 127).astype(np.int16)


def _smooth_rounded(grid: Grid, values: np.ndarray) -> np.ndarray:
    table = grid.neighbour_table
    valid = table >= 0
    total = 2 * values + np.where(valid, values[np.where(valid, table, 0)], 0).sum(axis=1)
    count = 2 + valid.sum(axis=1)
    half = count // 2
    # Round half away from zero.
    return np.where(total < 0, -((-total + half) // count), (total + half) // count)
