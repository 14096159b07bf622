"""Initial elevation synthesis from superposed periodic surfaces."""

from __future__ import annotations

import numpy as np
import structlog

from planetsim.config import HeightConfig
from planetsim.topology import Grid, Topology


logger = structlog.get_logger()


def _wave_extents(grid: Grid) -> tuple[float, float]:
    """Axis lengths holding a whole number of continent waves.

    The longer axis gets an integer multiple of the shorter axis' waves so
    continents stay round without seams at the wrap. Iso layouts pack two
    rows per visual row, so their effective height is halved.
    """

    width = float(grid.width)
    height = float(grid.height)
    eff_height = height / 2.0 if grid.topology in (Topology.ISO_SQUARE, Topology.ISO_HEX) else height
    if width > eff_height:
        factor = max(int((width + 0.5 * eff_height) / eff_height), 1)
        return width / factor, height
    if width < eff_height:
        factor = max(int((eff_height + 0.5 * width) / width), 1)
        return width, height / factor
    return width, height


def synthesize_heights(grid: Grid, rng: np.random.Generator, config: HeightConfig | None = None) -> np.ndarray:
    """Return flat int32 elevations in the 300..3700 band, smoothed."""

    cfg = config or HeightConfig()
    x_phase, y_phase = rng.uniform(-np.pi, np.pi, size=2)
    jitter = rng.uniform(-cfg.jitter, cfg.jitter, size=(2, grid.size))
    jx, jy = jitter[0], jitter[1]

    wave_x, wave_y = _wave_extents(grid)
    x = grid.xs.astype(np.float64)
    y = grid.ys.astype(np.float64)
    fx = 2.0 * np.pi * x / wave_x
    fy = 2.0 * np.pi * y / wave_y
    half_x = grid.width / 2.0 - 0.5
    half_y = grid.height / 2.0 - 0.5
    fxb = (x - half_x) * 2.0 * np.pi / grid.width
    fyb = (y - half_y) * 2.0 * np.pi / grid.height

    continents = np.sin(fx * 2.0 + jx + x_phase) * np.cos(fy * 2.0 + jy + y_phase)
    irregular = np.cos(fxb * 1.8 * (1.0 + np.sin(fyb + y_phase) / 2.0)) * np.cos(
        fyb * 1.8 * (1.0 + np.sin(fxb + x_phase) / 2.0)
    )
    detail = np.sin(fxb * 13.0 + jy) * np.sin(fyb * 13.0 + jx)

    height = (
        cfg.base_height_m
        + cfg.continent_amplitude_m * continents
        + cfg.irregular_amplitude_m * irregular
        + cfg.detail_amplitude_m * detail * irregular
    )
    elevation = np.trunc(height).astype(np.int32)
    for _ in range(cfg.smoothing_passes):
        elevation = smooth_heights(grid, elevation)

    logger.debug(
        "Heights synthesized",
        min_m=int(elevation.min()),
        max_m=int(elevation.max()),
        mean_m=float(elevation.mean()),
    )
    return elevation


def smooth_heights(grid: Grid, elevation: np.ndarray) -> np.ndarray:
    """One pass of self-weight-2 neighbour averaging over every tile."""

    table = grid.neighbour_table
    valid = table >= 0
    neighbour_heights = np.where(valid, elevation[np.where(valid, table, 0)], 0).astype(np.int64)
    total = 2 * elevation.astype(np.int64) + neighbour_heights.sum(axis=1)
    count = 2 + valid.sum(axis=1)
    return (total // count).astype(np.int32)
