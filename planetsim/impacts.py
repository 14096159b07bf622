"""Asteroid strikes: occasional craters with the ejecta thrown onto the rim."""

from __future__ import annotations

import numpy as np
import structlog

from planetsim.config import ImpactConfig, PlateConfig
from planetsim.plates import mountain_check
from planetsim.tiles import TileField
from planetsim.topology import Grid


logger = structlog.get_logger()


def asteroid_strike(
    grid: Grid,
    tiles: TileField,
    rng: np.random.Generator,
    config: ImpactConfig | None = None,
    plate_config: PlateConfig | None = None,
) -> int:
    """Maybe hit the planet; return the crater radius, or 0 for no strike.

    The crater is deepest at the centre and shallows toward its edge. All
    excavated height lands on the ring just outside the crater, so the
    strike conserves mass; rim tiles pushed over the height ceiling spill.
    """

    cfg = config or ImpactConfig()
    if rng.random() >= cfg.chance:
        return 0
    radius = int(rng.integers(1, cfg.max_radius + 1))
    centre = int(rng.integers(0, grid.size))
    x, y = grid.coords(centre)

    dist = grid.sqdist_field(x, y)
    r2 = radius * radius
    crater = np.flatnonzero(dist <= r2 + 1e-9)
    rim = np.flatnonzero((dist > r2 + 1e-9) & (dist <= (radius + 1) ** 2 + 1e-9))
    if rim.size == 0:
        return 0

    elevation = tiles.elevation
    depth = np.trunc(cfg.depth_m * (1.0 - dist[crater] / (r2 + 1))).astype(np.int64)
    dug = np.minimum(depth, elevation[crater].astype(np.int64))
    elevation[crater] -= dug.astype(np.int32)
    tiles.sediment[crater] = np.minimum(tiles.sediment[crater], elevation[crater])

    total = int(dug.sum())
    share, spare = divmod(total, int(rim.size))
    elevation[rim] += share
    elevation[rim[0]] += spare
    for idx in rim:
        mountain_check(grid, tiles, int(idx), rng, plate_config)

    logger.debug("Asteroid strike", x=x, y=y, radius=radius, excavated_m=total)
    return radius
