"""Planet summary and connectivity metrics."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.sparse.csgraph import connected_components

from planetsim.erosion import MassBalance
from planetsim.tiles import LAKE, LAND, RIVER_BIG, RIVER_SMALL, SEA, TileField
from planetsim.topology import Grid


@dataclass(frozen=True)
class ConnectivityMetrics:
    """Connected component and coverage summary for a boolean tile mask."""

    num_components: int
    largest_component_area: int
    total_tiles: int
    largest_ratio: float
    fraction: float


@dataclass(frozen=True)
class PlanetMetrics:
    sea_height: int
    sea_fraction: float
    land: ConnectivityMetrics
    sea: ConnectivityMetrics
    lake_count: int
    lake_tiles: int
    largest_lake: int
    small_river_tiles: int
    big_river_tiles: int
    max_waterflow: int
    mean_land_height: float
    max_height: int
    mass_borrowed: int
    mass_repaid: int

    def to_dict(self) -> dict:
        return {
            "sea_height": self.sea_height,
            "sea_fraction": self.sea_fraction,
            "land_components": self.land.num_components,
            "largest_landmass": self.land.largest_component_area,
            "largest_land_ratio": self.land.largest_ratio,
            "land_fraction": self.land.fraction,
            "sea_components": self.sea.num_components,
            "lake_count": self.lake_count,
            "lake_tiles": self.lake_tiles,
            "largest_lake": self.largest_lake,
            "small_river_tiles": self.small_river_tiles,
            "big_river_tiles": self.big_river_tiles,
            "max_waterflow": self.max_waterflow,
            "mean_land_height": self.mean_land_height,
            "max_height": self.max_height,
            "mass_borrowed": self.mass_borrowed,
            "mass_repaid": self.mass_repaid,
        }


def connected_components_metrics(grid: Grid, mask: np.ndarray, *, adjacent_only: bool = False) -> ConnectivityMetrics:
    """Compute connected component statistics for a tile mask on ``grid``.

    Components follow the grid's own neighbourhood, wraparound included.
    """

    flat = np.asarray(mask, dtype=bool).ravel()
    if flat.shape[0] != grid.size:
        raise ValueError("mask does not match grid size")
    total = int(flat.sum())
    if total == 0:
        return ConnectivityMetrics(0, 0, 0, 0.0, 0.0)

    members = np.flatnonzero(flat)
    graph = grid.adjacency_graph(adjacent_only=adjacent_only)[members][:, members]
    count, labels = connected_components(graph, directed=False)
    sizes = np.bincount(labels, minlength=count)
    largest = int(sizes.max())
    return ConnectivityMetrics(
        num_components=int(count),
        largest_component_area=largest,
        total_tiles=total,
        largest_ratio=float(largest / total),
        fraction=float(total / grid.size),
    )


def summarize(grid: Grid, tiles: TileField, sea_height: int, balance: MassBalance) -> PlanetMetrics:
    land = tiles.terrain == LAND
    lake_ids = tiles.lake[tiles.terrain == LAKE]
    lake_sizes = np.unique(lake_ids, return_counts=True)[1] if lake_ids.size else np.zeros(0, dtype=np.int64)
    return PlanetMetrics(
        sea_height=int(sea_height),
        sea_fraction=float(np.mean(tiles.terrain == SEA)),
        land=connected_components_metrics(grid, land | (tiles.terrain == LAKE)),
        sea=connected_components_metrics(grid, tiles.terrain == SEA),
        lake_count=int(lake_sizes.size),
        lake_tiles=int(lake_ids.size),
        largest_lake=int(lake_sizes.max()) if lake_sizes.size else 0,
        small_river_tiles=int(np.count_nonzero(tiles.river == RIVER_SMALL)),
        big_river_tiles=int(np.count_nonzero(tiles.river == RIVER_BIG)),
        max_waterflow=int(tiles.waterflow.max()) if tiles.size else 0,
        mean_land_height=float(tiles.elevation[land].mean()) if np.any(land) else 0.0,
        max_height=int(tiles.elevation.max()),
        mass_borrowed=balance.borrowed,
        mass_repaid=balance.repaid,
    )
