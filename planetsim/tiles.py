"""Per-tile simulation state stored as flat numpy arrays."""

from __future__ import annotations

from dataclasses import dataclass, fields

import numpy as np


SEA = np.uint8(0)
LAND = np.uint8(1)
LAKE = np.uint8(2)

RIVER_NONE = np.uint8(0)
RIVER_SMALL = np.uint8(1)
RIVER_BIG = np.uint8(2)

MAX_HEIGHT_M = 10000


@dataclass
class TileField:
    """Mutable struct-of-arrays tile record, indexed by ``y * width + x``."""

    elevation: np.ndarray
    terrain: np.ndarray
    plate: np.ndarray
    temperature: np.ndarray
    wetness: np.ndarray
    waterflow: np.ndarray
    oldflow: np.ndarray
    steepness: np.ndarray
    outflow: np.ndarray
    lake: np.ndarray
    sediment: np.ndarray
    pending_erosion: np.ndarray
    rocks: np.ndarray
    rockflow: np.ndarray
    mark: np.ndarray
    river: np.ndarray

    @classmethod
    def empty(cls, size: int) -> "TileField":
        return cls(
            elevation=np.zeros(size, dtype=np.int32),
            terrain=np.full(size, LAND, dtype=np.uint8),
            plate=np.zeros(size, dtype=np.int16),
            temperature=np.zeros(size, dtype=np.int16),
            wetness=np.zeros(size, dtype=np.int64),
            waterflow=np.zeros(size, dtype=np.int64),
            oldflow=np.zeros(size, dtype=np.int8),
            steepness=np.full(size, -1, dtype=np.int8),
            outflow=np.full(size, -1, dtype=np.int8),
            lake=np.full(size, -1, dtype=np.int32),
            sediment=np.zeros(size, dtype=np.int32),
            pending_erosion=np.zeros(size, dtype=np.int64),
            rocks=np.zeros(size, dtype=np.int64),
            rockflow=np.zeros(size, dtype=np.int64),
            mark=np.zeros(size, dtype=np.int32),
            river=np.zeros(size, dtype=np.uint8),
        )

    @property
    def size(self) -> int:
        return int(self.elevation.shape[0])

    def sea_mask(self) -> np.ndarray:
        return self.terrain == SEA

    def land_mask(self) -> np.ndarray:
        return self.terrain == LAND

    def lake_mask(self) -> np.ndarray:
        return self.terrain == LAKE

    def copy(self) -> "TileField":
        return TileField(**{f.name: getattr(self, f.name).copy() for f in fields(self)})


def log2_floor(values: np.ndarray) -> np.ndarray:
    """Integer floor(log2(v)) for v >= 1, and 0 elsewhere."""

    values = np.asarray(values, dtype=np.int64)
    out = np.zeros(values.shape, dtype=np.int64)
    positive = values > 0
    out[positive] = np.floor(np.log2(values[positive].astype(np.float64))).astype(np.int64)
    return out
