"""Grid topologies: neighbour tables, wraparound and distances."""

from __future__ import annotations

from enum import IntEnum
import math

import numpy as np
from scipy.sparse import csr_matrix


class Topology(IntEnum):
    SQUARE = 0
    ISO_SQUARE = 1
    HEX = 2
    ISO_HEX = 3


class WrapMode(IntEnum):
    NONE = 0
    X = 1
    XY = 2


# (dx, dy) per direction for odd and even rows. Adjacent directions come
# first; square topologies append their four diagonals.
_ODD_OFFSETS: dict[Topology, tuple[tuple[int, int], ...]] = {
    Topology.SQUARE: ((-1, 0), (1, 0), (0, -1), (0, 1), (-1, -1), (-1, 1), (1, -1), (1, 1)),
    Topology.ISO_SQUARE: ((0, -1), (1, -1), (0, 1), (1, 1), (0, -2), (-1, 0), (0, 2), (1, 0)),
    Topology.HEX: ((0, -1), (1, -1), (-1, 0), (1, 0), (0, 1), (1, 1)),
    Topology.ISO_HEX: ((0, -2), (0, -1), (1, -1), (0, 1), (1, 1), (0, 2)),
}
_EVEN_OFFSETS: dict[Topology, tuple[tuple[int, int], ...]] = {
    Topology.SQUARE: ((-1, 0), (1, 0), (0, -1), (0, 1), (-1, -1), (-1, 1), (1, -1), (1, 1)),
    Topology.ISO_SQUARE: ((-1, -1), (0, -1), (-1, 1), (0, 1), (0, -2), (-1, 0), (0, 2), (1, 0)),
    Topology.HEX: ((-1, -1), (0, -1), (-1, 0), (1, 0), (-1, 1), (0, 1)),
    Topology.ISO_HEX: ((0, -2), (-1, -1), (0, -1), (-1, 1), (0, 1), (0, 2)),
}

# Screen angle of each direction in degrees: 0 is right, 90 is down.
_ANGLES: dict[Topology, tuple[int, ...]] = {
    Topology.SQUARE: (180, 0, 270, 90, 225, 135, 315, 45),
    Topology.ISO_SQUARE: (225, 315, 135, 45, 270, 180, 90, 0),
    Topology.HEX: (240, 300, 180, 0, 120, 60),
    Topology.ISO_HEX: (270, 210, 330, 150, 30, 90),
}

_ADJACENT: dict[Topology, int] = {
    Topology.SQUARE: 4,
    Topology.ISO_SQUARE: 4,
    Topology.HEX: 6,
    Topology.ISO_HEX: 6,
}

_SQRT3 = math.sqrt(3.0)


class Grid:
    """A width x height tile grid with a topology and a wrap mode.

    Tiles are addressed either by (x, y) or by the flat index ``y * width + x``.
    """

    def __init__(self, width: int, height: int, topology: int | Topology, wrap: int | WrapMode) -> None:
        self.width = int(width)
        self.height = int(height)
        self.topology = Topology(topology)
        self.wrap = WrapMode(wrap)
        self.size = self.width * self.height
        self.wrap_x = self.wrap in (WrapMode.X, WrapMode.XY)
        self.wrap_y = self.wrap == WrapMode.XY

        self.direction_count = len(_ANGLES[self.topology])
        self.adjacent_count = _ADJACENT[self.topology]
        self.angles = _ANGLES[self.topology]
        radians = np.deg2rad(np.asarray(self.angles, dtype=np.float64))
        self.vectors = np.stack([np.cos(radians), np.sin(radians)], axis=1)
        self.opposite = tuple(
            self.angles.index((angle + 180) % 360) for angle in self.angles
        )

        ys, xs = np.divmod(np.arange(self.size, dtype=np.int64), self.width)
        self.xs = xs
        self.ys = ys
        self._geo_x, self._geo_y, self._scale = self._geometric(xs.astype(np.float64), ys.astype(np.float64))
        self._period_x, self._period_y = self._periods()
        self.neighbour_table = self._build_neighbour_table()

    def offsets(self, y: int) -> tuple[tuple[int, int], ...]:
        """Offset table for the row parity of ``y``."""

        return _ODD_OFFSETS[self.topology] if y & 1 else _EVEN_OFFSETS[self.topology]

    def index(self, x: int, y: int) -> int:
        return y * self.width + x

    def coords(self, idx: int) -> tuple[int, int]:
        y, x = divmod(int(idx), self.width)
        return x, y

    def normalize(self, x: int, y: int) -> tuple[int, int] | None:
        """Wrap periodic axes; return None for positions off a bounded edge."""

        if self.wrap_x:
            x %= self.width
        elif x < 0 or x >= self.width:
            return None
        if self.wrap_y:
            y %= self.height
        elif y < 0 or y >= self.height:
            return None
        return x, y

    def neighbour(self, x: int, y: int, direction: int) -> tuple[int, int] | None:
        dx, dy = self.offsets(y)[direction]
        return self.normalize(x + dx, y + dy)

    def step_back(self, x: int, y: int, direction: int) -> tuple[int, int] | None:
        """Tile whose step in ``direction`` lands on (x, y)."""

        # The source row has the other parity when dy is odd; when dy is even
        # both parity tables agree, so the other table is always right.
        dx, dy = self.offsets(y + 1)[direction]
        return self.normalize(x - dx, y - dy)

    def adjacent_neighbours(self, idx: int) -> np.ndarray:
        row = self.neighbour_table[idx, : self.adjacent_count]
        return row[row >= 0]

    def all_neighbours(self, idx: int) -> np.ndarray:
        row = self.neighbour_table[idx]
        return row[row >= 0]

    def direction_to(self, idx: int, target: int) -> int:
        row = self.neighbour_table[idx]
        hits = np.flatnonzero(row == target)
        if hits.size == 0:
            return -1
        return int(hits[0])

    def sqdist(self, x1: float, y1: float, x2: float, y2: float) -> float:
        """Squared topology-correct distance; adjacent tiles are 1 apart."""

        gx1, gy1, _ = self._geometric(np.float64(x1), np.float64(y1))
        gx2, gy2, _ = self._geometric(np.float64(x2), np.float64(y2))
        dx = self._wrap_delta(gx1 - gx2, self._period_x, self.wrap_x)
        dy = self._wrap_delta(gy1 - gy2, self._period_y, self.wrap_y)
        return float((dx * dx + dy * dy) * self._scale)

    def sqdist_field(self, x: float, y: float) -> np.ndarray:
        """Squared distance from (x, y) to every tile, as a flat array."""

        gx, gy, _ = self._geometric(np.float64(x), np.float64(y))
        dx = self._wrap_delta(self._geo_x - gx, self._period_x, self.wrap_x)
        dy = self._wrap_delta(self._geo_y - gy, self._period_y, self.wrap_y)
        return (dx * dx + dy * dy) * self._scale

    def wrapped_axis_distance(self, values: np.ndarray, centre: float, *, axis: str) -> np.ndarray:
        """Absolute grid-coordinate distance along one axis, shortest way round."""

        size = self.width if axis == "x" else self.height
        wraps = self.wrap_x if axis == "x" else self.wrap_y
        delta = np.abs(values - centre)
        if wraps:
            delta = np.minimum(delta, size - delta)
        return delta

    def adjacency_graph(self, *, adjacent_only: bool = False) -> csr_matrix:
        """Sparse tile adjacency matrix for scipy.sparse.csgraph."""

        count = self.adjacent_count if adjacent_only else self.direction_count
        table = self.neighbour_table[:, :count]
        rows = np.repeat(np.arange(self.size, dtype=np.int64), count)
        cols = table.ravel()
        keep = cols >= 0
        data = np.ones(int(keep.sum()), dtype=np.int8)
        return csr_matrix((data, (rows[keep], cols[keep])), shape=(self.size, self.size))

    def _geometric(self, x, y):
        parity = np.floor(y).astype(np.int64) & 1
        shift = 0.5 * parity
        if self.topology == Topology.SQUARE:
            return x, y, 1.0
        if self.topology == Topology.ISO_SQUARE:
            return x + shift, 0.5 * y, 2.0
        if self.topology == Topology.HEX:
            return x + shift, y * (_SQRT3 / 2.0), 1.0
        return (x + shift) * _SQRT3, 0.5 * y, 1.0

    def _periods(self) -> tuple[float, float]:
        if self.topology == Topology.SQUARE:
            return float(self.width), float(self.height)
        if self.topology == Topology.ISO_SQUARE:
            return float(self.width), 0.5 * self.height
        if self.topology == Topology.HEX:
            return float(self.width), self.height * (_SQRT3 / 2.0)
        return self.width * _SQRT3, 0.5 * self.height

    @staticmethod
    def _wrap_delta(delta, period: float, wraps: bool):
        if not wraps:
            return delta
        return delta - period * np.round(delta / period)

    def _build_neighbour_table(self) -> np.ndarray:
        table = np.full((self.size, self.direction_count), -1, dtype=np.int64)
        odd = (self.ys & 1).astype(bool)
        for direction in range(self.direction_count):
            for parity_mask, offsets in ((odd, _ODD_OFFSETS), (~odd, _EVEN_OFFSETS)):
                dx, dy = offsets[self.topology][direction]
                nx = self.xs[parity_mask] + dx
                ny = self.ys[parity_mask] + dy
                valid = np.ones(nx.shape, dtype=bool)
                if self.wrap_x:
                    nx = np.mod(nx, self.width)
                else:
                    valid &= (nx >= 0) & (nx < self.width)
                if self.wrap_y:
                    ny = np.mod(ny, self.height)
                else:
                    valid &= (ny >= 0) & (ny < self.height)
                target = np.where(valid, ny * self.width + nx, -1)
                table[np.flatnonzero(parity_mask), direction] = target
        return table
