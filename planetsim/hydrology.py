"""Flow routing, lake flooding and river marking.

Every round the land is re-drained from scratch:

1. each non-sea tile picks one outflow neighbour (steepest descent, biased
   toward last round's big rivers, always preferring the sea);
2. tiles are drained from the highest down; each walk carries runoff
   downhill, picking up the runoff of every tile it crosses once;
3. a walk that reaches a pit floods a lake with a priority queue until it
   finds an exit, merging with any other lake it runs into;
4. the strongest flows become visible rivers and tiny lakes are dissolved.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import structlog

from planetsim.config import HydrologyConfig
from planetsim.errors import SimulationError
from planetsim.lakes import LakeTable
from planetsim.tiles import LAKE, LAND, RIVER_BIG, RIVER_NONE, RIVER_SMALL, SEA, TileField, log2_floor
from planetsim.topology import Grid


logger = structlog.get_logger()

_UNREACHABLE = np.iinfo(np.int64).max


@dataclass(frozen=True)
class HydrologyStats:
    walks: int
    lakes_created: int
    lakes_active: int
    lake_tiles: int
    terminal_lakes: int
    lakes_dissolved: int
    river_tiles: int
    big_river_tiles: int


def steepness_for_drop(drop):
    """1 + floor(log2(drop)) for positive drops, 0 for flat or rising ground."""

    drop = np.asarray(drop, dtype=np.int64)
    return np.where(drop > 0, 1 + log2_floor(drop), 0)


def default_lake_table(grid: Grid, config: HydrologyConfig) -> LakeTable:
    capacity = config.max_lakes or grid.size
    queue_capacity = config.lake_queue_capacity or 2 * grid.size
    return LakeTable(capacity, queue_capacity)


class HydrologyEngine:
    """Drains one round of rain off the land."""

    def __init__(
        self,
        grid: Grid,
        tiles: TileField,
        lakes: LakeTable,
        sea_height: int,
        wateronland: int,
        config: HydrologyConfig | None = None,
    ) -> None:
        self.grid = grid
        self.tiles = tiles
        self.lakes = lakes
        self.sea_height = int(sea_height)
        self.wateronland = int(wateronland)
        self.config = config or HydrologyConfig()
        self.table = grid.neighbour_table
        self.hop_limit = self.config.hop_limit_factor * grid.size
        self.serial = 0
        self.walks = 0
        self.lakes_created = 0
        self.mass_borrowed = 0

    def run(self) -> HydrologyStats:
        self.reset()
        self.find_outflows()
        self.accumulate()
        dissolved = self.mark_rivers()
        self._resolve_lake_ids()

        roots = self.lakes.roots()
        stats = HydrologyStats(
            walks=self.walks,
            lakes_created=self.lakes_created,
            lakes_active=len(roots),
            lake_tiles=int(sum(lake.count for lake in roots)),
            terminal_lakes=sum(1 for lake in roots if lake.outflow < 0),
            lakes_dissolved=dissolved,
            river_tiles=int(np.count_nonzero(self.tiles.river)),
            big_river_tiles=int(np.count_nonzero(self.tiles.river == RIVER_BIG)),
        )
        logger.debug(
            "Hydrology done",
            walks=stats.walks,
            lakes=stats.lakes_active,
            lake_tiles=stats.lake_tiles,
            dissolved=stats.lakes_dissolved,
            rivers=stats.river_tiles,
        )
        return stats

    def reset(self) -> None:
        t = self.tiles
        t.oldflow[:] = np.minimum(log2_floor(t.waterflow), 127).astype(np.int8)
        t.waterflow[:] = 0
        t.steepness[:] = -1
        t.outflow[:] = -1
        t.lake[:] = -1
        t.river[:] = RIVER_NONE
        t.mark[:] = 0
        t.terrain[t.terrain == LAKE] = LAND
        self.lakes.reset()

    def find_outflows(self) -> None:
        """Choose the outflow direction and steepness of every non-sea tile.

        Only adjacent directions carry water. A sea neighbour always wins;
        otherwise a strictly lower neighbour that carried more flow last
        round attracts the water, so rivers coalesce; otherwise the lowest
        neighbour takes it.
        """

        t = self.tiles
        adjacent = self.table[:, : self.grid.adjacent_count]
        valid = adjacent >= 0
        safe = np.where(valid, adjacent, 0)
        elevation = t.elevation.astype(np.int64)
        heights = np.where(valid, elevation[safe], _UNREACHABLE)
        here = elevation[:, None]

        lowest = np.argmin(heights, axis=1)
        sea_neighbour = valid & (t.terrain[safe] == SEA)
        sea_dir = np.argmin(np.where(sea_neighbour, heights, _UNREACHABLE), axis=1)
        has_sea = sea_neighbour.any(axis=1)

        old = np.where(valid, t.oldflow[safe].astype(np.int64), -1)
        threshold = np.maximum(t.oldflow.astype(np.int64), 1)[:, None]
        attractive = valid & (heights < here) & (old > threshold)
        flow_dir = np.argmax(np.where(attractive, old, -1), axis=1)
        has_flow = attractive.any(axis=1)

        direction = np.where(has_sea, sea_dir, np.where(has_flow, flow_dir, lowest))
        target = heights[np.arange(t.size), direction]
        drop = elevation - np.maximum(target, self.sea_height)
        steep = steepness_for_drop(drop)

        land = t.terrain != SEA
        t.outflow[land] = direction[land].astype(np.int8)
        t.steepness[land] = steep[land].astype(np.int8)

    def accumulate(self) -> None:
        """Drain every tile, highest first, creating lakes at pits."""

        t = self.tiles
        candidates = np.flatnonzero(t.terrain != SEA)
        order = candidates[np.argsort(-t.elevation[candidates].astype(np.int64), kind="stable")]
        for source in order:
            if t.mark[source]:
                continue
            self._walk(int(source))

    def _pickup(self, idx: int) -> int:
        t = self.tiles
        cfg = self.config
        t.mark[idx] = 1
        steep = max(int(t.steepness[idx]), 0)
        runoff = cfg.runoff_numerator * int(t.wetness[idx]) // (cfg.runoff_base - steep // 3)
        if runoff <= 0:
            return 0
        t.wetness[idx] -= runoff
        return runoff.bit_length()

    def _is_pit(self, cur: int, nxt: int) -> bool:
        t = self.tiles
        return t.terrain[nxt] != SEA and t.lake[nxt] < 0 and t.elevation[nxt] >= t.elevation[cur]

    def _walk(self, source: int) -> None:
        # Dry walks still run so every pit gets routed.
        t = self.tiles
        flow = self._pickup(source)
        self.serial += 1
        self.walks += 1
        serial = self.serial
        cur = source
        t.waterflow[cur] += flow
        hops = 0
        while True:
            hops += 1
            if hops > self.hop_limit:
                raise SimulationError(f"river walk from tile {source} exceeded {self.hop_limit} hops")
            if t.lake[cur] >= 0:
                root = self.lakes.find(int(t.lake[cur]))
                cur = self.lakes[root].outflow
                if cur < 0:
                    return
            else:
                direction = int(t.outflow[cur])
                if direction < 0:
                    raise SimulationError(f"land tile {cur} has no outflow")
                nxt = int(self.table[cur, direction])
                if self._is_pit(cur, nxt):
                    self.flood_lake(cur, serial)
                    continue
                cur = nxt
            if t.terrain[cur] == SEA:
                t.waterflow[cur] += flow
                return
            if not t.mark[cur]:
                flow += self._pickup(cur)
            t.waterflow[cur] += flow

    def flood_lake(self, pit: int, serial: int) -> int:
        """Grow a lake from ``pit`` until some frontier tile has an exit.

        The tile that finds the exit becomes the lake's outflow and stays
        land. A frontier tile belonging to another lake merges that lake in.
        Returns the handle of the resulting lake, or -1 when the pit itself
        has an exit and no lake is needed.
        """

        t = self.tiles
        lakes = self.lakes
        exit_dir = self._find_exit(pit, -1, serial)
        if exit_dir >= 0:
            self._set_outflow(pit, exit_dir)
            return -1

        handle = lakes.create(serial, int(t.elevation[pit]))
        self.lakes_created += 1
        lakes.push(handle, int(t.elevation[pit]), pit)
        while True:
            lake = lakes[handle]
            if not lake.heap:
                lake.outflow = -1
                logger.debug("Terminal lake", handle=handle, tiles=lake.count, level=lake.level)
                return handle
            _, tile = lakes.pop(handle)
            owner = int(t.lake[tile])
            if owner >= 0:
                root = lakes.find(owner)
                if root != handle:
                    handle = self._merge(handle, root, serial)
                continue

            exit_dir = self._find_exit(tile, handle, serial)
            if exit_dir >= 0:
                self._set_outflow(tile, exit_dir)
                lake.outflow = tile
                return handle

            t.lake[tile] = handle
            t.terrain[tile] = LAKE
            t.outflow[tile] = -1
            lake.members.append(tile)
            lake.count += 1
            lake.level = max(lake.level, int(t.elevation[tile]))
            for n in self.grid.adjacent_neighbours(tile):
                n = int(n)
                if t.terrain[n] == SEA:
                    continue
                if t.lake[n] >= 0 and lakes.find(int(t.lake[n])) == handle:
                    continue
                lakes.push(handle, int(t.elevation[n]), n)

    def _merge(self, handle: int, other: int, serial: int) -> int:
        t = self.tiles
        lakes = self.lakes
        outlets = [lakes[h].outflow for h in (handle, other) if lakes[h].outflow >= 0]
        survivor = lakes.union(handle, other)
        lake = lakes[survivor]
        lake.serial = serial
        lake.outflow = -1
        for outlet in outlets:
            if t.lake[outlet] < 0:
                lakes.reopen(survivor, int(t.elevation[outlet]), outlet)
        return survivor

    def _find_exit(self, tile: int, handle: int, serial: int) -> int:
        """Direction of this tile's exit from the lake, or -1.

        Sea beats everything; then the lowest strictly lower tile; then a
        same-height tile of a lake from another walk. Candidates whose
        water would come back into this lake, or into a lake from the same
        walk, are rejected.
        """

        t = self.tiles
        here = int(t.elevation[tile])
        sea_best = (-1, 0)
        lower: list[tuple[int, int, int]] = []
        level: list[tuple[int, int]] = []
        for direction in range(self.grid.adjacent_count):
            n = int(self.table[tile, direction])
            if n < 0:
                continue
            h = int(t.elevation[n])
            if t.terrain[n] == SEA:
                if sea_best[0] < 0 or h < sea_best[1]:
                    sea_best = (direction, h)
                continue
            owner = int(t.lake[n])
            if owner >= 0 and self.lakes.find(owner) == handle:
                continue
            if h < here:
                lower.append((h, direction, n))
            elif h == here and owner >= 0:
                level.append((direction, n))
        if sea_best[0] >= 0:
            return sea_best[0]
        for _, direction, n in sorted(lower):
            if not self._drains_into(n, handle, serial, tile):
                return direction
        for direction, n in level:
            root = self.lakes.find(int(t.lake[n]))
            if self.lakes[root].serial == serial:
                continue
            if not self._drains_into(n, handle, serial, tile):
                return direction
        return -1

    def _drains_into(self, start: int, handle: int, serial: int, origin: int) -> bool:
        """Whether water entering ``start`` comes back to the flooding lake."""

        t = self.tiles
        seen: set[int] = set()
        cur = start
        while True:
            if cur == origin or cur in seen:
                return True
            if t.terrain[cur] == SEA:
                return False
            seen.add(cur)
            owner = int(t.lake[cur])
            if owner >= 0:
                root = self.lakes.find(owner)
                if root == handle or self.lakes[root].serial == serial:
                    return True
                cur = self.lakes[root].outflow
                if cur < 0:
                    return False
                continue
            direction = int(t.outflow[cur])
            if direction < 0:
                return False
            nxt = int(self.table[cur, direction])
            if self._is_pit(cur, nxt):
                return False
            cur = nxt

    def _set_outflow(self, tile: int, direction: int) -> None:
        t = self.tiles
        target = int(self.table[tile, direction])
        t.outflow[tile] = direction
        drop = int(t.elevation[tile]) - max(int(t.elevation[target]), self.sea_height)
        t.steepness[tile] = int(steepness_for_drop(drop))

    def mark_rivers(self) -> int:
        """Rank rivers, thin shallow lakes, then draw rivers to the sea.

        Returns the number of lakes dissolved.
        """

        top = self.rank_rivers()
        dissolved = self.thin_lakes(top)
        self.walk_visible_rivers(top)
        return dissolved

    def rank_rivers(self) -> np.ndarray:
        """Mark the strongest flows as rivers; return them, strongest first."""

        t = self.tiles
        cfg = self.config
        wet_land = int(np.count_nonzero(t.terrain != SEA))
        budget = wet_land * self.wateronland // cfg.river_share_divisor
        land = np.flatnonzero(t.terrain == LAND)
        order = land[np.argsort(-t.waterflow[land], kind="stable")]
        top = order[:budget]
        top = top[t.waterflow[top] > 0]
        big = top[: int(top.size * cfg.big_river_fraction)]
        t.river[top] = RIVER_SMALL
        t.river[big] = RIVER_BIG
        return top

    def thin_lakes(self, top: np.ndarray) -> int:
        """Dissolve one-tile-deep lakes that feed no river of their own.

        A lake qualifies when its outflow is too weak to be a river, or when
        everything flowing into it is already a marked river. It is only
        dissolved if every member touches the outflow tile; members then
        take the outflow tile's height and drain straight into it.
        """

        t = self.tiles
        threshold = int(t.waterflow[top[-1]]) if top.size else None
        dissolved = 0
        for lake in self.lakes.roots():
            out = lake.outflow
            if out < 0:
                continue
            weak = threshold is None or int(t.waterflow[out]) < threshold
            if not weak and not self._fed_only_by_rivers(lake.members):
                continue
            if not all(out in self.grid.adjacent_neighbours(m) for m in lake.members):
                continue
            out_height = int(t.elevation[out])
            for m in lake.members:
                self.mass_borrowed += out_height - int(t.elevation[m])
                t.elevation[m] = out_height
                t.terrain[m] = LAND
                t.lake[m] = -1
                t.outflow[m] = self.grid.direction_to(m, out)
                t.steepness[m] = 0
                t.waterflow[m] = t.waterflow[out]
            lake.count = 0
            lake.members = []
            dissolved += 1
        return dissolved

    def _fed_only_by_rivers(self, members: list[int]) -> bool:
        t = self.tiles
        member_set = set(members)
        inflows = 0
        for m in members:
            for n in self.grid.adjacent_neighbours(m):
                n = int(n)
                if n in member_set or t.terrain[n] != LAND:
                    continue
                direction = int(t.outflow[n])
                if direction < 0 or int(self.table[n, direction]) not in member_set:
                    continue
                if t.river[n] == RIVER_NONE:
                    return False
                inflows += 1
        return inflows > 0

    def walk_visible_rivers(self, top: np.ndarray) -> None:
        """Extend rivers downstream from every river tile and lake outflow."""

        t = self.tiles
        starts = [int(i) for i in top]
        starts.extend(lake.outflow for lake in self.lakes.roots() if lake.outflow >= 0)
        walked = np.zeros(t.size, dtype=bool)
        for start in starts:
            cur = start
            hops = 0
            while t.terrain[cur] == LAND and not walked[cur]:
                hops += 1
                if hops > self.hop_limit:
                    raise SimulationError(f"visible river from tile {start} exceeded {self.hop_limit} hops")
                walked[cur] = True
                if t.river[cur] == RIVER_NONE:
                    t.river[cur] = RIVER_SMALL
                direction = int(t.outflow[cur])
                if direction < 0:
                    break
                cur = int(self.table[cur, direction])

    def _resolve_lake_ids(self) -> None:
        t = self.tiles
        members = np.flatnonzero(t.lake >= 0)
        for idx in members:
            t.lake[idx] = self.lakes.find(int(t.lake[idx]))


def run_hydrology(
    grid: Grid,
    tiles: TileField,
    lakes: LakeTable,
    sea_height: int,
    wateronland: int,
    config: HydrologyConfig | None = None,
) -> tuple[HydrologyStats, int]:
    """Run one hydrology pass; return its stats and the mass borrowed by lake thinning."""

    engine = HydrologyEngine(grid, tiles, lakes, sea_height, wateronland, config)
    stats = engine.run()
    return stats, engine.mass_borrowed


def trace_outflow(
    grid: Grid,
    terrain: np.ndarray,
    outflow: np.ndarray,
    lake_ids: np.ndarray,
    lake_outlets: dict[int, int],
    start: int,
) -> list[int]:
    """Tiles visited following outflow from ``start`` until sea or a terminal lake.

    Lake members jump to their lake's outflow tile. Raises SimulationError
    if the path does not end within one visit per tile.
    """

    table = grid.neighbour_table
    path = [start]
    cur = start
    for _ in range(2 * grid.size + 1):
        if terrain[cur] == SEA:
            return path
        if lake_ids[cur] >= 0:
            cur = lake_outlets.get(int(lake_ids[cur]), -1)
            if cur < 0:
                return path
        else:
            direction = int(outflow[cur])
            if direction < 0:
                raise SimulationError(f"tile {cur} has no outflow")
            cur = int(table[cur, direction])
        path.append(cur)
    raise SimulationError(f"outflow from tile {start} does not terminate")
