"""Lake records addressed by integer handles, with union-find merging."""

from __future__ import annotations

from dataclasses import dataclass, field
import heapq

from planetsim.errors import LakeTableFull, SimulationError


@dataclass
class Lake:
    """One lake. ``parent`` is -1 while the lake is a live root."""

    handle: int
    serial: int
    level: int
    outflow: int = -1
    count: int = 0
    parent: int = -1
    members: list[int] = field(default_factory=list)
    heap: list[tuple[int, int]] = field(default_factory=list)
    queued: set[int] = field(default_factory=set)


class LakeTable:
    """Arena of lakes; a tile stores a handle and resolves it through ``find``."""

    def __init__(self, capacity: int, queue_capacity: int) -> None:
        self.capacity = int(capacity)
        self.queue_capacity = int(queue_capacity)
        self._lakes: list[Lake] = []

    def __len__(self) -> int:
        return len(self._lakes)

    def __getitem__(self, handle: int) -> Lake:
        return self._lakes[handle]

    def reset(self) -> None:
        self._lakes.clear()

    def create(self, serial: int, level: int) -> int:
        if len(self._lakes) >= self.capacity:
            raise LakeTableFull(f"lake table exhausted at {self.capacity} lakes")
        handle = len(self._lakes)
        self._lakes.append(Lake(handle=handle, serial=serial, level=level))
        return handle

    def find(self, handle: int) -> int:
        root = handle
        while self._lakes[root].parent != -1:
            root = self._lakes[root].parent
        while self._lakes[handle].parent != -1:
            nxt = self._lakes[handle].parent
            self._lakes[handle].parent = root
            handle = nxt
        return root

    def push(self, handle: int, height: int, tile: int) -> bool:
        """Queue a frontier tile once per lake; return False if already queued."""

        lake = self._lakes[handle]
        if tile in lake.queued:
            return False
        if len(lake.heap) >= self.queue_capacity:
            raise SimulationError(f"lake queue capacity {self.queue_capacity} exhausted")
        lake.queued.add(tile)
        heapq.heappush(lake.heap, (height, tile))
        return True

    def reopen(self, handle: int, height: int, tile: int) -> None:
        """Queue a tile again even if this lake has queued it before."""

        lake = self._lakes[handle]
        if len(lake.heap) >= self.queue_capacity:
            raise SimulationError(f"lake queue capacity {self.queue_capacity} exhausted")
        lake.queued.add(tile)
        heapq.heappush(lake.heap, (height, tile))

    def pop(self, handle: int) -> tuple[int, int]:
        lake = self._lakes[handle]
        if not lake.heap:
            raise SimulationError(f"pop from empty queue of lake {handle}")
        return heapq.heappop(lake.heap)

    def union(self, a: int, b: int) -> int:
        """Merge two lakes; the larger survives and takes the other's members and queue."""

        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        survivor, absorbed = (ra, rb) if self._lakes[ra].count >= self._lakes[rb].count else (rb, ra)
        keep = self._lakes[survivor]
        gone = self._lakes[absorbed]
        keep.count += gone.count
        keep.members.extend(gone.members)
        keep.level = max(keep.level, gone.level)
        for height, tile in gone.heap:
            if tile not in keep.queued:
                keep.queued.add(tile)
                keep.heap.append((height, tile))
        heapq.heapify(keep.heap)
        if len(keep.heap) > self.queue_capacity:
            raise SimulationError(f"lake queue capacity {self.queue_capacity} exhausted")
        keep.queued.update(gone.queued)
        gone.parent = survivor
        gone.count = 0
        gone.members = []
        gone.heap = []
        gone.queued = set()
        return survivor

    def roots(self) -> list[Lake]:
        return [lake for lake in self._lakes if lake.parent == -1 and lake.count > 0]
