"""Deterministic splittable RNG streams."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib

import numpy as np


def _normalize_seed(seed: int) -> int:
    return int(seed) & ((1 << 64) - 1)


def derive_seed(parent_seed: int, key: str, *, namespace: str = "planetsim") -> int:
    """Derive a deterministic child seed from a parent seed and stage label."""

    payload = f"{namespace}:{_normalize_seed(parent_seed)}:{key}".encode("utf-8")
    digest = hashlib.blake2b(payload, digest_size=8, person=b"planetrng").digest()
    return int.from_bytes(digest, byteorder="big", signed=False)


@dataclass(frozen=True)
class RngStream:
    """Immutable seed holder; each simulation stage forks its own generator.

    Stages draw from their own stream in a fixed traversal order, so adding
    draws to one stage never shifts the sequence another stage sees.
    """

    seed: int
    namespace: str = "planetsim"

    def fork(self, key: str) -> "RngStream":
        if not key:
            raise ValueError("fork key must be non-empty")
        return RngStream(derive_seed(self.seed, key, namespace=self.namespace), self.namespace)

    def generator(self) -> np.random.Generator:
        return np.random.Generator(np.random.PCG64(np.uint64(_normalize_seed(self.seed))))

    def stage(self, key: str) -> np.random.Generator:
        return self.fork(key).generator()
