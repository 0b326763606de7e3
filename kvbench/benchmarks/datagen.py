from __future__ import annotations

import random
from typing import Protocol

from .config import DEFAULT_SEED, KEY_SIZE, Order

POOL_MIN_SIZE = 1024 * 1024
FRAGMENT_SIZE = 100


def compressible_fragment(rng: random.Random, compression_ratio: float, length: int) -> bytes:
    """Return ``length`` bytes that shrink to roughly ``compression_ratio`` when compressed.

    A random printable prefix of ``length * compression_ratio`` bytes is drawn and
    then repeated until the fragment is full.
    """
    raw_length = max(int(length * compression_ratio), 1)
    raw = bytes(ord(" ") + rng.randrange(95) for _ in range(raw_length))
    repeats = -(-length // raw_length)
    return (raw * repeats)[:length]


class CompressibleDataPool:
    """Reusable buffer of synthetic values handed out as rotating slices.

    The buffer is kept larger than common compression windows (32KB) and at
    least as large as the biggest value a run asks for, so slices never show
    visible periodicity.
    """

    def __init__(
        self,
        compression_ratio: float,
        max_slice: int = 0,
        seed: int = DEFAULT_SEED,
    ) -> None:
        rng = random.Random(seed)
        target = max(POOL_MIN_SIZE, max_slice)
        chunks: list[bytes] = []
        size = 0
        while size < target:
            piece = compressible_fragment(rng, compression_ratio, FRAGMENT_SIZE)
            chunks.append(piece)
            size += len(piece)
        self._data = memoryview(b"".join(chunks))
        self._pos = 0

    def __len__(self) -> int:
        return len(self._data)

    @property
    def position(self) -> int:
        return self._pos

    def generate(self, length: int) -> memoryview:
        if length < 0 or length > len(self._data):
            raise ValueError(
                f"requested slice of {length} bytes from a pool of {len(self._data)} bytes"
            )
        if self._pos + length > len(self._data):
            self._pos = 0
        start = self._pos
        self._pos += length
        return self._data[start : start + length]


def format_key(index: int) -> bytes:
    if index < 0 or index >= 10**KEY_SIZE:
        raise ValueError(f"key index {index} does not fit in {KEY_SIZE} digits")
    return b"%016d" % index


class KeyOrderStrategy(Protocol):
    def key_index(self, position: int, limit: int) -> int:
        ...


class SequentialKeys:
    def key_index(self, position: int, limit: int) -> int:
        return position


class RandomKeys:
    """Uniform key draws from a generator seeded once per harness."""

    def __init__(self, seed: int = DEFAULT_SEED) -> None:
        self._rng = random.Random(seed)

    def key_index(self, position: int, limit: int) -> int:
        return self._rng.randrange(limit)


def key_strategy(order: Order, random_keys: RandomKeys) -> KeyOrderStrategy:
    if order is Order.SEQUENTIAL:
        return SequentialKeys()
    return random_keys
