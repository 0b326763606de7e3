from __future__ import annotations

import enum
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence, Union

from ..engine import STATS_PROPERTY, Durability

KEY_SIZE = 16
LARGE_VALUE_SIZE = 100 * 1000
DEFAULT_SEED = 301

DEFAULT_BENCHMARKS = (
    "fillseq,"
    "fillseqsync,"
    "fillseqbatch,"
    "fillrandom,"
    "fillrandsync,"
    "fillrandbatch,"
    "overwrite,"
    "overwritebatch,"
    "readrandom,"
    "readseq,"
    "fillrand100K,"
    "fillseq100K,"
    "readseq100K,"
    "readrand100K,"
)


class ConfigurationError(ValueError):
    """Raised for malformed or inconsistent benchmark settings."""


class Order(enum.Enum):
    SEQUENTIAL = "sequential"
    RANDOM = "random"


class StoreState(enum.Enum):
    FRESH = "fresh"
    EXISTING = "existing"


@dataclass(frozen=True)
class RunConfig:
    """Settings shared read-only by every component of a run."""

    benchmarks: str = DEFAULT_BENCHMARKS
    num: int = 1_000_000
    reads: int = -1
    value_size: int = 100
    histogram: bool = False
    compression_ratio: float = 0.5
    page_size: int = 4096
    num_pages: int = 1024
    use_existing_db: bool = False
    db: Path = field(default_factory=lambda: default_db_dir())
    checkpoint_pages: int = 8
    seed: int = DEFAULT_SEED
    output_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.reads < 0:
            object.__setattr__(self, "reads", self.num)
        object.__setattr__(self, "db", Path(self.db))
        if self.output_dir is not None:
            object.__setattr__(self, "output_dir", Path(self.output_dir))
        self._validate()

    @property
    def cache_size(self) -> int:
        return self.page_size * self.num_pages

    def largest_value_size(self) -> int:
        sizes = [self.value_size]
        for name in self.benchmark_names():
            workload = SCENARIOS.get(name)
            if isinstance(workload, WriteWorkload) and workload.value_size is not None:
                sizes.append(workload.value_size)
        return max(sizes)

    def benchmark_names(self) -> list[str]:
        return [name.strip() for name in self.benchmarks.split(",")]

    def _validate(self) -> None:
        if self.num < 0:
            raise ConfigurationError(f"--num must be >= 0, got {self.num}")
        if self.num >= 10**KEY_SIZE:
            raise ConfigurationError(f"--num must be < 10^{KEY_SIZE}, got {self.num}")
        if self.value_size < 0:
            raise ConfigurationError(f"--value_size must be >= 0, got {self.value_size}")
        if not 0.0 < self.compression_ratio <= 1.0:
            raise ConfigurationError(
                f"--compression_ratio must be in (0, 1], got {self.compression_ratio}"
            )
        if self.page_size < 512 or self.page_size > 65536 or self.page_size & (self.page_size - 1):
            raise ConfigurationError(
                f"--page_size must be a power of two between 512 and 65536, got {self.page_size}"
            )
        if self.num_pages <= 0:
            raise ConfigurationError(f"--num_pages must be > 0, got {self.num_pages}")
        if self.checkpoint_pages <= 0:
            raise ConfigurationError(
                f"--checkpoint_pages must be > 0, got {self.checkpoint_pages}"
            )


@dataclass(frozen=True)
class WriteWorkload:
    durability: Durability
    order: Order
    state: StoreState
    batch_size: int = 1
    entries_divisor: int = 1
    value_size: int | None = None

    def num_entries(self, config: RunConfig) -> int:
        return config.num // self.entries_divisor

    def resolved_value_size(self, config: RunConfig) -> int:
        return config.value_size if self.value_size is None else self.value_size


@dataclass(frozen=True)
class ReadWorkload:
    order: Order
    batch_size: int = 1
    reads_divisor: int = 1

    def num_reads(self, config: RunConfig) -> int:
        return config.reads // self.reads_divisor


@dataclass(frozen=True)
class ScanWorkload:
    def num_reads(self, config: RunConfig) -> int:
        return config.reads


@dataclass(frozen=True)
class StatsWorkload:
    property_name: str


Workload = Union[WriteWorkload, ReadWorkload, ScanWorkload, StatsWorkload]


def _write(durability: Durability, order: Order, state: StoreState, **kwargs) -> WriteWorkload:
    return WriteWorkload(durability=durability, order=order, state=state, **kwargs)


_ASYNC = Durability.OFF
_SYNC = Durability.FULL

SCENARIOS: dict[str, Workload] = {
    "fillseq": _write(_ASYNC, Order.SEQUENTIAL, StoreState.FRESH),
    "fillseqsync": _write(_SYNC, Order.SEQUENTIAL, StoreState.FRESH, entries_divisor=100),
    "fillseqbatch": _write(_ASYNC, Order.SEQUENTIAL, StoreState.FRESH, batch_size=1000),
    "fillrandom": _write(_ASYNC, Order.RANDOM, StoreState.FRESH),
    "fillrandsync": _write(_SYNC, Order.RANDOM, StoreState.FRESH, entries_divisor=100),
    "fillrandbatch": _write(_ASYNC, Order.RANDOM, StoreState.FRESH, batch_size=1000),
    "overwrite": _write(_ASYNC, Order.RANDOM, StoreState.EXISTING),
    "overwritebatch": _write(_ASYNC, Order.RANDOM, StoreState.EXISTING, batch_size=1000),
    "fillrand100K": _write(
        _ASYNC, Order.RANDOM, StoreState.FRESH, entries_divisor=1000, value_size=LARGE_VALUE_SIZE
    ),
    "fillseq100K": _write(
        _ASYNC, Order.SEQUENTIAL, StoreState.FRESH, entries_divisor=1000, value_size=LARGE_VALUE_SIZE
    ),
    "readseq": ScanWorkload(),
    "readrandom": ReadWorkload(order=Order.RANDOM),
    "readseq100K": ReadWorkload(order=Order.SEQUENTIAL, reads_divisor=1000),
    "readrand100K": ReadWorkload(order=Order.RANDOM, reads_divisor=1000),
    "stats": StatsWorkload(property_name=STATS_PROPERTY),
}


@dataclass(frozen=True)
class ScenarioPlan:
    """A requested scenario name and its workload; ``workload`` is None when unknown."""

    name: str
    workload: Workload | None

    @property
    def known(self) -> bool:
        return self.workload is not None


def parse_benchmarks(benchmarks: str | Sequence[str]) -> list[ScenarioPlan]:
    if isinstance(benchmarks, str):
        names = benchmarks.split(",")
    else:
        names = list(benchmarks)
    return [
        ScenarioPlan(name=name, workload=SCENARIOS.get(name))
        for name in (raw.strip() for raw in names)
        if name
    ]


def default_db_dir() -> Path:
    override = os.environ.get("KVBENCH_DB")
    if override:
        return Path(override)
    return Path(tempfile.gettempdir()) / "kvbench"
