from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from ..engine import Durability, Engine, EngineOptions, open_engine
from .config import RunConfig

LOGGER = logging.getLogger("kvbench.benchmark.store")

DEFAULT_CONTAINER = "default"
STORE_PREFIX = "kvbench-"

EngineOpener = Callable[[EngineOptions, Path], Engine]


class Store:
    """Owns the single open engine handle of a benchmark run."""

    def __init__(self, config: RunConfig, opener: EngineOpener = open_engine) -> None:
        self._config = config
        self._opener = opener
        self._engine: Engine | None = None
        self._number = 0

    @property
    def directory(self) -> Path:
        return self._config.db

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("store is not open")
        return self._engine

    def path_for(self, number: int) -> Path:
        return self.directory / f"{STORE_PREFIX}{number}.db"

    def remove_stale_files(self) -> int:
        if not self.directory.is_dir():
            return 0
        removed = 0
        for path in sorted(self.directory.glob(f"{STORE_PREFIX}*")):
            if path.is_file():
                path.unlink()
                removed += 1
        if removed:
            LOGGER.info("Removed %d stale store file(s) from %s", removed, self.directory)
        return removed

    def open(self, durability: Durability = Durability.OFF) -> Engine:
        if self._engine is not None:
            raise RuntimeError("store is already open")
        self._number += 1
        options = EngineOptions(
            durability=durability,
            lock_mode="exclusive",
            cache_size=self._config.cache_size,
            page_size=self._config.page_size,
        )
        engine = self._opener(options, self.path_for(self._number))
        self._engine = engine
        with engine.update() as txn:
            txn.create_or_open(DEFAULT_CONTAINER)
        return engine

    def reopen(self, durability: Durability) -> Engine:
        self.close()
        return self.open(durability)

    def close(self) -> None:
        engine, self._engine = self._engine, None
        if engine is not None:
            engine.close()

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
