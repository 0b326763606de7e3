from __future__ import annotations

import contextlib
import io
from pathlib import Path

import pytest

from kvbench.benchmarks.config import RunConfig
from kvbench.benchmarks.harness import Benchmark
from kvbench.benchmarks.store import Store
from kvbench.engine import Container, EngineError, EngineOptions, NotFoundError


class FakeCursor:
    def __init__(self, data: dict[bytes, bytes]) -> None:
        self._data = data
        self._keys: list[bytes] = []
        self._index: int | None = None

    def seek_first(self) -> None:
        self._keys = sorted(self._data)
        self._index = 0

    def next(self) -> None:
        assert self._index is not None
        self._index += 1

    def is_valid(self) -> bool:
        return self._index is not None and self._index < len(self._keys)

    def key(self) -> bytes:
        return self._keys[self._index]

    def value(self) -> bytes:
        return self._data[self.key()]

    def close(self) -> None:
        self._index = None


class FakeTransaction:
    def __init__(self, engine: "FakeEngine", writable: bool) -> None:
        self._engine = engine
        self.writable = writable
        self.pending: dict[str, dict[bytes, bytes]] = {
            name: dict(data) for name, data in engine.containers.items()
        }

    def create_or_open(self, name: str) -> Container:
        if self.writable:
            self.pending.setdefault(name, {})
        return self.open(name)

    def open(self, name: str) -> Container:
        if name not in self.pending:
            raise NotFoundError(f"container {name!r} does not exist")
        return Container(name=name, table=name)

    def put(self, container: Container, key: bytes, value: bytes) -> None:
        if not self.writable:
            raise EngineError("put in read-only transaction")
        if self._engine.fail_put_at is not None and len(self._engine.puts) == self._engine.fail_put_at:
            raise EngineError("injected put failure")
        self._engine.puts.append(bytes(key))
        self.pending[container.name][bytes(key)] = bytes(value)

    def get(self, container: Container, key: bytes) -> bytes:
        self._engine.gets.append(bytes(key))
        try:
            return self.pending[container.name][bytes(key)]
        except KeyError:
            raise NotFoundError(f"key {key!r} not found") from None

    def new_cursor(self, container: Container) -> FakeCursor:
        return FakeCursor(self.pending[container.name])


class FakeEngine:
    name = "FakeEngine"
    version = "0.0"

    def __init__(self, options: EngineOptions, path: Path) -> None:
        self.options = options
        self.path = path
        self.containers: dict[str, dict[bytes, bytes]] = {}
        self.puts: list[bytes] = []
        self.gets: list[bytes] = []
        self.checkpoints: list[int] = []
        self.commits = 0
        self.rollbacks = 0
        self.open_transactions = 0
        self.closed = False
        self.fail_put_at: int | None = None

    @contextlib.contextmanager
    def _scope(self, writable: bool):
        if self.open_transactions:
            raise EngineError("a transaction is already open")
        self.open_transactions += 1
        txn = FakeTransaction(self, writable)
        try:
            yield txn
        except BaseException:
            self.rollbacks += 1
            raise
        else:
            if writable:
                self.containers = txn.pending
            self.commits += 1
        finally:
            self.open_transactions -= 1

    def update(self):
        return self._scope(writable=True)

    def view(self):
        return self._scope(writable=False)

    def checkpoint(self, wait: bool = True) -> None:
        self.checkpoints.append(len(self.puts))

    def get_property(self, name: str):
        if name == "kvbench.stats":
            return f"entries {sum(len(c) for c in self.containers.values())}"
        return None

    def close(self) -> None:
        self.closed = True


class FakeOpener:
    def __init__(self) -> None:
        self.engines: list[FakeEngine] = []

    def __call__(self, options: EngineOptions, path: Path) -> FakeEngine:
        engine = FakeEngine(options, path)
        self.engines.append(engine)
        return engine

    @property
    def current(self) -> FakeEngine:
        return self.engines[-1]


class FakeClock:
    def __init__(self, step: float = 0.000001) -> None:
        self.now = 0.0
        self.step = step

    def __call__(self) -> float:
        self.now += self.step
        return self.now


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def make_config(tmp_path):
    def factory(**overrides) -> RunConfig:
        settings = {"num": 1000, "db": tmp_path / "store"}
        settings.update(overrides)
        return RunConfig(**settings)

    return factory


@pytest.fixture
def make_benchmark(opener):
    def factory(config: RunConfig, clock=None) -> tuple[Benchmark, io.StringIO, io.StringIO]:
        out = io.StringIO()
        err = io.StringIO()
        kwargs = {"out": out, "err": err}
        if clock is not None:
            kwargs["clock"] = clock
        benchmark = Benchmark(config, store=Store(config, opener=opener), **kwargs)
        return benchmark, out, err

    return factory


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
