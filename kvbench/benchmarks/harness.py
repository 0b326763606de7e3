from __future__ import annotations

import logging
import sys
import time
from pathlib import Path
from typing import Callable, TextIO

from .config import (
    KEY_SIZE,
    ReadWorkload,
    RunConfig,
    ScanWorkload,
    ScenarioPlan,
    StatsWorkload,
    Workload,
    WriteWorkload,
    parse_benchmarks,
)
from .datagen import CompressibleDataPool, RandomKeys
from .stats import Instrumentation, ScenarioResult
from .store import Store
from .workloads import WorkloadExecutor

LOGGER = logging.getLogger("kvbench.benchmark")

CPUINFO_PATH = Path("/proc/cpuinfo")


class Benchmark:
    """Runs the configured scenarios in order against one store at a time."""

    def __init__(
        self,
        config: RunConfig,
        store: Store | None = None,
        clock: Callable[[], float] = time.perf_counter,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self._config = config
        self._store = store or Store(config)
        self._out = out
        self._err = err
        self.instrumentation = Instrumentation(config.histogram, clock=clock, out=out, err=err)
        self.pool = CompressibleDataPool(
            config.compression_ratio,
            max_slice=config.largest_value_size(),
            seed=config.seed,
        )
        self.executor = WorkloadExecutor(
            config,
            self._store,
            self.instrumentation,
            self.pool,
            RandomKeys(config.seed),
        )
        self.results: list[ScenarioResult] = []

    @property
    def store(self) -> Store:
        return self._store

    def run(self) -> list[ScenarioResult]:
        plans = parse_benchmarks(self._config.benchmarks)
        if not self._config.use_existing_db:
            self._store.remove_stale_files()

        with self._store:
            self._store.open()
            self.print_header()
            for plan in plans:
                result = self.run_scenario(plan)
                if result is not None:
                    self.results.append(result)
        return self.results

    def run_scenario(self, plan: ScenarioPlan) -> ScenarioResult | None:
        if plan.workload is None:
            LOGGER.warning("unknown benchmark '%s'", plan.name)
            return None

        LOGGER.debug("Running scenario %s", plan.name)
        self.instrumentation.start()
        self._execute(plan.workload)
        return self.instrumentation.stop(plan.name)

    def _execute(self, workload: Workload) -> None:
        if isinstance(workload, WriteWorkload):
            self.executor.write(workload)
            self._store.engine.checkpoint(wait=True)
        elif isinstance(workload, ReadWorkload):
            self.executor.read(workload)
        elif isinstance(workload, ScanWorkload):
            self.executor.read_sequential(workload)
        elif isinstance(workload, StatsWorkload):
            self.print_property(workload.property_name)
        else:
            raise TypeError(f"unsupported workload {workload!r}")

    def print_property(self, name: str) -> None:
        stats = self._store.engine.get_property(name)
        if stats is None:
            stats = "(failed)"
        print(f"\n{stats}\n", file=self._out or sys.stdout)

    def print_header(self) -> None:
        config = self._config
        out = self._out or sys.stdout
        self.print_environment()
        raw_mb = (KEY_SIZE + config.value_size) * config.num / 1048576.0
        print(f"Keys:       {KEY_SIZE} bytes each", file=out)
        print(f"Values:     {config.value_size} bytes each", file=out)
        print(f"Entries:    {config.num}", file=out)
        print(f"RawSize:    {raw_mb:.1f} MB (estimated)", file=out)
        print("------------------------------------------------", file=out)

    def print_environment(self) -> None:
        err = self._err or sys.stderr
        engine = self._store.engine
        print(f"{engine.name + ':':<12}version {engine.version}", file=err)
        print(f"Date:       {time.ctime()}", file=err)
        cpu = read_cpuinfo(CPUINFO_PATH)
        if cpu is not None:
            count, model, cache = cpu
            print(f"CPU:        {count} * {model}", file=err)
            print(f"CPUCache:   {cache}", file=err)


def read_cpuinfo(path: Path) -> tuple[int, str, str] | None:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return None
    count = 0
    model = ""
    cache = ""
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip()
        if key == "model name":
            count += 1
            model = value.strip()
        elif key == "cache size":
            cache = value.strip()
    return count, model, cache
