from __future__ import annotations

import logging

from ..engine import NotFoundError
from .checkpoint import CheckpointPolicy
from .config import ReadWorkload, RunConfig, ScanWorkload, StoreState, WriteWorkload
from .datagen import CompressibleDataPool, RandomKeys, format_key, key_strategy
from .stats import Instrumentation
from .store import DEFAULT_CONTAINER, Store

LOGGER = logging.getLogger("kvbench.benchmark")

SKIP_EXISTING_MESSAGE = "skipping (--use_existing_db is true)"


class WorkloadExecutor:
    """Runs write, point-read and scan workloads against the open store."""

    def __init__(
        self,
        config: RunConfig,
        store: Store,
        instrumentation: Instrumentation,
        pool: CompressibleDataPool,
        random_keys: RandomKeys,
    ) -> None:
        self._config = config
        self._store = store
        self._instr = instrumentation
        self._pool = pool
        self._random_keys = random_keys
        self.last_policy: CheckpointPolicy | None = None

    def write(self, workload: WriteWorkload) -> None:
        config = self._config
        instr = self._instr

        if workload.state is StoreState.FRESH:
            if config.use_existing_db:
                instr.message = SKIP_EXISTING_MESSAGE
                return
            self._store.reopen(workload.durability)
            instr.start()

        num_entries = workload.num_entries(config)
        value_size = workload.resolved_value_size(config)
        if num_entries != config.num:
            instr.message = f"({num_entries} ops)"

        keys = key_strategy(workload.order, self._random_keys)
        policy = CheckpointPolicy(
            config.page_size, config.checkpoint_pages, baseline=instr.bytes
        )
        self.last_policy = policy
        engine = self._store.engine

        for start in range(0, num_entries, workload.batch_size):
            stop = min(start + workload.batch_size, num_entries)
            with engine.update() as txn:
                container = txn.create_or_open(DEFAULT_CONTAINER)
                for position in range(start, stop):
                    value = self._pool.generate(value_size)
                    key = format_key(keys.key_index(position, num_entries))
                    txn.put(container, key, value)
                    instr.add_bytes(len(key) + len(value))
                    instr.finished_single_op()

            if policy.observe(instr.bytes):
                engine.checkpoint(wait=True)

        LOGGER.debug(
            "write finished: %d entries, %d checkpoint(s)", num_entries, policy.triggered
        )

    def read(self, workload: ReadWorkload) -> None:
        instr = self._instr
        reads = workload.num_reads(self._config)
        keys = key_strategy(workload.order, self._random_keys)
        engine = self._store.engine
        found = 0

        for start in range(0, reads, workload.batch_size):
            stop = min(start + workload.batch_size, reads)
            with engine.view() as txn:
                container = txn.open(DEFAULT_CONTAINER)
                for position in range(start, stop):
                    key = format_key(keys.key_index(position, reads))
                    try:
                        value = txn.get(container, key)
                    except NotFoundError:
                        pass
                    else:
                        found += 1
                        instr.add_bytes(len(key) + len(value))
                    instr.finished_single_op()

        instr.message = f"({found} of {reads} found)"

    def read_sequential(self, workload: ScanWorkload) -> None:
        instr = self._instr
        reads = workload.num_reads(self._config)

        with self._store.engine.view() as txn:
            cursor = txn.new_cursor(txn.open(DEFAULT_CONTAINER))
            try:
                for _ in range(reads):
                    if not cursor.is_valid():
                        cursor.seek_first()
                        continue
                    instr.add_bytes(len(cursor.key()) + len(cursor.value()))
                    cursor.next()
                    instr.finished_single_op()
            finally:
                cursor.close()
