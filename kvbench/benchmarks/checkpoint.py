from __future__ import annotations

import logging

LOGGER = logging.getLogger("kvbench.benchmark")

DEFAULT_CHECKPOINT_PAGES = 8


class CheckpointPolicy:
    """Stand-in for an automatic WAL checkpoint driven by logical bytes written.

    The engine has no periodic flush of its own, so the write workload asks this
    policy after every transaction whether ``pages`` pages worth of payload have
    been written since the last trigger.
    """

    def __init__(self, page_size: int, pages: int = DEFAULT_CHECKPOINT_PAGES, baseline: int = 0) -> None:
        if page_size <= 0 or pages <= 0:
            raise ValueError("page_size and pages must be positive")
        self.page_size = page_size
        self.pages = pages
        self.baseline = baseline
        self.triggered = 0

    @property
    def threshold_bytes(self) -> int:
        return self.page_size * self.pages

    def observe(self, total_bytes: int) -> bool:
        if (total_bytes - self.baseline) // self.page_size < self.pages:
            return False
        LOGGER.debug(
            "checkpoint after %d bytes (threshold %d)",
            total_bytes - self.baseline,
            self.threshold_bytes,
        )
        self.baseline = total_bytes
        self.triggered += 1
        return True
