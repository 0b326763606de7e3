from __future__ import annotations

import bisect
import math
import sys
import time
from dataclasses import dataclass, field
from typing import Callable, TextIO

import pandas as pd

SLOW_OP_MICROS = 20_000
FIRST_REPORT = 100
_DECADE_STEPS = (10, 12, 14, 16, 18, 20, 25, 30, 35, 40, 45, 50, 60, 70, 80, 90)


def _bucket_limits() -> tuple[float, ...]:
    limits: list[float] = [float(value) for value in range(1, 10)]
    for exponent in range(0, 10):
        limits.extend(float(step * 10**exponent) for step in _DECADE_STEPS)
    limits.append(math.inf)
    return tuple(limits)


BUCKET_LIMITS = _bucket_limits()


class Histogram:
    """Fixed-bucket accumulator of per-operation latencies in microseconds."""

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self._buckets = [0] * len(BUCKET_LIMITS)
        self.count = 0
        self.min = math.inf
        self.max = 0.0
        self._sum = 0.0
        self._sum_squares = 0.0

    def add(self, value: float) -> None:
        index = bisect.bisect_right(BUCKET_LIMITS, value)
        self._buckets[min(index, len(BUCKET_LIMITS) - 1)] += 1
        self.count += 1
        self.min = min(self.min, value)
        self.max = max(self.max, value)
        self._sum += value
        self._sum_squares += value * value

    def merge(self, other: "Histogram") -> None:
        for index, hits in enumerate(other._buckets):
            self._buckets[index] += hits
        self.count += other.count
        self.min = min(self.min, other.min)
        self.max = max(self.max, other.max)
        self._sum += other._sum
        self._sum_squares += other._sum_squares

    def average(self) -> float:
        if self.count == 0:
            return 0.0
        return self._sum / self.count

    def standard_deviation(self) -> float:
        if self.count == 0:
            return 0.0
        variance = (self._sum_squares * self.count - self._sum * self._sum) / (
            self.count * self.count
        )
        return math.sqrt(max(variance, 0.0))

    def median(self) -> float:
        return self.percentile(50.0)

    def percentile(self, p: float) -> float:
        if self.count == 0:
            return 0.0
        threshold = self.count * (p / 100.0)
        cumulative = 0
        for index, hits in enumerate(self._buckets):
            cumulative += hits
            if cumulative >= threshold:
                left = 0.0 if index == 0 else BUCKET_LIMITS[index - 1]
                right = BUCKET_LIMITS[index]
                if math.isinf(right):
                    return self.max
                left_sum = cumulative - hits
                pos = (threshold - left_sum) / hits if hits else 0.0
                value = left + (right - left) * pos
                return min(max(value, self.min), self.max)
        return self.max

    def buckets(self) -> list[tuple[float, float, int]]:
        """Non-empty buckets as ``(left, right, count)`` tuples."""
        rows = []
        for index, hits in enumerate(self._buckets):
            if hits:
                left = 0.0 if index == 0 else BUCKET_LIMITS[index - 1]
                rows.append((left, BUCKET_LIMITS[index], hits))
        return rows

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.buckets(), columns=["left_us", "right_us", "count"])

    def __str__(self) -> str:
        lines = [
            f"Count: {self.count:.0f}  Average: {self.average():.4f}  "
            f"StdDev: {self.standard_deviation():.2f}",
            f"Min: {(0.0 if self.count == 0 else self.min):.4f}  "
            f"Median: {self.median():.4f}  Max: {self.max:.4f}",
            "------------------------------------------------------",
        ]
        mult = 100.0 / self.count if self.count else 0.0
        cumulative = 0
        for left, right, hits in self.buckets():
            cumulative += hits
            marks = int(20 * (hits / self.count) + 0.5)
            lines.append(
                f"[ {left:7.0f}, {right:7.0f} ) {hits:7d} "
                f"{mult * hits:7.3f}% {mult * cumulative:7.3f}% {'#' * marks}"
            )
        return "\n".join(lines)


def next_report_threshold(current: int) -> int:
    if current < 1000:
        return current + 100
    if current < 5000:
        return current + 500
    if current < 10000:
        return current + 1000
    if current < 50000:
        return current + 5000
    if current < 100000:
        return current + 10000
    if current < 500000:
        return current + 50000
    return current + 100000


@dataclass
class RunState:
    """Per-scenario counters, reset by :meth:`Instrumentation.start`."""

    started_at: float = 0.0
    last_op_at: float = 0.0
    bytes: int = 0
    done: int = 0
    next_report: int = FIRST_REPORT
    message: str = ""


@dataclass
class ScenarioResult:
    name: str
    ops: int
    bytes: int
    elapsed_s: float
    micros_per_op: float
    mb_per_s: float | None
    message: str
    histogram: Histogram | None = field(default=None, repr=False)

    def summary_line(self) -> str:
        message = f" {self.message}" if self.message else ""
        return f"{self.name:<12} : {self.micros_per_op:11.3f} micros/op;{message}"

    def to_row(self) -> dict[str, object]:
        row: dict[str, object] = {
            "scenario": self.name,
            "ops": self.ops,
            "bytes": self.bytes,
            "elapsed_s": self.elapsed_s,
            "micros_per_op": self.micros_per_op,
            "mb_per_s": self.mb_per_s,
            "message": self.message,
        }
        if self.histogram is not None and self.histogram.count:
            row.update(
                {
                    "p50_us": self.histogram.percentile(50.0),
                    "p99_us": self.histogram.percentile(99.0),
                    "max_us": self.histogram.max,
                }
            )
        return row


class Instrumentation:
    """Elapsed-time tracking, adaptive progress reporting and latency histogram."""

    def __init__(
        self,
        histogram: bool = False,
        clock: Callable[[], float] = time.perf_counter,
        out: TextIO | None = None,
        err: TextIO | None = None,
    ) -> None:
        self._histogram_enabled = histogram
        self._clock = clock
        self._out = out
        self._err = err
        self.state = RunState()
        self.histogram = Histogram()

    @property
    def bytes(self) -> int:
        return self.state.bytes

    @property
    def done(self) -> int:
        return self.state.done

    @property
    def message(self) -> str:
        return self.state.message

    @message.setter
    def message(self, value: str) -> None:
        self.state.message = value

    def add_bytes(self, count: int) -> None:
        self.state.bytes += count

    def start(self) -> None:
        now = self._clock()
        self.state = RunState(started_at=now, last_op_at=now)
        self.histogram.clear()

    def finished_single_op(self) -> None:
        state = self.state
        if self._histogram_enabled:
            now = self._clock()
            micros = (now - state.last_op_at) * 1e6
            self.histogram.add(micros)
            if micros > SLOW_OP_MICROS:
                self._progress(f"long op: {micros:.1f} micros")
            state.last_op_at = now

        state.done += 1
        if state.done >= state.next_report:
            state.next_report = next_report_threshold(state.next_report)
            self._progress(f"... finished {state.done} ops")

    def stop(self, name: str) -> ScenarioResult:
        state = self.state
        finish = self._clock()
        elapsed = finish - state.started_at
        # Scenarios that never finish an op still report against one.
        ops = max(state.done, 1)

        mb_per_s = None
        message = state.message
        if state.bytes > 0:
            mb_per_s = (state.bytes / 1048576.0) / elapsed if elapsed > 0 else math.inf
            rate = f"{mb_per_s:6.1f} MB/s"
            message = f"{rate} {message}" if message else rate

        result = ScenarioResult(
            name=name,
            ops=state.done,
            bytes=state.bytes,
            elapsed_s=elapsed,
            micros_per_op=elapsed * 1e6 / ops,
            mb_per_s=mb_per_s,
            message=message,
            histogram=self._snapshot_histogram(),
        )
        out = self._out or sys.stdout
        print(result.summary_line(), file=out)
        if self._histogram_enabled:
            print(f"Microseconds per op:\n{result.histogram}\n", file=out)
        out.flush()
        return result

    def _snapshot_histogram(self) -> Histogram | None:
        if not self._histogram_enabled:
            return None
        snapshot = Histogram()
        snapshot.merge(self.histogram)
        return snapshot

    def _progress(self, text: str) -> None:
        err = self._err or sys.stderr
        err.write(f"{text:<30}\r")
        err.flush()
