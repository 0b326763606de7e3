from __future__ import annotations

import json
import logging
from pathlib import Path

import pandas as pd

from .stats import ScenarioResult

LOGGER = logging.getLogger("kvbench.benchmark")

SUMMARY_COLUMNS = [
    "scenario",
    "ops",
    "bytes",
    "elapsed_s",
    "micros_per_op",
    "mb_per_s",
    "message",
]


class BenchmarkResultCollector:
    """Keeps finished scenario summaries and turns them into DataFrames."""

    def __init__(self, results: list[ScenarioResult] | None = None) -> None:
        self._results: list[ScenarioResult] = list(results or [])

    def __len__(self) -> int:
        return len(self._results)

    def add(self, result: ScenarioResult) -> None:
        self._results.append(result)

    def build_dataframe(self) -> pd.DataFrame:
        if not self._results:
            return pd.DataFrame(columns=SUMMARY_COLUMNS)
        return pd.DataFrame([result.to_row() for result in self._results])

    def build_histogram_dataframe(self) -> pd.DataFrame:
        frames = []
        for result in self._results:
            if result.histogram is None or not result.histogram.count:
                continue
            frame = result.histogram.to_frame()
            frame.insert(0, "scenario", result.name)
            frames.append(frame)
        if not frames:
            return pd.DataFrame(columns=["scenario", "left_us", "right_us", "count"])
        return pd.concat(frames, ignore_index=True)

    def write(self, output_dir: Path) -> dict[str, str]:
        output_dir.mkdir(parents=True, exist_ok=True)
        artefacts: dict[str, str] = {}

        summary_path = output_dir / "summary.csv"
        self.build_dataframe().to_csv(summary_path, index=False)
        artefacts["summary"] = str(summary_path)
        LOGGER.info("Saved scenario summary to %s (%d rows)", summary_path, len(self))

        histograms = self.build_histogram_dataframe()
        if not histograms.empty:
            histogram_path = output_dir / "histograms.csv"
            histograms.to_csv(histogram_path, index=False)
            artefacts["histograms"] = str(histogram_path)
            LOGGER.info("Saved latency histograms to %s", histogram_path)
        return artefacts


def write_manifest(output_dir: Path, artefacts: dict[str, object]) -> Path:
    manifest_path = output_dir / "benchmark_manifest.json"
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(artefacts, f, indent=2)
    LOGGER.info("Benchmark manifest written to %s", manifest_path)
    return manifest_path
